import pytest

from engagement.auth.verify import auth_dependency
from tests.fakes import CampaignHarness, FakeRedisClient


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


@pytest.fixture
def fake_redis():
    return FakeRedisClient()


@pytest.fixture
def harness():
    return CampaignHarness()
