import pytest

from engagement.errors import NotFound
from engagement.features.campaigns.jobs import registry
from engagement.features.campaigns.jobs.base import CampaignJob, CampaignResult
from engagement.jobs import worker


class DummyJob(CampaignJob):
    name = "birthday"

    async def execute(self, now, metrics):
        metrics.record_sent("u1")


class BrokenJob(CampaignJob):
    name = "birthday"

    async def execute(self, now, metrics):
        raise RuntimeError("boom")


class NoopPool:
    async def initialize(self):
        return None

    async def close(self):
        return None


class NoopRedis:
    async def close(self):
        return None


@pytest.fixture
def no_resources(monkeypatch):
    monkeypatch.setattr(worker, "db_pool", NoopPool())
    monkeypatch.setattr(worker, "fast_redis", NoopRedis())


@pytest.mark.parametrize("name", ["win_back", "win-back", " Win-Back "])
def test_resolve_campaign_accepts_trigger_spellings(name):
    assert registry.resolve_campaign(name) is registry.CampaignName.WIN_BACK


def test_resolve_unknown_campaign():
    with pytest.raises(NotFound):
        registry.resolve_campaign("newsletter")


def test_every_campaign_is_registered():
    assert set(registry.CAMPAIGN_REGISTRY) == set(registry.CampaignName)


@pytest.mark.asyncio
async def test_run_worker_runs_campaign(monkeypatch, no_resources):
    monkeypatch.setitem(registry.CAMPAIGN_REGISTRY, registry.CampaignName.BIRTHDAY, DummyJob)

    result = await worker.run_worker("birthday")

    assert isinstance(result, CampaignResult)
    assert result.sent == 1


@pytest.mark.asyncio
async def test_run_worker_unknown_job(no_resources):
    with pytest.raises(NotFound):
        await worker.run_worker("missing")


def test_main_exit_codes(monkeypatch, no_resources):
    monkeypatch.setattr(worker, "setup_logging", lambda log_level: None)

    monkeypatch.setattr(worker.sys, "argv", ["worker", "birthday"])
    monkeypatch.setitem(registry.CAMPAIGN_REGISTRY, registry.CampaignName.BIRTHDAY, DummyJob)
    assert worker.main() == 0

    monkeypatch.setitem(registry.CAMPAIGN_REGISTRY, registry.CampaignName.BIRTHDAY, BrokenJob)
    assert worker.main() == 1

    monkeypatch.setattr(worker.sys, "argv", ["worker", "newsletter"])
    assert worker.main() == 2
