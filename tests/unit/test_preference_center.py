from datetime import UTC, datetime, timedelta

import jwt
import pytest

from engagement.errors import NotFound, Unauthenticated, ValidationError
from engagement.features.campaigns.services import unsubscribe
from engagement.features.campaigns.services.preference_center import (
    PreferenceCenter,
    UnsubscribeAction,
    group_for,
)
from engagement.features.campaigns.services.unsubscribe import issue_token, verify_token
from tests.fakes import FakePreferences


@pytest.fixture
def preferences():
    fake = FakePreferences()
    fake.consent["u1"] = True
    return fake


@pytest.fixture
def center(preferences):
    return PreferenceCenter(preferences=preferences)


def test_group_for_accepts_groups_and_categories():
    assert group_for("weekly_highlights") == "weekly_highlights"
    assert group_for("weekly_digest") == "weekly_highlights"
    assert group_for("seasonal:valentines") == "special_events"

    with pytest.raises(ValidationError):
        group_for("guardian_digest")
    with pytest.raises(ValidationError):
        group_for("newsletter")


@pytest.mark.asyncio
async def test_unsubscribe_from_one_category_keeps_consent(center, preferences):
    result = await center.apply("u1", UnsubscribeAction.UNSUBSCRIBE, category="daily_digest")

    assert result["daily_digest"] is False
    assert result["weekly_highlights"] is True
    assert result["marketing_consent"] is True
    assert preferences.opt_outs["u1"] == {"daily_digest"}


@pytest.mark.asyncio
async def test_unsubscribe_all_withdraws_consent(center, preferences):
    result = await center.apply("u1", UnsubscribeAction.UNSUBSCRIBE_ALL)

    assert not any(result.values())
    assert preferences.consent["u1"] is False


@pytest.mark.asyncio
async def test_switching_last_group_off_withdraws_consent_and_back_on_restores_it(center, preferences):
    preferences.opt_outs["u1"] = {"daily_digest", "weekly_highlights", "re_engagement", "special_events"}

    await center.update("u1", {"profile_nudge": False})
    assert preferences.consent["u1"] is False

    result = await center.update("u1", {"special_events": True})
    assert preferences.consent["u1"] is True
    assert result["special_events"] is True


@pytest.mark.asyncio
async def test_resubscribe_enables_everything(center, preferences):
    await center.apply("u1", UnsubscribeAction.UNSUBSCRIBE_ALL)

    result = await center.apply("u1", UnsubscribeAction.RESUBSCRIBE)

    assert all(result.values())


@pytest.mark.asyncio
async def test_unsubscribe_requires_a_category(center):
    with pytest.raises(ValidationError):
        await center.apply("u1", UnsubscribeAction.UNSUBSCRIBE)


@pytest.mark.asyncio
async def test_unknown_member(center):
    with pytest.raises(NotFound):
        await center.get("ghost")


def test_token_round_trip_names_the_member():
    now = datetime.now(UTC)
    assert verify_token(issue_token("u1", now)) == "u1"


def test_expired_token_is_rejected():
    issued = datetime.now(UTC) - timedelta(days=31)

    with pytest.raises(Unauthenticated):
        verify_token(issue_token("u1", issued))


def test_session_token_is_not_a_preference_token(monkeypatch):
    monkeypatch.setattr(unsubscribe.settings, "UNSUBSCRIBE_SECRET", "shared")
    session = jwt.encode(
        {"sub": "u1", "exp": datetime.now(UTC) + timedelta(hours=1)}, "shared", algorithm="HS256"
    )

    with pytest.raises(Unauthenticated):
        verify_token(session)


def test_forged_token_is_rejected():
    forged = jwt.encode(
        {"sub": "u1", "purpose": "email_preferences", "exp": datetime.now(UTC) + timedelta(days=1)},
        "someone-else",
        algorithm="HS256",
    )

    with pytest.raises(Unauthenticated):
        verify_token(forged)


def test_production_requires_a_secret(monkeypatch):
    monkeypatch.setattr(unsubscribe.settings, "UNSUBSCRIBE_SECRET", None)
    monkeypatch.setattr(unsubscribe.settings, "AUTH_JWT_SECRET", None)
    monkeypatch.setattr(unsubscribe.settings, "environment", "production")

    with pytest.raises(RuntimeError):
        issue_token("u1", datetime.now(UTC))
