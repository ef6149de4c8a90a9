from datetime import timedelta

import pytest

from engagement.errors import ValidationError
from engagement.features.campaigns.domain import AudienceExclusion
from engagement.features.campaigns.repository import recipient_repository
from engagement.features.campaigns.repository.recipient_repository import RecipientRepository
from tests.fakes import NOW


@pytest.fixture
def captured(monkeypatch):
    calls = []

    async def fake_fetch_all(query, params=None):
        calls.append((" ".join(query.split()), params))
        return []

    monkeypatch.setattr(recipient_repository, "fetch_all", fake_fetch_all)
    return calls


def _exclusion(**overrides):
    values = {
        "category": "win_back",
        "window_key": "cooldown-684",
        "since": NOW - timedelta(days=30),
        "preference": "re_engagement",
        "marketing": True,
    }
    values.update(overrides)
    return AudienceExclusion(**values)


@pytest.mark.asyncio
async def test_selection_leaves_out_members_served_in_the_window(captured):
    oldest, newest = NOW - timedelta(days=180), NOW - timedelta(days=90)

    await RecipientRepository.find_last_active_between(oldest, newest, exclude=_exclusion())

    query, params = captured[0]
    assert "FROM delivery_outcomes dlo" in query
    assert "dlo.success AND dlo.created_at >= %s" in query
    assert "FROM delivery_claims dc" in query
    assert "users.marketing_consent" in query
    assert "FROM email_suppressions es" in query
    assert "ep.re_engagement IS FALSE" in query
    assert query.index("NOT EXISTS") < query.index("ORDER BY id LIMIT %s")
    assert params == (
        oldest, newest, "win_back", NOW - timedelta(days=30), "win_back", "cooldown-684", 500
    )


@pytest.mark.asyncio
async def test_once_only_category_excludes_any_earlier_success(captured):
    await RecipientRepository.find_signed_up_between(
        NOW - timedelta(days=9), NOW - timedelta(days=7),
        exclude=_exclusion(category="milestone:one_week_active", window_key="once", since=None),
    )

    query, params = captured[0]
    assert "dlo.created_at >= %s" not in query
    assert params[2:] == ("milestone:one_week_active", "milestone:one_week_active", "once", 500)


@pytest.mark.asyncio
async def test_guardian_selection_ignores_member_marketing_settings(captured):
    await RecipientRepository.find_guardian_recipients(
        exclude=_exclusion(category="guardian_digest", preference=None, marketing=False)
    )

    query, _ = captured[0]
    assert "FROM delivery_claims dc" in query
    assert "marketing_consent" not in query
    assert "email_suppressions" not in query


@pytest.mark.asyncio
async def test_conversation_finders_apply_exclusion_to_the_member(captured):
    await RecipientRepository.find_unanswered_messages(
        NOW - timedelta(days=7), NOW - timedelta(days=2),
        exclude=_exclusion(category="unanswered_message", preference=None),
    )

    query, params = captured[0]
    assert "dlo.user_id = u.id" in query
    assert "u.marketing_consent" in query
    assert "COUNT(*) OVER (PARTITION BY u.id) AS unread_count" in query
    assert params[-1] == 500


@pytest.mark.asyncio
async def test_incomplete_profile_query_scores_in_sql(captured):
    await RecipientRepository.find_incomplete_profiles(NOW - timedelta(days=3), limit=20)

    query, params = captured[0]
    assert "(CASE WHEN COALESCE(profile_image_url, '') <> '' THEN 30 ELSE 0 END)" in query
    assert params == (NOW - timedelta(days=3), 50, 20)


@pytest.mark.asyncio
async def test_unknown_preference_group_is_rejected(captured):
    with pytest.raises(ValidationError):
        await RecipientRepository.find_active_since(NOW, exclude=_exclusion(preference="ads; DROP TABLE users"))

    assert captured == []
