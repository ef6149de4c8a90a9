"""
Profile completeness.

One table of weighted fields drives both the SQL predicate the nudge
selection runs and the per-member score shown in the email, so the two can
not drift apart.
"""

from collections.abc import Callable
from dataclasses import dataclass

from .models import UserRecord

# Profiles scoring below this get the completion nudge
PROFILE_NUDGE_THRESHOLD = 50


@dataclass(frozen=True, slots=True)
class ProfileField:
    key: str
    weight: int
    label: str | None
    sql_filled: str
    filled: Callable[[UserRecord], bool]


PROFILE_FIELDS: tuple[ProfileField, ...] = (
    ProfileField(
        "profile_image", 30, "Profielfoto",
        "COALESCE(profile_image_url, '') <> ''",
        lambda u: bool(u.profile_image_url),
    ),
    ProfileField(
        "bio", 20, "Over jezelf (bio)",
        "LENGTH(COALESCE(bio, '')) > 20",
        lambda u: len(u.bio or "") > 20,
    ),
    ProfileField(
        "interests", 15, "Interesses",
        "COALESCE(CARDINALITY(interests), 0) > 0",
        lambda u: bool(u.interests),
    ),
    # Counts toward the score but is never asked for in the email
    ProfileField(
        "birth_date", 10, None,
        "birth_date IS NOT NULL",
        lambda u: u.birth_date is not None,
    ),
    ProfileField(
        "city", 10, "Woonplaats",
        "COALESCE(city, '') <> ''",
        lambda u: bool(u.city),
    ),
    ProfileField(
        "voice_intro", 10, "Stem intro",
        "COALESCE(voice_intro_url, '') <> ''",
        lambda u: bool(u.voice_intro_url),
    ),
    ProfileField(
        "looking_for", 5, "Wat zoek je?",
        "COALESCE(looking_for, '') <> ''",
        lambda u: bool(u.looking_for),
    ),
)


def profile_score(user: UserRecord) -> int:
    """Completeness from 0 to 100."""
    return sum(f.weight for f in PROFILE_FIELDS if f.filled(user))


def missing_fields(user: UserRecord) -> list[str]:
    """Labels of unfilled fields worth asking for, heaviest first."""
    return [f.label for f in PROFILE_FIELDS if f.label and not f.filled(user)]


def profile_score_sql() -> str:
    return " + ".join(f"(CASE WHEN {f.sql_filled} THEN {f.weight} ELSE 0 END)" for f in PROFILE_FIELDS)
