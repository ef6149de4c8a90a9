"""
Subject-line A/B experiments: stable variant assignment and significance.
"""

import hashlib
import math
from dataclasses import dataclass
from statistics import NormalDist

from engagement.features.campaigns.domain import Experiment, Variant, VariantStats

MIN_SENDS_PER_VARIANT = 30
WINNING_CONFIDENCE = 0.95


def assign_variant(user_id: str, traffic_split_percent: int = 50) -> Variant:
    """
    Stable assignment: the same user always lands in the same variant.

    ``traffic_split_percent`` is the share of users that receive variant B.
    """
    digest = hashlib.sha256(user_id.encode("utf-8")).digest()
    bucket = int.from_bytes(digest[:8], "big") % 100
    return "B" if bucket < traffic_split_percent else "A"


def subject_for(experiment: Experiment, variant: Variant) -> str:
    return experiment.variant_b_subject if variant == "B" else experiment.variant_a_subject


def two_proportion_confidence(a: VariantStats, b: VariantStats) -> float:
    """
    Two-sided confidence that the conversion rates of ``a`` and ``b`` differ,
    from a pooled two-proportion z-test. 0.0 below the minimum sample size.
    """
    if a.sent < MIN_SENDS_PER_VARIANT or b.sent < MIN_SENDS_PER_VARIANT:
        return 0.0

    pooled = (a.conversions + b.conversions) / (a.sent + b.sent)
    se = math.sqrt(pooled * (1 - pooled) * (1 / a.sent + 1 / b.sent))
    if se == 0:
        return 0.0

    z = abs(a.rate - b.rate) / se
    return 2 * NormalDist().cdf(z) - 1


@dataclass(slots=True)
class ExperimentVerdict:
    confidence: float
    winner: Variant | None

    @property
    def conclusive(self) -> bool:
        return self.winner is not None


def evaluate(stats: dict[str, VariantStats]) -> ExperimentVerdict:
    a = stats.get("A") or VariantStats(sent=0, conversions=0)
    b = stats.get("B") or VariantStats(sent=0, conversions=0)
    confidence = two_proportion_confidence(a, b)
    if confidence < WINNING_CONFIDENCE:
        return ExperimentVerdict(confidence=confidence, winner=None)
    return ExperimentVerdict(confidence=confidence, winner="A" if a.rate > b.rate else "B")
