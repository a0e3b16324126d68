"""Pure tier classification: metrics in, tier level out. No I/O."""

from typing import Iterable, Optional

from models.database import ProviderTierLevel
from models.revenue_share import ProviderMetrics, TierDefinition
from utils.money import to_decimal

# Lowest to highest. Rank comparisons go through this list, never through
# enum declaration order or string comparison.
TIER_ORDER: list[ProviderTierLevel] = [
    ProviderTierLevel.BRONZE,
    ProviderTierLevel.SILVER,
    ProviderTierLevel.GOLD,
    ProviderTierLevel.PLATINUM,
    ProviderTierLevel.ELITE,
]


def tier_rank(level) -> int:
    """Position of ``level`` in TIER_ORDER (BRONZE = 0)."""
    return TIER_ORDER.index(ProviderTierLevel(level))


def is_promotion(previous: Optional[ProviderTierLevel], new: ProviderTierLevel) -> bool:
    return previous is not None and tier_rank(new) > tier_rank(previous)


def is_demotion(previous: Optional[ProviderTierLevel], new: ProviderTierLevel) -> bool:
    return previous is not None and tier_rank(new) < tier_rank(previous)


def qualifies(metrics: ProviderMetrics, tier: TierDefinition) -> bool:
    """True when every threshold of ``tier`` is met (all comparisons inclusive)."""
    return (
        to_decimal(metrics.win_rate, "win_rate") >= to_decimal(tier.min_win_rate)
        and int(metrics.total_signals) >= tier.min_signals
        and int(metrics.total_copiers) >= tier.min_copiers
        and to_decimal(metrics.reputation_score, "reputation_score")
        >= to_decimal(tier.min_reputation_score)
    )


def resolve_tier(
    metrics: ProviderMetrics, tiers: Iterable[TierDefinition]
) -> ProviderTierLevel:
    """Highest-ranked tier whose thresholds the metrics meet, else BRONZE.

    Args:
        metrics: Provider performance snapshot.
        tiers: Active tier definitions in any order.

    Returns:
        The resolved tier level. An empty ``tiers`` yields BRONZE.
    """
    ordered = sorted(tiers, key=lambda tier: tier_rank(tier.tier_level), reverse=True)
    for tier in ordered:
        if qualifies(metrics, tier):
            return tier.tier_level
    return ProviderTierLevel.BRONZE
