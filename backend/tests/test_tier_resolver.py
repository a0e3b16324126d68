import sys
from dataclasses import replace
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.database import ProviderTierLevel
from models.revenue_share import ProviderMetrics
from services.tier_resolver import TIER_ORDER, is_demotion, is_promotion, resolve_tier, tier_rank


def _metrics(win_rate="0", signals=0, copiers=0, reputation="0"):
    return ProviderMetrics(
        provider_id="p1",
        win_rate=win_rate,
        total_signals=signals,
        total_copiers=copiers,
        reputation_score=reputation,
    )


def test_tier_order_is_explicit():
    assert [tier_rank(level) for level in TIER_ORDER] == [0, 1, 2, 3, 4]
    assert tier_rank("ELITE") > tier_rank("PLATINUM") > tier_rank("GOLD")
    assert tier_rank(ProviderTierLevel.SILVER) > tier_rank(ProviderTierLevel.BRONZE)


def test_promotion_and_demotion_need_a_previous_tier():
    assert is_promotion(ProviderTierLevel.SILVER, ProviderTierLevel.GOLD)
    assert not is_promotion(None, ProviderTierLevel.ELITE)
    assert is_demotion(ProviderTierLevel.GOLD, ProviderTierLevel.BRONZE)
    assert not is_demotion(None, ProviderTierLevel.BRONZE)
    assert not is_promotion(ProviderTierLevel.GOLD, ProviderTierLevel.GOLD)


def test_exact_thresholds_qualify(tier_definitions):
    assert resolve_tier(_metrics("62", 50, 50, "65"), tier_definitions) == ProviderTierLevel.GOLD
    assert resolve_tier(_metrics("75", 200, 300, "85"), tier_definitions) == ProviderTierLevel.ELITE


def test_one_short_threshold_drops_a_tier(tier_definitions):
    # GOLD on every axis except copiers
    assert resolve_tier(_metrics("62", 50, 49, "65"), tier_definitions) == ProviderTierLevel.SILVER
    assert resolve_tier(_metrics("61.99", 50, 50, "65"), tier_definitions) == ProviderTierLevel.SILVER


def test_nothing_met_falls_back_to_bronze(tier_definitions):
    assert resolve_tier(_metrics(), tier_definitions) == ProviderTierLevel.BRONZE
    assert resolve_tier(_metrics("99", 10_000, 10_000, "99"), []) == ProviderTierLevel.BRONZE


def test_resolution_ignores_input_order(tier_definitions):
    shuffled = list(reversed(tier_definitions))
    metrics = _metrics("70", 120, 200, "80")
    assert resolve_tier(metrics, shuffled) == resolve_tier(metrics, tier_definitions)
    assert resolve_tier(metrics, shuffled) == ProviderTierLevel.PLATINUM


def test_tiers_missing_from_the_snapshot_are_skipped(tier_definitions):
    without_elite = [t for t in tier_definitions if t.tier_level != ProviderTierLevel.ELITE]
    assert resolve_tier(_metrics("90", 500, 500, "95"), without_elite) == ProviderTierLevel.PLATINUM


def test_decimal_comparison_not_lexicographic(tier_definitions):
    lowered = [
        replace(t, min_win_rate="9.00") if t.tier_level == ProviderTierLevel.SILVER else t
        for t in tier_definitions
    ]
    # "10" < "9" as strings; as decimals 10 >= 9
    assert resolve_tier(_metrics("10", 20, 10, "55"), lowered) == ProviderTierLevel.SILVER


def test_malformed_metrics_raise(tier_definitions):
    with pytest.raises(ValueError):
        resolve_tier(_metrics(win_rate="high"), tier_definitions)
