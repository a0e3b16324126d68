from .revenue_share import (
    TierDefinition,
    ProviderMetrics,
    TierEvaluationResult,
    RevenueShareCalculation,
    MonthlyBatchResult,
    RetentionRoundResult,
    StreakBonusResult,
    EarningsSummary,
)

__all__ = [
    "TierDefinition",
    "ProviderMetrics",
    "TierEvaluationResult",
    "RevenueShareCalculation",
    "MonthlyBatchResult",
    "RetentionRoundResult",
    "StreakBonusResult",
    "EarningsSummary",
]
