"""Value objects returned by the revenue-share services."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from models.database import (
    BonusType,
    ProviderRevenuePayout,
    ProviderTierAssignment,
    ProviderTierLevel,
    RevenueShareTier,
)
from utils.money import ZERO_AMOUNT


@dataclass(frozen=True)
class TierDefinition:
    """Immutable snapshot of a RevenueShareTier row held by the tier cache."""

    tier_level: ProviderTierLevel
    name: str
    description: Optional[str]
    revenue_share_percentage: str
    min_win_rate: str
    min_signals: int
    min_copiers: int
    min_reputation_score: str
    performance_bonus_usdc: str
    monthly_retention_bonus_usdc: str
    is_active: bool
    sort_order: int

    @classmethod
    def from_row(cls, row: RevenueShareTier) -> "TierDefinition":
        return cls(
            tier_level=ProviderTierLevel(row.tier_level),
            name=row.name,
            description=row.description,
            revenue_share_percentage=row.revenue_share_percentage,
            min_win_rate=row.min_win_rate,
            min_signals=int(row.min_signals or 0),
            min_copiers=int(row.min_copiers or 0),
            min_reputation_score=row.min_reputation_score,
            performance_bonus_usdc=row.performance_bonus_usdc,
            monthly_retention_bonus_usdc=row.monthly_retention_bonus_usdc,
            is_active=bool(row.is_active),
            sort_order=int(row.sort_order or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["tier_level"] = self.tier_level.value
        return data


@dataclass
class ProviderMetrics:
    """Performance snapshot fed into a tier evaluation (never persisted as-is)."""

    provider_id: str
    win_rate: Any = 0
    total_signals: int = 0
    total_copiers: int = 0
    reputation_score: Any = 0
    wallet_address: Optional[str] = None


@dataclass
class TierEvaluationResult:
    provider_id: str
    previous_tier: Optional[ProviderTierLevel]
    new_tier: ProviderTierLevel
    promoted: bool
    demoted: bool
    bonus_triggered: bool
    bonus_amount: str = ZERO_AMOUNT

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "previous_tier": self.previous_tier.value if self.previous_tier else None,
            "new_tier": self.new_tier.value,
            "promoted": self.promoted,
            "demoted": self.demoted,
            "bonus_triggered": self.bonus_triggered,
            "bonus_amount": self.bonus_amount,
        }


@dataclass
class TierSummary:
    tier_level: ProviderTierLevel
    name: str
    revenue_share_percentage: str
    min_win_rate: str
    min_signals: int
    min_copiers: int
    min_reputation_score: str
    performance_bonus_usdc: str
    monthly_retention_bonus_usdc: str
    provider_count: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["tier_level"] = self.tier_level.value
        return data


@dataclass
class RevenueShareCalculation:
    """Preview of a payout; nothing is persisted when this is produced."""

    provider_id: str
    tier_level: ProviderTierLevel
    share_percentage: str
    base_revenue: str
    revenue_share_amount: str
    bonus_amount: str
    bonus_type: Optional[BonusType]
    total_payout: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["tier_level"] = self.tier_level.value
        data["bonus_type"] = self.bonus_type.value if self.bonus_type else None
        return data


@dataclass
class BatchItemOutcome:
    provider_id: str
    status: str  # success | failed | skipped
    amount: str = ZERO_AMOUNT
    reason: Optional[str] = None
    payout_id: Optional[str] = None


@dataclass
class MonthlyBatchResult:
    period_year: int
    period_month: int
    processed: int = 0
    total_dispatched: str = ZERO_AMOUNT
    successful_payouts: int = 0
    failed_payouts: int = 0
    skipped: int = 0
    details: list[BatchItemOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RetentionRoundResult:
    period_year: int
    period_month: int
    credited: int = 0
    total_bonus_usdc: str = ZERO_AMOUNT
    skipped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class StreakBonusResult:
    bonus_issued: bool
    bonus_amount: str
    streak_count: int
    payout_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PayoutHistory:
    data: list[ProviderRevenuePayout]
    total: int
    page: int
    limit: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [serialize_payout(p) for p in self.data],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
        }


@dataclass
class MonthlyEarnings:
    year: int
    month: int
    revenue_share: str
    bonuses: str
    total: str


@dataclass
class EarningsSummary:
    provider_id: str
    current_tier: ProviderTierLevel
    revenue_share_percentage: str
    total_earnings: str
    total_bonuses: str
    pending_payouts: str
    last_payout_at: Optional[datetime]
    monthly_breakdown: list[MonthlyEarnings] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["current_tier"] = self.current_tier.value
        data["last_payout_at"] = _to_iso(self.last_payout_at)
        return data


@dataclass
class PeriodPayoutReport:
    period_year: int
    period_month: int
    payouts: list[ProviderRevenuePayout]
    total_dispatched: str
    tier_breakdown: dict[str, dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_year": self.period_year,
            "period_month": self.period_month,
            "payouts": [serialize_payout(p) for p in self.payouts],
            "total_dispatched": self.total_dispatched,
            "tier_breakdown": self.tier_breakdown,
        }


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None).isoformat() + "Z"


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def serialize_payout(row: ProviderRevenuePayout) -> dict[str, Any]:
    return {
        "id": row.id,
        "provider_id": row.provider_id,
        "tier_level": _enum_value(row.tier_level),
        "base_revenue": row.base_revenue,
        "share_percentage": row.share_percentage,
        "revenue_share_amount": row.revenue_share_amount,
        "bonus_amount": row.bonus_amount,
        "bonus_type": _enum_value(row.bonus_type),
        "is_promotion_bonus": bool(row.is_promotion_bonus),
        "total_payout": row.total_payout,
        "asset_code": row.asset_code,
        "provider_wallet_address": row.provider_wallet_address,
        "status": _enum_value(row.status),
        "period_year": row.period_year,
        "period_month": row.period_month,
        "stellar_tx_hash": row.stellar_tx_hash,
        "failure_reason": row.failure_reason,
        "retry_count": row.retry_count,
        "paid_at": _to_iso(row.paid_at),
        "created_at": _to_iso(row.created_at),
    }


def serialize_assignment(row: ProviderTierAssignment) -> dict[str, Any]:
    return {
        "provider_id": row.provider_id,
        "current_tier": _enum_value(row.current_tier),
        "previous_tier": _enum_value(row.previous_tier),
        "win_rate_snapshot": row.win_rate_snapshot,
        "signals_snapshot": row.signals_snapshot,
        "copiers_snapshot": row.copiers_snapshot,
        "reputation_snapshot": row.reputation_snapshot,
        "last_evaluated_at": _to_iso(row.last_evaluated_at),
        "promotion_bonus_paid": bool(row.promotion_bonus_paid),
    }

