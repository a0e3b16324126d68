"""
Revenue share calculator and single-provider payout dispatch.

A provider's share is ``base_revenue * tier.revenue_share_percentage / 100``
(8 fractional digits, ROUND_HALF_UP). Payout rows are created through the
ledger and left PENDING (or PROCESSING for auto-approved tiers) for the
on-chain dispatcher.
"""

from typing import Any, Optional

from config import settings
from models.database import (
    AsyncSessionLocal,
    BonusType,
    ProviderRevenuePayout,
    ProviderTierLevel,
)
from models.revenue_share import (
    EarningsSummary,
    RevenueShareCalculation,
    StreakBonusResult,
)
from services.payout_ledger import PayoutLedger, payout_ledger
from services.provider_directory import ProviderDirectory, provider_directory
from services.tier_catalog import TierCatalog, tier_catalog
from services.tier_evaluator import TierEvaluator, tier_evaluator
from utils.errors import InvalidArgumentError, NotFoundError
from utils.logger import get_logger
from utils.money import (
    ZERO_AMOUNT,
    add,
    apply_percentage,
    format_amount,
    is_positive,
    require_positive,
    to_decimal,
)
from utils.provider_locks import ProviderLocks, provider_locks
from utils.utcnow import utc_month_start

logger = get_logger("revenue_share")


class RevenueShareService:
    def __init__(
        self,
        catalog: Optional[TierCatalog] = None,
        evaluator: Optional[TierEvaluator] = None,
        ledger: Optional[PayoutLedger] = None,
        directory: Optional[ProviderDirectory] = None,
        locks: Optional[ProviderLocks] = None,
        session_factory=None,
    ):
        self._catalog = catalog or tier_catalog
        self._evaluator = evaluator or tier_evaluator
        self._ledger = ledger or payout_ledger
        self._directory = directory or provider_directory
        self._locks = locks or provider_locks
        self._session_factory = session_factory or AsyncSessionLocal

    async def _current_tier(self, provider_id: str) -> ProviderTierLevel:
        assignment = await self._evaluator.get_provider_tier(provider_id)
        if assignment is None:
            # First time this provider is seen
            result = await self._evaluator.evaluate_provider(provider_id)
            return result.new_tier
        return ProviderTierLevel(assignment.current_tier)

    async def _require_wallet(self, provider_id: str) -> str:
        wallet = await self._directory.get_wallet_address(provider_id)
        if not wallet:
            raise NotFoundError(f"Provider {provider_id} has no wallet address")
        return wallet

    # ==================== CALCULATION ====================

    async def calculate(
        self, provider_id: str, base_revenue: Any, include_bonus: bool = False
    ) -> RevenueShareCalculation:
        """Preview a provider's revenue share without persisting anything.

        Args:
            provider_id: Provider to calculate for. A provider without a tier
                assignment is evaluated first.
            base_revenue: Platform revenue attributed to the provider (USDC).
            include_bonus: Add the tier's monthly retention bonus (MONTHLY_TOP)
                when it is positive.

        Raises:
            InvalidArgumentError: base_revenue is not a positive decimal.
            NotFoundError: the provider's tier has no definition.
        """
        base = require_positive(base_revenue, "base_revenue")
        tier_level = await self._current_tier(provider_id)
        definition = await self._catalog.get_definition(tier_level)

        share = apply_percentage(base, definition.revenue_share_percentage)
        bonus_amount = ZERO_AMOUNT
        bonus_type: Optional[BonusType] = None
        if include_bonus and is_positive(definition.monthly_retention_bonus_usdc):
            bonus_amount = format_amount(definition.monthly_retention_bonus_usdc)
            bonus_type = BonusType.MONTHLY_TOP

        return RevenueShareCalculation(
            provider_id=provider_id,
            tier_level=tier_level,
            share_percentage=definition.revenue_share_percentage,
            base_revenue=format_amount(base),
            revenue_share_amount=share,
            bonus_amount=bonus_amount,
            bonus_type=bonus_type,
            total_payout=add(share, bonus_amount),
        )

    # ==================== PAYOUTS ====================

    async def process_provider_payout(
        self,
        provider_id: str,
        base_revenue: Any,
        include_bonus: bool = True,
        period_year: Optional[int] = None,
        period_month: Optional[int] = None,
        bonus_override: Optional[tuple[Any, BonusType]] = None,
        once_per_period: bool = False,
    ) -> Optional[ProviderRevenuePayout]:
        """Calculate and record a revenue-share payout for one provider.

        ``bonus_override`` is an ``(amount, bonus_type)`` pair that replaces
        the calculated bonus. Payouts of tiers listed in AUTO_APPROVE_TIERS
        are moved straight to PROCESSING.

        With ``once_per_period`` nothing is recorded, and None is returned,
        when the provider already holds a revenue payout for the period. The
        check runs under the provider lock in the recording transaction.
        """
        if once_per_period and (period_year is None or period_month is None):
            raise InvalidArgumentError("once_per_period requires period_year and period_month")
        # Calculation may run a first evaluation, which takes the provider
        # lock itself; it has to finish before the lock is taken below.
        calc = await self.calculate(provider_id, base_revenue, include_bonus)
        wallet = await self._require_wallet(provider_id)

        bonus_amount = calc.bonus_amount
        bonus_type = calc.bonus_type
        if bonus_override is not None:
            override_amount, override_type = bonus_override
            parsed = to_decimal(override_amount, "bonus_amount")
            if parsed < 0:
                raise InvalidArgumentError("bonus_amount must be non-negative")
            bonus_amount = format_amount(parsed)
            bonus_type = BonusType(override_type) if parsed > 0 else None

        async with self._locks.hold(provider_id):
            async with self._session_factory() as session:
                if once_per_period:
                    existing = await self._ledger.find_for_period(
                        provider_id, period_year, period_month, session=session
                    )
                    if any(is_positive(p.base_revenue) for p in existing):
                        logger.info(
                            "Revenue payout already recorded for period",
                            provider_id=provider_id,
                            period=f"{period_year}-{int(period_month):02d}",
                        )
                        return None
                payout = await self._ledger.record_payout(
                    session,
                    provider_id=provider_id,
                    tier_level=calc.tier_level,
                    wallet_address=wallet,
                    base_revenue=calc.base_revenue,
                    share_percentage=calc.share_percentage,
                    revenue_share_amount=calc.revenue_share_amount,
                    bonus_amount=bonus_amount,
                    bonus_type=bonus_type,
                    period_year=period_year,
                    period_month=period_month,
                )
                if calc.tier_level.value in settings.AUTO_APPROVE_TIERS:
                    await self._ledger.escalate(session, payout)
                await session.commit()

        logger.info(
            "Payout created",
            provider_id=provider_id,
            tier_level=calc.tier_level.value,
            total_payout=payout.total_payout,
            payout_id=payout.id,
            status=payout.status.value,
        )
        return payout

    async def award_performance_bonus(
        self,
        provider_id: str,
        amount: Any,
        bonus_type: BonusType = BonusType.PERFORMANCE,
        reason: Optional[str] = None,
    ) -> ProviderRevenuePayout:
        """Record a bonus-only payout (no revenue share) at the provider's tier."""
        bonus = require_positive(amount, "bonus_amount")
        wallet = await self._require_wallet(provider_id)

        async with self._locks.hold(provider_id):
            async with self._session_factory() as session:
                payout = await self._record_bonus(
                    session, provider_id, wallet, bonus, BonusType(bonus_type)
                )
                await session.commit()

        logger.info(
            "Bonus awarded",
            provider_id=provider_id,
            bonus_amount=payout.bonus_amount,
            bonus_type=payout.bonus_type.value,
            reason=reason,
        )
        return payout

    async def _record_bonus(
        self,
        session,
        provider_id: str,
        wallet: str,
        amount: Any,
        bonus_type: BonusType,
        period_year: Optional[int] = None,
        period_month: Optional[int] = None,
    ) -> ProviderRevenuePayout:
        assignment = await self._evaluator.get_provider_tier(provider_id)
        tier_level = (
            ProviderTierLevel(assignment.current_tier)
            if assignment is not None
            else ProviderTierLevel.BRONZE
        )
        return await self._ledger.record_payout(
            session,
            provider_id=provider_id,
            tier_level=tier_level,
            wallet_address=wallet,
            bonus_amount=amount,
            bonus_type=bonus_type,
            period_year=period_year,
            period_month=period_month,
        )

    async def check_and_issue_streak_bonus(self, provider_id: str) -> StreakBonusResult:
        """Pay a STREAK bonus when the provider's win streak hits a milestone.

        Thresholds are tried highest first; the first one the streak reaches
        and is an exact multiple of wins. At most one streak bonus is issued
        per provider per calendar month (UTC).
        """
        streak = await self._directory.get_streak_wins(provider_id)
        if streak is None:
            return StreakBonusResult(bonus_issued=False, bonus_amount="0", streak_count=0)

        match = None
        for threshold, bonus in settings.STREAK_BONUS_THRESHOLDS:
            if streak >= threshold and streak % threshold == 0:
                match = (threshold, bonus)
                break
        if match is None:
            return StreakBonusResult(bonus_issued=False, bonus_amount="0", streak_count=streak)

        _threshold, bonus = match
        wallet = await self._require_wallet(provider_id)
        month_start = utc_month_start()

        async with self._locks.hold(provider_id):
            async with self._session_factory() as session:
                if await self._ledger.has_bonus(
                    session, provider_id, BonusType.STREAK, created_since=month_start
                ):
                    logger.debug(
                        "Streak bonus already issued this month",
                        provider_id=provider_id,
                        streak=streak,
                    )
                    return StreakBonusResult(
                        bonus_issued=False, bonus_amount="0", streak_count=streak
                    )
                payout = await self._record_bonus(
                    session, provider_id, wallet, bonus, BonusType.STREAK
                )
                await session.commit()

        logger.info(
            "Streak bonus issued",
            provider_id=provider_id,
            streak=streak,
            bonus_amount=payout.bonus_amount,
            reason=f"Win streak of {streak}",
        )
        return StreakBonusResult(
            bonus_issued=True,
            bonus_amount=bonus,
            streak_count=streak,
            payout_id=payout.id,
        )

    # ==================== REPORTING ====================

    async def get_earnings_summary(self, provider_id: str) -> EarningsSummary:
        assignment = await self._evaluator.get_provider_tier(provider_id)
        if assignment is None:
            raise NotFoundError(f"No tier assignment found for provider {provider_id}")

        tier_level = ProviderTierLevel(assignment.current_tier)
        definition = self._catalog.cached_definition(tier_level)
        percentage = definition.revenue_share_percentage if definition is not None else "0"
        return await self._ledger.get_earnings_summary(provider_id, tier_level, percentage)


revenue_share_service = RevenueShareService()
