"""
Batch orchestration: month-end revenue-share payouts and retention bonuses.

Every provider is handled independently. Its payout commits in its own
session, and any error is recorded in the batch outcome instead of being
raised, so one bad provider never aborts a run. Both rounds skip providers
that were already paid for the period, which makes re-running a period safe.
"""

from decimal import Decimal
from typing import Any, Mapping, Optional

from config import settings
from models.database import AsyncSessionLocal, BonusType, ProviderTierLevel
from models.revenue_share import BatchItemOutcome, MonthlyBatchResult, RetentionRoundResult
from services.payout_ledger import PayoutLedger, payout_ledger, validate_period
from services.provider_directory import ProviderDirectory, provider_directory
from services.revenue_share import RevenueShareService, revenue_share_service
from services.tier_catalog import TierCatalog, tier_catalog
from services.tier_evaluator import TierEvaluator, tier_evaluator
from utils.errors import InvalidArgumentError, NotFoundError
from utils.logger import get_logger
from utils.money import format_amount, is_positive, to_decimal
from utils.provider_locks import ProviderLocks, provider_locks

logger = get_logger("payout_batch")

SKIP_ZERO_REVENUE = "zero revenue"
SKIP_ALREADY_PROCESSED = "already processed for period"


class PayoutBatchService:
    def __init__(
        self,
        revenue_service: Optional[RevenueShareService] = None,
        catalog: Optional[TierCatalog] = None,
        evaluator: Optional[TierEvaluator] = None,
        ledger: Optional[PayoutLedger] = None,
        directory: Optional[ProviderDirectory] = None,
        locks: Optional[ProviderLocks] = None,
        session_factory=None,
    ):
        self._revenue_service = revenue_service or revenue_share_service
        self._catalog = catalog or tier_catalog
        self._evaluator = evaluator or tier_evaluator
        self._ledger = ledger or payout_ledger
        self._directory = directory or provider_directory
        self._locks = locks or provider_locks
        self._session_factory = session_factory or AsyncSessionLocal

    async def _has_retention_bonus(self, session, provider_id: str, year: int, month: int) -> bool:
        payouts = await self._ledger.find_for_period(provider_id, year, month, session=session)
        return any(
            p.bonus_type == BonusType.MONTHLY_TOP and not is_positive(p.revenue_share_amount)
            for p in payouts
        )

    async def process_monthly_batch(
        self, year: int, month: int, revenue_by_provider: Mapping[str, Any]
    ) -> MonthlyBatchResult:
        """Create one revenue-share payout per provider for a billing period.

        Args:
            year: Billing year.
            month: Billing month (1-12).
            revenue_by_provider: provider_id -> base revenue (USDC) for the period.

        Returns:
            MonthlyBatchResult with counts, the exact sum of all created
            payouts, and one outcome per provider.
        """
        validate_period(year, month)
        result = MonthlyBatchResult(period_year=int(year), period_month=int(month))
        total_dispatched = Decimal(0)

        for provider_id, raw_revenue in revenue_by_provider.items():
            result.processed += 1

            try:
                base = to_decimal(raw_revenue, "base_revenue")
            except InvalidArgumentError as exc:
                result.failed_payouts += 1
                result.details.append(
                    BatchItemOutcome(provider_id=provider_id, status="failed", reason=exc.message)
                )
                logger.error("Monthly payout rejected", provider_id=provider_id, error=exc.message)
                continue

            if base <= 0:
                result.skipped += 1
                result.details.append(
                    BatchItemOutcome(provider_id=provider_id, status="skipped", reason=SKIP_ZERO_REVENUE)
                )
                continue

            try:
                payout = await self._revenue_service.process_provider_payout(
                    provider_id,
                    base,
                    include_bonus=True,
                    period_year=year,
                    period_month=month,
                    once_per_period=True,
                )
            except Exception as exc:
                result.failed_payouts += 1
                result.details.append(
                    BatchItemOutcome(provider_id=provider_id, status="failed", reason=str(exc))
                )
                logger.error(
                    "Monthly payout failed",
                    provider_id=provider_id,
                    error=str(exc),
                )
                continue

            if payout is None:
                result.skipped += 1
                result.details.append(
                    BatchItemOutcome(
                        provider_id=provider_id,
                        status="skipped",
                        reason=SKIP_ALREADY_PROCESSED,
                    )
                )
                continue

            total_dispatched += to_decimal(payout.total_payout)
            result.successful_payouts += 1
            result.details.append(
                BatchItemOutcome(
                    provider_id=provider_id,
                    status="success",
                    amount=payout.total_payout,
                    payout_id=payout.id,
                )
            )

        result.total_dispatched = format_amount(total_dispatched)
        logger.info(
            "Monthly batch complete",
            period=f"{year}-{int(month):02d}",
            processed=result.processed,
            successful=result.successful_payouts,
            failed=result.failed_payouts,
            skipped=result.skipped,
            total_dispatched=result.total_dispatched,
        )
        return result

    async def run_retention_bonus_round(self, year: int, month: int) -> RetentionRoundResult:
        """Credit the monthly retention bonus to every provider in a bonus tier."""
        validate_period(year, month)
        result = RetentionRoundResult(period_year=int(year), period_month=int(month))
        total_bonus = Decimal(0)

        for tier_name in settings.RETENTION_BONUS_TIERS:
            tier_level = ProviderTierLevel(tier_name)
            try:
                definition = await self._catalog.get_definition(tier_level)
            except NotFoundError:
                logger.warning("Retention tier has no definition", tier_level=tier_level.value)
                continue
            bonus = definition.monthly_retention_bonus_usdc
            if not is_positive(bonus):
                continue

            for assignment in await self._evaluator.get_providers_in_tier(tier_level):
                provider_id = assignment.provider_id
                try:
                    wallet = await self._directory.get_wallet_address(provider_id)
                    if not wallet:
                        logger.warning(
                            "Retention bonus skipped, provider has no wallet",
                            provider_id=provider_id,
                        )
                        result.skipped += 1
                        continue

                    # The period check shares the lock and transaction with the write
                    async with self._locks.hold(provider_id):
                        async with self._session_factory() as session:
                            if await self._has_retention_bonus(session, provider_id, year, month):
                                payout = None
                            else:
                                payout = await self._ledger.record_payout(
                                    session,
                                    provider_id=provider_id,
                                    tier_level=tier_level,
                                    wallet_address=wallet,
                                    bonus_amount=bonus,
                                    bonus_type=BonusType.MONTHLY_TOP,
                                    period_year=year,
                                    period_month=month,
                                )
                                await session.commit()
                except Exception as exc:
                    result.skipped += 1
                    logger.error(
                        "Retention bonus failed",
                        provider_id=provider_id,
                        error=str(exc),
                    )
                    continue

                if payout is None:
                    result.skipped += 1
                    continue

                total_bonus += to_decimal(payout.bonus_amount)
                result.credited += 1

        result.total_bonus_usdc = format_amount(total_bonus)
        logger.info(
            "Retention bonus round complete",
            period=f"{year}-{int(month):02d}",
            credited=result.credited,
            skipped=result.skipped,
            total_bonus_usdc=result.total_bonus_usdc,
        )
        return result


payout_batch_service = PayoutBatchService()
