"""
Tier evaluator: (re)classifies providers and maintains their tier assignment.

A promotion into a tier with a positive ``performance_bonus_usdc`` records a
one-time PERFORMANCE payout in the same transaction that moves the
assignment. Evaluations of one provider are serialized in-process by a
keyed lock; across processes the assignment's version column turns a lost
race into a StaleDataError, and the evaluation is replayed against the
fresh row.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from config import settings
from models.database import (
    AsyncSessionLocal,
    BonusType,
    ProviderTierAssignment,
    ProviderTierLevel,
)
from models.revenue_share import (
    ProviderMetrics,
    TierEvaluationResult,
    TierSummary,
)
from services.payout_ledger import PayoutLedger, payout_ledger
from services.provider_directory import ProviderDirectory, provider_directory
from services.tier_catalog import TierCatalog, parse_tier_level, tier_catalog
from services.tier_resolver import is_demotion, is_promotion
from utils.logger import get_logger
from utils.money import PERCENT_PLACES, ZERO_AMOUNT, format_amount, is_positive
from utils.provider_locks import ProviderLocks, provider_locks
from utils.utcnow import utcnow
from utils.validation import validate_stellar_address

logger = get_logger("tier_evaluator")


class TierEvaluator:
    def __init__(
        self,
        catalog: Optional[TierCatalog] = None,
        ledger: Optional[PayoutLedger] = None,
        directory: Optional[ProviderDirectory] = None,
        locks: Optional[ProviderLocks] = None,
        session_factory=None,
    ):
        self._catalog = catalog or tier_catalog
        self._ledger = ledger or payout_ledger
        self._directory = directory or provider_directory
        self._locks = locks or provider_locks
        self._session_factory = session_factory or AsyncSessionLocal

    # ==================== EVALUATION ====================

    async def evaluate_provider(self, provider_id: str) -> TierEvaluationResult:
        """Evaluate a provider from its current stats and wallet."""
        metrics = await self._directory.get_metrics(provider_id)
        if metrics.wallet_address is None:
            metrics.wallet_address = await self._directory.get_wallet_address(provider_id)
        return await self.evaluate_with_metrics(metrics)

    async def evaluate_with_metrics(self, metrics: ProviderMetrics) -> TierEvaluationResult:
        """Classify ``metrics`` and persist the resulting assignment.

        Args:
            metrics: Performance snapshot. ``wallet_address`` is required for a
                promotion bonus to be paid; without it the promotion is still
                applied but no payout is recorded.

        Returns:
            TierEvaluationResult describing the transition.
        """
        attempts = max(1, int(settings.EVALUATION_CAS_ATTEMPTS))
        attempt = 1
        async with self._locks.hold(metrics.provider_id):
            while True:
                try:
                    return await self._evaluate_once(metrics)
                except (StaleDataError, IntegrityError) as exc:
                    # Another writer moved the assignment first; replay on fresh state.
                    if attempt >= attempts:
                        raise
                    logger.warning(
                        "Tier assignment changed concurrently, re-evaluating",
                        provider_id=metrics.provider_id,
                        attempt=attempt,
                        error=type(exc).__name__,
                    )
                    attempt += 1

    async def _evaluate_once(self, metrics: ProviderMetrics) -> TierEvaluationResult:
        provider_id = metrics.provider_id
        new_tier = self._catalog.resolve(metrics)

        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderTierAssignment).where(
                    ProviderTierAssignment.provider_id == provider_id
                )
            )
            assignment = result.scalar_one_or_none()
            previous_tier = (
                ProviderTierLevel(assignment.current_tier) if assignment is not None else None
            )
            promoted = is_promotion(previous_tier, new_tier)
            demoted = is_demotion(previous_tier, new_tier)

            if assignment is None:
                assignment = ProviderTierAssignment(
                    provider_id=provider_id,
                    current_tier=new_tier,
                    previous_tier=None,
                    promotion_bonus_paid=False,
                )
                session.add(assignment)
            else:
                if new_tier != previous_tier:
                    assignment.promotion_bonus_paid = False
                assignment.previous_tier = previous_tier
                assignment.current_tier = new_tier

            assignment.win_rate_snapshot = format_amount(metrics.win_rate, PERCENT_PLACES)
            assignment.signals_snapshot = int(metrics.total_signals)
            assignment.copiers_snapshot = int(metrics.total_copiers)
            assignment.reputation_snapshot = format_amount(metrics.reputation_score, PERCENT_PLACES)
            assignment.last_evaluated_at = utcnow()
            assignment.updated_at = utcnow()

            bonus_triggered = False
            bonus_amount = ZERO_AMOUNT
            if promoted:
                bonus_triggered, bonus_amount = await self._issue_promotion_bonus(
                    session, assignment, new_tier, metrics.wallet_address
                )

            await session.commit()

        if promoted or demoted:
            logger.info(
                "Provider tier changed",
                provider_id=provider_id,
                previous_tier=previous_tier.value,
                new_tier=new_tier.value,
                promoted=promoted,
                bonus_triggered=bonus_triggered,
            )

        return TierEvaluationResult(
            provider_id=provider_id,
            previous_tier=previous_tier,
            new_tier=new_tier,
            promoted=promoted,
            demoted=demoted,
            bonus_triggered=bonus_triggered,
            bonus_amount=bonus_amount,
        )

    async def _issue_promotion_bonus(
        self,
        session,
        assignment: ProviderTierAssignment,
        tier: ProviderTierLevel,
        wallet_address: Optional[str],
    ) -> tuple[bool, str]:
        definition = self._catalog.cached_definition(tier)
        bonus = definition.performance_bonus_usdc if definition is not None else ZERO_AMOUNT
        if not is_positive(bonus):
            return False, ZERO_AMOUNT
        if not wallet_address:
            logger.warning(
                "Promotion bonus skipped, provider has no wallet",
                provider_id=assignment.provider_id,
                tier_level=tier.value,
            )
            return False, ZERO_AMOUNT
        try:
            wallet_address = validate_stellar_address(wallet_address)
        except ValueError as exc:
            # The assignment and snapshot still commit; only the bonus is dropped.
            logger.warning(
                "Promotion bonus skipped, provider wallet is invalid",
                provider_id=assignment.provider_id,
                tier_level=tier.value,
                error=str(exc),
            )
            return False, ZERO_AMOUNT

        already_paid = await self._ledger.has_bonus(
            session,
            assignment.provider_id,
            BonusType.PERFORMANCE,
            tier_level=tier,
            promotion=True,
        )
        if already_paid:
            assignment.promotion_bonus_paid = True
            logger.info(
                "Promotion bonus already paid for tier",
                provider_id=assignment.provider_id,
                tier_level=tier.value,
            )
            return False, ZERO_AMOUNT

        payout = await self._ledger.record_payout(
            session,
            provider_id=assignment.provider_id,
            tier_level=tier,
            wallet_address=wallet_address,
            bonus_amount=bonus,
            bonus_type=BonusType.PERFORMANCE,
            promotion=True,
        )
        assignment.promotion_bonus_paid = True
        return True, payout.bonus_amount

    async def evaluate_all(self) -> list[TierEvaluationResult]:
        """Evaluate every provider with a stats snapshot.

        A failure for one provider is logged and excluded from the results;
        it never stops the run.
        """
        provider_ids = await self._directory.list_provider_ids()
        results: list[TierEvaluationResult] = []
        failed = 0
        for provider_id in provider_ids:
            try:
                results.append(await self.evaluate_provider(provider_id))
            except Exception as exc:
                failed += 1
                logger.error(
                    "Tier evaluation failed",
                    provider_id=provider_id,
                    error=str(exc),
                )

        logger.info(
            "Tier evaluation run complete",
            evaluated=len(results),
            failed=failed,
            promoted=sum(1 for r in results if r.promoted),
            demoted=sum(1 for r in results if r.demoted),
        )
        return results

    # ==================== QUERIES ====================

    async def get_provider_tier(self, provider_id: str) -> Optional[ProviderTierAssignment]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderTierAssignment).where(
                    ProviderTierAssignment.provider_id == provider_id
                )
            )
            return result.scalar_one_or_none()

    async def get_providers_in_tier(self, tier_level) -> list[ProviderTierAssignment]:
        level = parse_tier_level(tier_level)
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderTierAssignment)
                .where(ProviderTierAssignment.current_tier == level)
                .order_by(ProviderTierAssignment.provider_id)
            )
            return list(result.scalars().all())

    async def get_tier_summaries(self) -> list[TierSummary]:
        """Active tiers (from the cache) with their current provider counts."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderTierAssignment.current_tier, func.count()).group_by(
                    ProviderTierAssignment.current_tier
                )
            )
            counts = {ProviderTierLevel(tier): int(count) for tier, count in result.all()}

        return [
            TierSummary(
                tier_level=definition.tier_level,
                name=definition.name,
                revenue_share_percentage=definition.revenue_share_percentage,
                min_win_rate=definition.min_win_rate,
                min_signals=definition.min_signals,
                min_copiers=definition.min_copiers,
                min_reputation_score=definition.min_reputation_score,
                performance_bonus_usdc=definition.performance_bonus_usdc,
                monthly_retention_bonus_usdc=definition.monthly_retention_bonus_usdc,
                provider_count=counts.get(definition.tier_level, 0),
            )
            for definition in self._catalog.list_active()
        ]


tier_evaluator = TierEvaluator()
