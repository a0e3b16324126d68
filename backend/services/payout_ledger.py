"""
Payout ledger: creation and lifecycle of provider revenue payouts.

Status machine::

    PENDING -> PROCESSING -> COMPLETED
        \\          \\
         +-----------+----> FAILED -> (retry) PENDING

``record_payout`` is the only way a payout row comes into existence. It
takes the caller's session and only flushes, so a payout can be committed
atomically with other writes (e.g. the tier assignment that earned a
promotion bonus). Every other operation owns its own session.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.database import (
    AsyncSessionLocal,
    BonusType,
    PayoutStatus,
    ProviderRevenuePayout,
    ProviderTierLevel,
)
from models.revenue_share import (
    EarningsSummary,
    MonthlyEarnings,
    PayoutHistory,
    PeriodPayoutReport,
)
from utils.errors import InvalidArgumentError, InvalidStateError, LimitExceededError, NotFoundError
from utils.logger import get_logger
from utils.money import PERCENT_PLACES, ZERO_AMOUNT, add, format_amount, to_decimal
from utils.utcnow import utcnow
from utils.validation import validate_stellar_address

logger = get_logger("payout_ledger")


def validate_period(year: int, month: int) -> None:
    if not 1 <= int(month) <= 12:
        raise InvalidArgumentError(f"period_month must be between 1 and 12, got {month}")
    if int(year) < 1970:
        raise InvalidArgumentError(f"period_year is out of range: {year}")


class PayoutLedger:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or AsyncSessionLocal

    # ==================== CREATION ====================

    async def record_payout(
        self,
        session: AsyncSession,
        *,
        provider_id: str,
        tier_level: ProviderTierLevel,
        wallet_address: str,
        base_revenue: Any = ZERO_AMOUNT,
        share_percentage: Any = "0",
        revenue_share_amount: Any = ZERO_AMOUNT,
        bonus_amount: Any = ZERO_AMOUNT,
        bonus_type: Optional[BonusType] = None,
        period_year: Optional[int] = None,
        period_month: Optional[int] = None,
        promotion: bool = False,
    ) -> ProviderRevenuePayout:
        """Stage a new PENDING payout on ``session`` and flush it.

        ``total_payout`` is always the exact sum of the share and bonus
        amounts. The period defaults to the current UTC calendar month. The
        caller commits.
        """
        try:
            wallet_address = validate_stellar_address(wallet_address)
        except ValueError as exc:
            raise InvalidArgumentError(f"provider_wallet_address: {exc}")

        now = utcnow()
        year = int(period_year) if period_year is not None else now.year
        month = int(period_month) if period_month is not None else now.month
        validate_period(year, month)

        share_amount = format_amount(revenue_share_amount)
        bonus = format_amount(bonus_amount)

        payout = ProviderRevenuePayout(
            id=str(uuid.uuid4()),
            provider_id=provider_id,
            tier_level=ProviderTierLevel(tier_level),
            base_revenue=format_amount(base_revenue),
            share_percentage=format_amount(share_percentage, PERCENT_PLACES),
            revenue_share_amount=share_amount,
            bonus_amount=bonus,
            bonus_type=BonusType(bonus_type) if bonus_type is not None else None,
            is_promotion_bonus=bool(promotion),
            total_payout=add(share_amount, bonus),
            asset_code=settings.PAYOUT_ASSET_CODE,
            provider_wallet_address=wallet_address,
            status=PayoutStatus.PENDING,
            period_year=year,
            period_month=month,
            retry_count=0,
            created_at=now,
            updated_at=now,
        )
        session.add(payout)
        await session.flush()

        logger.info(
            "Payout recorded",
            payout_id=payout.id,
            provider_id=provider_id,
            tier_level=payout.tier_level.value,
            total_payout=payout.total_payout,
            bonus_type=payout.bonus_type.value if payout.bonus_type else None,
            period=f"{year}-{month:02d}",
        )
        return payout

    async def escalate(
        self, session: AsyncSession, payout: ProviderRevenuePayout
    ) -> ProviderRevenuePayout:
        """Move a PENDING payout to PROCESSING (auto-approval). Caller commits."""
        if payout.status != PayoutStatus.PENDING:
            raise InvalidStateError(
                f"Only PENDING payouts can be escalated (current status: {payout.status.value})"
            )
        payout.status = PayoutStatus.PROCESSING
        payout.updated_at = utcnow()
        await session.flush()
        return payout

    # ==================== LIFECYCLE ====================

    async def _load(self, session: AsyncSession, payout_id: str) -> ProviderRevenuePayout:
        payout = await session.get(ProviderRevenuePayout, payout_id)
        if payout is None:
            raise NotFoundError(f"Payout {payout_id} not found")
        return payout

    async def get_payout(self, payout_id: str) -> ProviderRevenuePayout:
        async with self._session_factory() as session:
            return await self._load(session, payout_id)

    async def confirm_payout(self, payout_id: str, tx_hash: str) -> ProviderRevenuePayout:
        """Mark a payout COMPLETED after on-chain confirmation.

        Confirming an already COMPLETED payout is a no-op that returns the
        stored row unchanged.
        """
        async with self._session_factory() as session:
            payout = await self._load(session, payout_id)
            if payout.status == PayoutStatus.COMPLETED:
                logger.warning("Payout already completed", payout_id=payout_id)
                return payout

            now = utcnow()
            payout.status = PayoutStatus.COMPLETED
            payout.stellar_tx_hash = tx_hash
            payout.paid_at = now
            payout.updated_at = now
            await session.commit()

        logger.info("Payout confirmed", payout_id=payout_id, stellar_tx_hash=tx_hash)
        return payout

    async def mark_failed(self, payout_id: str, reason: str) -> ProviderRevenuePayout:
        async with self._session_factory() as session:
            payout = await self._load(session, payout_id)
            if payout.status == PayoutStatus.COMPLETED:
                raise InvalidStateError(f"Payout {payout_id} is already completed")

            payout.status = PayoutStatus.FAILED
            payout.failure_reason = reason
            payout.retry_count = int(payout.retry_count or 0) + 1
            payout.updated_at = utcnow()
            await session.commit()

        logger.warning(
            "Payout failed",
            payout_id=payout_id,
            reason=reason,
            retry_count=payout.retry_count,
        )
        return payout

    async def retry_failed_payout(self, payout_id: str) -> ProviderRevenuePayout:
        """Put a FAILED payout back in the PENDING queue.

        Raises:
            InvalidStateError: the payout is not FAILED.
            LimitExceededError: the payout already failed PAYOUT_MAX_RETRIES times.
        """
        max_retries = settings.PAYOUT_MAX_RETRIES
        async with self._session_factory() as session:
            payout = await self._load(session, payout_id)
            if payout.status != PayoutStatus.FAILED:
                raise InvalidStateError(
                    f"Only FAILED payouts can be retried (current status: {payout.status.value})"
                )
            if int(payout.retry_count or 0) >= max_retries:
                raise LimitExceededError(
                    f"Payout {payout_id} has exceeded maximum retry attempts ({max_retries})"
                )

            payout.status = PayoutStatus.PENDING
            payout.failure_reason = None
            payout.updated_at = utcnow()
            await session.commit()

        logger.info("Payout re-queued", payout_id=payout_id, retry_count=payout.retry_count)
        return payout

    # ==================== QUERIES ====================

    async def get_pending(self, limit: Optional[int] = None) -> list[ProviderRevenuePayout]:
        """PENDING payouts, oldest first, at most ``limit`` of them."""
        if limit is None:
            limit = settings.PAYOUT_PENDING_DEFAULT_LIMIT
        limit = max(0, min(int(limit), settings.PAYOUT_PENDING_MAX_LIMIT))
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderRevenuePayout)
                .where(ProviderRevenuePayout.status == PayoutStatus.PENDING)
                .order_by(ProviderRevenuePayout.created_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_history(self, provider_id: str, page: int = 1, limit: int = 20) -> PayoutHistory:
        page = max(1, int(page))
        limit = max(1, int(limit))
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count())
                .select_from(ProviderRevenuePayout)
                .where(ProviderRevenuePayout.provider_id == provider_id)
            )
            result = await session.execute(
                select(ProviderRevenuePayout)
                .where(ProviderRevenuePayout.provider_id == provider_id)
                .order_by(ProviderRevenuePayout.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            rows = list(result.scalars().all())
        return PayoutHistory(data=rows, total=int(total or 0), page=page, limit=limit)

    async def find_for_period(
        self,
        provider_id: str,
        year: int,
        month: int,
        session: Optional[AsyncSession] = None,
    ) -> list[ProviderRevenuePayout]:
        query = select(ProviderRevenuePayout).where(
            ProviderRevenuePayout.provider_id == provider_id,
            ProviderRevenuePayout.period_year == int(year),
            ProviderRevenuePayout.period_month == int(month),
        )
        if session is not None:
            result = await session.execute(query)
            return list(result.scalars().all())
        async with self._session_factory() as own_session:
            result = await own_session.execute(query)
            return list(result.scalars().all())

    async def has_bonus(
        self,
        session: AsyncSession,
        provider_id: str,
        bonus_type: BonusType,
        *,
        tier_level: Optional[ProviderTierLevel] = None,
        created_since: Optional[datetime] = None,
        promotion: Optional[bool] = None,
    ) -> bool:
        """True when the provider already holds a bonus payout matching the filters.

        ``promotion`` narrows the match to promotion bonuses (True) or to
        everything else (False); None matches both.
        """
        query = select(ProviderRevenuePayout.id).where(
            ProviderRevenuePayout.provider_id == provider_id,
            ProviderRevenuePayout.bonus_type == bonus_type,
        )
        if tier_level is not None:
            query = query.where(ProviderRevenuePayout.tier_level == ProviderTierLevel(tier_level))
        if created_since is not None:
            query = query.where(ProviderRevenuePayout.created_at >= created_since)
        if promotion is not None:
            query = query.where(ProviderRevenuePayout.is_promotion_bonus == bool(promotion))
        result = await session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def get_earnings_summary(
        self,
        provider_id: str,
        current_tier: ProviderTierLevel,
        revenue_share_percentage: str,
    ) -> EarningsSummary:
        """Aggregate a provider's payouts.

        Completed payouts count towards earnings and bonuses, PENDING and
        PROCESSING totals towards ``pending_payouts``. The monthly breakdown
        covers every payout regardless of status, newest period first.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderRevenuePayout).where(
                    ProviderRevenuePayout.provider_id == provider_id
                )
            )
            payouts = list(result.scalars().all())

        total_earnings = Decimal(0)
        total_bonuses = Decimal(0)
        pending = Decimal(0)
        last_payout_at: Optional[datetime] = None
        monthly: dict[tuple[int, int], list[Decimal]] = {}

        for payout in payouts:
            share = to_decimal(payout.revenue_share_amount)
            bonus = to_decimal(payout.bonus_amount)

            if payout.status == PayoutStatus.COMPLETED:
                total_earnings += share + bonus
                total_bonuses += bonus
                if payout.paid_at and (last_payout_at is None or payout.paid_at > last_payout_at):
                    last_payout_at = payout.paid_at
            elif payout.status in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
                pending += to_decimal(payout.total_payout)

            entry = monthly.setdefault((payout.period_year, payout.period_month), [Decimal(0), Decimal(0)])
            entry[0] += share
            entry[1] += bonus

        breakdown = [
            MonthlyEarnings(
                year=year,
                month=month,
                revenue_share=format_amount(share),
                bonuses=format_amount(bonus),
                total=format_amount(share + bonus),
            )
            for (year, month), (share, bonus) in sorted(monthly.items(), reverse=True)
        ]

        return EarningsSummary(
            provider_id=provider_id,
            current_tier=ProviderTierLevel(current_tier),
            revenue_share_percentage=revenue_share_percentage,
            total_earnings=format_amount(total_earnings),
            total_bonuses=format_amount(total_bonuses),
            pending_payouts=format_amount(pending),
            last_payout_at=last_payout_at,
            monthly_breakdown=breakdown,
        )

    async def get_period_payouts(self, year: int, month: int) -> PeriodPayoutReport:
        """Every payout of a billing period, newest first, with per-tier totals.

        ``total_dispatched`` counts COMPLETED and PROCESSING payouts only.
        """
        validate_period(year, month)
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderRevenuePayout)
                .where(
                    ProviderRevenuePayout.period_year == int(year),
                    ProviderRevenuePayout.period_month == int(month),
                )
                .order_by(ProviderRevenuePayout.created_at.desc())
            )
            payouts = list(result.scalars().all())

        dispatched = Decimal(0)
        per_tier: dict[str, list] = {}
        for payout in payouts:
            total = to_decimal(payout.total_payout)
            if payout.status in (PayoutStatus.COMPLETED, PayoutStatus.PROCESSING):
                dispatched += total
            key = ProviderTierLevel(payout.tier_level).value
            bucket = per_tier.setdefault(key, [0, Decimal(0)])
            bucket[0] += 1
            bucket[1] += total

        return PeriodPayoutReport(
            period_year=int(year),
            period_month=int(month),
            payouts=payouts,
            total_dispatched=format_amount(dispatched),
            tier_breakdown={
                tier: {"count": count, "total": format_amount(total)}
                for tier, (count, total) in per_tier.items()
            },
        )


payout_ledger = PayoutLedger()
