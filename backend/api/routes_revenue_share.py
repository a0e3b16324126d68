"""
Provider revenue-share API.

Thin wrappers over the tier and payout services. Domain errors carry their
own HTTP status and are translated one-to-one into HTTPException.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from config import settings
from models.database import BonusType
from models.revenue_share import serialize_assignment, serialize_payout
from services.payout_batch import payout_batch_service
from services.payout_ledger import payout_ledger
from services.revenue_share import revenue_share_service
from services.tier_catalog import tier_catalog
from services.tier_evaluator import tier_evaluator
from utils.errors import RevenueShareError
from utils.logger import get_logger
from utils.validation import (
    TierConfigUpdateParams,
    validate_amount,
    validate_limit,
    validate_tx_hash,
)

logger = get_logger("api")

router = APIRouter(prefix="/providers", tags=["Provider Revenue Share"])


def _http_error(exc: RevenueShareError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


# ==================== REQUEST MODELS ====================


class CalculateRevenueShareRequest(BaseModel):
    base_revenue: str
    include_bonus: bool = False

    @field_validator("base_revenue")
    @classmethod
    def validate_base_revenue(cls, v: str) -> str:
        return validate_amount(v, "base_revenue")


class ProcessPayoutRequest(BaseModel):
    base_revenue: str
    include_bonus: bool = True
    period_year: Optional[int] = Field(default=None, ge=2020, le=2100)
    period_month: Optional[int] = Field(default=None, ge=1, le=12)

    @field_validator("base_revenue")
    @classmethod
    def validate_base_revenue(cls, v: str) -> str:
        return validate_amount(v, "base_revenue")


class AwardBonusRequest(BaseModel):
    amount: str
    bonus_type: BonusType = BonusType.PERFORMANCE
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("amount")
    @classmethod
    def validate_bonus_amount(cls, v: str) -> str:
        return validate_amount(v, "amount")


class ConfirmPayoutRequest(BaseModel):
    stellar_tx_hash: str

    @field_validator("stellar_tx_hash")
    @classmethod
    def validate_hash(cls, v: str) -> str:
        return validate_tx_hash(v)


class FailPayoutRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class MonthlyBatchRequest(BaseModel):
    year: int = Field(..., ge=2020, le=2100)
    month: int = Field(..., ge=1, le=12)
    revenue_by_provider: dict[str, str] = Field(default_factory=dict)


# ==================== TIERS ====================


@router.get("/tiers")
async def list_tiers():
    """Active tiers with their current provider counts"""
    summaries = await tier_evaluator.get_tier_summaries()
    return [summary.to_dict() for summary in summaries]


@router.get("/tiers/config")
async def list_tier_configs():
    """All tier definitions, including inactive ones"""
    definitions = await tier_catalog.list_all()
    return [definition.to_dict() for definition in definitions]


@router.patch("/tiers/config/{tier_level}")
async def update_tier_config(tier_level: str, request: TierConfigUpdateParams):
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No updatable fields supplied")
    try:
        definition = await tier_catalog.update(tier_level, **changes)
    except RevenueShareError as exc:
        raise _http_error(exc)
    logger.info("Tier config updated via API", tier_level=definition.tier_level.value)
    return definition.to_dict()


@router.get("/{provider_id}/tier")
async def get_provider_tier(provider_id: str):
    assignment = await tier_evaluator.get_provider_tier(provider_id)
    if assignment is None:
        raise HTTPException(status_code=404, detail="No tier assignment for provider")
    return serialize_assignment(assignment)


@router.post("/{provider_id}/tier/evaluate")
async def evaluate_provider_tier(provider_id: str):
    try:
        result = await tier_evaluator.evaluate_provider(provider_id)
    except RevenueShareError as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.post("/tier/evaluate-all")
async def evaluate_all_tiers():
    results = await tier_evaluator.evaluate_all()
    return {
        "evaluated": len(results),
        "promoted": sum(1 for r in results if r.promoted),
        "demoted": sum(1 for r in results if r.demoted),
        "bonuses_triggered": sum(1 for r in results if r.bonus_triggered),
        "results": [r.to_dict() for r in results],
    }


# ==================== REVENUE SHARE ====================


@router.post("/{provider_id}/revenue-share/calculate")
async def calculate_revenue_share(provider_id: str, request: CalculateRevenueShareRequest):
    """Preview a revenue share; nothing is persisted"""
    try:
        calculation = await revenue_share_service.calculate(
            provider_id, request.base_revenue, request.include_bonus
        )
    except RevenueShareError as exc:
        raise _http_error(exc)
    return calculation.to_dict()


@router.post("/{provider_id}/revenue-share/payout")
async def process_payout(provider_id: str, request: ProcessPayoutRequest):
    try:
        payout = await revenue_share_service.process_provider_payout(
            provider_id,
            request.base_revenue,
            include_bonus=request.include_bonus,
            period_year=request.period_year,
            period_month=request.period_month,
        )
    except RevenueShareError as exc:
        raise _http_error(exc)
    return serialize_payout(payout)


@router.get("/{provider_id}/revenue-share/history")
async def get_payout_history(
    provider_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    history = await payout_ledger.get_history(provider_id, page=page, limit=limit)
    return history.to_dict()


@router.get("/{provider_id}/revenue-share/summary")
async def get_earnings_summary(provider_id: str):
    try:
        summary = await revenue_share_service.get_earnings_summary(provider_id)
    except RevenueShareError as exc:
        raise _http_error(exc)
    return summary.to_dict()


# ==================== BONUSES ====================


@router.post("/{provider_id}/bonus")
async def award_bonus(provider_id: str, request: AwardBonusRequest):
    try:
        payout = await revenue_share_service.award_performance_bonus(
            provider_id,
            request.amount,
            bonus_type=request.bonus_type,
            reason=request.reason,
        )
    except RevenueShareError as exc:
        raise _http_error(exc)
    return serialize_payout(payout)


@router.post("/{provider_id}/bonus/streak-check")
async def check_streak_bonus(provider_id: str):
    try:
        result = await revenue_share_service.check_and_issue_streak_bonus(provider_id)
    except RevenueShareError as exc:
        raise _http_error(exc)
    return result.to_dict()


# ==================== PAYOUTS ====================


@router.get("/payouts/pending")
async def get_pending_payouts(limit: Optional[int] = Query(default=None, ge=1)):
    """PENDING payouts, oldest first, for the on-chain dispatcher"""
    if limit is None:
        limit = settings.PAYOUT_PENDING_DEFAULT_LIMIT
    limit = validate_limit(limit, settings.PAYOUT_PENDING_MAX_LIMIT)
    payouts = await payout_ledger.get_pending(limit)
    return [serialize_payout(p) for p in payouts]


@router.patch("/payouts/{payout_id}/confirm")
async def confirm_payout(payout_id: str, request: ConfirmPayoutRequest):
    try:
        payout = await payout_ledger.confirm_payout(payout_id, request.stellar_tx_hash)
    except RevenueShareError as exc:
        raise _http_error(exc)
    return serialize_payout(payout)


@router.patch("/payouts/{payout_id}/fail")
async def fail_payout(payout_id: str, request: FailPayoutRequest):
    try:
        payout = await payout_ledger.mark_failed(payout_id, request.reason)
    except RevenueShareError as exc:
        raise _http_error(exc)
    return serialize_payout(payout)


@router.post("/payouts/{payout_id}/retry")
async def retry_payout(payout_id: str):
    try:
        payout = await payout_ledger.retry_failed_payout(payout_id)
    except RevenueShareError as exc:
        raise _http_error(exc)
    return serialize_payout(payout)


@router.get("/payouts/period")
async def get_period_payouts(
    year: int = Query(..., ge=2020, le=2100),
    month: int = Query(..., ge=1, le=12),
):
    try:
        report = await payout_ledger.get_period_payouts(year, month)
    except RevenueShareError as exc:
        raise _http_error(exc)
    return report.to_dict()


@router.post("/payouts/monthly-batch")
async def run_monthly_batch(request: MonthlyBatchRequest):
    try:
        result = await payout_batch_service.process_monthly_batch(
            request.year, request.month, request.revenue_by_provider
        )
    except RevenueShareError as exc:
        raise _http_error(exc)
    return result.to_dict()


# ==================== INCENTIVES ====================


@router.post("/incentives/retention-bonus")
async def run_retention_bonus(
    year: int = Query(..., ge=2020, le=2100),
    month: int = Query(..., ge=1, le=12),
):
    try:
        result = await payout_batch_service.run_retention_bonus_round(year, month)
    except RevenueShareError as exc:
        raise _http_error(exc)
    return result.to_dict()
