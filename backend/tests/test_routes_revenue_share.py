import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from api import routes_revenue_share
from models.database import BonusType, PayoutStatus, ProviderTierLevel
from models.revenue_share import MonthlyBatchResult, RevenueShareCalculation
from utils.errors import InvalidStateError, LimitExceededError, NotFoundError
from utils.validation import TierConfigUpdateParams


def _payout_row(**overrides):
    fields = {
        "id": "payout-1",
        "provider_id": "prov-1",
        "tier_level": ProviderTierLevel.GOLD,
        "provider_wallet_address": "G" + "A" * 55,
        "base_revenue": "1000.00000000",
        "share_percentage": "8.00",
        "revenue_share_amount": "80.00000000",
        "bonus_amount": "20.00000000",
        "bonus_type": BonusType.MONTHLY_TOP,
        "is_promotion_bonus": False,
        "total_payout": "100.00000000",
        "asset_code": "USDC",
        "stellar_tx_hash": None,
        "status": PayoutStatus.PENDING,
        "failure_reason": None,
        "retry_count": 0,
        "period_year": 2026,
        "period_month": 9,
        "paid_at": None,
        "created_at": None,
        "updated_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.asyncio
async def test_calculate_route_returns_exact_strings(monkeypatch):
    calculate = AsyncMock(
        return_value=RevenueShareCalculation(
            provider_id="prov-1",
            tier_level=ProviderTierLevel.GOLD,
            share_percentage="8.00",
            base_revenue="1000.00000000",
            revenue_share_amount="80.00000000",
            bonus_amount="0.00000000",
            bonus_type=None,
            total_payout="80.00000000",
        )
    )
    monkeypatch.setattr(
        routes_revenue_share, "revenue_share_service", SimpleNamespace(calculate=calculate)
    )

    out = await routes_revenue_share.calculate_revenue_share(
        "prov-1",
        routes_revenue_share.CalculateRevenueShareRequest(base_revenue="1000"),
    )

    assert out["revenue_share_amount"] == "80.00000000"
    assert out["tier_level"] == "GOLD"
    calculate.assert_awaited_once_with("prov-1", "1000", False)


@pytest.mark.parametrize("amount", ["0", "-5", "abc", "1.12345678"])
def test_amount_requests_reject_bad_values(amount):
    with pytest.raises(ValidationError):
        routes_revenue_share.CalculateRevenueShareRequest(base_revenue=amount)
    with pytest.raises(ValidationError):
        routes_revenue_share.AwardBonusRequest(amount=amount)


def test_confirm_request_requires_a_tx_hash():
    with pytest.raises(ValidationError):
        routes_revenue_share.ConfirmPayoutRequest(stellar_tx_hash="not-a-hash")
    request = routes_revenue_share.ConfirmPayoutRequest(stellar_tx_hash="AB" * 32)
    assert request.stellar_tx_hash == "ab" * 32


def test_tier_config_params_validate_ranges():
    with pytest.raises(ValidationError):
        TierConfigUpdateParams(revenue_share_percentage="101")
    with pytest.raises(ValidationError):
        TierConfigUpdateParams(performance_bonus_usdc="-1")
    params = TierConfigUpdateParams(min_signals=10, is_active=False)
    assert params.model_dump(exclude_none=True) == {"min_signals": 10, "is_active": False}


@pytest.mark.asyncio
async def test_update_tier_config_requires_a_field():
    with pytest.raises(HTTPException) as excinfo:
        await routes_revenue_share.update_tier_config("GOLD", TierConfigUpdateParams())

    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_missing_payout_maps_to_404(monkeypatch):
    ledger = SimpleNamespace(
        confirm_payout=AsyncMock(side_effect=NotFoundError("Payout missing not found"))
    )
    monkeypatch.setattr(routes_revenue_share, "payout_ledger", ledger)

    with pytest.raises(HTTPException) as excinfo:
        await routes_revenue_share.confirm_payout(
            "missing",
            routes_revenue_share.ConfirmPayoutRequest(stellar_tx_hash="a" * 64),
        )

    assert excinfo.value.status_code == 404
    assert excinfo.value.detail == "Payout missing not found"


@pytest.mark.asyncio
async def test_ledger_state_errors_keep_their_status(monkeypatch):
    ledger = SimpleNamespace(
        mark_failed=AsyncMock(side_effect=InvalidStateError("Payout is already completed")),
        retry_failed_payout=AsyncMock(side_effect=LimitExceededError("Retry limit reached")),
    )
    monkeypatch.setattr(routes_revenue_share, "payout_ledger", ledger)

    with pytest.raises(HTTPException) as failed:
        await routes_revenue_share.fail_payout(
            "payout-1", routes_revenue_share.FailPayoutRequest(reason="tx_failed")
        )
    with pytest.raises(HTTPException) as retried:
        await routes_revenue_share.retry_payout("payout-1")

    assert failed.value.status_code == 409
    assert retried.value.status_code == 422


@pytest.mark.asyncio
async def test_pending_route_applies_default_and_cap(monkeypatch):
    get_pending = AsyncMock(return_value=[_payout_row()])
    monkeypatch.setattr(
        routes_revenue_share, "payout_ledger", SimpleNamespace(get_pending=get_pending)
    )

    default_out = await routes_revenue_share.get_pending_payouts(limit=None)
    await routes_revenue_share.get_pending_payouts(limit=10_000)

    assert default_out[0]["status"] == "PENDING"
    assert default_out[0]["total_payout"] == "100.00000000"
    assert get_pending.await_args_list[0].args == (50,)
    assert get_pending.await_args_list[1].args == (500,)


@pytest.mark.asyncio
async def test_provider_tier_route_404_without_assignment(monkeypatch):
    evaluator = SimpleNamespace(get_provider_tier=AsyncMock(return_value=None))
    monkeypatch.setattr(routes_revenue_share, "tier_evaluator", evaluator)

    with pytest.raises(HTTPException) as excinfo:
        await routes_revenue_share.get_provider_tier("prov-1")

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_monthly_batch_route_passes_period_through(monkeypatch):
    batch = AsyncMock(
        return_value=MonthlyBatchResult(
            period_year=2026,
            period_month=9,
            processed=1,
            successful_payouts=1,
            total_dispatched="100.00000000",
        )
    )
    monkeypatch.setattr(
        routes_revenue_share,
        "payout_batch_service",
        SimpleNamespace(process_monthly_batch=batch),
    )

    out = await routes_revenue_share.run_monthly_batch(
        routes_revenue_share.MonthlyBatchRequest(
            year=2026, month=9, revenue_by_provider={"prov-1": "1000"}
        )
    )

    assert out["total_dispatched"] == "100.00000000"
    batch.assert_awaited_once_with(2026, 9, {"prov-1": "1000"})
