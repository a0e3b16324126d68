import json
import sys
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.revenue_share import MonthlyBatchResult, RetentionRoundResult
from workers import revenue_share_worker


def test_previous_period_wraps_the_year(monkeypatch):
    monkeypatch.setattr(
        revenue_share_worker, "utc_month_start", lambda: datetime(2026, 1, 1)
    )
    assert revenue_share_worker.previous_period() == (2025, 12)


def test_previous_period_mid_year(monkeypatch):
    monkeypatch.setattr(
        revenue_share_worker, "utc_month_start", lambda: datetime(2026, 10, 1)
    )
    assert revenue_share_worker.previous_period() == (2026, 9)


def test_load_revenue_file(tmp_path):
    revenue_file = tmp_path / "revenue.json"
    revenue_file.write_text(json.dumps({"prov-1": "1000.5", "prov-2": 20}), encoding="utf-8")

    assert revenue_share_worker.load_revenue_file(None) == {}
    assert revenue_share_worker.load_revenue_file(str(revenue_file)) == {
        "prov-1": "1000.5",
        "prov-2": "20",
    }


def test_load_revenue_file_rejects_non_object(tmp_path):
    revenue_file = tmp_path / "revenue.json"
    revenue_file.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        revenue_share_worker.load_revenue_file(str(revenue_file))


@pytest.mark.asyncio
async def test_month_end_cycle_runs_steps_in_order(monkeypatch):
    call_order: list[str] = []

    def _step(name, result=None):
        async def _run(*args, **kwargs):
            call_order.append(name)
            return result

        return _run

    evaluations = [
        SimpleNamespace(promoted=True, demoted=False),
        SimpleNamespace(promoted=False, demoted=True),
    ]
    monkeypatch.setattr(
        revenue_share_worker,
        "tier_catalog",
        SimpleNamespace(seed_defaults=_step("seed", 0), refresh_cache=_step("refresh")),
    )
    monkeypatch.setattr(
        revenue_share_worker,
        "tier_evaluator",
        SimpleNamespace(evaluate_all=_step("evaluate", evaluations)),
    )
    monkeypatch.setattr(
        revenue_share_worker,
        "payout_batch_service",
        SimpleNamespace(
            process_monthly_batch=_step("batch", MonthlyBatchResult(period_year=2026, period_month=9)),
            run_retention_bonus_round=_step(
                "retention", RetentionRoundResult(period_year=2026, period_month=9)
            ),
        ),
    )

    summary = await revenue_share_worker.run_month_end_cycle(2026, 9, {"prov-1": "10"})

    assert call_order == ["seed", "refresh", "evaluate", "batch", "retention"]
    assert summary["evaluated"] == 2
    assert summary["promoted"] == 1
    assert summary["demoted"] == 1
    assert summary["batch"]["period_month"] == 9


@pytest.mark.asyncio
async def test_main_initializes_database_before_cycle(monkeypatch):
    call_order: list[str] = []

    async def _fake_init_database() -> None:
        call_order.append("init_database")

    cycle = AsyncMock(
        side_effect=lambda *args: call_order.append("cycle")
        or {"batch": {"successful_payouts": 0, "total_dispatched": "0"}, "retention": {"credited": 0}}
    )
    monkeypatch.setattr(revenue_share_worker, "init_database", _fake_init_database)
    monkeypatch.setattr(revenue_share_worker, "run_month_end_cycle", cycle)
    monkeypatch.setattr(revenue_share_worker, "previous_period", lambda: (2026, 9))
    monkeypatch.setattr(revenue_share_worker, "load_revenue_file", lambda path: {})

    await revenue_share_worker.main()

    assert call_order == ["init_database", "cycle"]
    cycle.assert_awaited_once_with(2026, 9, {})
