"""Month-end revenue share worker: tier evaluation, payouts, retention bonuses."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional

_BACKEND = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND not in sys.path:
    sys.path.insert(0, _BACKEND)

from config import settings
from models.database import init_database
from services.payout_batch import payout_batch_service
from services.tier_catalog import tier_catalog
from services.tier_evaluator import tier_evaluator
from utils.utcnow import utc_month_start

logging.basicConfig(
    level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO")),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("revenue_share_worker")


def previous_period() -> tuple[int, int]:
    """(year, month) of the calendar month before the current UTC month."""
    first_of_month = utc_month_start()
    last_month = first_of_month - timedelta(days=1)
    return last_month.year, last_month.month


def load_revenue_file(path: Optional[str]) -> dict[str, str]:
    """Read a JSON object of provider_id -> base revenue.

    A missing setting yields an empty mapping; a configured file that does
    not exist or is not a JSON object is an error.
    """
    if not path:
        return {}
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Revenue file {path} must contain a JSON object")
    return {str(provider_id): str(amount) for provider_id, amount in data.items()}


async def run_month_end_cycle(
    year: int, month: int, revenue_by_provider: Mapping[str, Any]
) -> dict:
    """Run one billing period end to end and return a summary dict."""
    await tier_catalog.seed_defaults()
    await tier_catalog.refresh_cache()

    evaluations = await tier_evaluator.evaluate_all()
    logger.info(
        "Tier evaluation: %d providers, %d promoted, %d demoted",
        len(evaluations),
        sum(1 for r in evaluations if r.promoted),
        sum(1 for r in evaluations if r.demoted),
    )

    batch = await payout_batch_service.process_monthly_batch(year, month, revenue_by_provider)
    retention = await payout_batch_service.run_retention_bonus_round(year, month)

    return {
        "period_year": year,
        "period_month": month,
        "evaluated": len(evaluations),
        "promoted": sum(1 for r in evaluations if r.promoted),
        "demoted": sum(1 for r in evaluations if r.demoted),
        "batch": batch.to_dict(),
        "retention": retention.to_dict(),
    }


async def main() -> None:
    await init_database()
    year, month = previous_period()
    revenue = load_revenue_file(settings.MONTH_END_BATCH_REVENUE_FILE)
    logger.info(
        "Month-end cycle for %d-%02d with revenue for %d providers",
        year,
        month,
        len(revenue),
    )
    summary = await run_month_end_cycle(year, month, revenue)
    logger.info(
        "Month-end cycle complete: %d payouts, %s USDC dispatched, %d retention bonuses",
        summary["batch"]["successful_payouts"],
        summary["batch"]["total_dispatched"],
        summary["retention"]["credited"],
    )


if __name__ == "__main__":
    asyncio.run(main())
