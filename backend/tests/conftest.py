"""Shared fixtures for the revenue share tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import pytest
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from config import DEFAULT_TIER_DEFINITIONS
from models.database import Base, ProviderStats, ProviderTierLevel, User
from models.revenue_share import TierDefinition
from services.payout_batch import PayoutBatchService
from services.payout_ledger import PayoutLedger
from services.provider_directory import ProviderDirectory
from services.revenue_share import RevenueShareService
from services.tier_catalog import TierCatalog
from services.tier_evaluator import TierEvaluator
from utils.money import PERCENT_PLACES, format_amount
from utils.provider_locks import ProviderLocks


# Metrics that land comfortably inside each default tier
TIER_METRICS = {
    ProviderTierLevel.BRONZE: {"win_rate": "40", "total_signals": 5, "total_copiers": 2, "reputation_score": "30"},
    ProviderTierLevel.SILVER: {"win_rate": "56", "total_signals": 25, "total_copiers": 12, "reputation_score": "60"},
    ProviderTierLevel.GOLD: {"win_rate": "63", "total_signals": 60, "total_copiers": 60, "reputation_score": "70"},
    ProviderTierLevel.PLATINUM: {"win_rate": "70", "total_signals": 120, "total_copiers": 200, "reputation_score": "80"},
    ProviderTierLevel.ELITE: {"win_rate": "80", "total_signals": 250, "total_copiers": 400, "reputation_score": "90"},
}


def wallet_for(provider_id: str) -> str:
    """A well-formed Stellar public key unique to ``provider_id``."""
    alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
    body = "".join(alphabet[ord(ch) % 32] for ch in provider_id)
    return ("G" + body + "A" * 55)[:56]


def default_tier_definitions() -> list[TierDefinition]:
    return [
        TierDefinition(
            tier_level=ProviderTierLevel(row["tier_level"]),
            name=row["name"],
            description=row["description"],
            revenue_share_percentage=format_amount(row["revenue_share_percentage"], PERCENT_PLACES),
            min_win_rate=format_amount(row["min_win_rate"], PERCENT_PLACES),
            min_signals=row["min_signals"],
            min_copiers=row["min_copiers"],
            min_reputation_score=format_amount(row["min_reputation_score"], PERCENT_PLACES),
            performance_bonus_usdc=format_amount(row["performance_bonus_usdc"]),
            monthly_retention_bonus_usdc=format_amount(row["monthly_retention_bonus_usdc"]),
            is_active=row["is_active"],
            sort_order=row["sort_order"],
        )
        for row in DEFAULT_TIER_DEFINITIONS
    ]


@dataclass
class RevenueStack:
    """Every revenue-share service wired to one throwaway SQLite database."""

    engine: Any
    session_factory: Any
    catalog: TierCatalog
    ledger: PayoutLedger
    directory: ProviderDirectory
    locks: ProviderLocks
    evaluator: TierEvaluator
    revenue: RevenueShareService
    batch: PayoutBatchService

    async def add_provider(
        self,
        provider_id: str,
        tier: Optional[ProviderTierLevel] = ProviderTierLevel.BRONZE,
        *,
        wallet: Optional[str] = "auto",
        streak_wins: int = 0,
        **metric_overrides,
    ) -> None:
        """Insert stats (unless ``tier`` is None) and a wallet for a provider."""
        async with self.session_factory() as session:
            if tier is not None:
                metrics = {**TIER_METRICS[tier], **metric_overrides}
                session.add(
                    ProviderStats(
                        provider_id=provider_id,
                        win_rate=metrics["win_rate"],
                        total_signals=metrics["total_signals"],
                        total_copiers=metrics["total_copiers"],
                        reputation_score=metrics["reputation_score"],
                        streak_wins=streak_wins,
                    )
                )
            if wallet is not None:
                address = wallet_for(provider_id) if wallet == "auto" else wallet
                session.add(User(id=provider_id, wallet_address=address))
            await session.commit()

    async def set_tier_metrics(self, provider_id: str, tier: ProviderTierLevel) -> None:
        async with self.session_factory() as session:
            stats = await session.get(ProviderStats, provider_id)
            for field, value in TIER_METRICS[tier].items():
                setattr(stats, field, value)
            await session.commit()

    async def set_streak(self, provider_id: str, streak_wins: int) -> None:
        async with self.session_factory() as session:
            stats = await session.get(ProviderStats, provider_id)
            stats.streak_wins = streak_wins
            await session.commit()


async def build_revenue_stack(tmp_path: Path, seed: bool = True) -> RevenueStack:
    db_path = tmp_path / "revenue_share.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    catalog = TierCatalog(session_factory=session_factory)
    ledger = PayoutLedger(session_factory=session_factory)
    directory = ProviderDirectory(session_factory=session_factory)
    locks = ProviderLocks()
    evaluator = TierEvaluator(
        catalog=catalog,
        ledger=ledger,
        directory=directory,
        locks=locks,
        session_factory=session_factory,
    )
    revenue = RevenueShareService(
        catalog=catalog,
        evaluator=evaluator,
        ledger=ledger,
        directory=directory,
        locks=locks,
        session_factory=session_factory,
    )
    batch = PayoutBatchService(
        revenue_service=revenue,
        catalog=catalog,
        evaluator=evaluator,
        ledger=ledger,
        directory=directory,
        locks=locks,
        session_factory=session_factory,
    )

    if seed:
        await catalog.seed_defaults()
        await catalog.refresh_cache()

    return RevenueStack(
        engine=engine,
        session_factory=session_factory,
        catalog=catalog,
        ledger=ledger,
        directory=directory,
        locks=locks,
        evaluator=evaluator,
        revenue=revenue,
        batch=batch,
    )


@pytest.fixture
def revenue_stack_factory(tmp_path):
    """Async builder for a RevenueStack; callers dispose ``stack.engine``."""

    async def _build(seed: bool = True) -> RevenueStack:
        return await build_revenue_stack(tmp_path, seed=seed)

    return _build


@pytest.fixture
def tier_definitions():
    return default_tier_definitions()
