"""
Provider directory: read-only view over the platform's provider data.

Performance snapshots live in ``provider_stats`` and payout wallets in
``users``; both are written by other parts of the platform. The
revenue-share services only consume them through this class, so tests can
hand in any object exposing the same coroutines.
"""

from typing import Optional

from sqlalchemy import select

from models.database import AsyncSessionLocal, ProviderStats, User
from models.revenue_share import ProviderMetrics
from utils.logger import get_logger

logger = get_logger("provider_directory")


class ProviderDirectory:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or AsyncSessionLocal

    async def get_metrics(self, provider_id: str) -> ProviderMetrics:
        """Return the provider's performance snapshot; all zeros when unknown."""
        async with self._session_factory() as session:
            row = await session.get(ProviderStats, provider_id)

        if row is None:
            logger.debug("No stats for provider, using zero metrics", provider_id=provider_id)
            return ProviderMetrics(provider_id=provider_id)

        return ProviderMetrics(
            provider_id=provider_id,
            win_rate=row.win_rate,
            total_signals=int(row.total_signals or 0),
            total_copiers=int(row.total_copiers or 0),
            reputation_score=row.reputation_score,
        )

    async def get_wallet_address(self, provider_id: str) -> Optional[str]:
        async with self._session_factory() as session:
            row = await session.get(User, provider_id)
        return row.wallet_address if row is not None else None

    async def get_streak_wins(self, provider_id: str) -> Optional[int]:
        """Current consecutive-win streak, or None when the provider has no stats."""
        async with self._session_factory() as session:
            row = await session.get(ProviderStats, provider_id)
        if row is None:
            return None
        return int(row.streak_wins or 0)

    async def list_provider_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderStats.provider_id).order_by(ProviderStats.provider_id)
            )
            return [provider_id for provider_id in result.scalars().all()]


provider_directory = ProviderDirectory()
