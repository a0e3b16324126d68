"""
Tier catalog: the five revenue-share tier definitions.

Storage is authoritative. An immutable snapshot of the active rows is kept
in memory for classification so that hot paths (tier resolution during
batch evaluation) never hit the database. Every write goes through this
service and rebuilds the snapshot before returning.
"""

import asyncio
from dataclasses import replace
from typing import Any, Optional

from sqlalchemy import select

from config import DEFAULT_TIER_DEFINITIONS
from models.database import AsyncSessionLocal, ProviderTierLevel, RevenueShareTier
from models.revenue_share import ProviderMetrics, TierDefinition
from services.tier_resolver import resolve_tier
from utils.errors import InvalidArgumentError, NotFoundError
from utils.logger import get_logger
from utils.money import AMOUNT_PLACES, PERCENT_PLACES, format_amount, to_decimal
from utils.utcnow import utcnow

logger = get_logger("tier_catalog")


# field -> (kind, places, upper bound)
UPDATABLE_FIELDS: dict[str, tuple[str, int, Optional[int]]] = {
    "revenue_share_percentage": ("decimal", PERCENT_PLACES, 100),
    "min_win_rate": ("decimal", PERCENT_PLACES, 100),
    "min_signals": ("int", 0, None),
    "min_copiers": ("int", 0, None),
    "min_reputation_score": ("decimal", PERCENT_PLACES, 100),
    "performance_bonus_usdc": ("decimal", AMOUNT_PLACES, None),
    "monthly_retention_bonus_usdc": ("decimal", AMOUNT_PLACES, None),
    "is_active": ("bool", 0, None),
}


def parse_tier_level(value: Any) -> ProviderTierLevel:
    """Coerce a tier level name, raising NotFoundError for unknown levels."""
    if isinstance(value, ProviderTierLevel):
        return value
    try:
        return ProviderTierLevel(str(value).upper())
    except ValueError:
        raise NotFoundError(f"Unknown tier level: {value}")


def _normalize_update(field: str, value: Any) -> Any:
    kind, places, upper = UPDATABLE_FIELDS[field]
    if kind == "bool":
        if not isinstance(value, bool):
            raise InvalidArgumentError(f"{field} must be a boolean")
        return value
    if kind == "int":
        if isinstance(value, bool):
            raise InvalidArgumentError(f"{field} must be an integer")
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"{field} must be an integer")
        if number < 0:
            raise InvalidArgumentError(f"{field} must be non-negative")
        return number

    parsed = to_decimal(value, field)
    if parsed < 0:
        raise InvalidArgumentError(f"{field} must be non-negative")
    if upper is not None and parsed > upper:
        raise InvalidArgumentError(f"{field} must be between 0 and {upper}")
    return format_amount(parsed, places)


THRESHOLD_FIELDS = ("min_win_rate", "min_signals", "min_copiers", "min_reputation_score")


def check_threshold_order(definitions) -> None:
    """Raise InvalidArgumentError unless active thresholds never drop with sort_order."""
    active = sorted((d for d in definitions if d.is_active), key=lambda d: d.sort_order)
    for lower, higher in zip(active, active[1:]):
        for field in THRESHOLD_FIELDS:
            if to_decimal(getattr(higher, field)) < to_decimal(getattr(lower, field)):
                raise InvalidArgumentError(
                    f"{field} of {higher.tier_level.value} ({getattr(higher, field)}) is below "
                    f"{lower.tier_level.value} ({getattr(lower, field)})"
                )


class TierCatalog:
    """Authoritative tier definitions plus a read-only in-process snapshot."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or AsyncSessionLocal
        self._snapshot: tuple[TierDefinition, ...] = ()
        self._refresh_lock = asyncio.Lock()

    async def seed_defaults(self) -> int:
        """Insert any default tier whose level has no row yet.

        Existing rows are left untouched, so operator edits survive restarts.

        Returns:
            Number of rows inserted.
        """
        inserted = 0
        async with self._session_factory() as session:
            result = await session.execute(select(RevenueShareTier.tier_level))
            existing = {ProviderTierLevel(level) for level in result.scalars().all()}

            for definition in DEFAULT_TIER_DEFINITIONS:
                level = ProviderTierLevel(definition["tier_level"])
                if level in existing:
                    continue
                session.add(
                    RevenueShareTier(
                        tier_level=level,
                        name=definition["name"],
                        description=definition.get("description"),
                        revenue_share_percentage=format_amount(
                            definition["revenue_share_percentage"], PERCENT_PLACES
                        ),
                        min_win_rate=format_amount(definition["min_win_rate"], PERCENT_PLACES),
                        min_signals=int(definition["min_signals"]),
                        min_copiers=int(definition["min_copiers"]),
                        min_reputation_score=format_amount(
                            definition["min_reputation_score"], PERCENT_PLACES
                        ),
                        performance_bonus_usdc=format_amount(definition["performance_bonus_usdc"]),
                        monthly_retention_bonus_usdc=format_amount(
                            definition["monthly_retention_bonus_usdc"]
                        ),
                        is_active=bool(definition.get("is_active", True)),
                        sort_order=int(definition["sort_order"]),
                    )
                )
                existing.add(level)
                inserted += 1

            if inserted:
                await session.commit()

        if inserted:
            logger.info("Seeded default revenue share tiers", inserted=inserted)
        return inserted

    async def refresh_cache(self) -> tuple[TierDefinition, ...]:
        """Reload active definitions (by sort_order) into the snapshot."""
        async with self._refresh_lock:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(RevenueShareTier)
                    .where(RevenueShareTier.is_active == True)  # noqa: E712
                    .order_by(RevenueShareTier.sort_order)
                )
                rows = result.scalars().all()
            self._snapshot = tuple(TierDefinition.from_row(row) for row in rows)

        logger.debug("Tier cache refreshed", active_tiers=len(self._snapshot))
        return self._snapshot

    def list_active(self) -> list[TierDefinition]:
        """Active definitions from the snapshot, ordered by sort_order."""
        return list(self._snapshot)

    def cached_definition(self, tier_level) -> Optional[TierDefinition]:
        level = ProviderTierLevel(tier_level)
        for definition in self._snapshot:
            if definition.tier_level == level:
                return definition
        return None

    def resolve(self, metrics: ProviderMetrics) -> ProviderTierLevel:
        """Classify ``metrics`` against the snapshot without touching storage."""
        return resolve_tier(metrics, self._snapshot)

    async def get_definition(self, tier_level) -> TierDefinition:
        """Read a definition from storage; NotFoundError when it does not exist."""
        level = parse_tier_level(tier_level)
        async with self._session_factory() as session:
            result = await session.execute(
                select(RevenueShareTier).where(RevenueShareTier.tier_level == level)
            )
            row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Tier definition not found for {level.value}")
        return TierDefinition.from_row(row)

    async def list_all(self) -> list[TierDefinition]:
        """All definitions including inactive ones, ordered by sort_order."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(RevenueShareTier).order_by(RevenueShareTier.sort_order)
            )
            return [TierDefinition.from_row(row) for row in result.scalars().all()]

    async def update(self, tier_level, **fields: Any) -> TierDefinition:
        """Change the mutable fields of one tier and refresh the snapshot.

        Raises:
            InvalidArgumentError: a field is not updatable, its value is invalid,
                or the change would break threshold ordering between active tiers.
            NotFoundError: the tier level is unknown or has no row.
        """
        level = parse_tier_level(tier_level)
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise InvalidArgumentError(f"Fields not updatable: {', '.join(unknown)}")
        changes = {name: _normalize_update(name, value) for name, value in fields.items()}

        async with self._session_factory() as session:
            result = await session.execute(select(RevenueShareTier))
            rows = {ProviderTierLevel(r.tier_level): r for r in result.scalars().all()}
            row = rows.get(level)
            if row is None:
                raise NotFoundError(f"Tier definition not found for {level.value}")

            merged = [TierDefinition.from_row(r) for r in rows.values()]
            merged = [replace(d, **changes) if d.tier_level == level else d for d in merged]
            check_threshold_order(merged)

            for name, value in changes.items():
                setattr(row, name, value)
            row.updated_at = utcnow()
            await session.commit()
            await session.refresh(row)
            updated = TierDefinition.from_row(row)

        await self.refresh_cache()
        logger.info(
            "Tier definition updated",
            tier_level=level.value,
            fields=sorted(changes),
        )
        return updated


tier_catalog = TierCatalog()
