from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    DateTime,
    Text,
    Enum as SQLEnum,
    Index,
    event,
)
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from pathlib import Path
import enum
import logging

from config import settings
from models.types import DecimalString
from utils.money import PERCENT_PLACES, ZERO_AMOUNT
from utils.utcnow import utcnow

logger = logging.getLogger(__name__)

Base = declarative_base()


class ProviderTierLevel(str, enum.Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"
    ELITE = "ELITE"


class BonusType(str, enum.Enum):
    PERFORMANCE = "PERFORMANCE"  # One-time promotion bonus
    MONTHLY_TOP = "MONTHLY_TOP"  # Recurring retention bonus for top tiers
    STREAK = "STREAK"  # Win-streak milestone


class PayoutStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ==================== REVENUE SHARE TIERS ====================


class RevenueShareTier(Base):
    """Tier definition: qualification thresholds, share percentage, bonuses"""

    __tablename__ = "revenue_share_tiers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tier_level = Column(SQLEnum(ProviderTierLevel), nullable=False, unique=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    revenue_share_percentage = Column(DecimalString(PERCENT_PLACES), nullable=False)

    # Qualification thresholds
    min_win_rate = Column(DecimalString(PERCENT_PLACES), nullable=False, default="0.00")
    min_signals = Column(Integer, nullable=False, default=0)
    min_copiers = Column(Integer, nullable=False, default=0)
    min_reputation_score = Column(DecimalString(PERCENT_PLACES), nullable=False, default="0.00")

    # Bonuses (USDC)
    performance_bonus_usdc = Column(DecimalString(), nullable=False, default=ZERO_AMOUNT)
    monthly_retention_bonus_usdc = Column(DecimalString(), nullable=False, default=ZERO_AMOUNT)

    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ProviderTierAssignment(Base):
    """Current tier of a provider plus the metrics snapshot that produced it"""

    __tablename__ = "provider_tier_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(String, nullable=False, unique=True)
    current_tier = Column(SQLEnum(ProviderTierLevel), nullable=False)
    previous_tier = Column(SQLEnum(ProviderTierLevel), nullable=True)

    # Metrics snapshot
    win_rate_snapshot = Column(DecimalString(PERCENT_PLACES), nullable=False, default="0.00")
    signals_snapshot = Column(Integer, nullable=False, default=0)
    copiers_snapshot = Column(Integer, nullable=False, default=0)
    reputation_snapshot = Column(DecimalString(PERCENT_PLACES), nullable=False, default="0.00")

    last_evaluated_at = Column(DateTime, nullable=True)
    promotion_bonus_paid = Column(Boolean, nullable=False, default=False)

    # Optimistic concurrency: every UPDATE is "... WHERE version = :seen"
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("idx_assignment_tier", "current_tier"),)


class ProviderRevenuePayout(Base):
    """Ledger entry for money owed to a provider"""

    __tablename__ = "provider_revenue_payouts"

    id = Column(String, primary_key=True)
    provider_id = Column(String, nullable=False)
    tier_level = Column(SQLEnum(ProviderTierLevel), nullable=False)

    # Amounts (USDC, 8 fractional digits)
    base_revenue = Column(DecimalString(), nullable=False, default=ZERO_AMOUNT)
    share_percentage = Column(DecimalString(PERCENT_PLACES), nullable=False, default="0.00")
    revenue_share_amount = Column(DecimalString(), nullable=False, default=ZERO_AMOUNT)
    bonus_amount = Column(DecimalString(), nullable=False, default=ZERO_AMOUNT)
    bonus_type = Column(SQLEnum(BonusType), nullable=True)
    # Set only on the one-time bonus paid by a tier promotion
    is_promotion_bonus = Column(Boolean, nullable=False, default=False)
    total_payout = Column(DecimalString(), nullable=False)
    asset_code = Column(String, nullable=False, default="USDC")
    provider_wallet_address = Column(String, nullable=False)

    # Lifecycle
    status = Column(SQLEnum(PayoutStatus), nullable=False, default=PayoutStatus.PENDING)
    period_year = Column(Integer, nullable=False)
    period_month = Column(Integer, nullable=False)
    stellar_tx_hash = Column(String, nullable=True)
    failure_reason = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_payout_provider", "provider_id"),
        Index("idx_payout_status_created", "status", "created_at"),
        Index("idx_payout_period", "period_year", "period_month"),
    )


# ==================== PLATFORM COLLABORATORS ====================
# Written by the signals / users modules of the wider platform; the
# revenue-share services only read them.


class ProviderStats(Base):
    """Performance snapshot of a signal provider"""

    __tablename__ = "provider_stats"

    provider_id = Column(String, primary_key=True)
    win_rate = Column(DecimalString(PERCENT_PLACES), nullable=False, default="0.00")
    total_signals = Column(Integer, nullable=False, default=0)
    total_copiers = Column(Integer, nullable=False, default=0)
    reputation_score = Column(DecimalString(PERCENT_PLACES), nullable=False, default="0.00")
    streak_wins = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class User(Base):
    """Platform user; providers are paid to their Stellar wallet"""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    wallet_address = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, default=utcnow)


# ==================== DATABASE SETUP ====================

# SQLite-specific: improve concurrency (WAL + busy_timeout applied in _set_sqlite_pragma)
_engine_kw: dict = {"echo": False}
if "sqlite" in settings.DATABASE_URL:
    _engine_kw["connect_args"] = {"timeout": 30}  # Wait up to 30s when DB is locked

async_engine = create_async_engine(settings.DATABASE_URL, **_engine_kw)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite for better concurrent access (WAL mode, busy timeout)."""
    if "sqlite" not in settings.DATABASE_URL:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")  # Allow concurrent reads during writes
    cursor.execute("PRAGMA busy_timeout=30000")  # Wait up to 30s when locked (ms)
    cursor.close()


# Apply pragmas on each new SQLite connection
event.listens_for(async_engine.sync_engine, "connect")(_set_sqlite_pragma)

AsyncSessionLocal = sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


def _ensure_sqlite_directory() -> None:
    for prefix in ("sqlite+aiosqlite:///", "sqlite:///"):
        if settings.DATABASE_URL.startswith(prefix):
            path_part = settings.DATABASE_URL[len(prefix) :]
            if path_part and path_part != ":memory:":
                Path(path_part).parent.mkdir(parents=True, exist_ok=True)
            return


async def init_database():
    """Create any missing tables."""
    _ensure_sqlite_directory()
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")



async def get_db_session() -> AsyncSession:
    """Get database session"""
    async with AsyncSessionLocal() as session:
        yield session
