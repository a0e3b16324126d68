from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()


def _detect_project_root(backend_dir: Path) -> Path:
    """Resolve project root from the backend directory in the repo layout."""
    return backend_dir.parent.resolve()


_PROJECT_ROOT = _detect_project_root(_BACKEND_DIR)
_DEFAULT_DB_PATH = (_PROJECT_ROOT / "data" / "revenue_share.db").resolve()
_SQLITE_ASYNC_PREFIX = "sqlite+aiosqlite:///"
_SQLITE_SYNC_PREFIX = "sqlite:///"


# Seeded once per tier level by TierCatalog.seed_defaults(); rows already in
# the database are never overwritten.
DEFAULT_TIER_DEFINITIONS: list[dict] = [
    {
        "tier_level": "BRONZE",
        "name": "Bronze Provider",
        "description": "Entry-level tier for new signal providers.",
        "revenue_share_percentage": "4.00",
        "min_win_rate": "0",
        "min_signals": 0,
        "min_copiers": 0,
        "min_reputation_score": "0",
        "performance_bonus_usdc": "0",
        "monthly_retention_bonus_usdc": "0",
        "is_active": True,
        "sort_order": 1,
    },
    {
        "tier_level": "SILVER",
        "name": "Silver Provider",
        "description": "Established providers with a consistent track record.",
        "revenue_share_percentage": "6.00",
        "min_win_rate": "55",
        "min_signals": 20,
        "min_copiers": 10,
        "min_reputation_score": "55",
        "performance_bonus_usdc": "10",
        "monthly_retention_bonus_usdc": "5",
        "is_active": True,
        "sort_order": 2,
    },
    {
        "tier_level": "GOLD",
        "name": "Gold Provider",
        "description": "High-performing providers with strong copier engagement.",
        "revenue_share_percentage": "8.00",
        "min_win_rate": "62",
        "min_signals": 50,
        "min_copiers": 50,
        "min_reputation_score": "65",
        "performance_bonus_usdc": "50",
        "monthly_retention_bonus_usdc": "20",
        "is_active": True,
        "sort_order": 3,
    },
    {
        "tier_level": "PLATINUM",
        "name": "Platinum Provider",
        "description": "Elite-class providers with outstanding performance.",
        "revenue_share_percentage": "9.00",
        "min_win_rate": "68",
        "min_signals": 100,
        "min_copiers": 150,
        "min_reputation_score": "75",
        "performance_bonus_usdc": "150",
        "monthly_retention_bonus_usdc": "50",
        "is_active": True,
        "sort_order": 4,
    },
    {
        "tier_level": "ELITE",
        "name": "Elite Provider",
        "description": "Top-tier providers who receive the maximum 10% revenue share.",
        "revenue_share_percentage": "10.00",
        "min_win_rate": "75",
        "min_signals": 200,
        "min_copiers": 300,
        "min_reputation_score": "85",
        "performance_bonus_usdc": "500",
        "monthly_retention_bonus_usdc": "100",
        "is_active": True,
        "sort_order": 5,
    },
]


class Settings(BaseSettings):
    # Database - canonical path under project-root data directory
    DATABASE_URL: str = f"sqlite+aiosqlite:///{_DEFAULT_DB_PATH}"

    # Production Settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    LOG_FILE: Optional[str] = None
    CORS_ORIGINS: list[str] = ["*"]

    # Payout ledger
    PAYOUT_ASSET_CODE: str = "USDC"
    PAYOUT_MAX_RETRIES: int = 5
    PAYOUT_PENDING_DEFAULT_LIMIT: int = 50
    PAYOUT_PENDING_MAX_LIMIT: int = 500

    # Tiers whose payouts skip manual approval and go straight to PROCESSING
    AUTO_APPROVE_TIERS: list[str] = ["ELITE", "PLATINUM"]
    # Tiers credited by the monthly retention bonus round
    RETENTION_BONUS_TIERS: list[str] = ["ELITE", "PLATINUM"]

    # Win-streak milestones (wins, bonus USDC), highest first
    STREAK_BONUS_THRESHOLDS: list[tuple[int, str]] = [
        (20, "200"),
        (10, "75"),
        (5, "25"),
    ]

    # Optimistic-concurrency attempts for a single tier evaluation
    EVALUATION_CAS_ATTEMPTS: int = 3

    # Month-end worker: JSON object of provider_id -> base revenue (USDC)
    MONTH_END_BATCH_REVENUE_FILE: Optional[str] = None

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _normalize_database_url(cls, value: object) -> object:
        """Normalize DB URL so worker cwd changes never split databases."""
        if value is None:
            return value

        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text

        # Convert relative SQLite paths to absolute project-root paths.
        for prefix in (_SQLITE_ASYNC_PREFIX, _SQLITE_SYNC_PREFIX):
            if not text.startswith(prefix):
                continue
            path_part = text[len(prefix) :]
            if not path_part:
                return text
            if path_part in {":memory:", "/:memory:"}:
                return f"{prefix}:memory:"
            absolute = Path(path_part).resolve() if path_part.startswith("/") else (_PROJECT_ROOT / path_part).resolve()
            return f"{prefix}{absolute}"

        return text

    @field_validator("STREAK_BONUS_THRESHOLDS")
    @classmethod
    def _sort_streak_thresholds(cls, value: list[tuple[int, str]]) -> list[tuple[int, str]]:
        for wins, _bonus in value:
            if int(wins) <= 0:
                raise ValueError("Streak thresholds must be positive win counts")
        return sorted(value, key=lambda item: int(item[0]), reverse=True)

    class Config:
        # Load project-root .env first (common workflow), then backend/.env
        # as an override if present.
        env_file = (
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        )
        env_file_encoding = "utf-8"


settings = Settings()
