from .logger import setup_logging, get_logger
from .errors import (
    RevenueShareError,
    InvalidArgumentError,
    NotFoundError,
    InvalidStateError,
    LimitExceededError,
)
from .money import format_amount, apply_percentage, add, to_decimal
from .provider_locks import ProviderLocks, provider_locks
from .validation import (
    validate_stellar_address,
    validate_tx_hash,
    validate_amount,
    validate_percentage,
    TierConfigUpdateParams,
)

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",

    # Errors
    "RevenueShareError",
    "InvalidArgumentError",
    "NotFoundError",
    "InvalidStateError",
    "LimitExceededError",

    # Money
    "format_amount",
    "apply_percentage",
    "add",
    "to_decimal",

    # Locks
    "ProviderLocks",
    "provider_locks",

    # Validation
    "validate_stellar_address",
    "validate_tx_hash",
    "validate_amount",
    "validate_percentage",
    "TierConfigUpdateParams",
]
