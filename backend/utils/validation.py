import re
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from utils.errors import InvalidArgumentError
from utils.money import to_decimal


# Stellar ed25519 public key (StrKey, G + 55 base32 chars)
STELLAR_PUBLIC_KEY_REGEX = re.compile(r"^G[A-Z2-7]{55}$")
# Stellar transaction hash (SHA-256 hex)
STELLAR_TX_HASH_REGEX = re.compile(r"^[a-fA-F0-9]{64}$")

# Stellar amounts carry 7 fractional digits and are bounded by int64 stroops
STELLAR_AMOUNT_PLACES = 7
STELLAR_MAX_AMOUNT = Decimal("922337203685.4775807")


def validate_stellar_address(address: str) -> str:
    """Validate Stellar public key format"""
    if not address:
        raise ValueError("Address cannot be empty")

    address = address.strip()

    if not STELLAR_PUBLIC_KEY_REGEX.match(address):
        raise ValueError(f"Invalid Stellar public key: {address}")

    return address


def validate_tx_hash(tx_hash: str) -> str:
    """Validate Stellar transaction hash format"""
    if not tx_hash:
        raise ValueError("Transaction hash cannot be empty")

    tx_hash = tx_hash.strip()

    if not STELLAR_TX_HASH_REGEX.match(tx_hash):
        raise ValueError("Transaction hash must be 64 hexadecimal characters")

    return tx_hash.lower()


def validate_amount(value: str, name: str = "amount") -> str:
    """Validate a positive amount within Stellar precision and range"""
    try:
        amount = to_decimal(value, name)
    except InvalidArgumentError as e:
        raise ValueError(e.message)

    if amount <= 0:
        raise ValueError(f"{name} must be positive")
    if amount.as_tuple().exponent < -STELLAR_AMOUNT_PLACES:
        raise ValueError(f"{name} must have at most {STELLAR_AMOUNT_PLACES} decimal places")
    if amount > STELLAR_MAX_AMOUNT:
        raise ValueError(f"{name} exceeds the maximum Stellar amount")
    return str(value).strip()


def validate_percentage(value: str, name: str) -> str:
    """Validate that a value is a valid percentage (0-100)"""
    try:
        percentage = to_decimal(value, name)
    except InvalidArgumentError as e:
        raise ValueError(e.message)

    if percentage < 0 or percentage > 100:
        raise ValueError(f"{name} must be between 0 and 100")
    return str(value).strip()


def validate_limit(value: int, max_limit: int = 1000) -> int:
    """Validate pagination limit"""
    if value < 1:
        return 1
    if value > max_limit:
        return max_limit
    return value


class TierConfigUpdateParams(BaseModel):
    """Validated tier configuration update; unset fields are left unchanged"""
    revenue_share_percentage: Optional[str] = None
    min_win_rate: Optional[str] = None
    min_signals: Optional[int] = Field(default=None, ge=0)
    min_copiers: Optional[int] = Field(default=None, ge=0)
    min_reputation_score: Optional[str] = None
    performance_bonus_usdc: Optional[str] = None
    monthly_retention_bonus_usdc: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("revenue_share_percentage", "min_win_rate", "min_reputation_score")
    @classmethod
    def validate_percentages(cls, v: Optional[str], info) -> Optional[str]:
        if v is None:
            return v
        return validate_percentage(v, info.field_name)

    @field_validator("performance_bonus_usdc", "monthly_retention_bonus_usdc")
    @classmethod
    def validate_bonus(cls, v: Optional[str], info) -> Optional[str]:
        if v is None:
            return v
        try:
            amount = to_decimal(v, info.field_name)
        except InvalidArgumentError as e:
            raise ValueError(e.message)
        if amount < 0:
            raise ValueError(f"{info.field_name} must be non-negative")
        return str(v).strip()

