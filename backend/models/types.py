"""Shared SQLAlchemy column types used across ORM models."""

from __future__ import annotations

from typing import Any

from sqlalchemy.types import String, TypeDecorator

from utils.errors import InvalidArgumentError
from utils.money import AMOUNT_PLACES, format_amount


class DecimalString(TypeDecorator):
    """Persist exact decimals as fixed-scale text.

    Values are normalised to ``places`` fractional digits on the way in and
    come back as the same decimal strings the services compute with, so no
    dialect (SQLite in particular) ever round-trips an amount through a
    binary float.
    """

    impl = String(48)
    cache_ok = True

    def __init__(self, places: int = AMOUNT_PLACES, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.places = places

    def process_bind_param(self, value: Any, dialect):
        if value is None:
            return None
        try:
            return format_amount(value, self.places)
        except InvalidArgumentError as exc:
            raise ValueError(f"Invalid numeric value for DecimalString: {value!r}") from exc

    def process_result_value(self, value: Any, dialect):
        if value is None:
            return None
        return str(value)
