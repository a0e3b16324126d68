import sys
from decimal import Decimal
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.types import DecimalString
from utils.errors import InvalidArgumentError
from utils.money import (
    ZERO_AMOUNT,
    add,
    apply_percentage,
    format_amount,
    gt,
    is_positive,
    lte,
    require_positive,
    to_decimal,
)


def test_apply_percentage_is_exact_to_eight_places():
    assert apply_percentage("1000", "8.00") == "80.00000000"
    assert apply_percentage("333.33", "10") == "33.33300000"
    assert apply_percentage("0.00000001", "50") == "0.00000001"  # 0.000000005 rounds half up


def test_add_never_goes_through_float():
    assert add("0.1", "0.2") == "0.30000000"
    assert add("80.00000000", "20.00000000") == "100.00000000"
    assert add() == ZERO_AMOUNT


def test_format_amount_rounds_half_up():
    assert format_amount("1.234567895") == "1.23456790"
    assert format_amount("1.234567894") == "1.23456789"
    assert format_amount("7", places=2) == "7.00"


def test_floats_are_parsed_through_their_shortest_repr():
    assert to_decimal(0.1) == Decimal("0.1")
    assert format_amount(0.1) == "0.10000000"


@pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", None, True])
def test_malformed_values_are_rejected(value):
    with pytest.raises(InvalidArgumentError):
        to_decimal(value)


def test_comparisons():
    assert lte("1.00000000", "1")
    assert not lte("1.00000001", "1")
    assert gt("20", "19.99999999")
    assert is_positive("0.00000001")
    assert not is_positive(ZERO_AMOUNT)


def test_require_positive():
    assert require_positive("5") == Decimal("5")
    with pytest.raises(InvalidArgumentError, match="base_revenue must be positive"):
        require_positive("0", "base_revenue")
    with pytest.raises(InvalidArgumentError):
        require_positive("-1")


def test_decimal_string_column_normalises_scale():
    column_type = DecimalString()
    assert column_type.process_bind_param("80", None) == "80.00000000"
    assert column_type.process_bind_param(None, None) is None
    assert column_type.process_result_value("80.00000000", None) == "80.00000000"
    with pytest.raises(ValueError):
        column_type.process_bind_param("not-a-number", None)
