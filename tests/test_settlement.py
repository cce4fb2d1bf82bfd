from decimal import Decimal

import pytest

from app.core.exceptions import ErrorKind, ValidationError
from app.domain.settlement import settle


@pytest.mark.parametrize(
    "gross, rate, fee, host_earning",
    [
        ("100.00", "0.10", "10.00", "90.00"),
        ("33.33", "0.10", "3.33", "30.00"),
        ("0.25", "0.10", "0.03", "0.22"),
        ("0.05", "0.10", "0.01", "0.04"),
        ("0.00", "0.10", "0.00", "0.00"),
        ("250.00", "0", "0.00", "250.00"),
        ("250.00", "1", "250.00", "0.00"),
    ],
)
def test_settle_rounds_half_away_from_zero(gross, rate, fee, host_earning):
    split = settle(Decimal(gross), Decimal(rate))

    assert split.fee == Decimal(fee)
    assert split.host_earning == Decimal(host_earning)
    assert split.fee + split.host_earning == split.gross


def test_settle_accepts_floats_without_binary_artifacts():
    split = settle(33.33, 0.1)

    assert split.gross == Decimal("33.33")
    assert split.fee == Decimal("3.33")
    assert split.host_earning == Decimal("30.00")
    assert split.commission_rate == Decimal("0.1")


def test_settle_computes_fee_from_unrounded_gross():
    # 0.026 * 0.5 = 0.013 -> 0.01; rounding the gross first would give 0.015 -> 0.02
    split = settle("0.026", "0.5")

    assert split.fee == Decimal("0.01")
    assert split.host_earning == Decimal("0.02")
    assert split.gross == Decimal("0.03")


def test_settle_defaults_to_platform_rate():
    split = settle("100")

    assert split.commission_rate == Decimal("0.10")
    assert split.fee == Decimal("10.00")


def test_settle_rejects_negative_gross():
    with pytest.raises(ValidationError) as exc_info:
        settle(Decimal("-1.00"), Decimal("0.10"))

    assert exc_info.value.kind is ErrorKind.INVALID_ARGUMENT


@pytest.mark.parametrize("rate", ["-0.01", "1.01", "2"])
def test_settle_rejects_rate_outside_unit_interval(rate):
    with pytest.raises(ValidationError):
        settle(Decimal("100"), Decimal(rate))


@pytest.mark.parametrize("value", ["abc", float("nan"), float("inf"), None, True])
def test_settle_rejects_non_numbers(value):
    with pytest.raises(ValidationError):
        settle(value, Decimal("0.10"))
