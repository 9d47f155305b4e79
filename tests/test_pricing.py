import pytest

from fuelbook.errors import ValidationError
from fuelbook.pricing import PriceTable, quote_by_amount, quote_by_volume, round_currency


def test_default_prices() -> None:
    table = PriceTable()
    assert table.price_for("normal") == 106.39
    assert table.price_for("xp95") == 113.73
    assert table.price_for("diesel") == 90.00


def test_amount_mode_scenario() -> None:
    quote = quote_by_amount(106.39, 250)
    assert round_currency(quote.discount) == 2.35
    assert round_currency(quote.fuel_to_give) == 252.35
    assert quote.rounded()["fuel_to_give"] == 252.35


def test_amount_mode_rejects_non_positive_inputs() -> None:
    with pytest.raises(ValidationError):
        quote_by_amount(0, 250)
    with pytest.raises(ValidationError):
        quote_by_amount(106.39, 0)
    live = quote_by_amount(106.39, -5, strict=False)
    assert live.discount == 0.0
    assert live.fuel_to_give == 0.0


def test_volume_mode_scenario() -> None:
    quote = quote_by_volume(2, 106.39, 1)
    rounded = quote.rounded()
    assert rounded["total_amount"] == 212.78
    assert rounded["total_discount"] == 2.00
    assert rounded["fuel_to_give"] == 214.78


def test_volume_mode_validation() -> None:
    with pytest.raises(ValidationError):
        quote_by_volume(0, 106.39)
    with pytest.raises(ValidationError):
        quote_by_volume(2, 0)
    with pytest.raises(ValidationError):
        quote_by_volume(2, 106.39, -1)


def test_zero_price_rejected_and_table_unchanged() -> None:
    table = PriceTable()
    with pytest.raises(ValidationError):
        table.set_prices(100, 0, 95)
    assert table.price_for("xp95") == 113.73
    assert table.price_for("normal") == 106.39


def test_non_numeric_price_rejected() -> None:
    table = PriceTable()
    for bad in ("abc", None, True):
        with pytest.raises(ValidationError):
            table.set_prices(bad, 110, 95)
    assert table.price_for("normal") == 106.39


def test_set_prices_replaces_all_three() -> None:
    table = PriceTable()
    table.set_prices("101.5", 111, 91.25)
    assert (table.price_for("normal"), table.price_for("xp95"), table.price_for("diesel")) == (101.5, 111.0, 91.25)


def test_unknown_fuel_type() -> None:
    with pytest.raises(ValidationError):
        PriceTable().price_for("kerosene")


def test_round_currency_is_half_up() -> None:
    assert round_currency(2.345) == 2.35
    assert round_currency(0.125) == 0.13
    assert round_currency(1.004) == 1.0


@pytest.mark.parametrize("bad", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_price_rejected_and_table_unchanged(bad) -> None:
    table = PriceTable()
    with pytest.raises(ValidationError):
        table.set_prices(bad, 110, 90)
    assert table.price_for("normal") == 106.39


@pytest.mark.parametrize("bad", [float("inf"), float("nan")])
def test_quotes_reject_non_finite_inputs(bad) -> None:
    with pytest.raises(ValidationError):
        quote_by_amount(106.39, bad)
    with pytest.raises(ValidationError):
        quote_by_amount(bad, 250)
    with pytest.raises(ValidationError):
        quote_by_volume(bad, 106.39)
    with pytest.raises(ValidationError):
        quote_by_volume(2, 106.39, per_liter_discount=bad)
    live = quote_by_amount(106.39, bad, strict=False)
    assert (live.customer_amount, live.discount, live.fuel_to_give) == (0.0, 0.0, 0.0)
