"""
Tests for the forward-fill price resolver.
"""
from datetime import date
from decimal import Decimal

from compass.core.dates import list_dates
from compass.services.roi import fill_prices_for_dates


def test_gaps_are_filled_with_last_close():
    """Observations on days 1 and 5 fill days 1-5 with the day-1 close until day 5."""
    dates = list_dates(date(2026, 3, 1), date(2026, 3, 5))
    rows = [
        ("BTC", date(2026, 3, 5), Decimal("110")),
        ("BTC", date(2026, 3, 1), Decimal("100")),
    ]

    filled = fill_prices_for_dates(["BTC"], rows, dates)

    assert filled["BTC"] == {
        "2026-03-01": Decimal("100"),
        "2026-03-02": Decimal("100"),
        "2026-03-03": Decimal("100"),
        "2026-03-04": Decimal("100"),
        "2026-03-05": Decimal("110"),
    }


def test_dates_before_first_observation_are_absent():
    dates = list_dates(date(2026, 3, 1), date(2026, 3, 4))
    rows = [("ETH", date(2026, 3, 3), Decimal("2000"))]

    filled = fill_prices_for_dates(["ETH"], rows, dates)

    assert "2026-03-01" not in filled["ETH"]
    assert "2026-03-02" not in filled["ETH"]
    assert filled["ETH"]["2026-03-04"] == Decimal("2000")


def test_symbol_without_rows_gets_empty_map():
    dates = list_dates(date(2026, 3, 1), date(2026, 3, 2))

    filled = fill_prices_for_dates(["BTC", "SOL"], [("BTC", date(2026, 3, 1), Decimal("1"))], dates)

    assert filled["SOL"] == {}
    assert set(filled) == {"BTC", "SOL"}


def test_observation_before_range_seeds_the_series():
    dates = list_dates(date(2026, 3, 3), date(2026, 3, 4))
    rows = [("BTC", date(2026, 3, 1), Decimal("95"))]

    filled = fill_prices_for_dates(["BTC"], rows, dates)

    assert filled["BTC"] == {"2026-03-03": Decimal("95"), "2026-03-04": Decimal("95")}
