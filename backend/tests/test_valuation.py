"""
Tests for the valuation aggregator.
"""
import pytest

from services.valuation import aggregate_portfolio, allocation_percent, day_change, value_position


def _row(symbol, quantity, average_price, current_price=None, agent_id=1):
    return {
        "id": None,
        "agent_id": agent_id,
        "symbol": symbol,
        "quantity": quantity,
        "average_price": average_price,
        "current_price": current_price,
    }


def test_market_value_uses_current_price():
    valued = value_position(_row("TCS", 10, 3600.0, 3700.0))
    assert valued["market_value"] == pytest.approx(37000.0)
    assert valued["cost_basis"] == pytest.approx(36000.0)
    assert valued["unrealized_pnl"] == pytest.approx(1000.0)
    assert valued["pnl_percent"] == pytest.approx(100.0 / 36.0)
    assert valued["current_price_available"] is True


def test_missing_current_price_falls_back_to_average():
    valued = value_position(_row("INFY", 5, 1500.0))
    assert valued["current_price"] == 1500.0
    assert valued["market_value"] == pytest.approx(7500.0)
    assert valued["unrealized_pnl"] == 0.0
    assert valued["current_price_available"] is False


def test_short_position_gains_when_price_falls():
    valued = value_position(_row("SBIN", -10, 600.0, 580.0))
    assert valued["market_value"] == pytest.approx(-5800.0)
    assert valued["unrealized_pnl"] == pytest.approx(200.0)


def test_zero_average_price_gives_zero_percent():
    assert value_position(_row("ITC", 1, 0.0, 420.0))["pnl_percent"] == 0.0


def test_allocation_percent_zero_total():
    assert allocation_percent(100.0, 0.0) == 0.0
    assert allocation_percent(25.0, 100.0) == 25.0


def test_empty_portfolio_is_all_zero():
    result = aggregate_portfolio([])
    assert result["positions"] == []
    assert result["total_value"] == 0
    assert result["total_pnl"] == 0
    assert result["total_pnl_percent"] == 0.0
    assert result["position_count"] == 0
    assert result["largest_allocation_percent"] == 0.0
    assert result["day_change"] == 0.0
    assert result["day_change_percent"] == 0.0


def test_aggregate_totals_and_allocations():
    rows = [
        _row("RELIANCE", 10, 2400.0, 2500.0),
        _row("TCS", 5, 3600.0, 3500.0),
        _row("ITC", 100, 400.0),
    ]
    result = aggregate_portfolio(rows, agent_names={1: "Alpha"})

    assert result["total_value"] == pytest.approx(25000.0 + 17500.0 + 40000.0)
    assert result["total_cost"] == pytest.approx(24000.0 + 18000.0 + 40000.0)
    assert result["total_pnl"] == pytest.approx(1000.0 - 500.0)
    assert result["total_pnl_percent"] == pytest.approx(500.0 / 82000.0 * 100)
    assert result["position_count"] == 3
    assert sum(p["allocation_percent"] for p in result["positions"]) == pytest.approx(100.0)
    assert result["largest_allocation_percent"] == pytest.approx(40000.0 / 82500.0 * 100)
    assert {p["agent_name"] for p in result["positions"]} == {"Alpha"}
    assert result["day_change"] == pytest.approx(50.0)
    assert result["day_change_percent"] == pytest.approx(50.0 / 82450.0 * 100)


def test_day_change_is_share_of_pnl():
    losing = day_change(-200.0, 1000.0)
    assert losing["day_change"] == pytest.approx(-20.0)
    assert losing["day_change_percent"] == pytest.approx(-20.0 / 1020.0 * 100)
    assert day_change(500.0, 0.0)["day_change_percent"] == 0.0


def test_market_value_invariant_holds_for_every_position():
    rows = [_row("A", 3, 10.0, 12.5), _row("B", 7, 20.0), _row("C", -2, 5.0, 4.0)]
    for valued in aggregate_portfolio(rows)["positions"]:
        expected_price = valued["current_price"] if valued["current_price_available"] else valued["average_price"]
        assert valued["market_value"] == pytest.approx(valued["quantity"] * expected_price)


def test_works_with_orm_like_objects():
    class Row:
        id = 9
        agent_id = 2
        symbol = "hdfcbank"
        quantity = 4.0
        average_price = 1600.0
        current_price = 1700.0

    valued = value_position(Row())
    assert valued["symbol"] == "HDFCBANK"
    assert valued["unrealized_pnl"] == pytest.approx(400.0)
