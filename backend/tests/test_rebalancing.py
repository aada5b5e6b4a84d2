"""
Tests for rebalancing recommendations.
"""
from services.rebalancing import TEMPLATE_RECOMMENDATIONS, generate_recommendations
from services.valuation import aggregate_portfolio


def _valuations(*rows):
    return aggregate_portfolio([
        {"symbol": s, "quantity": q, "average_price": p, "current_price": p, "agent_id": 1}
        for s, q, p in rows
    ])["positions"]


def test_empty_portfolio_returns_template():
    recommendations = generate_recommendations([])
    assert [r["symbol"] for r in recommendations] == ["RELIANCE", "TCS", "INFY"]
    assert recommendations[0]["recommended_action"] == "sell"
    assert recommendations[1]["recommended_action"] == "buy"


def test_template_is_not_shared():
    generate_recommendations([])[0]["quantity"] = 999
    assert TEMPLATE_RECOMMENDATIONS[0]["quantity"] == 50


def test_balanced_portfolio_holds():
    recommendations = generate_recommendations(_valuations(("INFY", 10, 100.0), ("TCS", 5, 200.0)))
    assert [r["recommended_action"] for r in recommendations] == ["hold", "hold"]
    assert all(r["target_allocation"] == 50.0 for r in recommendations)


def test_overweight_sells_and_underweight_buys():
    # 7500 vs 2500: target 5000 each
    recommendations = generate_recommendations(_valuations(("RELIANCE", 75, 100.0), ("ITC", 25, 100.0)))
    by_symbol = {r["symbol"]: r for r in recommendations}

    assert by_symbol["RELIANCE"]["recommended_action"] == "sell"
    assert by_symbol["RELIANCE"]["quantity"] == 25
    assert by_symbol["RELIANCE"]["current_allocation"] == 75.0
    assert by_symbol["ITC"]["recommended_action"] == "buy"
    assert by_symbol["ITC"]["quantity"] == 25


def test_positions_in_same_symbol_are_combined():
    valuations = _valuations(("TCS", 10, 100.0), ("TCS", 10, 100.0), ("INFY", 20, 100.0))
    recommendations = generate_recommendations(valuations)
    assert [r["symbol"] for r in recommendations] == ["INFY", "TCS"]
    assert all(r["recommended_action"] == "hold" for r in recommendations)


def test_drift_within_tolerance_holds():
    recommendations = generate_recommendations(_valuations(("A", 51, 100.0), ("B", 49, 100.0)), tolerance_percent=2.0)
    assert all(r["recommended_action"] == "hold" for r in recommendations)
