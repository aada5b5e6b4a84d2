"""
Valuation Aggregator.

Derives per-position market value and P&L and rolls them up into portfolio
totals and allocation percentages. Stored market_value / unrealized_pnl
columns are ignored; everything is re-derived from quantity, current_price
and average_price at read time.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(parsed):
        return default
    return parsed


def _field(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


def value_position(row: Any) -> Dict[str, Any]:
    """
    Value a single position row (ORM object or dict).

    Falls back to average_price when current_price is absent, in which case
    unrealized P&L is zero.
    """
    quantity = _safe_float(_field(row, "quantity"), 0.0)
    average_price = _safe_float(_field(row, "average_price"), 0.0)
    raw_current = _field(row, "current_price")
    current_price_available = raw_current is not None and math.isfinite(_safe_float(raw_current, math.nan))
    current_price = _safe_float(raw_current, average_price) if current_price_available else average_price

    market_value = quantity * current_price
    unrealized_pnl = quantity * (current_price - average_price)
    pnl_percent = ((current_price - average_price) / average_price * 100.0) if average_price > 0 else 0.0

    return {
        "id": _field(row, "id"),
        "agent_id": _field(row, "agent_id"),
        "symbol": str(_field(row, "symbol", "") or "").upper(),
        "quantity": quantity,
        "average_price": average_price,
        "current_price": current_price,
        "current_price_available": current_price_available,
        "market_value": market_value,
        "cost_basis": quantity * average_price,
        "unrealized_pnl": unrealized_pnl,
        "pnl_percent": pnl_percent,
        "allocation_percent": 0.0,
    }


# No price history is kept; the day move is modelled as this share of open P&L.
DAY_CHANGE_PNL_SHARE = 0.1


def day_change(total_pnl: float, total_value: float) -> Dict[str, float]:
    """Mock day change and its percentage of the previous close value."""
    change = total_pnl * DAY_CHANGE_PNL_SHARE
    previous_value = total_value - change
    if total_value <= 0 or previous_value == 0:
        return {"day_change": change, "day_change_percent": 0.0}
    return {"day_change": change, "day_change_percent": change / previous_value * 100.0}


def allocation_percent(market_value: float, total_value: float) -> float:
    """Market value as a percentage of total value, 0 when the total is 0."""
    if total_value == 0:
        return 0.0
    return market_value / total_value * 100.0


def aggregate_portfolio(rows: Iterable[Any], agent_names: Optional[Dict[Any, str]] = None) -> Dict[str, Any]:
    """
    Value every position and roll up portfolio metrics.

    Args:
        rows: Position rows for one user
        agent_names: Optional agent_id -> name map attached to each valuation

    Returns:
        Dict with positions (valued, with allocation) and totals. An empty
        input yields all-zero totals.
    """
    positions: List[Dict[str, Any]] = [value_position(row) for row in rows]
    total_value = sum(p["market_value"] for p in positions)
    total_cost = sum(p["cost_basis"] for p in positions)
    total_pnl = sum(p["unrealized_pnl"] for p in positions)

    for position in positions:
        position["allocation_percent"] = allocation_percent(position["market_value"], total_value)
        if agent_names is not None:
            position["agent_name"] = agent_names.get(position["agent_id"])

    total_pnl_percent = (total_pnl / total_cost * 100.0) if total_cost > 0 else 0.0
    largest_allocation = max((abs(p["allocation_percent"]) for p in positions), default=0.0)

    return {
        "positions": positions,
        "total_value": total_value,
        "total_cost": total_cost,
        "total_pnl": total_pnl,
        "total_pnl_percent": total_pnl_percent,
        "position_count": len(positions),
        "largest_allocation_percent": largest_allocation,
        **day_change(total_pnl, total_value),
    }
