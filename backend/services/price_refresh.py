"""
Portfolio price refresh.
Marks every open position to a fresh mock quote and refreshes cached valuation.
"""

import logging
from typing import Any, Dict

from services.market_data import MockMarketDataProvider, store_snapshot
from storage.service import StorageService

logger = logging.getLogger(__name__)


def refresh_position_prices(storage: StorageService, provider: MockMarketDataProvider) -> Dict[str, Any]:
    """
    Update current_price, market_value and unrealized_pnl for all open positions.

    Returns:
        Result dict with message and number of symbols updated
    """
    positions = storage.positions.get_all_open()
    if not positions:
        return {"success": True, "message": "No positions to update", "updated_symbols": 0}

    unique_symbols = sorted({p.symbol for p in positions})
    quotes = provider.quotes(unique_symbols)
    store_snapshot(storage, quotes)

    updated_positions = 0
    for quote in quotes:
        close_price = float(quote["close_price"])
        for position in storage.positions.get_open_by_symbol(quote["symbol"]):
            storage.set_position_price(position, close_price)
            updated_positions += 1

    logger.info(
        "Portfolio prices refreshed: symbols=%d positions=%d",
        len(unique_symbols),
        updated_positions,
    )
    storage.create_audit_log(
        event_type="prices_refreshed",
        description=f"Portfolio prices refreshed for {len(unique_symbols)} symbols",
        details={"symbols": unique_symbols, "positions": updated_positions},
    )
    return {
        "success": True,
        "message": "Portfolio prices updated",
        "updated_symbols": len(unique_symbols),
    }
