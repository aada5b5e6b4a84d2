"""
Mock Market Data Provider.

There is no real feed: quotes are pseudo-random around a per-symbol base
price, which is enough to drive the dashboard and the synthetic order fills.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from storage.service import StorageService

logger = logging.getLogger(__name__)

# NSE symbol -> (base price, range) in INR
TRACKED_SYMBOLS: Dict[str, Tuple[float, float]] = {
    "RELIANCE": (2470.0, 50.0),
    "TCS": (3675.0, 80.0),
    "INFY": (1540.0, 30.0),
    "HDFCBANK": (1690.0, 40.0),
    "ICICIBANK": (960.0, 25.0),
    "HINDUNILVR": (2390.0, 30.0),
    "ITC": (425.0, 15.0),
    "SBIN": (588.0, 20.0),
    "BHARTIARTL": (1190.0, 25.0),
    "ASIANPAINT": (3270.0, 40.0),
}
DEFAULT_PROFILE: Tuple[float, float] = (1000.0, 50.0)


class MockMarketDataProvider:
    """
    Pseudo-random quote generator.

    Args:
        seed: Optional seed so a run is reproducible
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    @property
    def tracked_symbols(self) -> List[str]:
        return list(TRACKED_SYMBOLS.keys())

    def quote(self, symbol: str) -> Dict[str, Any]:
        """Generate one OHLCV quote for symbol."""
        symbol = symbol.strip().upper()
        if not symbol:
            raise ValueError("Symbol is required")
        base, spread = TRACKED_SYMBOLS.get(symbol, DEFAULT_PROFILE)
        base_price = base + (self._rng.random() - 0.5) * spread
        change = (self._rng.random() - 0.5) * 20

        return {
            "symbol": symbol,
            "open_price": base_price - change * 0.5,
            "high_price": base_price + self._rng.random() * 10,
            "low_price": base_price - self._rng.random() * 10,
            "close_price": base_price + change,
            "volume": self._rng.randint(100000, 2099999),
            "change": change,
            "change_percent": f"{(change / base_price) * 100:.2f}%",
        }

    def quotes(self, symbols: Iterable[str]) -> List[Dict[str, Any]]:
        """Quote several symbols; symbols that fail are logged and skipped."""
        results: List[Dict[str, Any]] = []
        for symbol in symbols:
            try:
                results.append(self.quote(symbol))
            except (ValueError, TypeError, AttributeError) as exc:
                logger.error("Error generating quote for %r: %s", symbol, exc)
        return results

    def fill_price(self, symbol: str) -> float:
        """Synthetic execution price: close of a fresh quote."""
        return float(self.quote(symbol)["close_price"])


def store_snapshot(storage: StorageService, quotes: List[Dict[str, Any]]) -> int:
    """
    Persist quotes as daily bars. Storage failures are logged, not raised.

    Returns:
        Number of rows written (0 on failure)
    """
    if not quotes:
        return 0
    try:
        return storage.record_market_snapshot(quotes, timestamp=datetime.now(), timeframe="1d")
    except SQLAlchemyError as exc:
        storage.db.rollback()
        logger.warning("Market data snapshot not stored, continuing with mock data: %s", exc)
        return 0


_provider: Optional[MockMarketDataProvider] = None


def get_market_data_provider() -> MockMarketDataProvider:
    """Process-wide provider, seeded from settings."""
    global _provider
    if _provider is None:
        from config.settings import get_settings
        _provider = MockMarketDataProvider(seed=get_settings().market_seed)
    return _provider
