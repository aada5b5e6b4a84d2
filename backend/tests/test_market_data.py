"""
Tests for the mock market data provider and portfolio price refresh.
"""
import re

import pytest
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from services.market_data import DEFAULT_PROFILE, TRACKED_SYMBOLS, MockMarketDataProvider, store_snapshot
from services.price_refresh import refresh_position_prices
from storage.database import Base
from storage.models import MarketData, StrategyTypeEnum
from storage.service import StorageService


@pytest.fixture
def storage():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    yield StorageService(session)
    session.close()


class FixedQuoteProvider(MockMarketDataProvider):
    """Provider whose prices are pinned per symbol."""

    def __init__(self, prices):
        super().__init__(seed=1)
        self.prices = prices

    def quote(self, symbol):
        quote = super().quote(symbol)
        price = self.prices.get(quote["symbol"], 100.0)
        quote.update(open_price=price, high_price=price, low_price=price, close_price=price)
        return quote


def test_seeded_provider_is_reproducible():
    assert MockMarketDataProvider(seed=42).quote("TCS") == MockMarketDataProvider(seed=42).quote("TCS")


def test_quote_shape_and_bounds():
    provider = MockMarketDataProvider(seed=3)
    for symbol, (base, spread) in TRACKED_SYMBOLS.items():
        quote = provider.quote(symbol.lower())
        assert quote["symbol"] == symbol
        assert base - spread / 2 - 10 <= quote["close_price"] <= base + spread / 2 + 10
        assert quote["low_price"] <= quote["high_price"]
        assert 100000 <= quote["volume"] <= 2099999
        assert -10 <= quote["change"] <= 10
        assert re.match(r"^-?\d+\.\d{2}%$", quote["change_percent"])


def test_unknown_symbol_uses_default_profile():
    base, spread = DEFAULT_PROFILE
    quote = MockMarketDataProvider(seed=5).quote("NEWCO")
    assert base - spread / 2 - 10 <= quote["close_price"] <= base + spread / 2 + 10


def test_blank_symbol_rejected_and_skipped_in_batch():
    provider = MockMarketDataProvider(seed=1)
    with pytest.raises(ValueError):
        provider.quote("  ")
    assert [q["symbol"] for q in provider.quotes(["TCS", "", "INFY"])] == ["TCS", "INFY"]


def test_fill_price_is_quote_close():
    assert FixedQuoteProvider({"TCS": 3650.0}).fill_price("TCS") == 3650.0


def test_store_snapshot_writes_daily_bars(storage):
    provider = MockMarketDataProvider(seed=9)
    assert store_snapshot(storage, provider.quotes(["TCS", "INFY"])) == 2
    rows = storage.db.query(MarketData).all()
    assert {r.symbol for r in rows} == {"TCS", "INFY"}
    assert {r.timeframe for r in rows} == {"1d"}


def test_store_snapshot_failure_is_not_raised():
    storage = Mock()
    storage.record_market_snapshot.side_effect = SQLAlchemyError("table missing")
    assert store_snapshot(storage, [{"symbol": "TCS"}]) == 0
    storage.db.rollback.assert_called_once()


def test_refresh_without_positions(storage):
    result = refresh_position_prices(storage, FixedQuoteProvider({}))
    assert result == {"success": True, "message": "No positions to update", "updated_symbols": 0}


def test_refresh_marks_open_positions(storage):
    storage.get_or_create_user("u")
    first = storage.agents.create(user_id="u", name="A", strategy_type=StrategyTypeEnum.MOMENTUM)
    second = storage.agents.create(user_id="u", name="B", strategy_type=StrategyTypeEnum.SWING)
    storage.create_position(first.id, "TCS", 2, 3600.0)
    storage.create_position(second.id, "TCS", 1, 3500.0)
    storage.create_position(second.id, "INFY", 4, 1500.0)
    storage.create_position(second.id, "ITC", 0, 0.0)

    result = refresh_position_prices(storage, FixedQuoteProvider({"TCS": 3700.0, "INFY": 1400.0}))

    assert result["message"] == "Portfolio prices updated"
    assert result["updated_symbols"] == 2
    tcs = storage.get_position(first.id, "TCS")
    assert tcs.current_price == 3700.0
    assert tcs.unrealized_pnl == pytest.approx(200.0)
    infy = storage.get_position(second.id, "INFY")
    assert infy.market_value == pytest.approx(5600.0)
    assert storage.get_position(second.id, "ITC").current_price is None
    assert storage.get_audit_logs(user_id=None, event_type="prices_refreshed") != []
