"""
Tests for storage layer - repositories and storage service.
"""
import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storage.database import Base
from storage.models import (
    AgentStatusEnum, StrategyTypeEnum, PositionTypeEnum, OrderStatusEnum,
    AuditEventTypeEnum, MessagePriorityEnum, MarketData, PortfolioPosition, TradingOrder,
    AgentCollaboration, StrategyAdaptation,
)
from storage.repositories import AgentRepository, PositionRepository
from storage.service import StorageService


@pytest.fixture
def db_session():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def storage(db_session):
    return StorageService(db_session)


@pytest.fixture
def agent(storage):
    storage.get_or_create_user("user-1")
    return storage.agents.create(user_id="user-1", name="Momentum One", strategy_type=StrategyTypeEnum.MOMENTUM)


class TestUsersAndAgents:
    """Test user bootstrap and agent scoping."""

    def test_get_or_create_user_is_idempotent(self, storage):
        first = storage.get_or_create_user("abc")
        second = storage.get_or_create_user("abc")
        assert first.id == second.id == "abc"

    def test_new_agent_starts_inactive(self, agent):
        assert agent.status == AgentStatusEnum.INACTIVE
        assert agent.total_trades == 0
        assert agent.configuration == {}

    def test_agent_lookup_is_scoped_to_owner(self, storage, agent):
        assert storage.get_user_agent(agent.id, "user-1") is not None
        assert storage.get_user_agent(agent.id, "someone-else") is None

    def test_agents_listed_newest_first(self, db_session):
        repo = AgentRepository(db_session)
        older = repo.create(user_id="u", name="Old", strategy_type=StrategyTypeEnum.SWING)
        older.created_at = datetime.now() - timedelta(days=1)
        db_session.commit()
        newer = repo.create(user_id="u", name="New", strategy_type=StrategyTypeEnum.SCALPING)

        assert [a.id for a in repo.get_by_user("u")] == [newer.id, older.id]

    def test_record_agent_trade_increments_counter(self, storage, agent):
        storage.record_agent_trade(agent)
        storage.record_agent_trade(agent)
        assert storage.agents.get_by_id(agent.id).total_trades == 2

    def test_delete_agent_removes_dependent_rows(self, storage, agent, db_session):
        storage.create_position(agent.id, "TCS", 5, 3600.0)
        storage.create_order(agent.id, "TCS", "buy", "market", 5)
        other = storage.agents.create(user_id="user-1", name="Peer", strategy_type=StrategyTypeEnum.ARBITRAGE)
        storage.communications.create(agent.id, other.id, "signal", {"symbol": "TCS"})
        storage.collaborations.create("hedging", [agent.id, other.id], {"plan": "pair"}, outcome="plan_generated")
        strategy = storage.strategies.create("Owned", "momentum", {}, agent_id=agent.id)
        storage.adaptations.create(strategy.id, "Volatility rose")

        assert storage.agents.delete(agent.id) is True
        assert db_session.query(PortfolioPosition).count() == 0
        assert db_session.query(TradingOrder).count() == 0
        assert storage.communications.get_for_agent(other.id) == []
        assert db_session.query(AgentCollaboration).count() == 0
        assert db_session.query(StrategyAdaptation).count() == 0
        assert storage.agents.delete(agent.id) is False


class TestPositions:
    """Test position persistence and the weighted-average rule."""

    def test_create_caches_value_at_cost_without_price(self, storage, agent):
        position = storage.create_position(agent.id, "INFY", 10, 1500.0)
        assert position.market_value == pytest.approx(15000.0)
        assert position.unrealized_pnl == 0.0
        assert position.position_type == PositionTypeEnum.LONG

    def test_create_short_position(self, storage, agent):
        position = storage.create_position(agent.id, "INFY", -4, 1500.0, current_price=1490.0)
        assert position.position_type == PositionTypeEnum.SHORT
        assert position.unrealized_pnl == pytest.approx(40.0)

    def test_apply_fill_weighted_average(self, storage, agent):
        position = storage.create_position(agent.id, "RELIANCE", 10, 100.0, current_price=100.0)
        position = storage.apply_fill(position, 30, 120.0)

        assert position.quantity == 40
        assert position.average_price == pytest.approx((100.0 * 10 + 120.0 * 30) / 40)
        assert position.current_price == 120.0
        assert position.market_value == pytest.approx(40 * 120.0)

    def test_closing_fill_flattens_position(self, storage, agent):
        position = storage.create_position(agent.id, "ITC", 20, 420.0, current_price=420.0)
        position = storage.apply_fill(position, -20, 430.0)

        assert position.quantity == 0
        assert position.average_price == 0.0
        assert storage.get_position(agent.id, "ITC") is not None
        assert storage.get_user_positions("user-1") == []

    def test_flip_to_short_updates_position_type(self, storage, agent):
        position = storage.create_position(agent.id, "SBIN", 5, 580.0, current_price=580.0)
        position = storage.apply_fill(position, -8, 590.0)
        assert position.quantity == -3
        assert position.position_type == PositionTypeEnum.SHORT

    def test_set_position_price_refreshes_caches(self, storage, agent):
        position = storage.create_position(agent.id, "TCS", 2, 3600.0, current_price=3600.0)
        position = storage.set_position_price(position, 3700.0)
        assert position.market_value == pytest.approx(7400.0)
        assert position.unrealized_pnl == pytest.approx(200.0)

    def test_open_positions_sorted_by_symbol(self, db_session, storage, agent):
        repo = PositionRepository(db_session)
        repo.create(agent.id, "TCS", 1, 3600.0)
        repo.create(agent.id, "INFY", 1, 1500.0)
        repo.create(agent.id, "HDFCBANK", 0, 0.0)

        assert [p.symbol for p in storage.get_user_positions("user-1")] == ["INFY", "TCS"]
        assert len(repo.get_open_by_symbol("TCS")) == 1


class TestOrdersAndLogs:
    """Test orders, market data, messages and audit logs."""

    def test_create_and_fill_order(self, storage, agent):
        order = storage.create_order(agent.id, "TCS", "buy", "limit", 3, price=3650.0)
        assert order.status == OrderStatusEnum.PENDING

        order = storage.orders.mark_filled(order, 3650.0)
        assert order.status == OrderStatusEnum.FILLED
        assert order.filled_quantity == 3
        assert order.filled_at is not None
        assert [o.id for o in storage.get_user_orders("user-1")] == [order.id]
        assert storage.get_user_orders("user-2") == []

    def test_market_snapshot_upserts_same_timestamp(self, storage, db_session):
        stamp = datetime(2024, 1, 2, 10, 0, 0)
        quote = {
            "symbol": "TCS", "open_price": 1.0, "high_price": 2.0,
            "low_price": 0.5, "close_price": 1.5, "volume": 1000,
        }
        assert storage.record_market_snapshot([quote], timestamp=stamp) == 1
        storage.record_market_snapshot([dict(quote, close_price=1.8)], timestamp=stamp)

        rows = db_session.query(MarketData).all()
        assert len(rows) == 1
        assert rows[0].close_price == 1.8
        assert rows[0].timeframe == "1d"

    def test_messages_newest_first_with_limit(self, storage, agent):
        peer = storage.agents.create(user_id="user-1", name="Peer", strategy_type=StrategyTypeEnum.SENTIMENT)
        for i in range(3):
            storage.communications.create(agent.id, peer.id, "note", {"n": i},
                                          priority=MessagePriorityEnum.HIGH if i == 2 else MessagePriorityEnum.NORMAL)

        messages = storage.communications.get_for_agent(peer.id, limit=2)
        assert [m.content["n"] for m in messages] == [2, 1]
        assert messages[0].priority == MessagePriorityEnum.HIGH

    def test_audit_logs_filtered_by_user_and_type(self, storage, agent):
        storage.create_audit_log("agent_created", "created", user_id="user-1", agent_id=agent.id)
        storage.create_audit_log("order_filled", "filled", user_id="user-1", agent_id=agent.id)
        storage.create_audit_log("agent_created", "other user", user_id="user-2")

        logs = storage.get_audit_logs("user-1")
        assert len(logs) == 2
        filtered = storage.get_audit_logs("user-1", event_type="order_filled")
        assert [log.event_type for log in filtered] == [AuditEventTypeEnum.ORDER_FILLED]

    def test_strategies_listed_through_agents(self, storage, agent):
        storage.strategies.create("Owned", "momentum", {"a": 1}, agent_id=agent.id, created_by_ai=True)
        storage.strategies.create("Unattached", "swing", {})

        strategies = storage.strategies.get_by_user("user-1")
        assert [s.name for s in strategies] == ["Owned"]
        assert strategies[0].created_by_ai is True

    def test_adaptations_newest_first_per_strategy(self, storage, agent):
        strategy = storage.strategies.create("Adaptive", "momentum", {"stopLoss": 0.05}, agent_id=agent.id)
        storage.adaptations.create(strategy.id, "Volatility rose", old_parameters={"stopLoss": 0.05})
        storage.adaptations.create(strategy.id, "Trend weakened", new_parameters={"stopLoss": 0.03})

        adaptations = storage.adaptations.get_by_strategy(strategy.id)
        assert [a.adaptation_reason for a in adaptations] == ["Trend weakened", "Volatility rose"]
        assert storage.adaptations.get_by_strategy(strategy.id + 1) == []
