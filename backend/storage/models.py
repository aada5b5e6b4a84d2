"""
Database models for AgentDesk.
Defines the schema for users, trading agents, strategies, positions, orders,
market data, agent collaboration and audit logs.
"""
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Boolean, Enum as SQLEnum, Text, JSON,
    ForeignKey, UniqueConstraint
)
from sqlalchemy.sql import func
import enum

from storage.database import Base


# Enums for type safety
class AgentStatusEnum(str, enum.Enum):
    """Trading agent status enumeration."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PAUSED = "paused"


class StrategyTypeEnum(str, enum.Enum):
    """Strategy families an agent can trade."""
    MOMENTUM = "momentum"
    MEAN_REVERSION = "mean_reversion"
    ARBITRAGE = "arbitrage"
    SENTIMENT = "sentiment"
    SCALPING = "scalping"
    SWING = "swing"


class PositionTypeEnum(str, enum.Enum):
    """Position side enumeration."""
    LONG = "long"
    SHORT = "short"


class OrderSideEnum(str, enum.Enum):
    """Order side enumeration."""
    BUY = "buy"
    SELL = "sell"


class OrderTypeEnum(str, enum.Enum):
    """Order type enumeration."""
    MARKET = "market"
    LIMIT = "limit"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"


class OrderStatusEnum(str, enum.Enum):
    """Order status enumeration."""
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class MessagePriorityEnum(str, enum.Enum):
    """Agent communication priority."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class AuditEventTypeEnum(str, enum.Enum):
    """Audit event type enumeration."""
    AGENT_CREATED = "agent_created"
    AGENT_UPDATED = "agent_updated"
    AGENT_DELETED = "agent_deleted"
    AGENT_STATUS_CHANGED = "agent_status_changed"
    ORDER_CREATED = "order_created"
    ORDER_FILLED = "order_filled"
    STRATEGY_GENERATED = "strategy_generated"
    STRATEGY_ADAPTED = "strategy_adapted"
    COLLABORATION_PLANNED = "collaboration_planned"
    PRICES_REFRESHED = "prices_refreshed"


# Database Models

class User(Base):
    """
    User model - owner of trading agents.
    Identified by an externally supplied id.
    """
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True, unique=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class TradingAgent(Base):
    """
    TradingAgent model - a simulated trader with a strategy type and risk settings.
    """
    __tablename__ = "trading_agents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    strategy_type = Column(SQLEnum(StrategyTypeEnum), nullable=False)
    status = Column(SQLEnum(AgentStatusEnum), nullable=False, default=AgentStatusEnum.INACTIVE, index=True)

    # Risk settings
    risk_tolerance = Column(Float, nullable=False, default=0.5)  # 0.0 to 1.0
    max_position_size = Column(Float, nullable=False, default=10000.0)
    current_balance = Column(Float, nullable=False, default=0.0)

    # Counters
    total_trades = Column(Integer, nullable=False, default=0)
    successful_trades = Column(Integer, nullable=False, default=0)

    # Agent-specific settings (position size, max daily trades, stop loss, ...)
    configuration = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class TradingStrategy(Base):
    """
    TradingStrategy model - strategy text and parameters, usually AI generated.
    """
    __tablename__ = "trading_strategies"

    id = Column(Integer, primary_key=True, index=True)
    agent_id = Column(Integer, ForeignKey("trading_agents.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    strategy_type = Column(String(50), nullable=False)
    strategy_code = Column(Text, nullable=True)
    parameters = Column(JSON, nullable=False, default=dict)

    # Performance metrics (placeholders)
    performance_score = Column(Float, default=0.0)
    total_return = Column(Float, default=0.0)
    sharpe_ratio = Column(Float, default=0.0)
    max_drawdown = Column(Float, default=0.0)

    is_active = Column(Boolean, default=False)
    created_by_ai = Column(Boolean, default=False)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class PortfolioPosition(Base):
    """
    PortfolioPosition model - an agent's holding in one symbol.

    market_value and unrealized_pnl are caches; readers re-derive them from
    quantity, current_price and average_price.
    """
    __tablename__ = "portfolio_positions"

    id = Column(Integer, primary_key=True, index=True)
    agent_id = Column(Integer, ForeignKey("trading_agents.id", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(20), nullable=False, index=True)
    quantity = Column(Float, nullable=False)  # signed: negative is short
    average_price = Column(Float, nullable=False)
    current_price = Column(Float, nullable=True)
    market_value = Column(Float, nullable=True)
    unrealized_pnl = Column(Float, nullable=True)
    position_type = Column(SQLEnum(PositionTypeEnum), nullable=False, default=PositionTypeEnum.LONG)

    opened_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class TradingOrder(Base):
    """
    TradingOrder model - simulated orders, filled on submission.
    """
    __tablename__ = "trading_orders"

    id = Column(Integer, primary_key=True, index=True)
    agent_id = Column(Integer, ForeignKey("trading_agents.id", ondelete="CASCADE"), nullable=False, index=True)
    strategy_id = Column(Integer, ForeignKey("trading_strategies.id", ondelete="SET NULL"), nullable=True)
    symbol = Column(String(20), nullable=False, index=True)
    order_type = Column(SQLEnum(OrderTypeEnum), nullable=False)
    side = Column(SQLEnum(OrderSideEnum), nullable=False)
    status = Column(SQLEnum(OrderStatusEnum), nullable=False, default=OrderStatusEnum.PENDING, index=True)

    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=True)  # Limit price
    filled_quantity = Column(Float, default=0.0)
    filled_price = Column(Float, nullable=True)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
    filled_at = Column(DateTime, nullable=True)


class MarketData(Base):
    """
    MarketData model - OHLCV snapshots from the mock feed.
    """
    __tablename__ = "market_data"
    __table_args__ = (UniqueConstraint("symbol", "timestamp", "timeframe", name="uq_market_data_bar"),)

    id = Column(Integer, primary_key=True, index=True)
    symbol = Column(String(20), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    open_price = Column(Float, nullable=False)
    high_price = Column(Float, nullable=False)
    low_price = Column(Float, nullable=False)
    close_price = Column(Float, nullable=False)
    volume = Column(Float, nullable=False)
    timeframe = Column(String(10), nullable=False)  # '1m', '5m', '1h', '1d'
    created_at = Column(DateTime, default=func.now(), nullable=False)


class AgentCollaboration(Base):
    """
    AgentCollaboration model - AI-generated collaboration plans between agents.
    """
    __tablename__ = "agent_collaborations"

    id = Column(Integer, primary_key=True, index=True)
    initiator_agent_id = Column(Integer, ForeignKey("trading_agents.id", ondelete="CASCADE"), nullable=True)
    target_agent_id = Column(Integer, ForeignKey("trading_agents.id", ondelete="CASCADE"), nullable=True)
    collaboration_type = Column(String(50), nullable=False)
    participants = Column(JSON, nullable=False, default=list)
    message = Column(Text, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    outcome = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime, default=func.now(), nullable=False)
    responded_at = Column(DateTime, nullable=True)


class AgentCommunication(Base):
    """
    AgentCommunication model - messages exchanged between agents.
    """
    __tablename__ = "agent_communications"

    id = Column(Integer, primary_key=True, index=True)
    from_agent_id = Column(Integer, ForeignKey("trading_agents.id", ondelete="CASCADE"), nullable=False, index=True)
    to_agent_id = Column(Integer, ForeignKey("trading_agents.id", ondelete="CASCADE"), nullable=False, index=True)
    message_type = Column(String(50), nullable=False)
    content = Column(JSON, nullable=False)
    priority = Column(SQLEnum(MessagePriorityEnum), nullable=False, default=MessagePriorityEnum.NORMAL, index=True)
    status = Column(String(20), nullable=False, default="sent")
    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class StrategyAdaptation(Base):
    """
    StrategyAdaptation model - log of AI adaptation suggestions per strategy.
    """
    __tablename__ = "strategy_adaptations"

    id = Column(Integer, primary_key=True, index=True)
    strategy_id = Column(Integer, ForeignKey("trading_strategies.id", ondelete="CASCADE"), nullable=False, index=True)
    adaptation_reason = Column(Text, nullable=False)
    old_parameters = Column(JSON, nullable=True)
    new_parameters = Column(JSON, nullable=True)
    market_conditions = Column(JSON, nullable=True)
    performance_impact = Column(Float, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)


class AuditLog(Base):
    """
    AuditLog model - tracks user-visible actions.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(SQLEnum(AuditEventTypeEnum), nullable=False, index=True)
    description = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)

    # Optional references
    user_id = Column(String(64), nullable=True, index=True)
    agent_id = Column(Integer, nullable=True, index=True)
    order_id = Column(Integer, nullable=True, index=True)

    timestamp = Column(DateTime, default=func.now(), nullable=False, index=True)
