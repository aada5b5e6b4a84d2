"""
API Data Models and Contracts.
Defines Pydantic models for request/response validation.
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum
import re
from pydantic import BaseModel, Field, field_validator

_SYMBOL_PATTERN = re.compile(r"^[A-Z][A-Z0-9.\-&]{0,19}$")


# ============================================================================
# Enums
# ============================================================================

class StrategyType(str, Enum):
    """Agent strategy type enumeration."""
    MOMENTUM = "momentum"
    MEAN_REVERSION = "mean_reversion"
    ARBITRAGE = "arbitrage"
    SENTIMENT = "sentiment"
    SCALPING = "scalping"
    SWING = "swing"


class MessagePriority(str, Enum):
    """Agent message priority."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


# ============================================================================
# Status Models
# ============================================================================

class RootResponse(BaseModel):
    """Root banner."""
    message: str = Field(..., description="Service banner")


class StatusResponse(BaseModel):
    """Backend status response."""
    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(default=0.0, description="Process uptime in seconds")
    started_at: Optional[str] = Field(None, description="Process start time (UTC)")
    timestamp: Optional[str] = Field(None, description="Response time (UTC)")
    checks: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Per-subsystem status")


# ============================================================================
# Agent Models
# ============================================================================

class Agent(BaseModel):
    """Trading agent."""
    id: int = Field(..., description="Agent ID")
    user_id: str = Field(..., description="Owning user")
    name: str = Field(..., description="Agent name")
    strategy_type: str = Field(..., description="Strategy type")
    status: str = Field(..., description="active / inactive / paused")
    risk_tolerance: float = Field(..., description="Risk tolerance (0.0 to 1.0)")
    max_position_size: float = Field(..., description="Maximum position size")
    current_balance: float = Field(..., description="Current balance")
    total_trades: int = Field(default=0, description="Filled orders")
    successful_trades: int = Field(default=0, description="Profitable trades")
    configuration: Dict[str, Any] = Field(default_factory=dict, description="Free-form configuration")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class AgentsResponse(BaseModel):
    """Agents list response."""
    agents: List[Agent] = Field(default_factory=list, description="List of agents")
    total_count: int = Field(default=0, description="Total agent count")


class AgentCreateRequest(BaseModel):
    """Agent creation request."""
    name: Optional[str] = Field(None, description="Agent name", max_length=100)
    strategy_type: Optional[str] = Field(None, description="Strategy type")
    risk_tolerance: float = Field(default=0.5, description="Risk tolerance (0.0 to 1.0)", ge=0, le=1)
    max_position_size: float = Field(default=10000.0, description="Maximum position size", gt=0)
    current_balance: float = Field(default=0.0, description="Starting balance", ge=0)
    configuration: Dict[str, Any] = Field(default_factory=dict, description="Free-form configuration")


class AgentUpdateRequest(BaseModel):
    """Agent update request."""
    name: Optional[str] = Field(None, description="Agent name", max_length=100)
    strategy_type: Optional[str] = Field(None, description="Strategy type")
    risk_tolerance: Optional[float] = Field(None, description="Risk tolerance (0.0 to 1.0)", ge=0, le=1)
    max_position_size: Optional[float] = Field(None, description="Maximum position size", gt=0)
    current_balance: Optional[float] = Field(None, description="Balance", ge=0)
    configuration: Optional[Dict[str, Any]] = Field(None, description="Free-form configuration")


class Strategy(BaseModel):
    """Stored trading strategy."""
    id: int = Field(..., description="Strategy ID")
    agent_id: Optional[int] = Field(None, description="Owning agent")
    name: str = Field(..., description="Strategy name")
    description: Optional[str] = Field(None, description="Strategy description")
    strategy_type: str = Field(..., description="Strategy type")
    strategy_code: Optional[str] = Field(None, description="Implementation text")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Strategy parameters")
    is_active: bool = Field(default=False, description="Whether strategy is active")
    created_by_ai: bool = Field(default=False, description="Generated by the language model")
    created_at: datetime = Field(..., description="Creation timestamp")


class StrategiesResponse(BaseModel):
    """Strategies list response."""
    strategies: List[Strategy] = Field(default_factory=list, description="List of strategies")
    total_count: int = Field(default=0, description="Total strategy count")


# ============================================================================
# Order Models
# ============================================================================

class Order(BaseModel):
    """Order model."""
    id: int = Field(..., description="Order ID")
    agent_id: int = Field(..., description="Placing agent")
    strategy_id: Optional[int] = Field(None, description="Originating strategy")
    symbol: str = Field(..., description="Stock symbol")
    side: str = Field(..., description="Order side (buy/sell)")
    type: str = Field(..., description="Order type")
    quantity: float = Field(..., description="Order quantity")
    price: Optional[float] = Field(None, description="Limit price")
    status: str = Field(..., description="Order status")
    filled_quantity: float = Field(default=0.0, description="Filled quantity")
    filled_price: Optional[float] = Field(None, description="Fill price")
    reason: Optional[str] = Field(None, description="Why the order was placed")
    created_at: datetime = Field(..., description="Order creation timestamp")
    filled_at: Optional[datetime] = Field(None, description="Fill timestamp")


class OrdersResponse(BaseModel):
    """Orders list response."""
    orders: List[Order] = Field(default_factory=list, description="List of orders")
    total_count: int = Field(default=0, description="Total order count")


class OrderRequest(BaseModel):
    """Order creation request. Presence and range checks happen in the execution service."""
    agent_id: Optional[int] = Field(None, description="Placing agent")
    symbol: Optional[str] = Field(None, description="Stock symbol", max_length=20)
    side: str = Field(default="buy", description="Order side (buy/sell)")
    type: str = Field(default="market", description="Order type")
    quantity: Optional[float] = Field(None, description="Order quantity")
    price: Optional[float] = Field(None, description="Limit price")
    strategy_id: Optional[int] = Field(None, description="Originating strategy")
    reason: Optional[str] = Field(None, description="Why the order was placed", max_length=500)

    @field_validator("side", "type")
    @classmethod
    def normalize_choice(cls, value: str) -> str:
        return (value or "").strip().lower()


class OrderResponse(BaseModel):
    """Order placement response."""
    success: bool = Field(..., description="Whether the order was filled")
    order: Order = Field(..., description="The filled order")


# ============================================================================
# Portfolio Models
# ============================================================================

class PositionValuation(BaseModel):
    """Valued position."""
    id: Optional[int] = Field(None, description="Position ID")
    agent_id: Optional[int] = Field(None, description="Holding agent")
    agent_name: Optional[str] = Field(None, description="Holding agent name")
    symbol: str = Field(..., description="Stock symbol")
    quantity: float = Field(..., description="Signed quantity (negative is short)")
    average_price: float = Field(..., description="Weighted average entry price")
    current_price: float = Field(..., description="Current price (average price when unknown)")
    current_price_available: bool = Field(default=True, description="Whether current_price is a real mark")
    market_value: float = Field(..., description="quantity x current_price")
    cost_basis: float = Field(..., description="quantity x average_price")
    unrealized_pnl: float = Field(..., description="Unrealized profit/loss")
    pnl_percent: float = Field(..., description="Price change versus average price, percent")
    allocation_percent: float = Field(..., description="Share of portfolio value, percent")


class PortfolioSummary(BaseModel):
    """Aggregate portfolio metrics."""
    total_value: float = Field(default=0.0, description="Sum of market values")
    total_cost: float = Field(default=0.0, description="Sum of cost bases")
    total_pnl: float = Field(default=0.0, description="Sum of unrealized P&L")
    total_pnl_percent: float = Field(default=0.0, description="total_pnl / total_cost, percent")
    position_count: int = Field(default=0, description="Open positions")
    largest_allocation_percent: float = Field(default=0.0, description="Largest single allocation, percent")
    day_change: float = Field(default=0.0, description="Mock day change, 10% of total_pnl")
    day_change_percent: float = Field(default=0.0, description="day_change relative to the previous value, percent")


class PortfolioResponse(PortfolioSummary):
    """Positions with totals."""
    positions: List[PositionValuation] = Field(default_factory=list, description="Valued positions")


class RebalanceRecommendation(BaseModel):
    """Single rebalancing suggestion."""
    symbol: str = Field(..., description="Stock symbol")
    current_allocation: float = Field(..., description="Current allocation, percent")
    target_allocation: float = Field(..., description="Target allocation, percent")
    recommended_action: str = Field(..., description="buy / sell / hold")
    quantity: float = Field(..., description="Shares to trade")
    reason: str = Field(..., description="Explanation")


class RebalanceResponse(BaseModel):
    """Rebalancing recommendations."""
    recommendations: List[RebalanceRecommendation] = Field(default_factory=list, description="Suggestions")
    total_value: float = Field(default=0.0, description="Portfolio value used")


class RebalanceExecuteRequest(BaseModel):
    """Queue recommendations as pending orders."""
    agent_id: int = Field(..., description="Agent that will hold the orders")
    recommendations: List[RebalanceRecommendation] = Field(default_factory=list, description="Suggestions to queue")


class RebalanceExecuteResponse(BaseModel):
    """Result of queueing recommendations."""
    success: bool = Field(..., description="Whether orders were queued")
    message: str = Field(..., description="Summary message")
    orders: List[Order] = Field(default_factory=list, description="Queued orders")


class PriceUpdateResponse(BaseModel):
    """Result of a portfolio price refresh."""
    success: bool = Field(..., description="Whether refresh ran")
    message: str = Field(..., description="Summary message")
    updated_symbols: int = Field(default=0, description="Distinct symbols repriced")


# ============================================================================
# Market Data Models
# ============================================================================

class MarketQuote(BaseModel):
    """Mock quote."""
    symbol: str = Field(..., description="Stock symbol")
    open_price: float = Field(..., description="Open")
    high_price: float = Field(..., description="High")
    low_price: float = Field(..., description="Low")
    close_price: float = Field(..., description="Close / last")
    volume: int = Field(..., description="Volume")
    change: float = Field(..., description="Absolute change")
    change_percent: str = Field(..., description="Change formatted as 'x.xx%'")


class LiveDataRequest(BaseModel):
    """Quotes for listed symbols."""
    symbols: List[str] = Field(default_factory=list, description="Symbols to quote")

    @field_validator("symbols")
    @classmethod
    def validate_symbols(cls, symbols: List[str]) -> List[str]:
        if len(symbols) > 200:
            raise ValueError("symbols cannot exceed 200 entries")
        cleaned = []
        for symbol in symbols:
            clean = (symbol or "").strip().upper()
            if not clean:
                continue
            if not _SYMBOL_PATTERN.match(clean):
                raise ValueError(f"Invalid symbol format: {symbol}")
            cleaned.append(clean)
        return cleaned


class LiveDataResponse(BaseModel):
    """Quote list."""
    data: List[MarketQuote] = Field(default_factory=list, description="Quotes")


# ============================================================================
# AI Models
# ============================================================================

class StrategyGenerateRequest(BaseModel):
    """AI strategy generation request."""
    market_conditions: str = Field(default="Normal market conditions", description="Free-text market context")
    risk_tolerance: float = Field(default=50.0, description="Risk tolerance, 0-100", ge=0, le=100)
    strategy_type: StrategyType = Field(default=StrategyType.MOMENTUM, description="Strategy type")
    agent_id: Optional[int] = Field(None, description="Agent to attach the strategy to")


class StrategyGenerateResponse(BaseModel):
    """AI strategy generation result."""
    success: bool = Field(..., description="Whether a strategy was produced")
    strategy: Dict[str, Any] = Field(..., description="Generated strategy object")
    saved_strategy: Optional[Strategy] = Field(None, description="Persisted strategy row, absent when saving failed")
    fallback: bool = Field(default=False, description="True when the template was used")


class StrategyAdaptRequest(BaseModel):
    """AI strategy adaptation request."""
    strategy_id: int = Field(..., description="Strategy to adapt")
    market_changes: str = Field(default="", description="Free-text description of market changes")
    performance_data: Optional[Any] = Field(None, description="Recent performance data")


class StrategyAdaptResponse(BaseModel):
    """AI strategy adaptation result."""
    success: bool = Field(..., description="Whether adaptations were produced")
    adaptations: Dict[str, Any] = Field(..., description="Adaptation object")
    strategy: Strategy = Field(..., description="Strategy that was analysed")


class CollaborationRequest(BaseModel):
    """AI collaboration planning request."""
    agent_ids: List[int] = Field(default_factory=list, description="Participating agents")
    collaboration_type: str = Field(default="portfolio_optimization", description="Kind of collaboration")
    context: str = Field(default="", description="Free-text context")


class CollaborationResponse(BaseModel):
    """AI collaboration planning result."""
    success: bool = Field(..., description="Whether a plan was produced")
    collaboration: Dict[str, Any] = Field(..., description="Collaboration plan")
    collaboration_id: int = Field(..., description="Logged collaboration row")


# ============================================================================
# Communication Models
# ============================================================================

class CommunicationRequest(BaseModel):
    """Agent-to-agent message."""
    from_agent_id: int = Field(..., description="Sender")
    to_agent_id: int = Field(..., description="Recipient")
    message_type: str = Field(..., description="Message kind", min_length=1, max_length=50)
    content: Dict[str, Any] = Field(default_factory=dict, description="Message body")
    priority: MessagePriority = Field(default=MessagePriority.NORMAL, description="Message priority")


class Communication(BaseModel):
    """Stored agent message."""
    id: int = Field(..., description="Message ID")
    from_agent_id: int = Field(..., description="Sender")
    to_agent_id: int = Field(..., description="Recipient")
    from_agent_name: Optional[str] = Field(None, description="Sender name")
    to_agent_name: Optional[str] = Field(None, description="Recipient name")
    message_type: str = Field(..., description="Message kind")
    content: Dict[str, Any] = Field(default_factory=dict, description="Message body")
    priority: str = Field(..., description="Message priority")
    status: str = Field(..., description="Delivery status")
    created_at: datetime = Field(..., description="Sent timestamp")


class CommunicationsResponse(BaseModel):
    """Agent message list."""
    messages: List[Communication] = Field(default_factory=list, description="Messages, newest first")


class CommunicationSendResponse(BaseModel):
    """Send result."""
    success: bool = Field(..., description="Whether the message was stored")
    message: Communication = Field(..., description="Stored message")


# ============================================================================
# Audit Models
# ============================================================================

class AuditLog(BaseModel):
    """Audit log entry."""
    id: int = Field(..., description="Log ID")
    event_type: str = Field(..., description="Event type")
    description: str = Field(..., description="Human readable description")
    details: Optional[Dict[str, Any]] = Field(None, description="Structured details")
    agent_id: Optional[int] = Field(None, description="Related agent")
    order_id: Optional[int] = Field(None, description="Related order")
    timestamp: datetime = Field(..., description="Event time")


class AuditLogsResponse(BaseModel):
    """Audit logs list."""
    logs: List[AuditLog] = Field(default_factory=list, description="Entries, newest first")
    total_count: int = Field(default=0, description="Entries returned")
