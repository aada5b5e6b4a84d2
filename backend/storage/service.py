"""
Storage service - High-level interface for storage operations.
Provides business logic on top of repositories.
"""
import math
from typing import List, Optional, Dict, Any
from sqlalchemy.orm import Session

from storage.repositories import (
    UserRepository, AgentRepository, StrategyRepository, PositionRepository,
    OrderRepository, MarketDataRepository, CollaborationRepository,
    CommunicationRepository, AdaptationRepository, AuditLogRepository
)
from storage.models import (
    User, TradingAgent, PortfolioPosition, TradingOrder, MarketData, AuditLog,
    PositionTypeEnum, OrderSideEnum, OrderTypeEnum, OrderStatusEnum, AuditEventTypeEnum
)
from storage.database import Base

# Float fills that net out within this tolerance close the position.
FLAT_QUANTITY_TOLERANCE = 1e-9


class StorageService:
    """
    Main storage service coordinating all repository operations.
    This is the primary interface for backend services to interact with storage.
    """

    def __init__(self, db: Session):
        """Initialize storage service with database session."""
        self.db = db
        # Ensure schema exists for the active DB bind.
        # This keeps API behavior stable across different test DB overrides.
        Base.metadata.create_all(bind=self.db.get_bind())
        self.users = UserRepository(db)
        self.agents = AgentRepository(db)
        self.strategies = StrategyRepository(db)
        self.positions = PositionRepository(db)
        self.orders = OrderRepository(db)
        self.market_data = MarketDataRepository(db)
        self.collaborations = CollaborationRepository(db)
        self.communications = CommunicationRepository(db)
        self.adaptations = AdaptationRepository(db)
        self.audit_logs = AuditLogRepository(db)

    # User operations

    def get_or_create_user(self, user_id: str) -> User:
        """Return the user row, creating it on first use."""
        user = self.users.get_by_id(user_id)
        if user:
            return user
        return self.users.create(user_id)

    # Agent operations

    def get_user_agent(self, agent_id: int, user_id: str) -> Optional[TradingAgent]:
        """Get an agent only if it belongs to user."""
        return self.agents.get_for_user(agent_id, user_id)

    def record_agent_trade(self, agent: TradingAgent) -> TradingAgent:
        """Bump the agent's trade counter."""
        agent.total_trades = int(agent.total_trades or 0) + 1
        return self.agents.update(agent)

    # Position operations

    def get_user_positions(self, user_id: str) -> List[PortfolioPosition]:
        """Get non-zero positions across a user's agents."""
        return self.positions.get_open_by_user(user_id)

    def get_position(self, agent_id: int, symbol: str) -> Optional[PortfolioPosition]:
        """Get the position row for an agent and symbol, open or flat."""
        return self.positions.get_by_agent_symbol(agent_id, symbol)

    def create_position(self, agent_id: int, symbol: str, quantity: float,
                        average_price: float, current_price: Optional[float] = None) -> PortfolioPosition:
        """Create a new position."""
        return self.positions.create(
            agent_id=agent_id,
            symbol=symbol,
            quantity=quantity,
            average_price=average_price,
            current_price=current_price,
        )

    def apply_fill(self, position: PortfolioPosition, signed_quantity: float,
                   fill_price: float) -> PortfolioPosition:
        """
        Apply a signed fill to a position using the weighted-average rule.

        new_qty = old_qty + signed_qty
        new_avg = (old_avg * old_qty + fill_price * signed_qty) / new_qty, or 0 when flat
        (a net quantity within FLAT_QUANTITY_TOLERANCE of zero counts as flat)

        Args:
            position: Position to update
            signed_quantity: Fill quantity (positive for buy, negative for sell)
            fill_price: Execution price

        Returns:
            Updated position
        """
        old_quantity = float(position.quantity or 0.0)
        old_average = float(position.average_price or 0.0)
        new_quantity = old_quantity + signed_quantity

        if math.isclose(new_quantity, 0.0, abs_tol=FLAT_QUANTITY_TOLERANCE):
            new_quantity = 0.0
            position.average_price = 0.0
        else:
            position.average_price = (old_average * old_quantity + fill_price * signed_quantity) / new_quantity

        position.quantity = new_quantity
        position.current_price = fill_price
        if new_quantity < 0:
            position.position_type = PositionTypeEnum.SHORT
        elif new_quantity > 0:
            position.position_type = PositionTypeEnum.LONG
        return self.positions.update(position)

    def set_position_price(self, position: PortfolioPosition, current_price: float) -> PortfolioPosition:
        """Mark a position to a new current price."""
        position.current_price = current_price
        return self.positions.update(position)

    # Order operations

    def create_order(self, agent_id: int, symbol: str, side: str, order_type: str,
                     quantity: float, price: Optional[float] = None,
                     strategy_id: Optional[int] = None, reason: Optional[str] = None,
                     status: str = "pending") -> TradingOrder:
        """Create a new order."""
        return self.orders.create(
            agent_id=agent_id,
            symbol=symbol,
            side=OrderSideEnum(side),
            order_type=OrderTypeEnum(order_type),
            quantity=quantity,
            price=price,
            strategy_id=strategy_id,
            reason=reason,
            status=OrderStatusEnum(status),
        )

    def get_user_orders(self, user_id: str, limit: int = 100) -> List[TradingOrder]:
        """Get recent orders for a user."""
        return self.orders.get_by_user(user_id, limit=limit)

    # Market data operations

    def record_market_snapshot(self, quotes: List[Dict[str, Any]], timestamp, timeframe: str = "1d") -> int:
        """Persist a batch of quotes as bars. Returns number of rows written."""
        for quote in quotes:
            self.market_data.upsert_bar(
                symbol=quote["symbol"],
                timestamp=timestamp,
                open_price=float(quote["open_price"]),
                high_price=float(quote["high_price"]),
                low_price=float(quote["low_price"]),
                close_price=float(quote["close_price"]),
                volume=float(quote["volume"]),
                timeframe=timeframe,
            )
        self.db.commit()
        return len(quotes)

    def get_recent_market_data(self, limit: int = 50) -> List[MarketData]:
        """Get recent market bars."""
        return self.market_data.get_recent(limit=limit)

    # Audit log operations

    def create_audit_log(
        self,
        event_type: str,
        description: str,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        agent_id: Optional[int] = None,
        order_id: Optional[int] = None
    ) -> AuditLog:
        """Create a new audit log entry."""
        return self.audit_logs.create(
            event_type=AuditEventTypeEnum(event_type),
            description=description,
            details=details,
            user_id=user_id,
            agent_id=agent_id,
            order_id=order_id
        )

    def get_audit_logs(
        self,
        user_id: str,
        limit: int = 100,
        offset: int = 0,
        event_type: Optional[str] = None,
    ) -> List[AuditLog]:
        """Get a user's audit logs with filtering and pagination."""
        event_type_enum = AuditEventTypeEnum(event_type) if event_type else None
        return self.audit_logs.get_all(
            limit=limit,
            offset=offset,
            user_id=user_id,
            event_type=event_type_enum,
        )
