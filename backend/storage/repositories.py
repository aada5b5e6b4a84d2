"""
Repository classes for database CRUD operations.
Provides abstraction layer between services and database models.
"""
from typing import List, Optional, Dict, Any
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import and_, or_

from storage.models import (
    User, TradingAgent, TradingStrategy, PortfolioPosition, TradingOrder, MarketData,
    AgentCollaboration, AgentCommunication, StrategyAdaptation, AuditLog,
    AgentStatusEnum, StrategyTypeEnum, PositionTypeEnum, OrderSideEnum, OrderTypeEnum,
    OrderStatusEnum, MessagePriorityEnum, AuditEventTypeEnum
)


class UserRepository:
    """Repository for User CRUD operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, email: Optional[str] = None) -> User:
        """Create a new user."""
        user = User(id=user_id, email=email)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        return self.db.query(User).filter(User.id == user_id).first()


class AgentRepository:
    """Repository for TradingAgent CRUD operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, name: str, strategy_type: StrategyTypeEnum,
               risk_tolerance: float = 0.5, max_position_size: float = 10000.0,
               current_balance: float = 0.0,
               configuration: Optional[Dict[str, Any]] = None) -> TradingAgent:
        """Create a new trading agent (inactive)."""
        agent = TradingAgent(
            user_id=user_id,
            name=name,
            strategy_type=strategy_type,
            status=AgentStatusEnum.INACTIVE,
            risk_tolerance=risk_tolerance,
            max_position_size=max_position_size,
            current_balance=current_balance,
            configuration=configuration or {},
        )
        self.db.add(agent)
        self.db.commit()
        self.db.refresh(agent)
        return agent

    def get_by_id(self, agent_id: int) -> Optional[TradingAgent]:
        """Get agent by ID."""
        return self.db.query(TradingAgent).filter(TradingAgent.id == agent_id).first()

    def get_for_user(self, agent_id: int, user_id: str) -> Optional[TradingAgent]:
        """Get agent by ID only if owned by user."""
        return self.db.query(TradingAgent).filter(
            and_(TradingAgent.id == agent_id, TradingAgent.user_id == user_id)
        ).first()

    def get_by_user(self, user_id: str) -> List[TradingAgent]:
        """Get all agents for a user, newest first."""
        return (
            self.db.query(TradingAgent)
            .filter(TradingAgent.user_id == user_id)
            .order_by(TradingAgent.created_at.desc(), TradingAgent.id.desc())
            .all()
        )

    def get_many_for_user(self, agent_ids: List[int], user_id: str) -> List[TradingAgent]:
        """Get the listed agents owned by user."""
        if not agent_ids:
            return []
        return (
            self.db.query(TradingAgent)
            .filter(and_(TradingAgent.id.in_(agent_ids), TradingAgent.user_id == user_id))
            .all()
        )

    def update(self, agent: TradingAgent) -> TradingAgent:
        """Update an existing agent."""
        agent.updated_at = datetime.now()
        self.db.commit()
        self.db.refresh(agent)
        return agent

    def delete(self, agent_id: int) -> bool:
        """Delete an agent and the rows that hang off it."""
        agent = self.get_by_id(agent_id)
        if not agent:
            return False
        self.db.query(PortfolioPosition).filter(PortfolioPosition.agent_id == agent_id).delete()
        self.db.query(TradingOrder).filter(TradingOrder.agent_id == agent_id).delete()
        self.db.query(AgentCommunication).filter(
            or_(AgentCommunication.from_agent_id == agent_id, AgentCommunication.to_agent_id == agent_id)
        ).delete(synchronize_session=False)
        self.db.query(AgentCollaboration).filter(
            or_(AgentCollaboration.initiator_agent_id == agent_id, AgentCollaboration.target_agent_id == agent_id)
        ).delete(synchronize_session=False)
        strategy_ids = [
            row.id for row in self.db.query(TradingStrategy.id).filter(TradingStrategy.agent_id == agent_id)
        ]
        if strategy_ids:
            self.db.query(StrategyAdaptation).filter(
                StrategyAdaptation.strategy_id.in_(strategy_ids)
            ).delete(synchronize_session=False)
        self.db.query(TradingStrategy).filter(TradingStrategy.agent_id == agent_id).delete()
        self.db.delete(agent)
        self.db.commit()
        return True


class StrategyRepository:
    """Repository for TradingStrategy CRUD operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, name: str, strategy_type: str, parameters: Dict[str, Any],
               description: Optional[str] = None, strategy_code: Optional[str] = None,
               agent_id: Optional[int] = None, created_by_ai: bool = False) -> TradingStrategy:
        """Create a new strategy."""
        strategy = TradingStrategy(
            agent_id=agent_id,
            name=name,
            description=description,
            strategy_type=strategy_type,
            strategy_code=strategy_code,
            parameters=parameters,
            is_active=False,
            created_by_ai=created_by_ai,
        )
        self.db.add(strategy)
        self.db.commit()
        self.db.refresh(strategy)
        return strategy

    def get_by_id(self, strategy_id: int) -> Optional[TradingStrategy]:
        """Get strategy by ID."""
        return self.db.query(TradingStrategy).filter(TradingStrategy.id == strategy_id).first()

    def get_by_user(self, user_id: str) -> List[TradingStrategy]:
        """Get strategies whose agent belongs to user."""
        return (
            self.db.query(TradingStrategy)
            .join(TradingAgent, TradingStrategy.agent_id == TradingAgent.id)
            .filter(TradingAgent.user_id == user_id)
            .order_by(TradingStrategy.created_at.desc(), TradingStrategy.id.desc())
            .all()
        )

    def update(self, strategy: TradingStrategy) -> TradingStrategy:
        """Update a strategy."""
        strategy.updated_at = datetime.now()
        self.db.commit()
        self.db.refresh(strategy)
        return strategy


class PositionRepository:
    """Repository for PortfolioPosition CRUD operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, agent_id: int, symbol: str, quantity: float, average_price: float,
               current_price: Optional[float] = None) -> PortfolioPosition:
        """Create a new position."""
        position = PortfolioPosition(
            agent_id=agent_id,
            symbol=symbol,
            quantity=quantity,
            average_price=average_price,
            current_price=current_price,
            position_type=PositionTypeEnum.SHORT if quantity < 0 else PositionTypeEnum.LONG,
        )
        _refresh_cached_values(position)
        self.db.add(position)
        self.db.commit()
        self.db.refresh(position)
        return position

    def get_by_id(self, position_id: int) -> Optional[PortfolioPosition]:
        """Get position by ID."""
        return self.db.query(PortfolioPosition).filter(PortfolioPosition.id == position_id).first()

    def get_by_agent_symbol(self, agent_id: int, symbol: str) -> Optional[PortfolioPosition]:
        """Get the position row for an (agent, symbol) pair."""
        return self.db.query(PortfolioPosition).filter(
            and_(PortfolioPosition.agent_id == agent_id, PortfolioPosition.symbol == symbol)
        ).first()

    def get_open_by_user(self, user_id: str) -> List[PortfolioPosition]:
        """Get non-zero positions for all agents of a user."""
        return (
            self.db.query(PortfolioPosition)
            .join(TradingAgent, PortfolioPosition.agent_id == TradingAgent.id)
            .filter(TradingAgent.user_id == user_id)
            .filter(PortfolioPosition.quantity != 0)
            .order_by(PortfolioPosition.symbol.asc(), PortfolioPosition.id.asc())
            .all()
        )

    def get_all_open(self) -> List[PortfolioPosition]:
        """Get every non-zero position."""
        return self.db.query(PortfolioPosition).filter(PortfolioPosition.quantity != 0).all()

    def get_open_by_symbol(self, symbol: str) -> List[PortfolioPosition]:
        """Get non-zero positions in a symbol."""
        return self.db.query(PortfolioPosition).filter(
            and_(PortfolioPosition.symbol == symbol, PortfolioPosition.quantity != 0)
        ).all()

    def update(self, position: PortfolioPosition) -> PortfolioPosition:
        """Update an existing position, refreshing its cached valuation."""
        _refresh_cached_values(position)
        position.updated_at = datetime.now()
        self.db.commit()
        self.db.refresh(position)
        return position


class OrderRepository:
    """Repository for TradingOrder CRUD operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, agent_id: int, symbol: str, side: OrderSideEnum, order_type: OrderTypeEnum,
               quantity: float, price: Optional[float] = None,
               strategy_id: Optional[int] = None, reason: Optional[str] = None,
               status: OrderStatusEnum = OrderStatusEnum.PENDING) -> TradingOrder:
        """Create a new order."""
        order = TradingOrder(
            agent_id=agent_id,
            strategy_id=strategy_id,
            symbol=symbol,
            side=side,
            order_type=order_type,
            quantity=quantity,
            price=price,
            status=status,
            reason=reason,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_by_id(self, order_id: int) -> Optional[TradingOrder]:
        """Get order by ID."""
        return self.db.query(TradingOrder).filter(TradingOrder.id == order_id).first()

    def get_by_user(self, user_id: str, limit: int = 100) -> List[TradingOrder]:
        """Get recent orders placed by a user's agents."""
        return (
            self.db.query(TradingOrder)
            .join(TradingAgent, TradingOrder.agent_id == TradingAgent.id)
            .filter(TradingAgent.user_id == user_id)
            .order_by(TradingOrder.created_at.desc(), TradingOrder.id.desc())
            .limit(limit)
            .all()
        )

    def mark_filled(self, order: TradingOrder, filled_price: float) -> TradingOrder:
        """Mark an order filled in full at filled_price."""
        order.status = OrderStatusEnum.FILLED
        order.filled_quantity = order.quantity
        order.filled_price = filled_price
        order.filled_at = datetime.now()
        return self.update(order)

    def update(self, order: TradingOrder) -> TradingOrder:
        """Update an existing order."""
        order.updated_at = datetime.now()
        self.db.commit()
        self.db.refresh(order)
        return order


class MarketDataRepository:
    """Repository for MarketData rows."""

    def __init__(self, db: Session):
        self.db = db

    def upsert_bar(self, symbol: str, timestamp: datetime, open_price: float, high_price: float,
                   low_price: float, close_price: float, volume: float,
                   timeframe: str = "1d") -> MarketData:
        """Insert or replace the bar for (symbol, timestamp, timeframe). Does not commit."""
        row = self.db.query(MarketData).filter(
            and_(
                MarketData.symbol == symbol,
                MarketData.timestamp == timestamp,
                MarketData.timeframe == timeframe,
            )
        ).first()
        if row is None:
            row = MarketData(symbol=symbol, timestamp=timestamp, timeframe=timeframe)
            self.db.add(row)
        row.open_price = open_price
        row.high_price = high_price
        row.low_price = low_price
        row.close_price = close_price
        row.volume = volume
        return row

    def get_recent(self, limit: int = 50, timeframe: Optional[str] = None) -> List[MarketData]:
        """Get most recent bars."""
        query = self.db.query(MarketData)
        if timeframe:
            query = query.filter(MarketData.timeframe == timeframe)
        return query.order_by(MarketData.timestamp.desc(), MarketData.id.desc()).limit(limit).all()


class CollaborationRepository:
    """Repository for AgentCollaboration rows."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, collaboration_type: str, participants: List[int], data: Dict[str, Any],
               outcome: Optional[str] = None, message: Optional[str] = None) -> AgentCollaboration:
        """Create a collaboration log entry."""
        collaboration = AgentCollaboration(
            initiator_agent_id=participants[0] if participants else None,
            target_agent_id=participants[1] if len(participants) > 1 else None,
            collaboration_type=collaboration_type,
            participants=participants,
            message=message,
            data=data,
            outcome=outcome,
        )
        self.db.add(collaboration)
        self.db.commit()
        self.db.refresh(collaboration)
        return collaboration


class CommunicationRepository:
    """Repository for AgentCommunication rows."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, from_agent_id: int, to_agent_id: int, message_type: str,
               content: Dict[str, Any],
               priority: MessagePriorityEnum = MessagePriorityEnum.NORMAL) -> AgentCommunication:
        """Create a sent message."""
        message = AgentCommunication(
            from_agent_id=from_agent_id,
            to_agent_id=to_agent_id,
            message_type=message_type,
            content=content,
            priority=priority,
            status="sent",
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def get_for_agent(self, agent_id: int, limit: int = 50) -> List[AgentCommunication]:
        """Get messages sent by or to an agent, newest first."""
        return (
            self.db.query(AgentCommunication)
            .filter(or_(AgentCommunication.from_agent_id == agent_id, AgentCommunication.to_agent_id == agent_id))
            .order_by(AgentCommunication.created_at.desc(), AgentCommunication.id.desc())
            .limit(limit)
            .all()
        )


class AdaptationRepository:
    """Repository for StrategyAdaptation rows."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, strategy_id: int, adaptation_reason: str,
               old_parameters: Optional[Dict[str, Any]] = None,
               new_parameters: Optional[Dict[str, Any]] = None,
               market_conditions: Optional[Dict[str, Any]] = None) -> StrategyAdaptation:
        """Record an adaptation suggestion."""
        adaptation = StrategyAdaptation(
            strategy_id=strategy_id,
            adaptation_reason=adaptation_reason,
            old_parameters=old_parameters,
            new_parameters=new_parameters,
            market_conditions=market_conditions,
        )
        self.db.add(adaptation)
        self.db.commit()
        self.db.refresh(adaptation)
        return adaptation

    def get_by_strategy(self, strategy_id: int, limit: int = 30) -> List[StrategyAdaptation]:
        """Get recent adaptations for a strategy."""
        return (
            self.db.query(StrategyAdaptation)
            .filter(StrategyAdaptation.strategy_id == strategy_id)
            .order_by(StrategyAdaptation.created_at.desc(), StrategyAdaptation.id.desc())
            .limit(limit)
            .all()
        )


class AuditLogRepository:
    """Repository for AuditLog CRUD operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        event_type: AuditEventTypeEnum,
        description: str,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        agent_id: Optional[int] = None,
        order_id: Optional[int] = None
    ) -> AuditLog:
        """Create a new audit log entry."""
        audit_log = AuditLog(
            event_type=event_type,
            description=description,
            details=details,
            user_id=user_id,
            agent_id=agent_id,
            order_id=order_id
        )
        self.db.add(audit_log)
        self.db.commit()
        self.db.refresh(audit_log)
        return audit_log

    def get_all(
        self,
        limit: int = 100,
        offset: int = 0,
        user_id: Optional[str] = None,
        event_type: Optional[AuditEventTypeEnum] = None,
    ) -> List[AuditLog]:
        """Get audit logs with filtering and pagination."""
        query = self.db.query(AuditLog)

        if user_id:
            query = query.filter(AuditLog.user_id == user_id)
        if event_type:
            query = query.filter(AuditLog.event_type == event_type)

        query = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        return query.offset(offset).limit(limit).all()


def _refresh_cached_values(position: PortfolioPosition) -> None:
    """Recompute market_value / unrealized_pnl caches from their sources."""
    quantity = float(position.quantity or 0.0)
    average_price = float(position.average_price or 0.0)
    if position.current_price is None:
        position.market_value = quantity * average_price
        position.unrealized_pnl = 0.0
        return
    current_price = float(position.current_price)
    position.market_value = quantity * current_price
    position.unrealized_pnl = quantity * (current_price - average_price)
