"""
Storage module - Database persistence layer.
Provides models, repositories, and services for data storage.
"""
from storage.database import Base, get_db, init_db, SessionLocal
from storage.models import (
    User, TradingAgent, TradingStrategy, PortfolioPosition, TradingOrder, MarketData,
    AgentCollaboration, AgentCommunication, StrategyAdaptation, AuditLog,
    AgentStatusEnum, StrategyTypeEnum, PositionTypeEnum, OrderSideEnum, OrderTypeEnum,
    OrderStatusEnum, MessagePriorityEnum, AuditEventTypeEnum
)
from storage.repositories import (
    UserRepository, AgentRepository, StrategyRepository, PositionRepository,
    OrderRepository, MarketDataRepository, CollaborationRepository,
    CommunicationRepository, AdaptationRepository, AuditLogRepository
)
from storage.service import StorageService

__all__ = [
    # Database
    "Base",
    "get_db",
    "init_db",
    "SessionLocal",
    # Models
    "User",
    "TradingAgent",
    "TradingStrategy",
    "PortfolioPosition",
    "TradingOrder",
    "MarketData",
    "AgentCollaboration",
    "AgentCommunication",
    "StrategyAdaptation",
    "AuditLog",
    # Enums
    "AgentStatusEnum",
    "StrategyTypeEnum",
    "PositionTypeEnum",
    "OrderSideEnum",
    "OrderTypeEnum",
    "OrderStatusEnum",
    "MessagePriorityEnum",
    "AuditEventTypeEnum",
    # Repositories
    "UserRepository",
    "AgentRepository",
    "StrategyRepository",
    "PositionRepository",
    "OrderRepository",
    "MarketDataRepository",
    "CollaborationRepository",
    "CommunicationRepository",
    "AdaptationRepository",
    "AuditLogRepository",
    # Service
    "StorageService",
]
