"""
Order Execution Service.

Simulated execution: an order is recorded, filled at once at a synthetic
price, and folded into the agent's position with a weighted-average rule.
There is no matching engine, no partial fills and no retry.
"""

import math
from typing import Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from services.market_data import MockMarketDataProvider
from storage.service import StorageService
from storage.models import TradingOrder, OrderTypeEnum

logger = logging.getLogger(__name__)

_VALID_SIDES = {"buy", "sell"}
_VALID_ORDER_TYPES = {t.value for t in OrderTypeEnum}


class OrderExecutionError(Exception):
    """Base exception for order execution errors."""
    pass


class OrderValidationError(OrderExecutionError):
    """Exception raised when order validation fails."""
    pass


class OrderExecutionService:
    """
    Service for executing simulated orders.

    This service:
    1. Validates agent, symbol and quantity
    2. Inserts the order record
    3. Computes a synthetic fill price and marks the order filled
    4. Creates or updates the (agent, symbol) position
    """

    def __init__(self, storage: StorageService, price_source: MockMarketDataProvider):
        """
        Initialize order execution service.

        Args:
            storage: Storage service for persistence
            price_source: Anything exposing fill_price(symbol) -> float
        """
        self.storage = storage
        self.price_source = price_source

    def validate_order(
        self,
        user_id: str,
        agent_id: Optional[int],
        symbol: Optional[str],
        side: str,
        order_type: str,
        quantity: Optional[float],
        price: Optional[float] = None,
    ):
        """
        Validate an order request.

        Returns:
            The owning TradingAgent

        Raises:
            OrderValidationError: If validation fails
        """
        if agent_id is None or not symbol or not str(symbol).strip() or quantity is None:
            raise OrderValidationError("Agent, symbol and quantity are required")

        if not math.isfinite(quantity):
            raise OrderValidationError("Order quantity must be a finite number")

        if quantity <= 0:
            raise OrderValidationError("Order quantity must be positive")

        if side not in _VALID_SIDES:
            raise OrderValidationError(f"Invalid order side: {side}")

        if order_type not in _VALID_ORDER_TYPES:
            raise OrderValidationError(f"Invalid order type: {order_type}")

        if order_type == "limit" and price is None:
            raise OrderValidationError("Price required for limit orders")

        if price is not None and not math.isfinite(price):
            raise OrderValidationError("Price must be a finite number")

        if price is not None and price <= 0:
            raise OrderValidationError("Price must be positive")

        agent = self.storage.get_user_agent(agent_id, user_id)
        if agent is None:
            raise OrderValidationError(f"Agent {agent_id} not found")
        return agent

    def resolve_fill_price(self, symbol: str, order_type: str, price: Optional[float]) -> float:
        """Limit orders fill at their limit; everything else at the synthetic quote."""
        if order_type == "limit" and price is not None:
            return float(price)
        return float(self.price_source.fill_price(symbol))

    def submit_order(
        self,
        user_id: str,
        agent_id: Optional[int],
        symbol: Optional[str],
        side: str,
        order_type: str,
        quantity: Optional[float],
        price: Optional[float] = None,
        strategy_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> TradingOrder:
        """
        Submit an order for simulated execution.

        The order insert and the position upsert commit separately; a failure
        between them leaves a filled order without a matching position update.

        Returns:
            The filled order

        Raises:
            OrderValidationError: If validation fails
            OrderExecutionError: If any persistence step fails
        """
        agent = self.validate_order(user_id, agent_id, symbol, side, order_type, quantity, price)
        symbol = str(symbol).strip().upper()

        try:
            order = self.storage.create_order(
                agent_id=agent.id,
                symbol=symbol,
                side=side,
                order_type=order_type,
                quantity=quantity,
                price=price,
                strategy_id=strategy_id,
                reason=reason,
            )

            fill_price = self.resolve_fill_price(symbol, order_type, price)
            order = self.storage.orders.mark_filled(order, fill_price)

            signed_quantity = quantity if side == "buy" else -quantity
            position = self.storage.get_position(agent.id, symbol)
            if position is None:
                position = self.storage.create_position(
                    agent_id=agent.id,
                    symbol=symbol,
                    quantity=signed_quantity,
                    average_price=fill_price,
                    current_price=fill_price,
                )
            else:
                position = self.storage.apply_fill(position, signed_quantity, fill_price)

            self.storage.record_agent_trade(agent)

            self.storage.create_audit_log(
                event_type="order_filled",
                description=f"Order filled: {side} {quantity} {symbol} @ {fill_price:.2f}",
                details={
                    "order_id": order.id,
                    "symbol": symbol,
                    "side": side,
                    "type": order_type,
                    "quantity": quantity,
                    "fill_price": fill_price,
                    "position_quantity": position.quantity,
                    "position_average_price": position.average_price,
                },
                user_id=user_id,
                agent_id=agent.id,
                order_id=order.id,
            )
        except SQLAlchemyError as e:
            self.storage.db.rollback()
            logger.error("Failed to place order for agent %s (%s %s %s): %s", agent.id, side, quantity, symbol, e)
            raise OrderExecutionError("Order failed") from e

        logger.info(
            "Order filled: %s (agent %s) %s %s %s @ %.2f, position qty=%s avg=%.4f",
            order.id, agent.id, side, quantity, symbol, fill_price,
            position.quantity, position.average_price,
        )
        return order

    def queue_order(
        self,
        user_id: str,
        agent_id: Optional[int],
        symbol: str,
        side: str,
        quantity: float,
        reason: Optional[str] = None,
    ) -> TradingOrder:
        """
        Record a pending market order without filling it (used for rebalancing).

        Raises:
            OrderValidationError: If validation fails
            OrderExecutionError: If persistence fails
        """
        agent = self.validate_order(user_id, agent_id, symbol, side, "market", quantity)
        try:
            order = self.storage.create_order(
                agent_id=agent.id,
                symbol=symbol.strip().upper(),
                side=side,
                order_type="market",
                quantity=quantity,
                reason=reason,
            )
            self.storage.create_audit_log(
                event_type="order_created",
                description=f"Order queued: {side} {quantity} {order.symbol}",
                details={"order_id": order.id, "symbol": order.symbol, "side": side, "quantity": quantity},
                user_id=user_id,
                agent_id=agent.id,
                order_id=order.id,
            )
        except SQLAlchemyError as e:
            self.storage.db.rollback()
            logger.error("Failed to queue order for agent %s: %s", agent.id, e)
            raise OrderExecutionError("Order failed") from e
        return order
