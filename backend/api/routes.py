"""
API Routes.
Defines all REST API endpoints for AgentDesk.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storage.database import get_db
from storage.service import StorageService
from storage.models import (
    AgentStatusEnum,
    AuditEventTypeEnum,
    MessagePriorityEnum,
    StrategyTypeEnum,
    TradingAgent,
    TradingOrder,
    TradingStrategy,
    AgentCommunication,
)
from services.llm_client import LLMClient, LLMError, get_llm_client
from services.market_data import MockMarketDataProvider, get_market_data_provider, store_snapshot
from services.order_execution import OrderExecutionError, OrderExecutionService, OrderValidationError
from services.price_refresh import refresh_position_prices
from services.rebalancing import generate_recommendations
from services.strategy_ai import adapt_strategy, generate_strategy, plan_collaboration
from services.valuation import aggregate_portfolio

from .middleware import AI_RATE_LIMIT, limiter
from .models import (
    Agent,
    AgentsResponse,
    AgentCreateRequest,
    AgentUpdateRequest,
    Strategy,
    StrategiesResponse,
    Order,
    OrdersResponse,
    OrderRequest,
    OrderResponse,
    PortfolioResponse,
    PortfolioSummary,
    RebalanceResponse,
    RebalanceExecuteRequest,
    RebalanceExecuteResponse,
    PriceUpdateResponse,
    MarketQuote,
    LiveDataRequest,
    LiveDataResponse,
    StrategyGenerateRequest,
    StrategyGenerateResponse,
    StrategyAdaptRequest,
    StrategyAdaptResponse,
    CollaborationRequest,
    CollaborationResponse,
    CommunicationRequest,
    Communication,
    CommunicationsResponse,
    CommunicationSendResponse,
    AuditLog,
    AuditLogsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_STRATEGY_TYPES = {t.value for t in StrategyTypeEnum}
_PROMPT_MARKET_ROWS = 10


# ============================================================================
# Dependencies
# ============================================================================

def get_current_user_id(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> str:
    """
    Resolve the calling user from the X-User-ID header.
    The user row is created on first use.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="X-User-ID header is required")
    if len(user_id) > 64:
        raise HTTPException(status_code=400, detail="X-User-ID header is too long")
    StorageService(db).get_or_create_user(user_id)
    return user_id


def get_order_execution_service(
    db: Session = Depends(get_db),
    provider: MockMarketDataProvider = Depends(get_market_data_provider),
) -> OrderExecutionService:
    """
    Get order execution service with storage and the mock price source.

    Args:
        db: Database session
        provider: Market data provider used for fill prices

    Returns:
        OrderExecutionService instance
    """
    return OrderExecutionService(StorageService(db), provider)


# ============================================================================
# Mapping helpers
# ============================================================================

def _enum_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value.value if hasattr(value, "value") else str(value)


def _to_agent(agent: TradingAgent) -> Agent:
    return Agent(
        id=agent.id,
        user_id=agent.user_id,
        name=agent.name,
        strategy_type=_enum_value(agent.strategy_type),
        status=_enum_value(agent.status),
        risk_tolerance=float(agent.risk_tolerance or 0.0),
        max_position_size=float(agent.max_position_size or 0.0),
        current_balance=float(agent.current_balance or 0.0),
        total_trades=int(agent.total_trades or 0),
        successful_trades=int(agent.successful_trades or 0),
        configuration=agent.configuration or {},
        created_at=agent.created_at,
        updated_at=agent.updated_at,
    )


def _to_strategy(strategy: TradingStrategy) -> Strategy:
    return Strategy(
        id=strategy.id,
        agent_id=strategy.agent_id,
        name=strategy.name,
        description=strategy.description,
        strategy_type=strategy.strategy_type,
        strategy_code=strategy.strategy_code,
        parameters=strategy.parameters or {},
        is_active=bool(strategy.is_active),
        created_by_ai=bool(strategy.created_by_ai),
        created_at=strategy.created_at,
    )


def _to_order(order: TradingOrder) -> Order:
    return Order(
        id=order.id,
        agent_id=order.agent_id,
        strategy_id=order.strategy_id,
        symbol=order.symbol,
        side=_enum_value(order.side),
        type=_enum_value(order.order_type),
        quantity=float(order.quantity),
        price=order.price,
        status=_enum_value(order.status),
        filled_quantity=float(order.filled_quantity or 0.0),
        filled_price=order.filled_price,
        reason=order.reason,
        created_at=order.created_at,
        filled_at=order.filled_at,
    )


def _to_communication(message: AgentCommunication, agent_names: Dict[int, str]) -> Communication:
    return Communication(
        id=message.id,
        from_agent_id=message.from_agent_id,
        to_agent_id=message.to_agent_id,
        from_agent_name=agent_names.get(message.from_agent_id),
        to_agent_name=agent_names.get(message.to_agent_id),
        message_type=message.message_type,
        content=message.content or {},
        priority=_enum_value(message.priority),
        status=message.status,
        created_at=message.created_at,
    )


def _recent_market_rows(storage: StorageService, limit: int = _PROMPT_MARKET_ROWS) -> List[Dict[str, Any]]:
    """Recent stored bars as plain dicts for prompt context."""
    return [
        {
            "symbol": row.symbol,
            "timestamp": row.timestamp.isoformat() if row.timestamp else None,
            "open_price": row.open_price,
            "high_price": row.high_price,
            "low_price": row.low_price,
            "close_price": row.close_price,
            "volume": row.volume,
        }
        for row in storage.get_recent_market_data(limit=limit)
    ]


def _user_portfolio(storage: StorageService, user_id: str) -> Dict[str, Any]:
    rows = storage.get_user_positions(user_id)
    agent_names = {agent.id: agent.name for agent in storage.agents.get_by_user(user_id)}
    return aggregate_portfolio(rows, agent_names=agent_names)


def _require_agent(storage: StorageService, agent_id: int, user_id: str) -> TradingAgent:
    agent = storage.get_user_agent(agent_id, user_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


def _validate_strategy_type(value: Optional[str]) -> StrategyTypeEnum:
    clean = (value or "").strip().lower()
    if clean not in _STRATEGY_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid strategy type. Expected one of: {', '.join(sorted(_STRATEGY_TYPES))}",
        )
    return StrategyTypeEnum(clean)


# ============================================================================
# Agent Endpoints
# ============================================================================

@router.get("/agents", response_model=AgentsResponse)
async def list_agents(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the caller's agents, newest first."""
    storage = StorageService(db)
    agents = [_to_agent(a) for a in storage.agents.get_by_user(user_id)]
    return AgentsResponse(agents=agents, total_count=len(agents))


@router.post("/agents", response_model=Agent)
async def create_agent(
    payload: AgentCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create an agent. New agents start inactive."""
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Agent name is required")
    strategy_type = _validate_strategy_type(payload.strategy_type)

    storage = StorageService(db)
    agent = storage.agents.create(
        user_id=user_id,
        name=name,
        strategy_type=strategy_type,
        risk_tolerance=payload.risk_tolerance,
        max_position_size=payload.max_position_size,
        current_balance=payload.current_balance,
        configuration=payload.configuration,
    )
    storage.create_audit_log(
        event_type="agent_created",
        description=f"Agent created: {agent.name}",
        details={"strategy_type": strategy_type.value},
        user_id=user_id,
        agent_id=agent.id,
    )
    return _to_agent(agent)


# Registered before /agents/{agent_id} so the literal paths win.
@router.post("/agents/collaborate", response_model=CollaborationResponse)
@limiter.limit(AI_RATE_LIMIT)
def collaborate_agents(
    request: Request,
    payload: CollaborationRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client),
):
    """
    Ask the language model for a coordination plan between agents.

    Raises:
        HTTPException: 400 with fewer than two agents, 500 when the model call fails
    """
    storage = StorageService(db)
    agent_ids = list(dict.fromkeys(payload.agent_ids))
    if len(agent_ids) < 2:
        raise HTTPException(status_code=400, detail="Need at least 2 agents for collaboration")
    agents = storage.agents.get_many_for_user(agent_ids, user_id)
    if len(agents) < len(agent_ids):
        raise HTTPException(status_code=404, detail="Agent not found")

    agent_context = [
        {
            "id": a.id,
            "name": a.name,
            "strategy_type": _enum_value(a.strategy_type),
            "status": _enum_value(a.status),
            "risk_tolerance": a.risk_tolerance,
            "total_trades": a.total_trades,
            "configuration": a.configuration or {},
        }
        for a in agents
    ]

    try:
        plan = plan_collaboration(
            llm,
            agents=agent_context,
            market_data=_recent_market_rows(storage),
            collaboration_type=payload.collaboration_type,
            context=payload.context,
        )
    except LLMError as e:
        logger.error("Collaboration planning failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to generate collaboration plan")

    try:
        collaboration = storage.collaborations.create(
            collaboration_type=payload.collaboration_type,
            participants=agent_ids,
            data=plan,
            outcome="plan_generated",
            message=payload.context or None,
        )
        storage.create_audit_log(
            event_type="collaboration_planned",
            description=f"Collaboration plan generated for {len(agent_ids)} agents",
            details={"collaboration_id": collaboration.id, "agent_ids": agent_ids},
            user_id=user_id,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to store collaboration plan: %s", e)
        raise HTTPException(status_code=500, detail="Failed to generate collaboration plan")

    return CollaborationResponse(success=True, collaboration=plan, collaboration_id=collaboration.id)


@router.post("/agents/communicate", response_model=CommunicationSendResponse)
async def send_agent_message(
    payload: CommunicationRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Send a message from one of the caller's agents to another."""
    storage = StorageService(db)
    sender = _require_agent(storage, payload.from_agent_id, user_id)
    recipient = _require_agent(storage, payload.to_agent_id, user_id)

    try:
        message = storage.communications.create(
            from_agent_id=sender.id,
            to_agent_id=recipient.id,
            message_type=payload.message_type,
            content=payload.content,
            priority=MessagePriorityEnum(payload.priority.value),
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to send agent message: %s", e)
        raise HTTPException(status_code=500, detail="Failed to send message")

    if message.priority == MessagePriorityEnum.HIGH:
        logger.info(
            "High priority message %s from agent %s to agent %s queued for immediate processing",
            message.id, sender.id, recipient.id,
        )

    names = {sender.id: sender.name, recipient.id: recipient.name}
    return CommunicationSendResponse(success=True, message=_to_communication(message, names))


@router.get("/agents/communicate", response_model=CommunicationsResponse)
async def list_agent_messages(
    agent_id: Optional[int] = Query(None, description="Agent whose messages to list"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Last 50 messages sent by or to an agent, newest first."""
    if agent_id is None:
        raise HTTPException(status_code=400, detail="Agent ID required")
    storage = StorageService(db)
    _require_agent(storage, agent_id, user_id)

    messages = storage.communications.get_for_agent(agent_id, limit=50)
    agent_ids = {m.from_agent_id for m in messages} | {m.to_agent_id for m in messages}
    names: Dict[int, str] = {}
    for other_id in agent_ids:
        other = storage.agents.get_by_id(other_id)
        if other is not None:
            names[other.id] = other.name
    return CommunicationsResponse(messages=[_to_communication(m, names) for m in messages])


@router.get("/agents/{agent_id}", response_model=Agent)
async def get_agent(
    agent_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get one of the caller's agents."""
    return _to_agent(_require_agent(StorageService(db), agent_id, user_id))


@router.put("/agents/{agent_id}", response_model=Agent)
async def update_agent(
    agent_id: int,
    payload: AgentUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Update agent fields that are present in the request."""
    storage = StorageService(db)
    agent = _require_agent(storage, agent_id, user_id)

    changes: Dict[str, Any] = {}
    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Agent name is required")
        agent.name = name
        changes["name"] = name
    if payload.strategy_type is not None:
        agent.strategy_type = _validate_strategy_type(payload.strategy_type)
        changes["strategy_type"] = agent.strategy_type.value
    if payload.risk_tolerance is not None:
        agent.risk_tolerance = payload.risk_tolerance
        changes["risk_tolerance"] = payload.risk_tolerance
    if payload.max_position_size is not None:
        agent.max_position_size = payload.max_position_size
        changes["max_position_size"] = payload.max_position_size
    if payload.current_balance is not None:
        agent.current_balance = payload.current_balance
        changes["current_balance"] = payload.current_balance
    if payload.configuration is not None:
        agent.configuration = payload.configuration
        changes["configuration"] = payload.configuration

    agent = storage.agents.update(agent)
    storage.create_audit_log(
        event_type="agent_updated",
        description=f"Agent updated: {agent.name}",
        details=changes,
        user_id=user_id,
        agent_id=agent.id,
    )
    return _to_agent(agent)


@router.delete("/agents/{agent_id}")
async def delete_agent(
    agent_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Delete an agent together with its positions, orders, messages and strategies."""
    storage = StorageService(db)
    agent = _require_agent(storage, agent_id, user_id)
    name = agent.name

    storage.agents.delete(agent_id)
    storage.create_audit_log(
        event_type="agent_deleted",
        description=f"Agent deleted: {name}",
        details={"agent_id": agent_id},
        user_id=user_id,
        agent_id=agent_id,
    )
    return {"success": True, "message": f"Agent {agent_id} deleted"}


@router.post("/agents/{agent_id}/toggle", response_model=Agent)
async def toggle_agent(
    agent_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Flip an agent between active and inactive. Paused agents become active."""
    storage = StorageService(db)
    agent = _require_agent(storage, agent_id, user_id)
    previous = _enum_value(agent.status)
    agent.status = AgentStatusEnum.INACTIVE if agent.status == AgentStatusEnum.ACTIVE else AgentStatusEnum.ACTIVE
    agent = storage.agents.update(agent)

    storage.create_audit_log(
        event_type="agent_status_changed",
        description=f"Agent {agent.name} {previous} -> {agent.status.value}",
        details={"from": previous, "to": agent.status.value},
        user_id=user_id,
        agent_id=agent.id,
    )
    return _to_agent(agent)


# ============================================================================
# Strategy Endpoints
# ============================================================================

@router.get("/strategies", response_model=StrategiesResponse)
async def list_strategies(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Strategies attached to the caller's agents."""
    strategies = [_to_strategy(s) for s in StorageService(db).strategies.get_by_user(user_id)]
    return StrategiesResponse(strategies=strategies, total_count=len(strategies))


@router.post("/ai/generate-strategy", response_model=StrategyGenerateResponse)
@limiter.limit(AI_RATE_LIMIT)
def generate_ai_strategy(
    request: Request,
    payload: StrategyGenerateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client),
):
    """
    Generate a strategy with the language model and save it.

    A reply without name, description or rules is replaced by a template.
    If saving fails the generated strategy is still returned.
    """
    storage = StorageService(db)
    if payload.agent_id is not None:
        _require_agent(storage, payload.agent_id, user_id)

    strategy_type = payload.strategy_type.value
    try:
        result = generate_strategy(
            llm,
            market_conditions=payload.market_conditions,
            risk_tolerance=payload.risk_tolerance,
            strategy_type=strategy_type,
        )
    except LLMError as e:
        logger.error("Strategy generation failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to generate strategy")

    strategy = result["strategy"]
    saved = None
    try:
        saved = storage.strategies.create(
            name=str(strategy.get("name"))[:200],
            description=str(strategy.get("description")),
            strategy_type=strategy_type,
            parameters=strategy,
            strategy_code=strategy.get("implementation") if isinstance(strategy.get("implementation"), str) else None,
            agent_id=payload.agent_id,
            created_by_ai=True,
        )
        storage.create_audit_log(
            event_type="strategy_generated",
            description=f"AI strategy generated: {saved.name}",
            details={"strategy_id": saved.id, "fallback": result["fallback"]},
            user_id=user_id,
            agent_id=payload.agent_id,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not save generated strategy: %s", e)

    return StrategyGenerateResponse(
        success=True,
        strategy=strategy,
        saved_strategy=_to_strategy(saved) if saved is not None else None,
        fallback=result["fallback"],
    )


@router.post("/ai/adapt-strategy", response_model=StrategyAdaptResponse)
@limiter.limit(AI_RATE_LIMIT)
def adapt_ai_strategy(
    request: Request,
    payload: StrategyAdaptRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client),
):
    """Ask the language model for adaptations to a stored strategy."""
    storage = StorageService(db)
    strategy = storage.strategies.get_by_id(payload.strategy_id)
    if strategy is None or (
        strategy.agent_id is not None and storage.get_user_agent(strategy.agent_id, user_id) is None
    ):
        raise HTTPException(status_code=404, detail="Strategy not found")

    strategy_context = {
        "id": strategy.id,
        "name": strategy.name,
        "description": strategy.description,
        "strategy_type": strategy.strategy_type,
        "parameters": strategy.parameters or {},
    }
    try:
        adaptations = adapt_strategy(
            llm,
            strategy=strategy_context,
            market_data=_recent_market_rows(storage),
            market_changes=payload.market_changes,
            performance_data=payload.performance_data,
        )
    except LLMError as e:
        logger.error("Strategy adaptation failed for %s: %s", strategy.id, e)
        raise HTTPException(status_code=500, detail="Failed to adapt strategy")

    try:
        storage.adaptations.create(
            strategy_id=strategy.id,
            adaptation_reason=str(adaptations.get("reasoning") or payload.market_changes or "AI adaptation"),
            old_parameters=strategy.parameters or {},
            new_parameters={"adaptations": adaptations.get("adaptations", [])},
            market_conditions={"market_changes": payload.market_changes},
        )
        storage.create_audit_log(
            event_type="strategy_adapted",
            description=f"AI adaptation suggested for strategy {strategy.name}",
            details={"strategy_id": strategy.id},
            user_id=user_id,
            agent_id=strategy.agent_id,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not record strategy adaptation: %s", e)

    return StrategyAdaptResponse(success=True, adaptations=adaptations, strategy=_to_strategy(strategy))


# ============================================================================
# Order Endpoints
# ============================================================================

@router.get("/orders", response_model=OrdersResponse)
async def list_orders(
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Recent orders placed by the caller's agents."""
    orders = [_to_order(o) for o in StorageService(db).get_user_orders(user_id, limit=limit)]
    return OrdersResponse(orders=orders, total_count=len(orders))


@router.post("/orders", response_model=OrderResponse)
async def place_order(
    payload: OrderRequest,
    user_id: str = Depends(get_current_user_id),
    execution_service: OrderExecutionService = Depends(get_order_execution_service),
):
    """
    Place and immediately fill a simulated order.

    Raises:
        HTTPException: 400 on validation failure, 500 when persistence fails
    """
    try:
        order = execution_service.submit_order(
            user_id=user_id,
            agent_id=payload.agent_id,
            symbol=payload.symbol,
            side=payload.side,
            order_type=payload.type,
            quantity=payload.quantity,
            price=payload.price,
            strategy_id=payload.strategy_id,
            reason=payload.reason,
        )
    except OrderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderExecutionError:
        raise HTTPException(status_code=500, detail="Failed to place order")
    return OrderResponse(success=True, order=_to_order(order))


# ============================================================================
# Portfolio Endpoints
# ============================================================================

@router.get("/portfolio/positions", response_model=PortfolioResponse)
async def get_portfolio_positions(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Valued open positions with portfolio totals."""
    return PortfolioResponse(**_user_portfolio(StorageService(db), user_id))


@router.get("/portfolio/summary", response_model=PortfolioSummary)
async def get_portfolio_summary(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Aggregate portfolio metrics without the position list."""
    portfolio = _user_portfolio(StorageService(db), user_id)
    portfolio.pop("positions", None)
    return PortfolioSummary(**portfolio)


@router.get("/portfolio/rebalance", response_model=RebalanceResponse)
async def get_rebalance_recommendations(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Equal-weight rebalancing suggestions for the caller's portfolio."""
    portfolio = _user_portfolio(StorageService(db), user_id)
    return RebalanceResponse(
        recommendations=generate_recommendations(portfolio["positions"]),
        total_value=portfolio["total_value"],
    )


@router.post("/portfolio/rebalance", response_model=RebalanceExecuteResponse)
async def execute_rebalance(
    payload: RebalanceExecuteRequest,
    user_id: str = Depends(get_current_user_id),
    execution_service: OrderExecutionService = Depends(get_order_execution_service),
):
    """
    Queue rebalancing trades as pending market orders for one agent.
    Uses the request's recommendations, or fresh ones when none are sent.
    """
    if payload.recommendations:
        recommendations = [r.model_dump() for r in payload.recommendations]
    else:
        portfolio = _user_portfolio(execution_service.storage, user_id)
        recommendations = generate_recommendations(portfolio["positions"])

    queued: List[Order] = []
    try:
        for rec in recommendations:
            action = rec["recommended_action"]
            if action not in {"buy", "sell"} or float(rec["quantity"]) <= 0:
                continue
            order = execution_service.queue_order(
                user_id=user_id,
                agent_id=payload.agent_id,
                symbol=rec["symbol"],
                side=action,
                quantity=float(rec["quantity"]),
                reason=f"Rebalance: {rec['reason']}",
            )
            queued.append(_to_order(order))
    except OrderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OrderExecutionError:
        raise HTTPException(status_code=500, detail="Failed to execute rebalancing")

    return RebalanceExecuteResponse(
        success=True,
        message=f"Queued {len(queued)} rebalancing orders",
        orders=queued,
    )


@router.post("/portfolio/update-prices", response_model=PriceUpdateResponse)
async def update_portfolio_prices(
    db: Session = Depends(get_db),
    provider: MockMarketDataProvider = Depends(get_market_data_provider),
):
    """Reprice every open position from the mock feed."""
    try:
        result = refresh_position_prices(StorageService(db), provider)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Portfolio price refresh failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to update portfolio prices")
    return PriceUpdateResponse(**result)


# ============================================================================
# Market Data Endpoints
# ============================================================================

@router.get("/market/live-data", response_model=LiveDataResponse)
async def get_live_data(
    symbol: Optional[str] = Query(None, description="Single symbol; all tracked symbols when omitted"),
    db: Session = Depends(get_db),
    provider: MockMarketDataProvider = Depends(get_market_data_provider),
):
    """Mock quotes for one symbol, or for every tracked symbol (stored as a snapshot)."""
    clean = (symbol or "").strip().upper()
    if clean:
        return LiveDataResponse(data=[MarketQuote(**provider.quote(clean))])

    quotes = provider.quotes(provider.tracked_symbols)
    store_snapshot(StorageService(db), quotes)
    return LiveDataResponse(data=[MarketQuote(**q) for q in quotes])


@router.post("/market/live-data", response_model=LiveDataResponse)
async def post_live_data(
    payload: LiveDataRequest,
    db: Session = Depends(get_db),
    provider: MockMarketDataProvider = Depends(get_market_data_provider),
):
    """Mock quotes for the listed symbols (tracked symbols when empty), stored as a snapshot."""
    symbols = payload.symbols or provider.tracked_symbols
    quotes = provider.quotes(symbols)
    store_snapshot(StorageService(db), quotes)
    return LiveDataResponse(data=[MarketQuote(**q) for q in quotes])


# ============================================================================
# Audit Endpoints
# ============================================================================

@router.get("/audit/logs", response_model=AuditLogsResponse)
async def get_audit_logs(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    event_type: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """The caller's audit trail, newest first."""
    if event_type and event_type not in {e.value for e in AuditEventTypeEnum}:
        raise HTTPException(status_code=400, detail=f"Invalid event type: {event_type}")

    rows = StorageService(db).get_audit_logs(user_id, limit=limit, offset=offset, event_type=event_type)
    logs = [
        AuditLog(
            id=row.id,
            event_type=_enum_value(row.event_type),
            description=row.description,
            details=row.details,
            agent_id=row.agent_id,
            order_id=row.order_id,
            timestamp=row.timestamp,
        )
        for row in rows
    ]
    return AuditLogsResponse(logs=logs, total_count=len(logs))
