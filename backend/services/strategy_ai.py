"""
AI strategy services.

Builds prompts for strategy generation, strategy adaptation and agent
collaboration, calls the language model, and degrades to fixed templates when
the reply is not usable JSON. Transport failures propagate as LLMError.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from services.llm_client import LLMClient, parse_model_json

logger = logging.getLogger(__name__)

REQUIRED_STRATEGY_FIELDS = ("name", "description", "entryRules", "exitRules")
INDIAN_BLUE_CHIPS = "RELIANCE, TCS, INFY, HDFCBANK, ICICIBANK, HINDUNILVR, ITC, SBIN, BHARTIARTL, ASIANPAINT"


def risk_parameters(risk_tolerance: float) -> Dict[str, float]:
    """Risk parameters derived from a 0-100 risk tolerance."""
    r = float(risk_tolerance)
    return {
        "maxPositionSize": (r / 100) * 0.1,
        "stopLoss": max(0.01, (100 - r) / 1000),
        "takeProfit": max(0.02, r / 1000),
        "maxPositionValueINR": r * 2000,
    }


def _dumps(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def build_strategy_prompt(market_conditions: str, risk_tolerance: float, strategy_type: str) -> str:
    params = risk_parameters(risk_tolerance)
    expected_return = max(0.08, risk_tolerance / 1000)
    max_drawdown = max(0.03, (100 - risk_tolerance) / 2000)
    return f"""
You are an expert algorithmic trading strategist specializing in the Indian stock market (NSE/BSE).
Generate a comprehensive trading strategy based on the following parameters:

Market Conditions: {market_conditions}
Risk Tolerance: {risk_tolerance}%
Strategy Type: {strategy_type}

Indian Market Context:
- Trading Hours: 9:15 AM to 3:30 PM IST
- Currency: Indian Rupees (INR)
- Popular stocks: {INDIAN_BLUE_CHIPS}
- Regulatory environment: SEBI regulations and Indian market dynamics

IMPORTANT: You MUST respond with a valid JSON object only. Do not include any text before or after the JSON.

Use this EXACT JSON structure:
{{
  "name": "Complete Strategy Name for Indian Market",
  "description": "2-3 sentences on approach, target stocks, entry/exit logic and risk management.",
  "entryRules": ["entry condition 1", "entry condition 2", "entry condition 3"],
  "exitRules": ["exit condition 1", "exit condition 2", "exit condition 3"],
  "riskParameters": {_dumps(params)},
  "indicators": ["RSI", "MACD", "SMA", "Bollinger Bands", "Volume"],
  "marketConditions": ["{strategy_type} markets", "Indian trading hours", "High volume periods"],
  "expectedReturn": {expected_return},
  "maxDrawdown": {max_drawdown},
  "implementation": "Complete Python implementation of the strategy"
}}
"""


def fallback_strategy(strategy_type: str, risk_tolerance: float) -> Dict[str, Any]:
    """Fixed template used when the model reply is unusable."""
    r = float(risk_tolerance)
    params = risk_parameters(r)
    stop_loss_pct = ((100 - r) / 1000) * 100
    implementation = f"""# Complete {strategy_type} Strategy Implementation for Indian Market
def indian_{strategy_type.lower()}_strategy():
    indian_stocks = ['RELIANCE', 'TCS', 'INFY', 'HDFCBANK', 'ICICIBANK']
    risk_tolerance = {r:g}

    for stock in indian_stocks:
        current_price = get_stock_price(stock)
        rsi = calculate_rsi(stock, period=14)
        volume = get_current_volume(stock)
        avg_volume = get_average_volume(stock, period=20)

        if rsi < 40 and volume > avg_volume * 1.5 and is_market_hours():
            position_size = calculate_position_size(portfolio_value, risk_per_trade={params['maxPositionSize']:g})
            entry_price = current_price
            stop_loss = entry_price * (1 - {params['stopLoss']:g})
            take_profit = entry_price * (1 + {params['takeProfit']:g})
            place_order('BUY', stock, position_size, entry_price)
            set_stop_loss(stock, stop_loss)
            set_take_profit(stock, take_profit)

        if current_time() > '15:00' or get_profit_loss(stock) < -stop_loss:
            close_position(stock)

    if calculate_portfolio_drawdown() > {max(0.03, (100 - r) / 2000):g}:
        reduce_all_positions(0.5)
"""
    return {
        "name": f"Indian {strategy_type} Trading Strategy",
        "description": (
            f"A comprehensive {strategy_type} strategy designed for the Indian stock market, focusing on "
            "NSE-listed stocks like RELIANCE, TCS, and INFY. This strategy uses technical analysis combined "
            "with Indian market timing to identify entry and exit points while managing risk through position "
            "sizing and stop-loss mechanisms."
        ),
        "entryRules": [
            f"Enter long positions when {strategy_type} signals align with RSI below 40 on Indian blue-chip stocks",
            "Confirm entry with volume spike above 1.5x average daily volume during market hours (9:15 AM - 3:30 PM IST)",
            "Ensure market conditions favor the strategy type with proper risk-reward ratio of at least 1:2",
        ],
        "exitRules": [
            "Exit positions when profit target of 3-5% is reached or before market close at 3:30 PM IST",
            f"Apply stop-loss at {stop_loss_pct:.1f}% to limit downside risk",
            "Close all positions if overall portfolio drawdown exceeds risk tolerance limits",
        ],
        "riskParameters": params,
        "indicators": ["RSI", "MACD", "SMA", "Bollinger Bands", "Volume"],
        "marketConditions": [f"{strategy_type} trending markets", "Indian trading hours", "High liquidity periods"],
        "expectedReturn": max(0.08, r / 1000),
        "maxDrawdown": max(0.03, (100 - r) / 2000),
        "implementation": implementation,
    }


def generate_strategy(
    client: LLMClient,
    market_conditions: str,
    risk_tolerance: float,
    strategy_type: str,
) -> Dict[str, Any]:
    """
    Ask the model for a strategy; fall back to the template on unusable output.

    Returns:
        Dict with "strategy" (the object) and "fallback" (bool)
    """
    prompt = build_strategy_prompt(market_conditions, risk_tolerance, strategy_type)
    text = client.generate_text(prompt, temperature=0.3, max_tokens=3000)

    strategy = parse_model_json(text)
    if strategy is None or not all(strategy.get(field) for field in REQUIRED_STRATEGY_FIELDS):
        logger.warning("Strategy reply unusable, using structured fallback (type=%s)", strategy_type)
        return {"strategy": fallback_strategy(strategy_type, risk_tolerance), "fallback": True}
    return {"strategy": strategy, "fallback": False}


def adapt_strategy(
    client: LLMClient,
    strategy: Dict[str, Any],
    market_data: List[Dict[str, Any]],
    market_changes: str,
    performance_data: Optional[Any] = None,
) -> Dict[str, Any]:
    """Ask the model to suggest adaptations for an existing strategy."""
    prompt = f"""
You are an expert trading strategy optimizer. Analyze the current strategy performance and market
conditions to suggest adaptations.

Current Strategy:
{_dumps(strategy)}

Recent Performance Data:
{_dumps(performance_data or [])}

Recent Market Data:
{_dumps(market_data[:10])}

Market Changes: {market_changes}

Consider parameter adjustments (stop loss, take profit, position sizing), entry/exit rule changes,
risk management improvements, new indicators or filters, and market condition filters.

Provide your response as a JSON object with:
{{
  "adaptations": [
    {{"type": "parameter_change", "parameter": "stopLoss", "oldValue": 0.02, "newValue": 0.025,
      "reason": "Reduce risk due to increased volatility"}}
  ],
  "reasoning": "Detailed explanation of why these changes are recommended",
  "expectedImprovement": "Expected performance improvement",
  "riskAssessment": "Assessment of risks with these changes"
}}
"""
    text = client.generate_text(prompt, temperature=0.6, max_tokens=1500)
    adaptations = parse_model_json(text)
    if adaptations is None:
        logger.warning("Adaptation reply was not JSON, returning raw reasoning")
        adaptations = {
            "adaptations": [],
            "reasoning": text,
            "expectedImprovement": "Analysis provided",
            "riskAssessment": "Review recommended changes carefully",
        }
    return adaptations


def fallback_collaboration_plan() -> Dict[str, Any]:
    return {
        "collaborationPlan": {
            "strategy": "AI-generated collaboration strategy",
            "coordination": ["Coordinate entry/exit timing", "Share market analysis"],
            "informationSharing": ["Performance metrics", "Risk assessments"],
            "conflictResolution": ["Majority voting", "Risk-weighted decisions"],
            "opportunities": ["Portfolio diversification", "Risk reduction"],
            "risks": ["Over-correlation", "Communication delays"],
            "timeline": "Ongoing with weekly reviews",
        },
        "agentRoles": {},
        "communicationProtocol": {
            "frequency": "Real-time for critical decisions, daily for updates",
            "triggers": ["Market volatility > 2%", "Position conflicts"],
            "channels": ["Direct API calls", "Database updates"],
        },
        "successMetrics": ["Improved Sharpe ratio", "Reduced portfolio volatility"],
    }


def plan_collaboration(
    client: LLMClient,
    agents: List[Dict[str, Any]],
    market_data: List[Dict[str, Any]],
    collaboration_type: str,
    context: str,
) -> Dict[str, Any]:
    """Ask the model how a group of agents should coordinate."""
    prompt = f"""
You are facilitating collaboration between multiple trading agents. Analyze their strategies and
current market conditions to provide collaboration recommendations.

Agents:
{_dumps(agents)}

Current Market Data:
{_dumps(market_data[:5])}

Collaboration Type: {collaboration_type}
Context: {context}

Cover coordination of trading activities, information to share, strategy conflicts,
portfolio optimization opportunities, and collaboration risks.

Provide your response as a JSON object:
{{
  "collaborationPlan": {{
    "strategy": "Overall collaboration strategy",
    "coordination": ["specific coordination actions"],
    "informationSharing": ["what data to share"],
    "conflictResolution": ["how to resolve conflicts"],
    "opportunities": ["collaborative opportunities"],
    "risks": ["potential risks"],
    "timeline": "recommended timeline"
  }},
  "agentRoles": {{"agent_id": "specific role and responsibilities"}},
  "communicationProtocol": {{
    "frequency": "how often to communicate",
    "triggers": ["events that trigger communication"],
    "channels": ["communication methods"]
  }},
  "successMetrics": ["how to measure collaboration success"]
}}
"""
    text = client.generate_text(prompt, temperature=0.7, max_tokens=2000)
    plan = parse_model_json(text)
    if plan is None:
        logger.warning("Collaboration reply was not JSON, using template plan")
        plan = fallback_collaboration_plan()
    return plan
