"""
Tests for AI strategy generation, adaptation and collaboration planning.
"""
import json

import pytest

from services.llm_client import LLMError
from services.strategy_ai import (
    adapt_strategy,
    fallback_collaboration_plan,
    fallback_strategy,
    generate_strategy,
    plan_collaboration,
    risk_parameters,
)


class StubLLM:
    """Returns a canned reply and records each call."""

    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def generate_text(self, prompt, temperature=0.7, max_tokens=1500):
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        if self.error:
            raise self.error
        return self.reply


VALID_STRATEGY = {
    "name": "NSE Momentum Rider",
    "description": "Rides momentum in large caps.",
    "entryRules": ["RSI crosses 55"],
    "exitRules": ["RSI below 45"],
    "riskParameters": {"stopLoss": 0.02},
}


def test_risk_parameters_formulas():
    params = risk_parameters(50)
    assert params["maxPositionSize"] == pytest.approx(0.05)
    assert params["stopLoss"] == pytest.approx(0.05)
    assert params["takeProfit"] == pytest.approx(0.05)
    assert params["maxPositionValueINR"] == 100000


def test_risk_parameters_floors():
    assert risk_parameters(100)["stopLoss"] == 0.01
    assert risk_parameters(0)["takeProfit"] == 0.02


def test_generate_strategy_uses_model_output():
    llm = StubLLM("```json\n" + json.dumps(VALID_STRATEGY) + "\n```")
    result = generate_strategy(llm, "Bullish", 60, "momentum")

    assert result["fallback"] is False
    assert result["strategy"]["name"] == "NSE Momentum Rider"
    assert llm.calls[0]["temperature"] == 0.3
    assert llm.calls[0]["max_tokens"] == 3000
    assert "Risk Tolerance: 60%" in llm.calls[0]["prompt"]


@pytest.mark.parametrize("reply", [
    "not json at all",
    json.dumps({"name": "Half", "description": "missing rules"}),
    json.dumps(dict(VALID_STRATEGY, exitRules=[])),
])
def test_generate_strategy_falls_back(reply):
    result = generate_strategy(StubLLM(reply), "Sideways", 30, "swing")
    strategy = result["strategy"]

    assert result["fallback"] is True
    assert strategy["name"] == "Indian swing Trading Strategy"
    assert strategy["riskParameters"] == risk_parameters(30)
    assert strategy["expectedReturn"] == 0.08
    assert strategy["maxDrawdown"] == pytest.approx(0.035)
    assert len(strategy["entryRules"]) == 3


def test_generate_strategy_propagates_llm_error():
    with pytest.raises(LLMError):
        generate_strategy(StubLLM(error=LLMError("down")), "x", 50, "momentum")


def test_fallback_strategy_mentions_stop_loss_percent():
    assert "Apply stop-loss at 7.0%" in fallback_strategy("scalping", 30)["exitRules"][1]


def test_adapt_strategy_returns_parsed_object():
    reply = json.dumps({"adaptations": [{"parameter": "stopLoss"}], "reasoning": "Volatility rose"})
    llm = StubLLM(reply)
    result = adapt_strategy(llm, {"name": "S"}, [{"symbol": "TCS"}] * 20, "VIX spike")

    assert result["reasoning"] == "Volatility rose"
    assert llm.calls[0]["temperature"] == 0.6
    assert llm.calls[0]["max_tokens"] == 1500
    assert "Market Changes: VIX spike" in llm.calls[0]["prompt"]


def test_adapt_strategy_fallback_keeps_raw_text():
    result = adapt_strategy(StubLLM("Tighten your stops."), {"name": "S"}, [], "")
    assert result == {
        "adaptations": [],
        "reasoning": "Tighten your stops.",
        "expectedImprovement": "Analysis provided",
        "riskAssessment": "Review recommended changes carefully",
    }


def test_plan_collaboration_parses_reply():
    plan = {"collaborationPlan": {"strategy": "Pair trade"}, "agentRoles": {"1": "lead"}}
    llm = StubLLM(json.dumps(plan))
    result = plan_collaboration(llm, [{"id": 1}, {"id": 2}], [], "hedging", "Reduce beta")

    assert result == plan
    assert llm.calls[0]["temperature"] == 0.7
    assert llm.calls[0]["max_tokens"] == 2000


def test_plan_collaboration_fallback_template():
    result = plan_collaboration(StubLLM("I think they should talk."), [{"id": 1}, {"id": 2}], [], "x", "")
    assert result == fallback_collaboration_plan()
    assert result["collaborationPlan"]["timeline"] == "Ongoing with weekly reviews"
    assert result["communicationProtocol"]["triggers"] == ["Market volatility > 2%", "Position conflicts"]
