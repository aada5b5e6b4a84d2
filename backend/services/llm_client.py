"""
Language-model client.
Thin wrapper over an OpenAI-compatible chat-completions endpoint (Groq by default).
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from config.settings import get_settings

logger = logging.getLogger(__name__)

_FENCE_PREFIX = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_SUFFIX = re.compile(r"\s*```$")


class LLMError(RuntimeError):
    """Raised when the language-model call itself fails."""
    pass


class LLMClient:
    """Prompt in, free text out."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        settings = get_settings()
        self.api_key = (api_key if api_key is not None else settings.llm_api_key) or ""
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.model = model or settings.llm_model
        self.timeout_seconds = float(timeout_seconds or settings.llm_timeout_seconds)
        self._http = http_client

    def generate_text(self, prompt: str, temperature: float = 0.7, max_tokens: int = 1500) -> str:
        """Send a single-turn prompt and return the model's text."""
        if not self.api_key:
            raise LLMError("Language-model API key is not configured (GROQ_API_KEY)")

        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self._http is not None:
                response = self._http.post(url, json=payload, headers=headers, timeout=self.timeout_seconds)
            else:
                response = httpx.post(url, json=payload, headers=headers, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            raise LLMError(f"Language-model request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 280:
                detail = detail[:280]
            raise LLMError(f"Language-model call failed ({response.status_code}): {detail}")

        try:
            body = response.json()
            text = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMError(f"Unexpected language-model response shape: {exc}") from exc

        logger.debug("Language-model response: model=%s chars=%d", self.model, len(text or ""))
        return text or ""


def parse_model_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse a model reply as a JSON object, tolerating ```json fences.

    Returns:
        The parsed dict, or None when the reply is not a JSON object
    """
    cleaned = _FENCE_SUFFIX.sub("", _FENCE_PREFIX.sub("", (text or "").strip()))
    try:
        parsed = json.loads(cleaned)
    except (ValueError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Process-wide client built from settings."""
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
