from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from .prompts import render_system_prompt

logger = structlog.get_logger(__name__)


class UpstreamError(Exception):
    pass


class UpstreamAI(Protocol):
    def complete(self, message: str, system_prompt_context: dict[str, Any]) -> str: ...


def _provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


def _coerce_anthropic_text(response_json: dict[str, Any]) -> str:
    content = response_json.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") != "text":
            continue
        text_value = item.get("text")
        if isinstance(text_value, str) and text_value.strip():
            parts.append(text_value.strip())
    return "\n".join(parts).strip()


class AnthropicClinicalClient:
    """Anthropic Messages API client used for the upstream completion."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://api.anthropic.com/v1",
        api_version: str = "2023-06-01",
        timeout_seconds: float = 25.0,
        max_tokens: int = 1500,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self._transport = transport

    def complete(self, message: str, system_prompt_context: dict[str, Any]) -> str:
        if not self.api_key:
            raise UpstreamError("Anthropic API key not configured")
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": 0.3,
            "system": render_system_prompt(system_prompt_context),
            "messages": [{"role": "user", "content": message.strip()[:4000]}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }
        with httpx.Client(
            timeout=httpx.Timeout(self.timeout_seconds, connect=8.0),
            transport=self._transport,
        ) as client:
            response = client.post(f"{self.base_url}/messages", headers=headers, json=payload)
        if response.status_code >= 400:
            raise UpstreamError(f"Anthropic API error {response.status_code}: {_provider_error_message(response)}")
        text = _coerce_anthropic_text(response.json())
        if not text:
            raise UpstreamError("Anthropic API returned an empty completion")
        logger.info("upstream_completion_received", model=self.model, chars=len(text))
        return text
