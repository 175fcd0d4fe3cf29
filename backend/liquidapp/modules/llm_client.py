"""OpenAI-compatible chat-completions transport shared by the vision analysis
and the pre-report generator.

The provider is reached over plain HTTP (httpx) so any compatible endpoint
(Groq, OpenAI, a local gateway) can be configured via VISION_API_BASE_URL.
Calls are never retried here: a failed analysis is re-dispatched by the
client, and a retry loop would push the request past the hosting budget.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from liquidapp.config import settings
from liquidapp.errors import ConfigurationError, ExternalCallError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    content: str
    model: str
    total_tokens: int | None = None


def _headers(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}


def require_api_key(api_key: str | None = None) -> str:
    """Return the configured provider key or fail before any request is made."""
    key = api_key or settings.VISION_API_KEY
    if not key:
        raise ConfigurationError("VISION_API_KEY no configurada")
    return key


def chat_completion(
    messages: list[dict[str, Any]],
    *,
    model: str,
    max_tokens: int,
    api_key: str | None = None,
    base_url: str | None = None,
    timeout: float | None = None,
    response_format: dict[str, str] | None = None,
    http_client: httpx.Client | None = None,
) -> Completion:
    """POST one chat-completion request and return the first choice's text.

    Raises:
        ConfigurationError: no API key configured.
        ExternalCallError: network failure, timeout, non-2xx status, or a
            response body without a first choice.
    """
    key = require_api_key(api_key)
    url = f"{(base_url or settings.VISION_API_BASE_URL).rstrip('/')}/chat/completions"
    body: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
    }
    if response_format is not None:
        body["response_format"] = response_format

    client = http_client or httpx.Client(timeout=timeout or settings.VISION_TIMEOUT_SECONDS)
    try:
        resp = client.post(url, json=body, headers=_headers(key))
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPStatusError as exc:
        logger.error(
            "Model provider returned HTTP %d for model %s: %s",
            exc.response.status_code, model, exc.response.text[:500],
        )
        raise ExternalCallError(
            f"El proveedor de IA respondió {exc.response.status_code}"
        ) from exc
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Model provider call failed for model %s: %s", model, exc)
        raise ExternalCallError(f"Error llamando al proveedor de IA: {exc}") from exc
    finally:
        if http_client is None:
            client.close()

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ExternalCallError("Respuesta inesperada del proveedor de IA") from exc

    usage = data.get("usage") or {}
    return Completion(
        content=content or "",
        model=model,
        total_tokens=usage.get("total_tokens"),
    )
