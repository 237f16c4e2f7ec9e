"""Ollama connector — local models via ``POST {base_url}/api/chat``."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agentflow.config import settings
from agentflow.connectors.llm_client import LLMCallError
from agentflow.connectors.providers import GenerationRequest

logger = logging.getLogger("agentflow.connectors.ollama")


class OllamaClient:
    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = settings.LLM_TIMEOUT_SECONDS
        self._transport = transport

    async def generate(self, request: GenerationRequest) -> str:
        base_url = (request.endpoint or self.base_url).rstrip("/")
        messages: list[dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        options: dict[str, Any] = {"temperature": request.temperature}
        if request.max_tokens is not None:
            options["num_predict"] = request.max_tokens
        body = {"model": request.model, "messages": messages, "stream": False, "options": options}

        logger.info("Ollama call: model=%s url=%s", request.model, base_url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(f"{base_url}/api/chat", json=body)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise LLMCallError(f"HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            raise LLMCallError(str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise LLMCallError(f"Invalid Ollama response: {exc}") from exc

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise LLMCallError("Ollama response missing message")
        return message.get("content") or ""
