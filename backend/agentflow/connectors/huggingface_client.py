"""Hugging Face Inference API connector (text-generation task)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agentflow.config import settings
from agentflow.connectors.llm_client import LLMCallError
from agentflow.connectors.providers import GenerationRequest

logger = logging.getLogger("agentflow.connectors.huggingface")


class HuggingFaceClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.HUGGINGFACE_API_URL).rstrip("/")
        self.api_key = api_key or settings.HUGGINGFACE_API_KEY
        self.timeout = settings.LLM_TIMEOUT_SECONDS
        self._transport = transport

    async def generate(self, request: GenerationRequest) -> str:
        if not self.api_key:
            raise LLMCallError("HUGGINGFACE_API_KEY is not configured")

        prompt = request.prompt
        if request.system_prompt:
            prompt = f"{request.system_prompt}\n\n{prompt}"
        parameters: dict[str, Any] = {"temperature": request.temperature, "return_full_text": False}
        if request.max_tokens is not None:
            parameters["max_new_tokens"] = request.max_tokens

        url = f"{self.base_url}/{request.model}"
        logger.info("HuggingFace call: model=%s", request.model)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
                transport=self._transport,
            ) as client:
                resp = await client.post(url, json={"inputs": prompt, "parameters": parameters})
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise LLMCallError(f"HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            raise LLMCallError(str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise LLMCallError(f"Invalid Hugging Face response: {exc}") from exc

        # The inference API answers with [{"generated_text": ...}] or a bare dict.
        if isinstance(data, list) and data and isinstance(data[0], dict):
            data = data[0]
        if isinstance(data, dict) and "generated_text" in data:
            return data["generated_text"] or ""
        if isinstance(data, dict) and data.get("error"):
            raise LLMCallError(str(data["error"]))
        raise LLMCallError("Hugging Face response missing generated_text")
