"""Text-generation provider contract and registry.

Executors never talk to a vendor API directly: they build a
:class:`GenerationRequest` and hand it to whichever provider the registry
returns for the node's ``provider`` name.  Tests register stub providers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class GenerationRequest:
    model: str
    prompt: str
    system_prompt: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None
    endpoint: str | None = None  # per-node base URL override (ollama)


@runtime_checkable
class TextGenerationProvider(Protocol):
    async def generate(self, request: GenerationRequest) -> str: ...


class ProviderRegistry:
    """Maps provider names (openai, ollama, huggingface) to provider instances."""

    def __init__(self, providers: dict[str, TextGenerationProvider] | None = None):
        self._providers: dict[str, TextGenerationProvider] = dict(providers or {})

    def register(self, name: str, provider: TextGenerationProvider) -> None:
        self._providers[name] = provider

    def get(self, name: str) -> TextGenerationProvider | None:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return sorted(self._providers)


def build_default_registry() -> ProviderRegistry:
    """Registry wired to the real HTTP clients, configured from settings."""
    from agentflow.connectors.huggingface_client import HuggingFaceClient
    from agentflow.connectors.llm_client import LLMClient
    from agentflow.connectors.ollama_client import OllamaClient

    return ProviderRegistry({
        "openai": LLMClient(),
        "ollama": OllamaClient(),
        "huggingface": HuggingFaceClient(),
    })
