"""Application settings — loaded from environment variables."""

from __future__ import annotations

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Server ──────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = True

    # ── CORS (builder frontend) ────────────────────────────────
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # ── LLM connector (OpenAI-compatible endpoint) ─────────────
    LLM_BASE_URL: str = "https://api.openai.com/v1"
    LLM_API_KEY: str | None = None
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_DEFAULT_MODEL: str = "gpt-4o"

    # Extra headers injected on every LLM HTTP call (JSON dict).
    # Example: LLM_GATEWAY_HEADERS='{"X-Tenant-ID": "acme"}'
    LLM_GATEWAY_HEADERS: str | None = None

    # Consecutive failures before the LLM circuit opens, and how long it stays open.
    LLM_CIRCUIT_THRESHOLD: int = 5
    LLM_CIRCUIT_RESET_SECONDS: float = 300.0

    # ── Ollama (local models) ──────────────────────────────────
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_DEFAULT_MODEL: str = "llama2"

    # ── Hugging Face inference API ─────────────────────────────
    HUGGINGFACE_API_URL: str = "https://api-inference.huggingface.co/models"
    HUGGINGFACE_API_KEY: str | None = None
    HUGGINGFACE_DEFAULT_MODEL: str = "microsoft/DialoGPT-medium"

    # ── Flow execution ─────────────────────────────────────────
    # Timeout for outbound calls made by api-call nodes.
    API_CALL_TIMEOUT_SECONDS: float = 30.0
    # Wall-clock bound for a whole run (0 disables the bound).
    RUN_TIMEOUT_SECONDS: float = 120.0
    # Upper bound on sibling nodes executing at the same time within a run.
    MAX_CONCURRENT_NODES: int = 8

    # ── Logging ────────────────────────────────────────────────
    LOG_FORMAT: str = "text"  # text | json
    LOG_LEVEL: str = "INFO"

    # ── OpenTelemetry ──────────────────────────────────────────
    # Base OTLP HTTP collector endpoint, e.g. http://localhost:4318
    OTLP_ENDPOINT: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.MAX_CONCURRENT_NODES < 1:
            raise ValueError("MAX_CONCURRENT_NODES must be >= 1")
        if self.RUN_TIMEOUT_SECONDS < 0:
            raise ValueError("RUN_TIMEOUT_SECONDS must be >= 0")
        return self


settings = Settings()
