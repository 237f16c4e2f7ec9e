"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from agentflow.config import settings

# Routers
from agentflow.api.agents import router as agents_router
from agentflow.api.flows import router as flows_router

from agentflow.utils.logger import setup_logger
from agentflow.utils.tracing import setup_tracing

logger = setup_logger(log_format=settings.LOG_FORMAT, log_level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "AgentFlow engine starting — max %d concurrent nodes, run timeout %ss",
        settings.MAX_CONCURRENT_NODES,
        settings.RUN_TIMEOUT_SECONDS,
    )
    yield
    logger.info("AgentFlow engine shutting down")


app = FastAPI(
    title="AgentFlow",
    description="Flow graph execution engine for drag-and-drop AI agents",
    version="0.1.0",
    lifespan=lifespan,
)

# Initialize OpenTelemetry setup (if endpoint is provided in config)
setup_tracing(app, settings.OTLP_ENDPOINT)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(agents_router, prefix="/api/agent", tags=["agents"])
app.include_router(flows_router, prefix="/api/flows", tags=["flows"])


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/metrics", response_class=PlainTextResponse, tags=["observability"])
async def prometheus_metrics():
    """Prometheus-compatible text exposition of in-process metrics."""
    from agentflow.utils.metrics import to_prometheus_text

    return to_prometheus_text()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("agentflow.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
