"""Outbound HTTP client used by api-call nodes."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agentflow.config import settings

logger = logging.getLogger("agentflow.connectors.api")

_BODYLESS_METHODS = {"GET", "HEAD"}


class ApiCallError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ApiClient:
    """Issues one request per api-call node execution.

    The response body is returned as parsed JSON when the server says it is
    JSON, otherwise as text.  Any non-2xx status raises :class:`ApiCallError`.
    """

    def __init__(self, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout if timeout is not None else settings.API_CALL_TIMEOUT_SECONDS
        self._transport = transport

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
        correlation: dict[str, str] | None = None,
    ) -> Any:
        method = method.upper()
        merged_headers = {"Content-Type": "application/json"}
        merged_headers.update(headers or {})
        merged_headers.update(correlation or {})

        kwargs: dict[str, Any] = {"headers": merged_headers}
        if method not in _BODYLESS_METHODS and body is not None:
            if isinstance(body, (dict, list)):
                kwargs["json"] = body
            else:
                kwargs["content"] = str(body).encode("utf-8")

        logger.info("API call: %s %s", method, url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(method, url, **kwargs)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ApiCallError(
                f"{method} {url} returned HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.TimeoutException as exc:
            raise ApiCallError(f"{method} {url} timed out") from exc
        except httpx.RequestError as exc:
            raise ApiCallError(f"{method} {url} failed: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise ApiCallError(f"Invalid URL {url!r}: {exc}") from exc

        if method == "HEAD" or not resp.content:
            return ""
        if "json" in resp.headers.get("content-type", ""):
            try:
                return resp.json()
            except ValueError:
                return resp.text
        return resp.text
