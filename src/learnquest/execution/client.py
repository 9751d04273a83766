"""Piston code-execution API client.

Runtimes are cached in Redis so every API instance shares one copy and the
upstream list is fetched at most once per TTL.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from learnquest.errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

RUNTIMES_CACHE_KEY = "execution:runtimes"
COMPILE_TIMEOUT_MS = 10_000
RUN_TIMEOUT_MS = 5_000


class PistonClient:
    """Thin async wrapper over the Piston v2 REST API."""

    def __init__(
        self,
        base_url: str,
        redis: object = None,
        cache_ttl_seconds: int = 3600,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.redis = redis
        self.cache_ttl_seconds = cache_ttl_seconds
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def runtimes(self) -> list[dict[str, Any]]:
        """Supported runtimes, from the shared cache when fresh."""
        if self.redis is not None:
            try:
                cached = await self.redis.get(RUNTIMES_CACHE_KEY)  # type: ignore[attr-defined]
            except Exception:
                logger.warning("Runtime cache read failed", exc_info=True)
                cached = None
            if cached:
                return json.loads(cached)

        try:
            async with self._client() as client:
                response = await client.get("/runtimes")
                response.raise_for_status()
                runtimes: list[dict[str, Any]] = response.json()
        except httpx.HTTPError as exc:
            msg = f"Failed to fetch supported languages: {exc}"
            raise UpstreamError(msg) from exc

        if self.redis is not None:
            try:
                await self.redis.setex(  # type: ignore[attr-defined]
                    RUNTIMES_CACHE_KEY, self.cache_ttl_seconds, json.dumps(runtimes)
                )
            except Exception:
                logger.warning("Runtime cache write failed", exc_info=True)
        return runtimes

    async def resolve_runtime(self, language: str) -> dict[str, Any]:
        """Find a runtime by language name or alias."""
        for runtime in await self.runtimes():
            if runtime.get("language") == language or language in runtime.get("aliases", []):
                return runtime
        msg = f"Language '{language}' is not supported"
        raise ValidationError(msg)

    async def execute(
        self,
        language: str,
        code: str,
        stdin: str = "",
        args: list[str] | None = None,
    ) -> dict[str, Any]:
        """Run ``code`` on the latest runtime for ``language``."""
        runtime = await self.resolve_runtime(language)
        payload = {
            "language": runtime["language"],
            "version": runtime["version"],
            "files": [{"content": code}],
            "stdin": stdin,
            "args": args or [],
            "compile_timeout": COMPILE_TIMEOUT_MS,
            "run_timeout": RUN_TIMEOUT_MS,
        }
        try:
            async with self._client() as client:
                response = await client.post("/execute", json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Failed to execute code: {exc.response.status_code} - {exc.response.text}"
            raise UpstreamError(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"Failed to execute code: {exc}"
            raise UpstreamError(msg) from exc
