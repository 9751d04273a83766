"""Code-execution proxy endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from learnquest.config import Settings, get_settings
from learnquest.execution.client import PistonClient
from learnquest.execution.rate_limit import ExecutionRateLimiter
from learnquest.execution.schemas import ExecuteRequest, ExecuteResponse, RuntimeEntry, RuntimesResponse
from learnquest.redis_client import get_redis_or_none

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/code-execution", tags=["Code Execution"])


def get_piston_client(
    settings: Settings = Depends(get_settings),
    redis: object = Depends(get_redis_or_none),
) -> PistonClient:
    return PistonClient(
        settings.piston_base_url,
        redis=redis,
        cache_ttl_seconds=settings.runtimes_cache_ttl_seconds,
        timeout=settings.piston_timeout_seconds,
    )


async def enforce_execution_limit(caller: str, settings: Settings, redis: object) -> None:
    """Per-client execution budget, shared by all instances through Redis."""
    if redis is None:
        return
    limiter = ExecutionRateLimiter(
        redis,
        limit=settings.code_execution_rate_limit,
        window_seconds=settings.code_execution_window_seconds,
    )
    decision = await limiter.hit(caller)
    if not decision.allowed:
        logger.info("code_execution_rate_limited", caller=caller)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many execution requests. Try again later.",
            headers={"Retry-After": str(decision.retry_after)},
        )


@router.get("/runtimes", response_model=RuntimesResponse)
async def list_runtimes(client: PistonClient = Depends(get_piston_client)):
    """Languages and versions the execution backend supports."""
    runtimes = await client.runtimes()
    return RuntimesResponse(
        runtimes=[
            RuntimeEntry(language=r["language"], version=r["version"], aliases=r.get("aliases", []))
            for r in runtimes
        ],
    )


@router.post("", response_model=ExecuteResponse)
async def execute_code(
    body: ExecuteRequest,
    request: Request,
    client: PistonClient = Depends(get_piston_client),
    settings: Settings = Depends(get_settings),
):
    """Run a snippet and return its compile/run output."""
    caller = request.client.host if request.client else "unknown"
    await enforce_execution_limit(caller, settings, client.redis)
    result = await client.execute(body.language, body.code, stdin=body.input, args=body.args)
    return ExecuteResponse(
        language=result.get("language", body.language),
        version=result.get("version", ""),
        run=result.get("run", {}),
        compile=result.get("compile"),
    )
