"""Health, readiness and tool-server diagnostic endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from integritas_host import __version__
from integritas_host.api.deps import get_tool_server
from integritas_host.api.ratelimit import RATE_LIMIT_HEALTH, limiter
from integritas_host.mcp.client import ToolServer
from integritas_host.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ReadyResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    checks: dict[str, bool]
    tools: list[str] = []


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check - always returns OK if service is running."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/ready", response_model=ReadyResponse)
@limiter.limit(RATE_LIMIT_HEALTH)
async def readiness_check(
    request: Request,
    tool_server: ToolServer = Depends(get_tool_server),
) -> ReadyResponse:
    """Readiness check - verifies the tool server answers a tool listing."""
    try:
        listing = await tool_server.list_tools()
    except Exception as e:
        logger.warning("tool_server_check_failed", error=str(e))
        return ReadyResponse(ready=False, checks={"tool_server": False})

    names = [str(tool.get("name")) for tool in listing.get("tools") or []]
    return ReadyResponse(ready=True, checks={"tool_server": True}, tools=names)


@router.get("/_tools")
@limiter.limit(RATE_LIMIT_HEALTH)
async def list_tools(
    request: Request,
    tool_server: ToolServer = Depends(get_tool_server),
) -> dict[str, Any]:
    """Raw tool list from the tool server."""
    return await tool_server.list_tools()


@router.get("/_tool/health")
@limiter.limit(RATE_LIMIT_HEALTH)
async def tool_health(
    request: Request,
    tool_server: ToolServer = Depends(get_tool_server),
) -> dict[str, Any]:
    """Invoke the tool server's diagnostic ``health`` tool."""
    result = await tool_server.call_tool("health", {})
    return {"ok": not bool(result.get("isError")), "result": result}
