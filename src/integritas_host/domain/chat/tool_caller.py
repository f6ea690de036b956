"""Tool caller for chat turns.

This module executes MCP tool calls requested by the model (or by the
deterministic fallbacks). It assembles the final arguments, injects the
caller's credential for primary tools, enforces a per-call timeout that
progress notifications keep alive, and records a redacted trace entry per
invocation.
"""

import asyncio
import copy
import re
import time
from typing import Any

from mcp.shared.exceptions import McpError

from integritas_host.domain.chat.types import (
    CREDENTIAL_FIELD,
    PRIMARY_TOOLS,
    ToolStep,
    summarize_tool_result,
)
from integritas_host.mcp.client import ToolServer
from integritas_host.observability.metrics import TOOL_CALLS
from integritas_host.shared.exceptions import ToolTimeoutError
from integritas_host.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOOL_TIMEOUT_SECONDS = 120.0

REDACTED = "<redacted>"
PROVIDED = "<provided>"

# -32001 is the MCP request-timeout code; 408 is used by the Python SDK.
TIMEOUT_ERROR_CODES = frozenset({-32001, 408})
TIMEOUT_MESSAGE = re.compile(r"(request )?timed out", re.IGNORECASE)
WAITED_SECONDS = re.compile(r"waited\s+(\d+(?:\.\d+)?)\s*(?:seconds|s)\b", re.IGNORECASE)


def deep_merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    """Merge ``extra`` over ``base``.

    Leaves from ``extra`` win; when both sides hold a dict for the same key
    the merge recurses. Neither input is modified.
    """
    out = copy.deepcopy(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def redact_args(args: dict[str, Any]) -> dict[str, Any]:
    """Copy of tool arguments safe for logs and traces."""
    safe = copy.deepcopy(args)
    req = safe.get("req")
    if isinstance(req, dict):
        if req.get(CREDENTIAL_FIELD):
            req[CREDENTIAL_FIELD] = REDACTED
        if req.get("file_url"):
            req["file_url"] = PROVIDED
    if safe.get(CREDENTIAL_FIELD):
        safe[CREDENTIAL_FIELD] = REDACTED
    return safe


def is_timeout_error(exc: BaseException) -> bool:
    """Timeout signalled by our own watchdog or by the MCP session."""
    if isinstance(exc, ToolTimeoutError):
        return True
    if isinstance(exc, McpError):
        if exc.error.code in TIMEOUT_ERROR_CODES:
            return True
        return bool(TIMEOUT_MESSAGE.search(exc.error.message or ""))
    code = getattr(exc, "code", None)
    if code in TIMEOUT_ERROR_CODES:
        return True
    return bool(TIMEOUT_MESSAGE.search(str(exc)))


def timeout_seconds_of(exc: BaseException, default: float) -> float:
    """Timeout that actually elapsed, as reported by the error when it says so."""
    seconds = getattr(exc, "timeout_seconds", None)
    if isinstance(seconds, (int, float)) and seconds > 0:
        return float(seconds)
    message = exc.error.message if isinstance(exc, McpError) else str(exc)
    match = WAITED_SECONDS.search(message or "")
    return float(match.group(1)) if match else default


def timeout_result(name: str, timeout_seconds: float) -> dict[str, Any]:
    """Synthesized tool result returned instead of raising on a timeout."""
    summary = f'The "{name}" tool timed out after {round(timeout_seconds)}s.'
    return {
        "isError": True,
        "summary": summary,
        "structuredContent": {"summary": summary},
        "error": {"code": -32001, "timeout_ms": int(timeout_seconds * 1000)},
    }


class ToolCaller:
    """Executes MCP tools for one chat turn and keeps its trace.

    Args:
        tool_server: Connected tool server (shared across turns)
        api_key: Caller credential injected into primary tools, if any
        tool_args: Caller-supplied default arguments keyed by tool name
        timeout_seconds: Per-call bound, reset by progress notifications
    """

    def __init__(
        self,
        tool_server: ToolServer,
        *,
        api_key: str | None = None,
        tool_args: dict[str, dict[str, Any]] | None = None,
        timeout_seconds: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
    ):
        self.tool_server = tool_server
        self.api_key = api_key
        self.tool_args = tool_args or {}
        self.timeout_seconds = timeout_seconds
        self.steps: list[ToolStep] = []
        self.last_error: BaseException | None = None

    def build_arguments(self, name: str, args: dict[str, Any] | None) -> dict[str, Any]:
        """Merge defaults under model args and apply the ``req`` invariants."""
        defaults = self.tool_args.get(name)
        if not isinstance(defaults, dict):
            defaults = {}
        merged = deep_merge(defaults, args or {})

        req = merged.get("req")
        if not isinstance(req, dict):
            req = {}
            merged["req"] = req

        if req.get("file_url"):
            req.pop("file_path", None)

        if self.api_key and name in PRIMARY_TOOLS and req.get(CREDENTIAL_FIELD) is None:
            req[CREDENTIAL_FIELD] = self.api_key

        return merged

    async def call_tool(self, name: str, args: dict[str, Any] | None = None) -> Any:
        """Execute one tool call and append its trace entry.

        Returns:
            The tool result, or a synthesized "timed out" result.

        Raises:
            Exception: Any non-timeout tool server failure (after tracing it).
        """
        merged = self.build_arguments(name, args)
        safe_args = redact_args(merged)
        logger.info("tool_call_started", tool=name, sending=safe_args)

        started = time.monotonic()
        try:
            out = await self._call_with_timeout(name, merged)
        except Exception as exc:
            ms = int((time.monotonic() - started) * 1000)
            error_text = str(exc) or type(exc).__name__

            if is_timeout_error(exc):
                effective = timeout_seconds_of(exc, self.timeout_seconds)
                friendly = timeout_result(name, effective)
                self.steps.append(
                    ToolStep(
                        name=name,
                        args=safe_args,
                        ok=False,
                        ms=ms,
                        result=summarize_tool_result(friendly),
                        error=error_text,
                        output=friendly,
                    )
                )
                TOOL_CALLS.labels(tool=name, outcome="timeout").inc()
                logger.warning("tool_call_timeout", tool=name, ms=ms, error=error_text)
                return friendly

            self.steps.append(ToolStep(name=name, args=safe_args, ok=False, ms=ms, error=error_text))
            self.last_error = exc
            TOOL_CALLS.labels(tool=name, outcome="error").inc()
            logger.error("tool_call_failed", tool=name, ms=ms, error=error_text)
            raise

        ms = int((time.monotonic() - started) * 1000)
        self.steps.append(
            ToolStep(
                name=name,
                args=safe_args,
                ok=True,
                ms=ms,
                result=summarize_tool_result(out),
                output=out,
            )
        )
        TOOL_CALLS.labels(tool=name, outcome="ok").inc()
        logger.info("tool_call_completed", tool=name, ms=ms)
        return out

    async def _call_with_timeout(self, name: str, arguments: dict[str, Any]) -> Any:
        loop = asyncio.get_running_loop()
        last_activity = loop.time()

        async def on_progress(progress: float, total: float | None, message: str | None) -> None:
            nonlocal last_activity
            last_activity = loop.time()
            logger.debug("tool_call_progress", tool=name, progress=progress, total=total)

        task = asyncio.ensure_future(
            self.tool_server.call_tool(name, arguments, progress_callback=on_progress)
        )
        try:
            while True:
                remaining = last_activity + self.timeout_seconds - loop.time()
                if remaining <= 0:
                    raise ToolTimeoutError(name, self.timeout_seconds)
                done, _ = await asyncio.wait({task}, timeout=remaining)
                if task in done:
                    return task.result()
        finally:
            if not task.done():
                task.cancel()
