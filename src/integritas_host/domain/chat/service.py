"""Chat turn orchestration.

One call to `ChatService.handle_turn` runs a full turn:
1. Validate and normalize the conversation
2. Pick the provider handler (allowlist, credentials)
3. Build the live tool catalog and scope it to the user's intent
4. Answer docs questions from MCP resources with tools disabled
5. Short-circuit unambiguous stamp/verify requests without a model call
6. Otherwise run the bounded tool-calling loop and finalize its output

LLM transport failures become a friendly answer; everything else propagates.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from integritas_host.config import Settings, get_settings
from integritas_host.domain.chat.catalog import build_tool_catalog
from integritas_host.domain.chat.finalizer import (
    DEFAULT_TEXT,
    attach_ids,
    collect_links,
    finalize_text,
    synthesize_message,
)
from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
from integritas_host.domain.chat.llm_errors import classify_llm_error, friendly_llm_message
from integritas_host.domain.chat.resources import (
    fetch_resource_texts,
    render_resource_context,
    select_resource_uris,
)
from integritas_host.domain.chat.scoping import classify_and_scope, find_hash_token, has_stamp_intent
from integritas_host.domain.chat.tool_caller import ToolCaller
from integritas_host.domain.chat.types import (
    DIAGNOSTIC_TOOLS,
    STAMP_TOOL,
    VERIFY_TOOL,
    ChatHandler,
    ChatMessage,
    RunOptions,
    ToolCatalogItem,
    ToolStep,
    latest_user_text,
    normalize_messages,
)
from integritas_host.infrastructure.ai.prompts import (
    ComposeOptions,
    DocsAnswerPromptV1,
    compose_system_prompt,
)
from integritas_host.mcp.client import ToolServer
from integritas_host.observability.metrics import CHAT_TURNS, LLM_ERRORS
from integritas_host.shared.exceptions import (
    IntegritasHostError,
    ToolCallRefusedError,
    ValidationError,
)
from integritas_host.shared.logging import get_logger

logger = get_logger(__name__)

BASE_INSTRUCTIONS = "Be precise, neutral, and terse."
USER_GOAL_CHARS = 240
RUNTIME_HINTS = [
    f"If {VERIFY_TOOL} reports no match, do not claim existence.",
    "Normalize hashes to lowercase hex.",
]

HandlerFactory = Callable[[LLMChoice | None, Settings], ChatHandler]


@dataclass
class ChatTurnRequest:
    """Input of one chat turn."""

    messages: list[Any]
    tool_args: dict[str, dict[str, Any]] = field(default_factory=dict)
    llm: LLMChoice | None = None
    api_key: str | None = None


@dataclass
class ChatTurnResult:
    """Output of one chat turn."""

    final_text: str
    tool_steps: list[ToolStep] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    sources: list[str] | None = None


def _explicit_req(tool_args: dict[str, Any], name: str) -> dict[str, Any] | None:
    args = tool_args.get(name)
    if not isinstance(args, dict):
        return None
    req = args.get("req")
    return req if isinstance(req, dict) else None


def force_scope(
    scoped: list[ToolCatalogItem],
    catalog: list[ToolCatalogItem],
    tool_args: dict[str, Any],
) -> list[ToolCatalogItem]:
    """Add catalog tools the caller supplied explicit arguments for."""
    out = list(scoped)
    names = {tool.name for tool in out}
    for tool in catalog:
        if tool.name in tool_args and tool.name not in names and tool.name not in DIAGNOSTIC_TOOLS:
            out.append(tool)
            names.add(tool.name)
    return out


class ChatService:
    """Runs chat turns against a shared tool server.

    Args:
        tool_server: Connected tool server, shared across turns
        settings: Application settings (defaults to the cached settings)
        handler_factory: Builds the provider handler for a turn
    """

    def __init__(
        self,
        tool_server: ToolServer,
        settings: Settings | None = None,
        handler_factory: HandlerFactory = choose_handler,
    ):
        self.tool_server = tool_server
        self.settings = settings or get_settings()
        self.handler_factory = handler_factory

    async def handle_turn(self, request: ChatTurnRequest) -> ChatTurnResult:
        if not request.messages:
            raise ValidationError("messages[] required")

        messages = normalize_messages(request.messages)
        tool_args = request.tool_args or {}
        handler = self.handler_factory(request.llm, self.settings)

        tool_caller = ToolCaller(
            self.tool_server,
            api_key=request.api_key,
            tool_args=tool_args,
            timeout_seconds=self.settings.tool_call_timeout_seconds,
        )

        try:
            return await self._run_turn(handler, messages, tool_args, tool_caller)
        except Exception as exc:
            if exc is tool_caller.last_error or isinstance(exc, IntegritasHostError):
                raise
            info = classify_llm_error(exc)
            if not info.is_llm_transport:
                raise
            LLM_ERRORS.labels(provider=handler.provider, reason=info.reason or "unknown").inc()
            logger.warning(
                "llm_transport_error",
                provider=handler.provider,
                reason=info.reason,
                status=info.status,
                retry_after=info.retry_after,
                error=info.message,
            )
            CHAT_TURNS.labels(path="llm_error").inc()
            return ChatTurnResult(final_text=friendly_llm_message(info))

    async def _run_turn(
        self,
        handler: ChatHandler,
        messages: list[ChatMessage],
        tool_args: dict[str, Any],
        tool_caller: ToolCaller,
    ) -> ChatTurnResult:
        catalog = await build_tool_catalog(self.tool_server)
        user_text = latest_user_text(messages)

        # Explicit caller arguments are unambiguous, whatever the wording.
        for name in (VERIFY_TOOL, STAMP_TOOL):
            if _explicit_req(tool_args, name) is not None:
                return await self._direct_call(tool_caller, name, {}, path=f"{name}_args")

        decision = classify_and_scope(user_text, catalog)
        if decision.is_docs_intent:
            return await self._answer_docs(handler, messages, user_text)

        token = find_hash_token(user_text)
        if token and has_stamp_intent(user_text):
            return await self._direct_call(
                tool_caller, STAMP_TOOL, {"req": {"file_hash": token}}, path="stamp_hash"
            )

        scoped = force_scope(decision.scoped_tools, catalog, tool_args)
        system_prompt = compose_system_prompt(
            BASE_INSTRUCTIONS,
            ComposeOptions(
                tools_in_scope=scoped,
                user_goal=user_text[:USER_GOAL_CHARS],
                require_json=self.settings.llm_json_mode,
                runtime_hints=RUNTIME_HINTS,
            ),
        )

        logger.info(
            "chat_model_run",
            provider=handler.provider,
            model=handler.model,
            tools=[tool.name for tool in scoped],
        )
        result = await handler.run(
            messages,
            RunOptions(
                tools=scoped,
                call_tool=tool_caller.call_tool,
                system_prompt=system_prompt,
                max_tool_rounds=self.settings.max_tool_rounds,
                response_as_json=self.settings.llm_json_mode,
            ),
        )

        steps = tool_caller.steps
        attach_ids(steps)
        final_text = finalize_text(result.text, steps)
        CHAT_TURNS.labels(path="model").inc()
        logger.info("chat_complete", steps=[step.to_dict() for step in steps])
        return ChatTurnResult(final_text=final_text, tool_steps=steps, links=collect_links(steps))

    async def _answer_docs(
        self,
        handler: ChatHandler,
        messages: list[ChatMessage],
        user_text: str,
    ) -> ChatTurnResult:
        listing = await self.tool_server.list_resources() or {}
        uris = select_resource_uris(user_text, listing.get("resources") or [])
        texts = await fetch_resource_texts(self.tool_server, uris)
        system_prompt = DocsAnswerPromptV1().render_system(render_resource_context(texts))

        async def refuse_tool(name: str, args: dict[str, Any]) -> Any:
            raise ToolCallRefusedError(name)

        result = await handler.run(
            messages,
            RunOptions(
                tools=[],
                call_tool=refuse_tool,
                system_prompt=system_prompt,
                max_tool_rounds=0,
            ),
        )
        CHAT_TURNS.labels(path="docs").inc()
        logger.info("chat_docs_answer", sources=uris)
        return ChatTurnResult(final_text=result.text or DEFAULT_TEXT, sources=uris)

    async def _direct_call(
        self,
        tool_caller: ToolCaller,
        name: str,
        args: dict[str, Any],
        *,
        path: str,
    ) -> ChatTurnResult:
        await tool_caller.call_tool(name, args)
        steps = tool_caller.steps
        attach_ids(steps)
        CHAT_TURNS.labels(path=path).inc()
        logger.info("chat_direct_tool_call", tool=name)
        return ChatTurnResult(
            final_text=synthesize_message(steps[-1]),
            tool_steps=steps,
            links=collect_links(steps),
        )
