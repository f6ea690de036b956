"""Host system prompt v1 - grounding on primary tool results."""

import json
from dataclasses import dataclass, field
from typing import Any

from integritas_host.domain.chat.types import (
    CHAIN_NAME,
    DIAGNOSTIC_TOOLS,
    PRIMARY_TOOLS,
    ToolCatalogItem,
)


@dataclass
class PromptVersion:
    """Prompt version metadata."""

    version: str
    name: str
    description: str


@dataclass
class ComposeOptions:
    """Inputs for one composed system prompt."""

    tools_in_scope: list[ToolCatalogItem] = field(default_factory=list)
    user_goal: str | None = None
    output_contract: str | None = None
    runtime_hints: list[str] = field(default_factory=list)
    chain_name: str = CHAIN_NAME
    require_json: bool = False
    primary_tools: list[str] = field(default_factory=lambda: sorted(PRIMARY_TOOLS))
    diagnostic_tools: list[str] = field(default_factory=lambda: sorted(DIAGNOSTIC_TOOLS))
    schema_max_chars: int = 800


def schema_preview(schema: Any, max_chars: int = 800) -> str:
    """Compact JSON of a tool schema, truncated with a trailing `` …``."""
    try:
        text = json.dumps(schema if schema is not None else {}, separators=(",", ":"))
    except (TypeError, ValueError):
        return "{}"
    return text[:max_chars] + " …" if len(text) > max_chars else text


class HostSystemPromptV1:
    """System prompt for action turns.

    Sections, joined by blank lines:
    1. Base policy
    2. Grounding rules (chain name, primary vs diagnostic tools)
    3. Optional caller base text and user goal
    4. Tool catalog with schema previews
    5. JSON output envelope (or a free-form output contract)
    6. Runtime hints
    """

    version = PromptVersion(
        version="1.0.0",
        name="host_system",
        description="Tool orchestration with strict grounding on primary results",
    )

    def render(self, base: str | None = None, options: ComposeOptions | None = None) -> str:
        opts = options or ComposeOptions()
        parts: list[str] = [
            self._base_policy(),
            self._grounding_rules(opts),
        ]
        if base:
            parts.append(base)
        if opts.user_goal:
            parts.append(f"User goal: {opts.user_goal}")

        catalog = self._tool_catalog(opts.tools_in_scope, opts.schema_max_chars)
        if catalog:
            parts.append(catalog)

        if opts.require_json:
            parts.append(self._json_output_format(opts))
        elif opts.output_contract:
            parts.append(f"Output contract: {opts.output_contract}")

        parts.append(self._runtime_hints(opts))
        return "\n\n".join(parts)

    def _base_policy(self) -> str:
        return (
            "You are an MCP host orchestrator. Prefer calling tools over guessing. "
            "Follow JSON schemas exactly; never invent fields. All timestamps UTC ISO-8601. "
            "Never fabricate tx_id or uid. If a tool requires an API key and none is available, "
            "ask the user once to provide it. Keep final user responses concise."
        )

    def _grounding_rules(self, opts: ComposeOptions) -> str:
        return "\n".join(
            [
                "GROUNDING RULES:",
                f'- The blockchain used by these tools is "{opts.chain_name}" only. '
                "Do NOT mention Bitcoin or any other chain.",
                f"- Treat these as PRIMARY tools: {', '.join(opts.primary_tools)}.",
                f"- Treat these as DIAGNOSTIC tools: {', '.join(opts.diagnostic_tools)}.",
                "- Your user-facing summary MUST be based solely on the latest PRIMARY "
                "tool_result in this turn.",
                "- Do NOT include or reference any DIAGNOSTIC results in the user-facing summary.",
                '- If a field is absent, write "not provided" rather than guessing.',
                '- Do not state "confirmed" or "permanently recorded" unless the tool_result '
                "explicitly provides that status.",
            ]
        )

    def _tool_catalog(self, tools: list[ToolCatalogItem], max_chars: int) -> str | None:
        if not tools:
            return None
        lines = [
            f"- {tool.name}: {tool.description or '(no description)'}\n"
            f"  schema: {schema_preview(tool.input_schema, max_chars)}"
            for tool in tools
        ]
        return "Tools available this turn:\n" + "\n".join(lines)

    def _json_output_format(self, opts: ComposeOptions) -> str:
        primary = " | ".join(opts.primary_tools)
        return "\n".join(
            [
                "OUTPUT FORMAT (REQUIRED):",
                "Return a single JSON object:",
                "{",
                '  "status": "success" | "error",',
                f"  \"action\": \"<one of {primary} | 'none'>\",",
                f'  "chain": "{opts.chain_name}",',
                '  "facts": {',
                "    \"hash\": \"<string | 'not provided'>\",",
                "    \"uid\": \"<string | 'not provided'>\",",
                "    \"tx_id\": \"<string | 'not provided'>\",",
                "    \"stamped_at\": \"<ISO-8601 | 'not provided'>\",",
                '    "message": "<short machine-readable status>"',
                "  },",
                '  "user_message": "<one short paragraph, neutral, strictly from the latest '
                'PRIMARY tool_result>",',
                '  "diagnostics_used": "<comma-separated diagnostic tool names only>"',
                "}",
                "No extra keys. No prose outside the JSON.",
            ]
        )

    def _runtime_hints(self, opts: ComposeOptions) -> str:
        hints = [
            f'The chain is "{opts.chain_name}" only. Never say Bitcoin.',
            "Base user_message only on the latest PRIMARY tool_result. "
            "Ignore DIAGNOSTIC tools in the user_message.",
            *opts.runtime_hints,
        ]
        return "Runtime hints:\n- " + "\n- ".join(hints)


def compose_system_prompt(base: str | None = None, options: ComposeOptions | None = None) -> str:
    """Render the current host system prompt."""
    return HostSystemPromptV1().render(base, options)
