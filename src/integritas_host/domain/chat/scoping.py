"""Intent detection and per-turn tool scoping.

The keyword lists are heuristics: they decide which tools the model may see
this turn, not whether the request is valid.
"""

import re
from dataclasses import dataclass, field

from integritas_host.domain.chat.types import (
    DIAGNOSTIC_TOOLS,
    STAMP_TOOL,
    VERIFY_TOOL,
    ToolCatalogItem,
)

DOCS_PATTERN = re.compile(
    r"what can you do|how.*\bworks?\b|integritas|capab|\btools?\b|\bhelp\b|\bdocs?\b"
    r"|documentation|\bfaq\b|schema|feature|\bprice|pricing"
)

STAMP_PATTERNS = (
    re.compile(r"\bstamp"),
    re.compile(r"\bupload"),
    re.compile(r"\bhash\b"),
    re.compile(r"\bstamp\b.*\b(file|data)\b"),
    re.compile(r"\bstamp\b.*\bhash\b"),
)

VERIFY_PATTERNS = (
    re.compile(r"\b(?:verify|verification|validate|proof|report)\b"),
    re.compile(r"\b(?:on[-\s]?chain|exists?|existence|confirm)\b"),
    re.compile(r"proof-file|\.json\b"),
)

HASH_TOKEN = re.compile(r"(?<![0-9a-fA-F])[0-9a-fA-F]{64}(?![0-9a-fA-F])")


@dataclass
class ScopeDecision:
    """Result of intent classification for one turn."""

    is_docs_intent: bool
    scoped_tools: list[ToolCatalogItem] = field(default_factory=list)

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.scoped_tools]


def is_docs_question(text: str) -> bool:
    """True when the text asks about capabilities, help, pricing or schemas."""
    return bool(DOCS_PATTERN.search((text or "").lower()))


def has_stamp_intent(text: str) -> bool:
    lower = (text or "").lower()
    return any(pattern.search(lower) for pattern in STAMP_PATTERNS)


def has_verify_intent(text: str) -> bool:
    lower = (text or "").lower()
    return any(pattern.search(lower) for pattern in VERIFY_PATTERNS)


def find_hash_token(text: str) -> str | None:
    """First bare 64-hex-character token in ``text``, lower-cased."""
    match = HASH_TOKEN.search(text or "")
    return match.group(0).lower() if match else None


def scope_tools(user_text: str, catalog: list[ToolCatalogItem]) -> list[ToolCatalogItem]:
    """Select the action tools relevant to ``user_text``.

    Stamp intent is checked before verify intent, duplicates are dropped and
    diagnostic tools are never returned.
    """
    by_name = {tool.name: tool for tool in catalog}
    picks: list[ToolCatalogItem] = []

    def add(name: str) -> None:
        tool = by_name.get(name)
        if tool is None or tool.name in DIAGNOSTIC_TOOLS:
            return
        if any(pick.name == tool.name for pick in picks):
            return
        picks.append(tool)

    if has_stamp_intent(user_text):
        add(STAMP_TOOL)
    if has_verify_intent(user_text):
        add(VERIFY_TOOL)

    return picks


def classify_and_scope(user_text: str, catalog: list[ToolCatalogItem]) -> ScopeDecision:
    """Docs questions get no tools; action turns get the scoped subset."""
    if is_docs_question(user_text):
        return ScopeDecision(is_docs_intent=True)
    return ScopeDecision(is_docs_intent=False, scoped_tools=scope_tools(user_text, catalog))
