"""Documentation retrieval from MCP resources.

Used for docs-intent turns: rank the server's readable resources against the
question, read the picks and hand their text to the model as grounding.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from integritas_host.mcp.client import ToolServer
from integritas_host.shared.logging import get_logger

logger = get_logger(__name__)

DOCS_NAMESPACE = "integritas://docs/"
DOCS_NAMESPACE_BONUS = 2
DEFAULT_RESOURCE_LIMIT = 4

# Always included for docs answers when the server exposes them.
FORCED_RESOURCE_URIS = (
    "integritas://docs/overview",
    "integritas://docs/tools",
)

EMPTY_PLACEHOLDER = "(empty)"


@dataclass
class ResourceText:
    """Text of one fetched resource."""

    uri: str
    text: str
    mime_type: str | None = None

    def render(self) -> str:
        return f"### {self.uri}\n{self.text or EMPTY_PLACEHOLDER}"


def pick_relevant_resources(
    user_text: str,
    resources: list[dict[str, Any]],
    limit: int = DEFAULT_RESOURCE_LIMIT,
) -> list[str]:
    """Rank resources by keyword overlap with ``user_text``.

    Score = number of whitespace tokens of the question found as substrings of
    ``uri + name + description`` (case-insensitive), plus a bonus for the
    product's own documentation namespace. Ties keep the input order.
    """
    tokens = [token for token in (user_text or "").lower().split() if token]
    scored: list[tuple[int, str]] = []
    for resource in resources:
        uri = str(resource.get("uri") or "")
        if not uri:
            continue
        haystack = " ".join(
            [uri, str(resource.get("name") or ""), str(resource.get("description") or "")]
        ).lower()
        score = sum(1 for token in tokens if token in haystack)
        if uri.startswith(DOCS_NAMESPACE):
            score += DOCS_NAMESPACE_BONUS
        scored.append((score, uri))

    # sorted() is stable, so equal scores keep their original order.
    ranked = sorted(scored, key=lambda item: item[0], reverse=True)
    return [uri for _, uri in ranked[: max(0, limit)]]


def select_resource_uris(
    user_text: str,
    resources: list[dict[str, Any]],
    limit: int = DEFAULT_RESOURCE_LIMIT,
) -> list[str]:
    """Forced overview/tools docs (when present) unioned with the ranked picks."""
    available = {str(resource.get("uri")) for resource in resources}
    uris = [uri for uri in FORCED_RESOURCE_URIS if uri in available]
    for uri in pick_relevant_resources(user_text, resources, limit):
        if uri not in uris:
            uris.append(uri)
    return uris


def _first_text(contents: Any) -> tuple[str, str | None]:
    if not isinstance(contents, list) or not contents:
        return "", None
    first = contents[0]
    if not isinstance(first, dict):
        return "", None
    text = first.get("text")
    return (text if isinstance(text, str) else ""), first.get("mimeType")


async def fetch_resource_texts(tool_server: ToolServer, uris: list[str]) -> list[ResourceText]:
    """Read every URI concurrently; non-textual resources become empty text."""

    async def read(uri: str) -> ResourceText:
        out = await tool_server.read_resource(uri) or {}
        text, mime_type = _first_text(out.get("contents"))
        return ResourceText(uri=uri, text=text, mime_type=mime_type)

    texts = await asyncio.gather(*(read(uri) for uri in uris))
    logger.debug(
        "resources_fetched",
        uris=uris,
        empty=[t.uri for t in texts if not t.text],
    )
    return list(texts)


def render_resource_context(texts: list[ResourceText]) -> str:
    """Concatenate fetched resources into one grounding block."""
    return "\n\n".join(text.render() for text in texts)
