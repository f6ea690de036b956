"""Tool catalog built from the MCP server's live tool list.

Schemas are sanitized before they reach any provider: the upstream credential
field is removed (the host injects it itself) and every schema is coerced to a
valid ``type: object`` schema.
"""

import copy
from typing import Any

from integritas_host.domain.chat.types import CREDENTIAL_FIELD, ToolCatalogItem
from integritas_host.mcp.client import ToolServer

_DEF_CONTAINERS = ("$defs", "definitions")
_COMBINATORS = ("allOf", "oneOf", "anyOf")


def _drop_field(schema: dict[str, Any], field_name: str) -> None:
    properties = schema.get("properties")
    if isinstance(properties, dict):
        properties.pop(field_name, None)
    required = schema.get("required")
    if isinstance(required, list):
        schema["required"] = [name for name in required if name != field_name]


def _resolve_ref(root: dict[str, Any], ref: str) -> dict[str, Any] | None:
    # Only local refs of the form "#/$defs/Name" or "#/definitions/Name".
    parts = ref.lstrip("#/").split("/")
    if len(parts) != 2 or parts[0] not in _DEF_CONTAINERS:
        return None
    defs = root.get(parts[0])
    if not isinstance(defs, dict):
        return None
    target = defs.get(parts[1])
    return target if isinstance(target, dict) else None


def strip_credential_fields(schema: Any, field_name: str = CREDENTIAL_FIELD) -> Any:
    """Remove ``field_name`` from a JSON schema wherever the model could see it.

    Handles the field at the top level, in inline nested object properties,
    and inside sub-schemas reached through local ``$ref`` pointers. Returns a
    sanitized deep copy; the input is not modified.
    """
    if not isinstance(schema, dict):
        return schema

    root = copy.deepcopy(schema)
    visited: set[int] = set()

    def visit(node: Any) -> None:
        if not isinstance(node, dict) or id(node) in visited:
            return
        visited.add(id(node))

        _drop_field(node, field_name)

        ref = node.get("$ref")
        if isinstance(ref, str):
            target = _resolve_ref(root, ref)
            if target is not None:
                visit(target)

        properties = node.get("properties")
        if isinstance(properties, dict):
            for child in properties.values():
                visit(child)
        items = node.get("items")
        if isinstance(items, dict):
            visit(items)
        for combinator in _COMBINATORS:
            variants = node.get(combinator)
            if isinstance(variants, list):
                for variant in variants:
                    visit(variant)

    visit(root)
    return root


def ensure_object_schema(raw: Any) -> dict[str, Any]:
    """Coerce ``raw`` into a minimal provider-compatible object schema.

    Keeps properties, required, additionalProperties, definitions and the
    common combinators; everything else is dropped.
    """
    source = raw if isinstance(raw, dict) else {}
    out: dict[str, Any] = {"type": "object"}

    properties = source.get("properties")
    out["properties"] = properties if isinstance(properties, dict) else {}
    if isinstance(source.get("required"), list):
        out["required"] = source["required"]
    additional = source.get("additionalProperties")
    out["additionalProperties"] = bool(additional) if additional is not None else False

    for key in _DEF_CONTAINERS:
        if isinstance(source.get(key), dict):
            out[key] = source[key]
    for key in _COMBINATORS:
        if isinstance(source.get(key), list):
            out[key] = source[key]

    return out


def catalog_from_tool_list(tools: list[dict[str, Any]]) -> list[ToolCatalogItem]:
    """Normalize raw MCP tool descriptors into catalog items."""
    catalog: list[ToolCatalogItem] = []
    seen: set[str] = set()
    for tool in tools:
        name = tool.get("name")
        if not isinstance(name, str) or not name or name in seen:
            continue
        seen.add(name)
        schema = ensure_object_schema(strip_credential_fields(tool.get("inputSchema") or {}))
        catalog.append(
            ToolCatalogItem(
                name=name,
                description=tool.get("description"),
                input_schema=schema,
            )
        )
    return catalog


async def build_tool_catalog(tool_server: ToolServer) -> list[ToolCatalogItem]:
    """Fetch the live tool list and return a sanitized catalog."""
    listing = await tool_server.list_tools() or {}
    return catalog_from_tool_list(listing.get("tools") or [])
