"""Turns the model's raw output plus the tool trace into the user-facing text.

Only the most recent primary tool step is authoritative: when the model's text
is unusable (or mentions internal diagnostics), the message is synthesized
from that step's structured result.
"""

import json
import re
from typing import Any

from integritas_host.domain.chat.types import (
    CHAIN_NAME,
    PRIMARY_TOOLS,
    STAMP_TOOL,
    VERIFY_TOOL,
    ToolResultEnvelope,
    ToolStep,
    result_summary,
    structured_content,
)

DEFAULT_TEXT = "Done."
NOT_PROVIDED = "not provided"

LINK_FIELDS = ("verification_url", "proof_url")

_DIAGNOSTIC_MENTION = re.compile(r"\bhealth\b|\bready\b", re.IGNORECASE)


def last_primary_step(steps: list[ToolStep]) -> ToolStep | None:
    """Last step whose tool is a primary tool, scanning from the end."""
    for step in reversed(steps):
        if step.name in PRIMARY_TOOLS:
            return step
    return None


def _field(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    return NOT_PROVIDED if value is None else value


def _sentence(text: str) -> str:
    return text.strip().rstrip(".!?;:")


def synthesize_message(step: ToolStep) -> str:
    """Templated message built from a primary step's structured result.

    Failed steps (trace marked not ok, or an ``isError`` result) report the
    failure summary instead of a success template.
    """
    envelope = ToolResultEnvelope.from_result(step.output)
    if not step.ok or envelope.is_error:
        reason = result_summary(step.output) or step.error or "unknown error"
        return f"{step.name} did not complete: {_sentence(reason)}."

    sc = envelope.structured_content
    if step.name == STAMP_TOOL:
        return (
            f"Hash stamped on {CHAIN_NAME}. uid={_field(sc, 'uid')}, "
            f"tx_id={_field(sc, 'tx_id')}, stamped_at={_field(sc, 'stamped_at')}."
        )
    if step.name == VERIFY_TOOL:
        outcome = _sentence(str(sc.get("summary") or sc.get("result") or "")) or "completed"
        link = f" Report: {sc['verification_url']}" if sc.get("verification_url") else ""
        return f"Verification: {outcome}.{link}"
    outcome = _sentence(str(sc.get("summary") or "")) or "completed"
    return f"Result on {CHAIN_NAME}: {outcome}."


def _parse_object(text: str) -> dict[str, Any] | None:
    try:
        obj = json.loads(text)
    except (TypeError, ValueError):
        return None
    return obj if isinstance(obj, dict) else None


def finalize_text(model_text: str | None, steps: list[ToolStep]) -> str:
    """Produce the final user-facing message for a turn.

    JSON objects from the model are repaired (chain and action forced, a
    ``user_message`` taken or synthesized); plain text gives way to the last
    primary step's template, then to the raw text, then to ``"Done."``.
    """
    primary = last_primary_step(steps)
    obj = _parse_object(model_text or "")

    if obj is not None:
        obj["chain"] = CHAIN_NAME
        action = obj.get("action")
        if primary is not None and not (isinstance(action, str) and action in PRIMARY_TOOLS):
            obj["action"] = primary.name

        message = obj.get("user_message")
        if not isinstance(message, str) or _DIAGNOSTIC_MENTION.search(message):
            message = ""
        if not message and primary is not None:
            message = synthesize_message(primary)
        return message or DEFAULT_TEXT

    if primary is not None:
        return synthesize_message(primary)
    return model_text or DEFAULT_TEXT


def pluck_ids(result: Any) -> dict[str, str]:
    """Extract ``tx_id`` and ``uid`` from a tool result.

    Looks at the structured result first, then at ``json`` content blocks and
    JSON-encoded ``text`` content blocks.
    """
    envelope = ToolResultEnvelope.from_result(result)
    candidates: list[dict[str, Any]] = [envelope.structured_content]
    for block in envelope.content:
        if block.get("type") == "json" and isinstance(block.get("json"), dict):
            candidates.append(block["json"])
        elif block.get("type") == "text" and isinstance(block.get("text"), str):
            parsed = _parse_object(block["text"])
            if parsed is not None:
                candidates.append(parsed)

    ids: dict[str, str] = {}
    for data in candidates:
        tx_id = data.get("tx_id") or data.get("txId")
        uid = data.get("uid") or data.get("id")
        if tx_id and "tx_id" not in ids:
            ids["tx_id"] = str(tx_id)
        if uid and "uid" not in ids:
            ids["uid"] = str(uid)
    return ids


def attach_ids(steps: list[ToolStep]) -> None:
    """Attach extracted identifiers to each step in place."""
    for step in steps:
        ids = pluck_ids(step.output)
        if "tx_id" in ids:
            step.tx_id = ids["tx_id"]
        if "uid" in ids:
            step.uid = ids["uid"]


def collect_links(steps: list[ToolStep]) -> list[str]:
    """Report/proof URLs returned by primary tools, in trace order."""
    links: list[str] = []
    for step in steps:
        if step.name not in PRIMARY_TOOLS:
            continue
        sc = structured_content(step.output)
        for key in LINK_FIELDS:
            value = sc.get(key)
            if isinstance(value, str) and value and value not in links:
                links.append(value)
    return links
