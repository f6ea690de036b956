"""Classification of errors raised by model calls.

Transport-level LLM failures (rate limits, billing, provider auth, gateway
timeouts, unavailable upstreams, missing models) are turned into a short,
safe sentence for the user. Everything else is left to propagate.
"""

import re
from dataclasses import dataclass
from typing import Any, Literal

Reason = Literal[
    "rate_limit",
    "billing",
    "auth",
    "model_not_found",
    "gateway_timeout",
    "unavailable",
    "provider",
]

_RATE_LIMIT = re.compile(r"\brate[- _]?limit|too many requests|retry-after", re.IGNORECASE)
_BILLING = re.compile(
    r"insufficient[_ ]quota|exceeded your current quota|credit balance|out of credits"
    r"|insufficient credits|billing|payment required",
    re.IGNORECASE,
)
_AUTH = re.compile(
    r"invalid[_ ]api[_ ]key|incorrect api key|unauthorized|authentication"
    r"|permission[_ ]denied|forbidden|invalid x-api-key|no auth credentials",
    re.IGNORECASE,
)
_MODEL_NOT_FOUND = re.compile(
    r"model[_ ]not[_ ]found|no such model|model .* does not exist|model .* not available"
    r"|unknown model|no endpoints found",
    re.IGNORECASE,
)
_GATEWAY_TIMEOUT = re.compile(
    r"504\s+gateway\s+time[- ]?out|<title>\s*504\s+gateway|gateway timeout|request timed out",
    re.IGNORECASE,
)
_UNAVAILABLE = re.compile(
    r"bad gateway|service unavailable|overloaded|upstream connect error|connection error",
    re.IGNORECASE,
)
_PROVIDER_HINT = re.compile(
    r"openai|anthropic|openrouter|vertex|gemini|model api|\bllm\b",
    re.IGNORECASE,
)

_PROVIDER_MODULES = ("openai", "anthropic")


@dataclass(frozen=True)
class LLMErrorInfo:
    """Derived view of a caught model-call error."""

    is_llm_transport: bool
    is_rate_limit: bool
    status: int | None = None
    retry_after: str | None = None
    reason: Reason | None = None
    message: str | None = None


def _status_of(exc: Any) -> int | None:
    for candidate in (
        getattr(exc, "status_code", None),
        getattr(exc, "status", None),
        getattr(getattr(exc, "response", None), "status_code", None),
        getattr(getattr(exc, "response", None), "status", None),
        getattr(getattr(exc, "__cause__", None), "status_code", None),
        getattr(getattr(exc, "__cause__", None), "status", None),
    ):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    return None


def _is_timeout(exc: BaseException) -> bool:
    name = type(exc).__name__
    return name in {"APITimeoutError", "ReadTimeout", "ConnectTimeout"} or (
        getattr(exc, "code", None) == "ETIMEDOUT"
    )


def _is_connection_error(exc: BaseException) -> bool:
    return type(exc).__name__ in {"APIConnectionError", "ConnectError"}


def _body_text(exc: Any) -> str:
    parts: list[str] = []
    body = getattr(exc, "body", None)
    if body is not None:
        parts.append(str(body))
    response = getattr(exc, "response", None)
    data = getattr(response, "data", None)
    if isinstance(data, str):
        parts.append(data)
    return "\n".join(parts)


def _retry_after(exc: Any) -> str | None:
    headers = getattr(getattr(exc, "response", None), "headers", None)
    if headers is None:
        return None
    value = None
    try:
        value = headers.get("retry-after") or headers.get("Retry-After")
    except AttributeError:
        return None
    return str(value) if value not in (None, "") else None


def _from_provider_sdk(exc: BaseException) -> bool:
    return type(exc).__module__.split(".")[0] in _PROVIDER_MODULES


def classify_llm_error(exc: BaseException) -> LLMErrorInfo:
    """Decide whether ``exc`` is an LLM transport failure.

    Inspects the HTTP status (from the exception, its response or its cause)
    and the message/body text against provider and generic patterns.
    """
    status = _status_of(exc)
    if status is None and _is_timeout(exc):
        status = 504

    message = str(exc)
    text = f"{message}\n{_body_text(exc)}"

    is_rate_limit = status == 429 or bool(_RATE_LIMIT.search(text))

    reason: Reason | None
    if status in (401, 403) or _AUTH.search(text):
        reason = "auth"
    elif status == 402 or _BILLING.search(text):
        reason = "billing"
    elif is_rate_limit:
        reason = "rate_limit"
    elif _MODEL_NOT_FOUND.search(text) or (status == 404 and "model" in text.lower()):
        reason = "model_not_found"
    elif status == 504 or _GATEWAY_TIMEOUT.search(text):
        reason = "gateway_timeout"
    elif (
        status in (500, 502, 503, 529)
        or _is_connection_error(exc)
        or _UNAVAILABLE.search(text)
    ):
        reason = "unavailable"
    elif _from_provider_sdk(exc) or _PROVIDER_HINT.search(text):
        reason = "provider"
    else:
        reason = None

    return LLMErrorInfo(
        is_llm_transport=reason is not None,
        is_rate_limit=is_rate_limit,
        status=status,
        retry_after=_retry_after(exc),
        reason=reason,
        message=message or None,
    )


def friendly_llm_message(info: LLMErrorInfo) -> str:
    """Short user-facing sentence for a transport error (never the raw error)."""
    if info.reason == "rate_limit":
        if info.retry_after:
            return (
                "The AI provider is rate limiting requests right now. "
                f"Please try again in about {info.retry_after} seconds."
            )
        return "The AI provider is rate limiting requests right now. Please try again in a moment."
    if info.reason == "billing":
        return (
            "The AI provider rejected the request because the account is out of credits. "
            "Please try another model or try again later."
        )
    if info.reason == "auth":
        return (
            "The AI provider could not authenticate this service. "
            "Please try another provider or contact the operator."
        )
    if info.reason == "model_not_found":
        return "The selected AI model is not available right now. Please choose another model."
    if info.reason == "gateway_timeout":
        return "The AI provider took too long to respond. Please try again."
    if info.reason == "unavailable":
        return "The AI provider is temporarily unavailable. Please try again shortly."
    return "The AI provider returned an error. Please try again."
