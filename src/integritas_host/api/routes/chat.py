"""Chat endpoint.

One request runs one full chat turn: tool scoping, the bounded model/tool
loop and answer finalization. The host is stateless; callers send the whole
conversation each time.
"""

from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends, Request

from integritas_host.api.deps import get_chat_service
from integritas_host.api.ratelimit import RATE_LIMIT_AI, limiter
from integritas_host.api.schemas import ChatRequest, ChatResponse, ToolStepOut
from integritas_host.domain.chat.handler_factory import LLMChoice
from integritas_host.domain.chat.service import ChatService, ChatTurnRequest
from integritas_host.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["chat"])

ANONYMOUS_USER = "anon"


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
@limiter.limit(RATE_LIMIT_AI)
async def chat(
    request: Request,
    chat_request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Run one chat turn.

    The body ``apiKey`` wins over the ``x-api-key`` header; either is only
    forwarded to primary tools.
    """
    request_id = request.headers.get("x-request-id") or str(uuid4())
    user_id = request.headers.get("x-user-id") or chat_request.user_id or ANONYMOUS_USER
    api_key = chat_request.api_key or request.headers.get("x-api-key") or None

    structlog.contextvars.bind_contextvars(request_id=request_id, user_id=user_id)
    try:
        llm = chat_request.llm
        result = await service.handle_turn(
            ChatTurnRequest(
                messages=[message.model_dump() for message in chat_request.messages],
                tool_args=chat_request.tool_args or {},
                llm=LLMChoice(provider=llm.provider, model=llm.model) if llm else None,
                api_key=api_key,
            )
        )
    finally:
        structlog.contextvars.unbind_contextvars("request_id", "user_id")

    return ChatResponse(
        request_id=request_id,
        user_id=user_id,
        final_text=result.final_text,
        links=result.links or None,
        sources=result.sources,
        tool_steps=[ToolStepOut(**step.to_dict()) for step in result.tool_steps],
    )
