"""POST /api/chat and POST /api/chat-comparison — streamed assistant answers.

/api/chat relays the assistant's stream; when the stream is rejected it
answers once with the blocking call as plain JSON instead.
/api/chat-comparison streams the assistant and a plain LLM side by side.
"""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from app.api.dependencies import Assistant
from app.core.config import settings
from app.core.errors import UpstreamError
from app.models.chat import ChatCompletion, ChatRequest
from app.services import llm
from app.services.merger import DualStreamMerger, gpt_events, rag_events
from app.services.relay import SSE_HEADERS, encode_events, open_assistant_relay

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


def _require_messages(payload: ChatRequest) -> None:
    if not payload.messages or not payload.messages[-1].content.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Messages are required and the latest message must be non-empty",
        )


@router.post(
    "/chat",
    response_model=None,
    summary="Chat with the assistant",
    description=(
        "Streams the assistant's answer as server-sent events. Citation markers "
        "and the citation list are sent after the last content event. If the "
        "assistant rejects streaming, the complete answer is returned as JSON."
    ),
)
async def chat(payload: ChatRequest, assistant: Assistant) -> StreamingResponse | JSONResponse:
    """Relay one assistant conversation turn.

    Raises:
        HTTPException: 400 if no messages were sent or the latest is empty.
        HTTPException: 500 if the stream was rejected and the blocking call failed.
    """
    _require_messages(payload)

    try:
        outcome = await open_assistant_relay(
            assistant,
            payload.messages,
            model=payload.model,
            temperature=payload.temperature,
        )
    except UpstreamError as exc:
        logger.error("Assistant chat failed: %s", exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )

    if isinstance(outcome, ChatCompletion):
        return JSONResponse(outcome.model_dump())

    # The background close covers a client that leaves before the body starts.
    return StreamingResponse(
        encode_events(outcome.events()),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(outcome.close),
    )


@router.post(
    "/chat-comparison",
    response_model=None,
    summary="Compare the assistant with a plain LLM",
    description=(
        "Streams the assistant (rag_*) and plain LLM (gpt_*) answers on one "
        "event stream. The final citations and done events follow once both "
        "sides have finished."
    ),
)
async def chat_comparison(payload: ChatRequest, assistant: Assistant) -> StreamingResponse:
    _require_messages(payload)
    assistant.ensure_configured()
    llm.ensure_configured()

    logger.info(
        "Comparison chat: messages=%d assistant_model=%s llm_model=%s temperature=%.2f",
        len(payload.messages),
        payload.model,
        settings.COMPARISON_MODEL,
        payload.temperature,
    )

    merger = DualStreamMerger(
        rag_events(
            assistant,
            payload.messages,
            model=payload.model,
            temperature=payload.temperature,
        ),
        gpt_events(
            payload.messages,
            model=settings.COMPARISON_MODEL,
            temperature=payload.temperature,
        ),
    )
    return StreamingResponse(
        encode_events(merger.events()),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
