"""POST /api/query — single-shot assistant answer for no-code integrations.

Accepts JSON, form-encoded bodies, or (with an empty body) query-string
parameters, and answers with ``{answer, citations}``. Every failure carries
``error`` plus empty ``answer``/``citations`` so integrations can map one
response shape; malformed requests also get a ``diagnostic`` block.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError

from app.api.dependencies import Assistant
from app.core.errors import ConfigurationError, UpstreamError
from app.models.chat import (
    Message,
    QueryRequest,
    QueryResponse,
    normalize_model,
    normalize_temperature,
)
from app.services.relay import complete_chat

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/query", tags=["query"])

_HISTORY = TypeAdapter(list[Message])

_BODY_HINTS = [
    "Send parameters in the request body, not only in the URL",
    "Set the Content-Type header to application/json",
    "Make sure the 'message' parameter is mapped to a non-empty value",
]


class QueryRequestError(Exception):
    """The request could not be read into a QueryRequest."""

    def __init__(self, message: str, diagnostic: dict | None = None):
        super().__init__(message)
        self.message = message
        self.diagnostic = diagnostic


def _error_response(
    status_code: int, message: str, diagnostic: dict | None = None
) -> JSONResponse:
    content: dict[str, Any] = {"error": message, "answer": "", "citations": []}
    if diagnostic is not None:
        content["diagnostic"] = diagnostic
    return JSONResponse(status_code=status_code, content=content)


def _parse_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _from_params(params: Any) -> dict:
    """Read the string-valued form/query parameters into a raw body dict."""
    history_raw = params.get("conversationHistory")
    try:
        history = json.loads(history_raw) if history_raw else None
    except json.JSONDecodeError as exc:
        raise QueryRequestError(f"Invalid JSON in conversationHistory: {exc}") from exc
    return {
        "message": params.get("message") or "",
        "temperature": _parse_float(params.get("temperature")),
        "model": params.get("model") or None,
        "systemPrompt": params.get("systemPrompt") or None,
        "conversationHistory": history,
    }


async def _read_body(request: Request) -> dict:
    """Extract the raw request parameters, raising QueryRequestError with a diagnosis."""
    content_type = request.headers.get("content-type", "")
    logger.info("Query request received: content_type=%s", content_type or "(not set)")

    if "application/x-www-form-urlencoded" in content_type:
        try:
            form = await request.form()
            return _from_params(form)
        except QueryRequestError as exc:
            raise QueryRequestError(f"Invalid form data: {exc.message}") from exc

    raw = (await request.body()).decode("utf-8", errors="replace")
    logger.debug("Raw body length=%d preview=%s", len(raw), raw[:200] or "(empty)")

    if not raw.strip():
        if request.query_params.get("message"):
            logger.info("Body is empty; using query-string parameters")
            return _from_params(request.query_params)
        raise QueryRequestError(
            "Request body is empty and no 'message' parameter found in query string."
            if not raw
            else "Request body is empty (whitespace only).",
            diagnostic={
                "contentType": content_type or "(not set)",
                "bodyLength": len(raw),
                "queryParams": dict(request.query_params),
                "troubleshooting": _BODY_HINTS,
            },
        )

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise QueryRequestError(
            f"Invalid JSON in request body: {exc}. Please ensure you're sending "
            "valid JSON with Content-Type: application/json header."
        ) from exc

    if isinstance(parsed, dict) and not parsed:
        raise QueryRequestError(
            "Received empty JSON object. Please ensure parameters are properly mapped.",
            diagnostic={
                "contentType": content_type or "(not set)",
                "bodyReceived": raw,
                "troubleshooting": _BODY_HINTS,
            },
        )

    return parsed if isinstance(parsed, dict) else {}


def _normalize(body: dict) -> QueryRequest:
    """Apply defaults and validate the message."""
    message = body.get("message")
    message = message.strip() if isinstance(message, str) else ""
    if not message:
        raise QueryRequestError("Message is required and must be a non-empty string")

    history_raw = body.get("conversationHistory")
    try:
        history = _HISTORY.validate_python(history_raw) if isinstance(history_raw, list) else []
    except ValidationError as exc:
        raise QueryRequestError(
            f"conversationHistory must be a list of {{role, content}} messages: {exc.error_count()} invalid entries"
        ) from exc

    system_prompt = body.get("systemPrompt")
    return QueryRequest(
        message=message,
        temperature=normalize_temperature(body.get("temperature")),
        model=normalize_model(body.get("model")),
        system_prompt=system_prompt.strip() if isinstance(system_prompt, str) else "",
        conversation_history=history,
    )


def _build_messages(query: QueryRequest) -> list[Message]:
    messages: list[Message] = []
    if query.system_prompt:
        messages.append(Message(role="system", content=query.system_prompt))
    messages.extend(query.conversation_history)
    messages.append(Message(role="user", content=query.message))
    return messages


@router.post(
    "",
    response_model=QueryResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Ask the assistant a single question",
    description=(
        "Blocking question/answer call with inline [n] citation markers. "
        "Accepts JSON, form data, or query parameters."
    ),
)
async def query(request: Request, assistant: Assistant) -> QueryResponse | JSONResponse:
    try:
        query_request = _normalize(await _read_body(request))
    except QueryRequestError as exc:
        logger.warning("Rejected query request: %s", exc.message)
        return _error_response(status.HTTP_400_BAD_REQUEST, exc.message, exc.diagnostic)

    logger.info(
        "Processing query: message='%s' temperature=%.2f model=%s system_prompt=%s history=%d",
        query_request.message[:50],
        query_request.temperature,
        query_request.model,
        bool(query_request.system_prompt),
        len(query_request.conversation_history),
    )

    try:
        completion = await complete_chat(
            assistant,
            _build_messages(query_request),
            model=query_request.model,
            temperature=query_request.temperature,
        )
    except ConfigurationError as exc:
        logger.error("Query rejected: %s", exc)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, f"Server configuration error: {exc}"
        )
    except UpstreamError as exc:
        logger.error("Query failed: %s", exc, exc_info=True)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    logger.info("Query processed successfully, citations: %d", len(completion.citations))
    return QueryResponse(answer=completion.content, citations=completion.citations)
