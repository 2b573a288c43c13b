"""GET /api/assistant and POST /api/assistant/update — assistant instructions."""

import logging

from fastapi import APIRouter, HTTPException, status

from app.api.dependencies import Assistant
from app.core.errors import UpstreamError
from app.models.assistant import (
    InstructionsResponse,
    UpdateInstructionsRequest,
    UpdateInstructionsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assistant", tags=["assistant"])


@router.get(
    "",
    response_model=InstructionsResponse,
    summary="Get the assistant's instructions",
)
async def get_instructions(assistant: Assistant) -> InstructionsResponse:
    """Return the assistant's current system instructions.

    Whitespace-only instructions (the placeholder used for "none") are
    reported as an empty string.
    """
    try:
        description = await assistant.describe()
    except UpstreamError as exc:
        logger.error("Fetching assistant instructions failed: %s", exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )

    instructions = description.instructions or ""
    return InstructionsResponse(instructions=instructions if instructions.strip() else "")


@router.post(
    "/update",
    response_model=UpdateInstructionsResponse,
    summary="Replace the assistant's instructions",
)
async def update_instructions(
    payload: UpdateInstructionsRequest, assistant: Assistant
) -> UpdateInstructionsResponse:
    try:
        await assistant.update_instructions(payload.instructions)
    except UpstreamError as exc:
        logger.error("Updating assistant instructions failed: %s", exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )

    logger.info("Assistant instructions updated successfully")
    return UpdateInstructionsResponse(message="Assistant instructions updated successfully")
