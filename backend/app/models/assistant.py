"""Pinecone Assistant payload schema.

Every field the service reads from the provider is declared here as optional,
so a response missing pieces parses cleanly instead of needing chained
lookups at each call site.
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AssistantFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str | None = None
    metadata: dict[str, Any] | None = None


class AssistantReference(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file: AssistantFile | None = None
    pages: list[int] | None = None


class AssistantCitation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    position: int | None = None
    references: list[AssistantReference] | None = None


class AssistantDelta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class AssistantChunk(BaseModel):
    """One event of a streamed chat (message_start, content_chunk, citation, message_end)."""

    model_config = ConfigDict(extra="ignore")

    type: str
    delta: AssistantDelta | None = None
    citation: AssistantCitation | None = None
    finish_reason: str | None = None


class AssistantMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | None = None


class AssistantChatResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: AssistantMessage | None = None
    citations: list[AssistantCitation] | None = None
    finish_reason: str | None = None


class AssistantDescription(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    instructions: str | None = None
    status: str | None = None


class InstructionsResponse(BaseModel):
    success: bool = True
    instructions: str


class UpdateInstructionsRequest(BaseModel):
    instructions: str = Field(description="New system instructions for the assistant")


class UpdateInstructionsResponse(BaseModel):
    success: bool = True
    message: str
