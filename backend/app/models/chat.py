from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from app.core.config import settings

Role = Literal["user", "assistant", "system"]


def normalize_temperature(value: Any) -> float:
    """Return value if it is a number in [0, 1], else the configured default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return settings.DEFAULT_TEMPERATURE
    if 0 <= value <= 1:
        return float(value)
    return settings.DEFAULT_TEMPERATURE


def normalize_model(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return settings.DEFAULT_MODEL


class Message(BaseModel):
    role: Role
    content: str


class ChatRequest(BaseModel):
    messages: list[Message] = Field(
        default_factory=list, description="Conversation so far, oldest first"
    )
    temperature: float = Field(default=settings.DEFAULT_TEMPERATURE)
    model: str = Field(default=settings.DEFAULT_MODEL)

    @field_validator("temperature", mode="before")
    @classmethod
    def _default_temperature(cls, value: Any) -> float:
        return normalize_temperature(value)

    @field_validator("model", mode="before")
    @classmethod
    def _default_model(cls, value: Any) -> str:
        return normalize_model(value)


class ProcessedCitation(BaseModel):
    number: int
    file_name: str
    file_id: str
    pages: list[int] = Field(default_factory=list)
    # Placeholder: the assistant API exposes no relevance score.
    score: float = 1.0


class PositionAdjustment(BaseModel):
    position: int
    citation_number: int


class ChatCompletion(BaseModel):
    """Blocking (non-streamed) chat result with markers already inserted."""

    content: str
    citations: list[ProcessedCitation]


class QueryRequest(BaseModel):
    message: str
    temperature: float
    model: str
    system_prompt: str = ""
    conversation_history: list[Message] = Field(default_factory=list)


class QueryResponse(BaseModel):
    answer: str
    citations: list[ProcessedCitation]
    error: str | None = None
