"""Plain LLM side of the comparison view.

Streams a chat completion from OpenAI with no retrieval and no citations, so
its answer can be rendered next to the assistant's grounded one.
"""
import logging
from collections.abc import AsyncIterator, Sequence

from openai import AsyncOpenAI

from app.core.config import settings
from app.core.errors import ConfigurationError
from app.models.chat import Message

logger = logging.getLogger(__name__)


_openai: AsyncOpenAI | None = None


def _client() -> AsyncOpenAI:
    global _openai
    if _openai is None:
        _openai = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
    return _openai


async def close_client() -> None:
    global _openai
    if _openai is not None:
        await _openai.close()
        _openai = None


def ensure_configured() -> None:
    if not settings.OPENAI_API_KEY:
        raise ConfigurationError("Missing OPENAI_API_KEY environment variable")


async def stream_chat_completion(
    messages: Sequence[Message],
    *,
    model: str,
    temperature: float,
) -> AsyncIterator[str]:
    """Yield content deltas of a streamed chat completion.

    Empty deltas (role-only and finish chunks) are dropped.
    """
    logger.info(
        "Calling OpenAI (streaming): model=%s messages=%d temperature=%.2f",
        model,
        len(messages),
        temperature,
    )

    stream = await _client().chat.completions.create(
        model=model,
        messages=[{"role": m.role, "content": m.content} for m in messages],
        temperature=temperature,
        stream=True,
    )

    try:
        async for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content or ""
            if content:
                yield content
    finally:
        await stream.close()
