"""Single-stream relay: one upstream token stream in, wire-protocol events out.

Wire protocol (one JSON object per ``data:`` line, blank line between events):

    start                       relay created, before any upstream read
    content {content}           one upstream delta, never the accumulated text
    citation_marker {position, number}
                                after upstream exhaustion, highest offset first
    citations {citations}       the full ProcessedCitation list
    done                        terminal
    error {error}               terminal, replaces the remaining events
"""
import enum
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator, Awaitable, Callable, Sequence

from app.core.errors import StreamUnavailableError
from app.models.assistant import AssistantCitation
from app.models.chat import ChatCompletion, Message
from app.services.assistant import AssistantClient, StreamItem
from app.services.citations import annotate, insert_markers, normalize_citations

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


async def encode_events(events: AsyncIterable[dict]) -> AsyncIterator[str]:
    async for event in events:
        yield sse(event)


class RelayState(str, enum.Enum):
    STARTED = "started"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"


class StreamRelay:
    """Adapts one upstream stream of deltas and citation fragments.

    Content is forwarded as it arrives. Citation fragments are held in a map
    keyed by position (a later fragment at the same offset replaces the
    earlier one) and only resolved into markers once the upstream ends.
    State is per instance; one relay serves one response.
    """

    def __init__(
        self,
        source: AsyncIterable[StreamItem],
        *,
        name: str = "assistant",
        on_close: Callable[[], Awaitable[None]] | None = None,
    ):
        self.name = name
        self.state = RelayState.STARTED
        self._source = source
        self._on_close = on_close
        self._chunks: list[str] = []
        self._citations: dict[int, AssistantCitation] = {}
        self.final_text: str | None = None
        self._closed = False

    async def close(self) -> None:
        """Release the upstream. Safe to call more than once, even if
        ``events()`` was never iterated."""
        if self._closed:
            return
        self._closed = True
        if isinstance(self._source, AsyncGenerator):
            await self._source.aclose()
        if self._on_close is not None:
            await self._on_close()

    @property
    def text(self) -> str:
        """Content accumulated so far, without markers."""
        return "".join(self._chunks)

    def _transition(self, state: RelayState) -> None:
        logger.debug("Relay %s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state

    async def events(self) -> AsyncIterator[dict]:
        try:
            yield {"type": "start"}
            self._transition(RelayState.STREAMING)
            async for item in self._source:
                if isinstance(item, str):
                    if not item:
                        continue
                    self._chunks.append(item)
                    yield {"type": "content", "content": item}
                elif item.position is not None:
                    self._citations[item.position] = item

            self._transition(RelayState.FINALIZING)
            processed, adjustments = normalize_citations(self._citations.values())
            self.final_text = insert_markers(self.text, adjustments)

            for adjustment in reversed(adjustments):
                yield {
                    "type": "citation_marker",
                    "position": adjustment.position,
                    "number": adjustment.citation_number,
                }
            yield {
                "type": "citations",
                "citations": [c.model_dump() for c in processed],
            }
            logger.info(
                "Relay %s complete: %d characters, %d citations",
                self.name,
                len(self.text),
                len(processed),
            )
            self._transition(RelayState.DONE)
            yield {"type": "done"}
        except Exception as exc:
            self._transition(RelayState.ERRORED)
            logger.error("Relay %s stream error: %s", self.name, exc, exc_info=True)
            yield {"type": "error", "error": str(exc) or "Stream error"}
        finally:
            await self.close()


async def complete_chat(
    assistant: AssistantClient,
    messages: Sequence[Message],
    *,
    model: str | None = None,
    temperature: float | None = None,
) -> ChatCompletion:
    """Blocking assistant call with citation markers inserted."""
    response = await assistant.chat(messages, model=model, temperature=temperature)
    content = (response.message.content if response.message else None) or "No response received"
    completion = annotate(content, response.citations or [])
    logger.info(
        "Assistant chat processed: %d characters, %d citations",
        len(completion.content),
        len(completion.citations),
    )
    return completion


async def open_assistant_relay(
    assistant: AssistantClient,
    messages: Sequence[Message],
    *,
    model: str | None = None,
    temperature: float | None = None,
) -> StreamRelay | ChatCompletion:
    """Open a streamed assistant chat, or fall back to one blocking call.

    The fallback is attempted at most once and only when the stream is
    rejected before any data was sent. Its errors propagate to the caller.
    """
    try:
        stream = await assistant.open_stream(messages, model=model, temperature=temperature)
    except StreamUnavailableError as exc:
        logger.warning("Assistant stream unavailable, using blocking chat: %s", exc)
        return await complete_chat(assistant, messages, model=model, temperature=temperature)

    return StreamRelay(stream.items(), name="assistant", on_close=stream.aclose)
