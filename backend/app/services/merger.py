"""Dual-stream merger for the side-by-side comparison view.

Runs the assistant relay and the plain LLM relay as two tasks and forwards
their events through one queue as they arrive, renamed with a source prefix
(``rag_content``, ``gpt_content``, ``rag_citation_marker``). No ordering is
imposed between the two sources. The merged ``citations`` and ``done``
events are held back until both sides have finished, whichever finishes
first, and a failure on one side never stops the other.
"""
import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator, Sequence

from app.models.chat import ChatCompletion, Message
from app.services import llm
from app.services.assistant import AssistantClient
from app.services.relay import StreamRelay, open_assistant_relay

logger = logging.getLogger(__name__)

_FORWARDED = {
    "rag": {"content": "rag_content", "citation_marker": "rag_citation_marker"},
    "gpt": {"content": "gpt_content"},
}

# Queue sentinel: one source has finished (successfully or not).
_SOURCE_DONE = None


async def rag_events(
    assistant: AssistantClient,
    messages: Sequence[Message],
    *,
    model: str | None = None,
    temperature: float | None = None,
) -> AsyncIterator[dict]:
    """Relay events for the assistant side, including the blocking fallback.

    A fallback result is reported as a single content event with the full
    marked-up answer followed by its citations.
    """
    outcome = await open_assistant_relay(
        assistant, messages, model=model, temperature=temperature
    )
    if isinstance(outcome, ChatCompletion):
        yield {"type": "start"}
        yield {"type": "content", "content": outcome.content}
        yield {
            "type": "citations",
            "citations": [c.model_dump() for c in outcome.citations],
        }
        yield {"type": "done"}
        return

    events = outcome.events()
    try:
        async for event in events:
            yield event
    finally:
        await events.aclose()


def gpt_events(
    messages: Sequence[Message], *, model: str, temperature: float
) -> AsyncIterator[dict]:
    source = llm.stream_chat_completion(messages, model=model, temperature=temperature)
    return StreamRelay(source, name="gpt").events()


class DualStreamMerger:
    def __init__(self, rag: AsyncIterable[dict], gpt: AsyncIterable[dict]):
        self._sources = {"rag": rag, "gpt": gpt}
        self._queue: asyncio.Queue[dict | None] = asyncio.Queue()
        self.citations: list[dict] = []
        self.failures: dict[str, str] = {}

    async def _pump(self, label: str) -> None:
        source = self._sources[label]
        renames = _FORWARDED[label]
        try:
            async for event in source:
                kind = event.get("type")
                if kind in renames:
                    self._queue.put_nowait({**event, "type": renames[kind]})
                elif kind == "citations" and label == "rag":
                    self.citations = event.get("citations") or []
                elif kind == "error":
                    logger.warning("%s relay reported an error: %s", label, event.get("error"))
                    self.failures[label] = event.get("error") or "Stream error"
                    break
        except Exception as exc:
            logger.error("%s stream error: %s", label, exc, exc_info=True)
            self.failures[label] = str(exc) or type(exc).__name__
        finally:
            if isinstance(source, AsyncGenerator):
                await source.aclose()
            self._queue.put_nowait(_SOURCE_DONE)

    async def events(self) -> AsyncIterator[dict]:
        tasks = [
            asyncio.create_task(self._pump(label), name=f"relay-{label}")
            for label in self._sources
        ]
        try:
            yield {"type": "start"}

            remaining = len(tasks)
            while remaining:
                event = await self._queue.get()
                if event is _SOURCE_DONE:
                    remaining -= 1
                    continue
                yield event

            if self.failures:
                logger.info("Comparison finished with partial failures: %s", self.failures)
            yield {"type": "citations", "citations": self.citations}
            yield {"type": "done"}
        finally:
            # Client went away or we finished: stop both upstream fetches.
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
