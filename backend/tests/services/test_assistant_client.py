"""Tests for app.services.assistant — the assistant REST client.

The assistant API is replaced with httpx.MockTransport; no network access.
"""
import json

import httpx
import pytest

from app.core.errors import ConfigurationError, StreamUnavailableError, UpstreamError
from app.models.assistant import AssistantCitation
from app.models.chat import Message
from app.services.assistant import AssistantClient

MESSAGES = [Message(role="user", content="What does the handbook say about leave?")]

CITATION_CHUNK = {
    "type": "citation",
    "id": "chunk-3",
    "citation": {
        "position": 11,
        "references": [{"file": {"id": "file-1", "name": "handbook.pdf"}, "pages": [4]}],
    },
}


def make_client(handler, *, api_key="pc-test-key", name="test-assistant") -> AssistantClient:
    return AssistantClient(
        api_key,
        name,
        http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        data_host="https://assistant.test",
        control_host="https://control.test",
        api_version="2025-04",
    )


def stream_body(*chunks: dict, extra: str = "") -> bytes:
    lines = "".join(f"data:{json.dumps(chunk)}\n\n" for chunk in chunks)
    return (lines + extra).encode()


async def collect(stream) -> list:
    items = []
    async for item in stream.items():
        items.append(item)
    await stream.aclose()
    return items


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class TestOpenStream:
    @pytest.mark.asyncio
    async def test_yields_content_and_citations(self):
        body = stream_body(
            {"type": "message_start", "role": "assistant"},
            {"type": "content_chunk", "delta": {"content": "Employees "}},
            {"type": "content_chunk", "delta": {"content": "get leave."}},
            CITATION_CHUNK,
            {"type": "message_end", "finish_reason": "stop"},
        )
        client = make_client(lambda request: httpx.Response(200, content=body))

        items = await collect(await client.open_stream(MESSAGES))

        assert items[:2] == ["Employees ", "get leave."]
        assert isinstance(items[2], AssistantCitation)
        assert items[2].position == 11
        assert items[2].references[0].file.name == "handbook.pdf"
        assert len(items) == 3

    @pytest.mark.asyncio
    async def test_skips_malformed_lines(self):
        body = stream_body(
            {"type": "content_chunk", "delta": {"content": "ok"}},
            {"delta": {"content": "no type"}},
            extra="data:{not json\n\n: keep-alive comment\n\ndata: [DONE]\n\n",
        )
        client = make_client(lambda request: httpx.Response(200, content=body))

        assert await collect(await client.open_stream(MESSAGES)) == ["ok"]

    @pytest.mark.asyncio
    async def test_sends_stream_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b"")

        client = make_client(handler)
        stream = await client.open_stream(MESSAGES, model="gpt-4o", temperature=0.2)
        await stream.aclose()

        assert seen["url"] == "https://assistant.test/assistant/chat/test-assistant"
        assert seen["headers"]["Api-Key"] == "pc-test-key"
        assert seen["headers"]["X-Pinecone-API-Version"] == "2025-04"
        assert seen["body"] == {
            "messages": [{"role": "user", "content": MESSAGES[0].content}],
            "stream": True,
            "model": "gpt-4o",
            "temperature": 0.2,
        }

    @pytest.mark.asyncio
    async def test_rejected_stream_raises_stream_unavailable(self):
        client = make_client(
            lambda request: httpx.Response(400, json={"error": "streaming not supported"})
        )
        with pytest.raises(StreamUnavailableError) as exc_info:
            await client.open_stream(MESSAGES)
        assert exc_info.value.status_code == 400
        assert "streaming not supported" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_failure_raises_stream_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StreamUnavailableError):
            await make_client(handler).open_stream(MESSAGES)

    @pytest.mark.asyncio
    async def test_missing_configuration_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        with pytest.raises(ConfigurationError):
            await make_client(handler, api_key="").open_stream(MESSAGES)
        assert calls == []


# ---------------------------------------------------------------------------
# Blocking chat
# ---------------------------------------------------------------------------


class TestChat:
    @pytest.mark.asyncio
    async def test_parses_message_and_citations(self):
        payload = {
            "id": "resp-1",
            "finish_reason": "stop",
            "message": {"role": "assistant", "content": "Employees get leave."},
            "citations": [CITATION_CHUNK["citation"]],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5},
        }
        client = make_client(lambda request: httpx.Response(200, json=payload))

        response = await client.chat(MESSAGES)

        assert response.message.content == "Employees get leave."
        assert response.citations[0].position == 11

    @pytest.mark.asyncio
    async def test_sends_non_streaming_request(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"content": "hi"}})

        await make_client(handler).chat(MESSAGES)
        assert seen["body"]["stream"] is False
        assert "model" not in seen["body"]

    @pytest.mark.asyncio
    async def test_error_status_raises_upstream_error(self):
        client = make_client(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(UpstreamError) as exc_info:
            await client.chat(MESSAGES)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_unreadable_body_raises_upstream_error(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamError):
            await client.chat(MESSAGES)

    @pytest.mark.asyncio
    async def test_null_citations_are_accepted(self):
        client = make_client(
            lambda request: httpx.Response(
                200, json={"message": {"content": "hi"}, "citations": None}
            )
        )
        response = await client.chat(MESSAGES)
        assert response.citations is None


# ---------------------------------------------------------------------------
# Instructions (control plane)
# ---------------------------------------------------------------------------


class TestInstructions:
    @pytest.mark.asyncio
    async def test_describe_reads_instructions(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            return httpx.Response(
                200, json={"name": "test-assistant", "instructions": "Be brief.", "status": "Ready"}
            )

        description = await make_client(handler).describe()

        assert description.instructions == "Be brief."
        assert seen == {
            "method": "GET",
            "url": "https://control.test/assistant/assistants/test-assistant",
        }

    @pytest.mark.asyncio
    async def test_update_patches_instructions(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"name": "test-assistant", "instructions": "New."})

        await make_client(handler).update_instructions("New.")

        assert seen == {"method": "PATCH", "body": {"instructions": "New."}}

    @pytest.mark.asyncio
    async def test_control_failure_raises_upstream_error(self):
        client = make_client(lambda request: httpx.Response(404, json={"error": "not found"}))
        with pytest.raises(UpstreamError):
            await client.describe()
