"""Pinecone Assistant REST client.

Wraps the two data-plane chat calls (blocking and streamed) and the two
control-plane calls used to read and replace the assistant's instructions.
Streams are returned already opened so the caller can tell "rejected"
(fall back to the blocking call) apart from "failed mid-stream".
"""
import json
import logging
from collections.abc import AsyncIterator, Sequence

import httpx
from pydantic import ValidationError

from app.core.errors import ConfigurationError, StreamUnavailableError, UpstreamError
from app.models.assistant import (
    AssistantChatResponse,
    AssistantChunk,
    AssistantCitation,
    AssistantDescription,
)
from app.models.chat import Message

logger = logging.getLogger(__name__)

# Yielded by AssistantStream.items(): a content delta or a citation fragment.
StreamItem = str | AssistantCitation


def _parse_event_line(line: str) -> dict | None:
    """Decode one ``data:`` line of the upstream event stream, or return None."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.warning("Skipping malformed assistant stream line: %s", data[:200])
        return None
    return payload if isinstance(payload, dict) else None


class AssistantStream:
    """An opened streaming chat response."""

    def __init__(self, response: httpx.Response):
        self._response = response

    async def items(self) -> AsyncIterator[StreamItem]:
        async for line in self._response.aiter_lines():
            payload = _parse_event_line(line)
            if payload is None:
                continue
            logger.debug("Assistant stream chunk: %s", payload)
            try:
                chunk = AssistantChunk.model_validate(payload)
            except ValidationError as exc:
                logger.warning("Skipping unrecognised assistant chunk: %s", exc)
                continue

            if chunk.type == "content_chunk" and chunk.delta and chunk.delta.content:
                yield chunk.delta.content
            elif chunk.type == "citation" and chunk.citation is not None:
                yield chunk.citation

    async def aclose(self) -> None:
        await self._response.aclose()


class AssistantClient:
    def __init__(
        self,
        api_key: str,
        assistant_name: str,
        *,
        http: httpx.AsyncClient,
        data_host: str,
        control_host: str,
        api_version: str,
    ):
        self.api_key = api_key
        self.assistant_name = assistant_name
        self._http = http
        self._data_host = data_host.rstrip("/")
        self._control_host = control_host.rstrip("/")
        self._api_version = api_version

    def ensure_configured(self) -> None:
        if not self.api_key or not self.assistant_name:
            raise ConfigurationError(
                "Missing PINECONE_API_KEY or PINECONE_ASSISTANT_NAME environment variables"
            )

    @property
    def _chat_url(self) -> str:
        return f"{self._data_host}/assistant/chat/{self.assistant_name}"

    @property
    def _assistant_url(self) -> str:
        return f"{self._control_host}/assistant/assistants/{self.assistant_name}"

    def _headers(self) -> dict[str, str]:
        return {
            "Api-Key": self.api_key,
            "Content-Type": "application/json",
            "X-Pinecone-API-Version": self._api_version,
        }

    @staticmethod
    def _chat_body(
        messages: Sequence[Message],
        *,
        stream: bool,
        model: str | None,
        temperature: float | None,
    ) -> dict:
        body: dict = {
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": stream,
        }
        if model:
            body["model"] = model
        if temperature is not None:
            body["temperature"] = temperature
        return body

    async def chat(
        self,
        messages: Sequence[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> AssistantChatResponse:
        """Blocking chat call. Raises UpstreamError on any failure."""
        self.ensure_configured()
        logger.info(
            "Assistant chat: assistant=%s messages=%d model=%s",
            self.assistant_name,
            len(messages),
            model,
        )
        body = self._chat_body(messages, stream=False, model=model, temperature=temperature)
        try:
            response = await self._http.post(self._chat_url, headers=self._headers(), json=body)
            response.raise_for_status()
            return AssistantChatResponse.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"Assistant chat failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Assistant chat failed: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            raise UpstreamError(f"Assistant chat returned an unreadable body: {exc}") from exc

    async def open_stream(
        self,
        messages: Sequence[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> AssistantStream:
        """Start a streamed chat and return once the response headers arrive.

        Raises:
            StreamUnavailableError: the request was rejected or never connected.
        """
        self.ensure_configured()
        logger.info(
            "Assistant chat (streaming): assistant=%s messages=%d model=%s",
            self.assistant_name,
            len(messages),
            model,
        )
        body = self._chat_body(messages, stream=True, model=model, temperature=temperature)
        request = self._http.build_request(
            "POST", self._chat_url, headers=self._headers(), json=body
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise StreamUnavailableError(f"Assistant stream could not be opened: {exc}") from exc

        if response.is_error:
            detail = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            raise StreamUnavailableError(
                f"Assistant stream rejected with status {response.status_code}: {detail[:200]}",
                status_code=response.status_code,
            )
        return AssistantStream(response)

    async def describe(self) -> AssistantDescription:
        self.ensure_configured()
        logger.info("Fetching assistant details: %s", self.assistant_name)
        return await self._control_call("GET")

    async def update_instructions(self, instructions: str) -> AssistantDescription:
        self.ensure_configured()
        logger.info("Updating assistant instructions: %s", self.assistant_name)
        return await self._control_call("PATCH", {"instructions": instructions})

    async def _control_call(self, method: str, body: dict | None = None) -> AssistantDescription:
        try:
            response = await self._http.request(
                method, self._assistant_url, headers=self._headers(), json=body
            )
            response.raise_for_status()
            return AssistantDescription.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"Assistant {method} failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Assistant {method} failed: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            raise UpstreamError(f"Assistant {method} returned an unreadable body: {exc}") from exc
