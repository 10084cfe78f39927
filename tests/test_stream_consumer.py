"""
Tests for the proxy stream consumer: SSE parsing, retries and cancellation.

The proxy is replaced by httpx.MockTransport handlers, except in
TestAgainstProxyApp which runs the real application through ASGITransport.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from mapychat.api.server import app
from mapychat.client.stream_consumer import (
    ChatStreamConsumer,
    ProxyRequestError,
    StreamCancelledError,
    StreamConsumerConfig,
    StreamRequest,
    data_payload,
    extract_delta,
)
from mapychat.client.upstream import UpstreamClient, UpstreamClientConfig
from mapychat.core.rate_limiter import FixedWindowRateLimiter
from mapychat.domain.entities import ChatMessage, ImagePart, PartsContent, Role, TextPart
from tests.helpers import (
    MODEL,
    UpstreamRecorder,
    cleanup_dependency_overrides,
    make_settings,
    setup_dependency_overrides,
    sse_body,
)

REQUEST = StreamRequest(
    model=MODEL,
    system_prompt="Eres un asistente útil.",
    messages=(ChatMessage.text(Role.USER, "hola"),),
    temperature=0.8,
)


def make_consumer(handler, **overrides) -> ChatStreamConsumer:
    options = {"base_url": "http://proxy.test", "retry_delay": 0.0, **overrides}
    return ChatStreamConsumer(
        StreamConsumerConfig(transport=httpx.MockTransport(handler), **options)
    )


def raw_event(content: str) -> bytes:
    payload = json.dumps({"choices": [{"delta": {"content": content}}]}, ensure_ascii=False)
    return f"data: {payload}\n\n".encode()


class _ProxyStub:
    """MockTransport handler that answers each call with the next response."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.calls: list[httpx.Request] = []
        self.called = asyncio.Event()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        self.called.set()
        return self.responses.pop(0)


def stream_response(*chunks: bytes) -> httpx.Response:
    async def body():
        for chunk in chunks:
            yield chunk

    return httpx.Response(200, content=body(), headers={"Content-Type": "text/event-stream"})


def error_response(status: int = 500, message: str = "caído") -> httpx.Response:
    return httpx.Response(status, json={"error": message, "code": "upstream_error"})


class TestParsing:
    """Tests for SSE data lines and delta extraction."""

    def test_data_payload(self):
        assert data_payload("data: uno") == "uno"
        assert data_payload("data:[DONE]") == "[DONE]"
        assert data_payload("  data: dos \r") == "dos"

    @pytest.mark.parametrize("line", ["", ": keep-alive", "event: ping", "data:", "data:   "])
    def test_non_data_lines_ignored(self, line):
        assert data_payload(line) is None

    def test_extract_delta(self):
        assert extract_delta('{"choices":[{"delta":{"content":"hola"}}]}') == "hola"
        assert extract_delta('{"choices":[{"delta":{}}]}') is None
        assert extract_delta('{"choices":[]}') is None
        assert extract_delta('{"choices":[{"delta":{"content":""}}]}') is None

    def test_extract_delta_rejects_bad_json(self):
        with pytest.raises(ValueError):
            extract_delta("{not json")


class TestStreamRequest:
    """Tests for the proxy request body."""

    def test_camel_case_and_omitted_fields(self):
        assert REQUEST.to_json() == {
            "model": MODEL,
            "systemPrompt": "Eres un asistente útil.",
            "messages": [{"role": "user", "content": "hola"}],
            "temperature": 0.8,
        }

    def test_optional_fields_and_multipart(self):
        request = StreamRequest(
            model=MODEL,
            system_prompt="s",
            messages=(
                ChatMessage(Role.USER, PartsContent((TextPart("mira"), ImagePart("https://a.example/x.png")))),
            ),
            character_prompt="pirata",
            response_level=3,
            max_tokens=900,
        )
        body = request.to_json()
        assert body["characterPrompt"] == "pirata"
        assert body["responseLevel"] == 3
        assert body["maxTokens"] == 900
        assert body["messages"][0]["content"][1]["image_url"]["detail"] == "auto"


class TestStreaming:
    """Tests for a single successful stream."""

    @pytest.mark.asyncio
    async def test_deltas_delivered_in_order(self):
        stub = _ProxyStub(stream_response(sse_body("Ho", "la", " mundo")))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert deltas == ["Ho", "la", " mundo"]
        [request] = stub.calls
        assert request.url.path == "/api/grok"
        assert json.loads(request.content)["systemPrompt"] == "Eres un asistente útil."

    @pytest.mark.asyncio
    async def test_multibyte_characters_split_across_chunks(self):
        event = raw_event("año ñandú")
        split_at = event.index("ñ".encode()) + 1
        stub = _ProxyStub(stream_response(event[:split_at], event[split_at:], b"data: [DONE]\n\n"))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert deltas == ["año ñandú"]

    @pytest.mark.asyncio
    async def test_lines_split_across_chunks(self):
        body = sse_body("uno", "dos")
        stub = _ProxyStub(stream_response(*(body[i : i + 7] for i in range(0, len(body), 7))))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert deltas == ["uno", "dos"]

    @pytest.mark.asyncio
    async def test_done_sentinel_stops_reading(self):
        stub = _ProxyStub(stream_response(sse_body("a"), raw_event("b")))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert deltas == ["a"]

    @pytest.mark.asyncio
    async def test_malformed_chunks_are_skipped(self):
        stub = _ProxyStub(stream_response(b"data: {not json}\n\n", sse_body("ok")))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert deltas == ["ok"]

    @pytest.mark.asyncio
    async def test_unterminated_final_line_is_delivered(self):
        stub = _ProxyStub(stream_response(raw_event("uno"), raw_event("fin").rstrip(b"\n")))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert deltas == ["uno", "fin"]

    @pytest.mark.asyncio
    async def test_crlf_line_endings(self):
        body = sse_body("uno", "dos").replace(b"\n", b"\r\n")
        stub = _ProxyStub(stream_response(body[:9], body[9:]))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert deltas == ["uno", "dos"]


class TestRetries:
    """Tests for the linear backoff retry loop."""

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self):
        stub = _ProxyStub(error_response(), error_response(502), stream_response(sse_body("ok")))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert len(stub.calls) == 3
        assert deltas == ["ok"]

    @pytest.mark.asyncio
    async def test_raises_proxy_message_when_exhausted(self):
        stub = _ProxyStub(*(error_response(429, "Demasiadas solicitudes") for _ in range(3)))
        async with make_consumer(stub, max_retries=2) as consumer:
            with pytest.raises(ProxyRequestError) as exc_info:
                await consumer.stream_with_retries(REQUEST, lambda delta: None)

        assert len(stub.calls) == 3
        assert exc_info.value.status_code == 429
        assert exc_info.value.message == "Demasiadas solicitudes"

    @pytest.mark.asyncio
    async def test_unparseable_error_body_uses_generic_message(self):
        stub = _ProxyStub(httpx.Response(500, content=b"<html>oops</html>"))
        async with make_consumer(stub, max_retries=0) as consumer:
            with pytest.raises(ProxyRequestError, match="Error en la solicitud"):
                await consumer.stream_with_retries(REQUEST, lambda delta: None)

        assert len(stub.calls) == 1


class TestCancellation:
    """Tests for cancel() during streaming and during backoff."""

    @pytest.mark.asyncio
    async def test_cancel_mid_stream_keeps_delivered_deltas(self):
        async def hanging_body():
            yield raw_event("Hola")
            await asyncio.sleep(30)
            yield raw_event("nunca")

        stub = _ProxyStub(httpx.Response(200, content=hanging_body()))
        deltas: list[str] = []
        first_delta = asyncio.Event()

        def on_delta(delta: str) -> None:
            deltas.append(delta)
            first_delta.set()

        async with make_consumer(stub) as consumer:
            task = asyncio.create_task(consumer.stream_with_retries(REQUEST, on_delta))
            await asyncio.wait_for(first_delta.wait(), timeout=2)
            assert consumer.is_streaming

            consumer.cancel()
            with pytest.raises(StreamCancelledError):
                await asyncio.wait_for(task, timeout=2)

            assert not consumer.is_streaming

        assert deltas == ["Hola"]
        assert len(stub.calls) == 1

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_stops_retrying(self):
        stub = _ProxyStub(error_response())
        async with make_consumer(stub, retry_delay=10.0) as consumer:
            task = asyncio.create_task(consumer.stream_with_retries(REQUEST, lambda delta: None))
            await asyncio.wait_for(stub.called.wait(), timeout=2)
            await asyncio.sleep(0.05)

            consumer.cancel()
            with pytest.raises(StreamCancelledError):
                await asyncio.wait_for(task, timeout=2)

        assert len(stub.calls) == 1

    @pytest.mark.asyncio
    async def test_consumer_is_reusable_after_cancel(self):
        stub = _ProxyStub(stream_response(sse_body("otra vez")))
        deltas: list[str] = []
        async with make_consumer(stub) as consumer:
            consumer.cancel()
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert deltas == ["otra vez"]


class TestAgainstProxyApp:
    """End-to-end: consumer -> FastAPI proxy -> mocked xAI API."""

    @pytest.fixture
    def proxy_transport(self, fake_clock):
        recorder = UpstreamRecorder(body=sse_body("Hola", ", ", "¿qué tal?"))
        upstream_client = UpstreamClient(UpstreamClientConfig(transport=recorder.transport))
        limiter = FixedWindowRateLimiter(limit=10, window_ms=60_000, clock=fake_clock)
        setup_dependency_overrides(app, make_settings(), limiter, upstream_client)
        try:
            yield httpx.ASGITransport(app=app)
        finally:
            cleanup_dependency_overrides(app)

    @pytest.mark.asyncio
    async def test_streams_through_proxy(self, proxy_transport):
        deltas: list[str] = []
        config = StreamConsumerConfig(base_url="http://proxy.test", transport=proxy_transport)
        async with ChatStreamConsumer(config) as consumer:
            await consumer.stream_with_retries(REQUEST, deltas.append)

        assert "".join(deltas) == "Hola, ¿qué tal?"

    @pytest.mark.asyncio
    async def test_policy_rejection_surfaces_proxy_message(self, proxy_transport):
        request = StreamRequest(
            model=MODEL,
            system_prompt="s",
            messages=(ChatMessage.text(Role.USER, "in" + "cest" + "o"),),
        )
        config = StreamConsumerConfig(
            base_url="http://proxy.test", transport=proxy_transport, max_retries=0
        )
        async with ChatStreamConsumer(config) as consumer:
            with pytest.raises(ProxyRequestError) as exc_info:
                await consumer.stream_with_retries(request, lambda delta: None)

        assert exc_info.value.status_code == 400
        assert "(contenido hard prohibido)" in exc_info.value.message
