"""
Tests for the Ollama and LM Studio clients against a mocked HTTP transport.

Usage:
    pytest testing/test_llm_clients.py
"""

import asyncio
import json

import httpx
import pytest

from persona_engine.config.models import LLMConfig
from persona_engine.llm import LLMError, LMStudioLLMClient, OllamaLLMClient, create_llm_client

MESSAGES = [{"role": "system", "content": "You are Ada."}, {"role": "user", "content": "hi"}]


def _client(cls, handler):
    return cls(
        base_url="http://llm.test/",
        model="test-model",
        timeout=5,
        temperature=0.5,
        max_tokens=64,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def _stream(client, **kwargs):
    async def run():
        return [chunk async for chunk in client.stream_with_history(MESSAGES, **kwargs)]
    return asyncio.run(run())


def test_ollama_stream_parses_ndjson():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        lines = [
            {"message": {"content": "Hel"}, "done": False},
            {"message": {"content": "lo"}, "done": False},
            {"message": {"content": ""}, "done": True, "done_reason": "stop"},
        ]
        return httpx.Response(200, text="\n".join(json.dumps(line) for line in lines))

    client = _client(OllamaLLMClient, handler)
    assert _stream(client, temperature=0.1) == ["Hel", "lo"]
    assert seen["url"] == "http://llm.test/api/chat"
    assert seen["body"]["stream"] is True
    assert seen["body"]["messages"] == MESSAGES
    assert seen["body"]["options"] == {"temperature": 0.1, "num_predict": 64}


def test_ollama_stream_error_line():
    def handler(request):
        return httpx.Response(200, text=json.dumps({"error": "model not found"}))

    with pytest.raises(LLMError, match="model not found"):
        _stream(_client(OllamaLLMClient, handler))


def test_ollama_http_error():
    client = _client(OllamaLLMClient, lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(LLMError):
        _stream(client)


def test_ollama_health_check():
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": []})

    assert asyncio.run(_client(OllamaLLMClient, handler).health_check()) is True

    def unreachable(request):
        raise httpx.ConnectError("refused")

    assert asyncio.run(_client(OllamaLLMClient, unreachable).health_check()) is False


def test_lmstudio_stream_parses_sse():
    def handler(request):
        assert request.url.path == "/v1/chat/completions"
        body = json.loads(request.content)
        assert body["max_tokens"] == 64
        events = [
            {"choices": [{"delta": {"role": "assistant"}}]},
            {"choices": [{"delta": {"content": "Hi"}}]},
            {"choices": [{"delta": {"content": " there"}}]},
        ]
        text = "".join(f"data: {json.dumps(event)}\n\n" for event in events) + "data: [DONE]\n\n"
        return httpx.Response(200, text=text)

    assert _stream(_client(LMStudioLLMClient, handler)) == ["Hi", " there"]


def test_factory():
    assert isinstance(create_llm_client(LLMConfig(provider="ollama")), OllamaLLMClient)
    client = create_llm_client(LLMConfig(provider="lmstudio", base_url="http://localhost:1234/"))
    assert isinstance(client, LMStudioLLMClient)
    assert client.base_url == "http://localhost:1234"


def test_lmstudio_http_error():
    client = _client(LMStudioLLMClient, lambda request: httpx.Response(503, text="loading"))
    with pytest.raises(LLMError):
        _stream(client)
