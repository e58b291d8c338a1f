import json

import httpx
import pytest

from app.core.config import Settings
from app.core.errors import GenerationError
from app.services.generation import (
    GeminiTextGenerator,
    OpenAICompatibleTextGenerator,
    build_prompt,
    get_text_generator,
)


def _gemini(handler, api_key="test-key"):
    return GeminiTextGenerator(
        api_key=api_key,
        model="gemini-pro",
        base_url="https://gemini.test/v1beta",
        transport=httpx.MockTransport(handler),
    )


def _openai(handler, model="old-model"):
    return OpenAICompatibleTextGenerator(
        api_key="test-key",
        model=model,
        base_url="https://llm.test/v1",
        transport=httpx.MockTransport(handler),
    )


def test_build_prompt_embeds_context():
    prompt = build_prompt("Como indicar?", "Usuário: Ana")
    assert prompt.startswith("Contexto: Usuário: Ana")
    assert "Pergunta do usuário: Como indicar?" in prompt

    assert build_prompt("Oi", None).startswith("Pergunta: Oi")


# ----------------------------------------------------------------------------
# Gemini
# ----------------------------------------------------------------------------


class TestGemini:
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.url.params.get("key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "candidates": [{"content": {"parts": [{"text": "Olá, parceiro!"}]}}],
                    "usageMetadata": {"totalTokenCount": 37},
                },
            )

        result = await _gemini(handler).generate("Oi", "contexto")

        assert result.text == "Olá, parceiro!"
        assert result.tokens_used == 37
        assert seen["path"] == "/v1beta/models/gemini-pro:generateContent"
        assert seen["key"] == "test-key"
        assert "Oi" in seen["body"]["contents"][0]["parts"][0]["text"]

    async def test_missing_usage_counts_zero_tokens(self):
        def handler(request):
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}
            )

        result = await _gemini(handler).generate("Oi")
        assert result.tokens_used == 0

    async def test_http_error(self):
        def handler(request):
            return httpx.Response(429, json={"error": "quota"})

        with pytest.raises(GenerationError, match="429"):
            await _gemini(handler).generate("Oi")

    async def test_malformed_response(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": []})

        with pytest.raises(GenerationError, match="Malformed"):
            await _gemini(handler).generate("Oi")

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(GenerationError, match="timeout"):
            await _gemini(handler).generate("Oi")

    async def test_missing_key_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        with pytest.raises(GenerationError):
            await _gemini(handler, api_key="").generate("Oi")
        assert calls == []


# ----------------------------------------------------------------------------
# OpenAI-compatible
# ----------------------------------------------------------------------------


class TestOpenAICompatible:
    async def test_success(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["messages"][0] == {"role": "system", "content": "ctx"}
            assert request.headers["authorization"] == "Bearer test-key"
            return httpx.Response(
                200,
                json={
                    "choices": [{"message": {"content": "Resposta"}}],
                    "usage": {"total_tokens": 12},
                },
            )

        result = await _openai(handler).generate("Oi", "ctx")

        assert result.text == "Resposta"
        assert result.tokens_used == 12

    async def test_rejected_model_retries_with_fallback(self):
        models_tried = []

        def handler(request):
            if request.method == "GET" and request.url.path == "/v1/models":
                return httpx.Response(
                    200,
                    json={"data": [{"id": "mixtral"}, {"id": "llama-3.3-70b-versatile"}]},
                )
            model = json.loads(request.content)["model"]
            models_tried.append(model)
            if model == "old-model":
                return httpx.Response(400, text="model not found")
            return httpx.Response(
                200, json={"choices": [{"message": {"content": "ok"}}], "usage": {}}
            )

        result = await _openai(handler).generate("Oi")

        assert result.text == "ok"
        assert models_tried == ["old-model", "llama-3.3-70b-versatile"]

    async def test_error_after_fallback(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(500)
            return httpx.Response(400, text="model not found")

        with pytest.raises(GenerationError, match="400"):
            await _openai(handler).generate("Oi")


def test_get_text_generator_by_provider():
    gemini = get_text_generator(Settings(LLM_PROVIDER="gemini", GEMINI_API_KEY="g"))
    openai = get_text_generator(Settings(LLM_PROVIDER="openai", GROQ_API_KEY="q"))

    assert isinstance(gemini, GeminiTextGenerator)
    assert isinstance(openai, OpenAICompatibleTextGenerator)
    assert openai._api_key == "q"
