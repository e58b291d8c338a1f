from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.core.config import Settings, settings
from app.core.errors import GenerationError

logger = logging.getLogger(__name__)

_ANSWER_STYLE = (
    "Responda de forma clara, objetiva e amigável em português. "
    "Foque em ajudar parceiros com vendas e dúvidas sobre produtos financeiros."
)


@dataclass(slots=True)
class Generation:
    text: str
    tokens_used: int = 0


class TextGenerator(Protocol):
    async def generate(self, prompt: str, context: str | None = None) -> Generation: ...


def build_prompt(message: str, context: str | None) -> str:
    if context:
        return f"Contexto: {context}\n\nPergunta do usuário: {message}\n\n{_ANSWER_STYLE}"
    return f"Pergunta: {message}\n\n{_ANSWER_STYLE}"


class GeminiTextGenerator:
    """Google Generative Language `generateContent` over REST."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def generate(self, prompt: str, context: str | None = None) -> Generation:
        if not self._api_key:
            raise GenerationError("GEMINI_API_KEY is not configured")

        payload = {
            "contents": [{"parts": [{"text": build_prompt(prompt, context)}]}],
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 1024,
            },
        }

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                logger.info("Calling Gemini model %s", self._model)
                resp = await client.post(
                    f"/models/{self._model}:generateContent",
                    params={"key": self._api_key},
                    json=payload,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Gemini API error: %s - %s", e.response.status_code, e.response.text
            )
            raise GenerationError(
                f"Gemini API error: {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise GenerationError("Gemini API timeout") from e
        except (httpx.HTTPError, ValueError) as e:
            raise GenerationError(f"Gemini request failed: {e}") from e

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError("Malformed Gemini response") from e

        usage = data.get("usageMetadata") or {}
        return Generation(text=text, tokens_used=int(usage.get("totalTokenCount") or 0))


class OpenAICompatibleTextGenerator:
    """`/chat/completions` on any OpenAI-compatible endpoint (Groq, NVIDIA, ...)."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def _list_models(self, client: httpx.AsyncClient) -> list[str]:
        try:
            resp = await client.get(
                "/models", headers={"Authorization": f"Bearer {self._api_key}"}
            )
            resp.raise_for_status()
            data = resp.json() or {}
        except (httpx.HTTPError, ValueError):
            return []
        models = [str(m.get("id")) for m in (data.get("data") or []) if m and m.get("id")]
        # Keep stable ordering for fallback selection.
        return sorted(set(models))

    @staticmethod
    def _pick_fallback_model(available: list[str]) -> str | None:
        if not available:
            return None
        preferred = [
            "llama-3.3-70b-versatile",
            "llama-3.1-70b-versatile",
        ]
        available_set = set(available)
        for name in preferred:
            if name in available_set:
                return name
        return available[0]

    async def generate(self, prompt: str, context: str | None = None) -> Generation:
        if not self._api_key:
            raise GenerationError("LLM_API_KEY is not configured")

        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": context or "You are a helpful assistant."},
                {"role": "user", "content": build_prompt(prompt, None)},
            ],
            "temperature": 0.7,
            "max_tokens": 1024,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                logger.info(
                    "Calling LLM at %s with model %s", self._base_url, payload["model"]
                )
                resp = await client.post("/chat/completions", json=payload, headers=headers)

                # If the configured model is invalid, try a one-time fallback from /models.
                if resp.status_code == 400:
                    body = (resp.text or "").lower()
                    if "model" in body or "not found" in body:
                        fallback = self._pick_fallback_model(
                            await self._list_models(client)
                        )
                        if fallback and fallback != payload["model"]:
                            logger.warning(
                                "Model '%s' rejected; retrying with fallback '%s'",
                                payload["model"],
                                fallback,
                            )
                            resp = await client.post(
                                "/chat/completions",
                                json={**payload, "model": fallback},
                                headers=headers,
                            )

                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("LLM API error: %s - %s", e.response.status_code, e.response.text)
            raise GenerationError(f"LLM API error: {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise GenerationError("LLM API timeout") from e
        except (httpx.HTTPError, ValueError) as e:
            raise GenerationError(f"LLM request failed: {e}") from e

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError("Malformed LLM response") from e

        usage = data.get("usage") or {}
        return Generation(text=text, tokens_used=int(usage.get("total_tokens") or 0))


def get_text_generator(config: Settings = settings) -> TextGenerator:
    if config.llm_provider == "openai":
        return OpenAICompatibleTextGenerator(
            api_key=config.effective_llm_api_key(),
            model=config.llm_model,
            base_url=config.llm_base_url,
            timeout=config.llm_timeout_seconds,
        )
    return GeminiTextGenerator(
        api_key=config.effective_llm_api_key(),
        model=config.gemini_model,
        base_url=config.gemini_base_url,
        timeout=config.llm_timeout_seconds,
    )
