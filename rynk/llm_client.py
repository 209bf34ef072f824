"""OpenAI-compatible chat clients for OpenRouter and Groq."""
from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator

from openai import AsyncOpenAI

from rynk.config import settings
from rynk.services.logger import log_llm_call


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


class ChatStream:
    """Async context manager over a streamed chat completion."""

    def __init__(self, stream_coro: Any, *, model: str, caller: str):
        self._stream_coro = stream_coro
        self._stream: Any | None = None
        self._model = model
        self._caller = caller
        self._started = 0.0
        self.usage = Usage()

    async def __aenter__(self) -> "ChatStream":
        self._started = time.monotonic()
        self._stream = await self._stream_coro
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stream is not None:
            await self._stream.close()
        log_llm_call(
            model=self._model,
            caller=self._caller,
            input_tokens=self.usage.input_tokens,
            output_tokens=self.usage.output_tokens,
            duration_ms=int((time.monotonic() - self._started) * 1000),
            status="error" if exc else "success",
            error=str(exc) if exc else None,
        )

    async def _iter_text(self) -> AsyncIterator[str]:
        if self._stream is None:
            return
        async for chunk in self._stream:
            usage = getattr(chunk, "usage", None)
            if usage:
                self.usage = Usage(
                    input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                    output_tokens=getattr(usage, "completion_tokens", 0) or 0,
                )
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            text = getattr(delta, "content", None) if delta else None
            if text:
                yield text

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return self._iter_text()


class ChatProvider:
    """One OpenAI-compatible endpoint plus its default model."""

    def __init__(self, name: str, openai_client: Any, default_model: str):
        self.name = name
        self.default_model = default_model
        self._client = openai_client

    def stream(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        caller: str = "chat",
    ) -> ChatStream:
        model = model or self.default_model
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        return ChatStream(self._client.chat.completions.create(**kwargs), model=model, caller=caller)

    async def _create(self, caller: str, **kwargs: Any) -> Any:
        started = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            log_llm_call(
                model=kwargs["model"],
                caller=caller,
                duration_ms=int((time.monotonic() - started) * 1000),
                status="error",
                error=str(exc),
            )
            raise
        usage = getattr(response, "usage", None)
        log_llm_call(
            model=kwargs["model"],
            caller=caller,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return response

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        json_mode: bool = False,
        caller: str = "complete",
    ) -> str:
        """Run a non-streamed completion and return the message text."""
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self._create(caller, **kwargs)
        return (response.choices[0].message.content or "").strip()

    async def complete_json(
        self,
        messages: list[dict[str, Any]],
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Completion in JSON mode. Raises ValueError when the reply is not a JSON object."""
        text = await self.complete(messages, json_mode=True, **kwargs)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Model returned invalid JSON: {text[:100]}") from exc
        if not isinstance(parsed, dict):
            raise ValueError("Model returned JSON that is not an object")
        return parsed

    async def call_tool(
        self,
        messages: list[dict[str, Any]],
        tool: dict[str, Any],
        *,
        model: str | None = None,
        temperature: float = 0.0,
        caller: str = "tool_call",
    ) -> dict[str, Any]:
        """Force a single function call and return its parsed arguments."""
        response = await self._create(
            caller,
            model=model or self.default_model,
            messages=messages,
            temperature=temperature,
            tools=[{"type": "function", "function": tool}],
            tool_choice={"type": "function", "function": {"name": tool["name"]}},
        )
        tool_calls = getattr(response.choices[0].message, "tool_calls", None) or []
        if not tool_calls:
            raise ValueError(f"Model did not call {tool['name']}")
        return json.loads(tool_calls[0].function.arguments or "{}")

    async def embed(self, text: str, *, model: str | None = None) -> list[float]:
        response = await self._client.embeddings.create(
            model=model or settings.embedding_model,
            input=text,
        )
        return list(response.data[0].embedding)


def get_model() -> str:
    """Get the active OpenRouter model id."""
    if settings.openrouter_model:
        return settings.openrouter_model
    return settings.default_model


def _build_openrouter() -> ChatProvider:
    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    client = AsyncOpenAI(api_key=settings.openrouter_api_key, base_url=base_url)
    return ChatProvider("openrouter", client, get_model())


def _build_groq() -> ChatProvider:
    base_url = settings.groq_base_url.strip() or "https://api.groq.com/openai/v1"
    client = AsyncOpenAI(api_key=settings.groq_api_key, base_url=base_url)
    return ChatProvider("groq", client, settings.groq_chat_model)


_providers: dict[str, ChatProvider] = {}


def openrouter() -> ChatProvider:
    """Get or create the OpenRouter provider."""
    if "openrouter" not in _providers:
        _providers["openrouter"] = _build_openrouter()
    return _providers["openrouter"]


def groq() -> ChatProvider:
    """Get or create the Groq provider."""
    if "groq" not in _providers:
        _providers["groq"] = _build_groq()
    return _providers["groq"]


def get_ai_provider(has_files: bool = False) -> ChatProvider:
    """Multimodal requests go to OpenRouter, text-only requests to Groq."""
    if has_files or not settings.groq_api_key:
        return openrouter()
    return groq()
