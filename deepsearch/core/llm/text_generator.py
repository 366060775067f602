"""
Text generator backed by a single LLM provider.
One request per call, no retry; failures are logged and surface as an empty string.
"""
import time
from typing import Any, Dict, Literal, Optional
import openai
from anthropic import AsyncAnthropic
import google.generativeai as genai
from groq import AsyncGroq
from loguru import logger

from deepsearch.models.config import LLMProviderConfig, LLMProviderKind, OPENAI_COMPATIBLE_KINDS


ResponseFormat = Literal["text", "json"]


class TextGenerator:
    """
    Uniform "generate text from prompt" capability over one configured backend.

    Callers must treat an empty string as "generation unavailable".
    """

    def __init__(self, config: LLMProviderConfig, default_max_tokens: int = 2048, default_temperature: float = 0.7):
        self.config = config
        self.max_tokens = config.max_tokens or default_max_tokens
        self.temperature = config.temperature if config.temperature is not None else default_temperature
        self.request_count = 0
        self.error_count = 0
        self.last_used: Optional[float] = None
        self._client: Any = None

    @property
    def name(self) -> str:
        return f"{self.config.kind.value}/{self.config.model}"

    async def generate(self, prompt: str, format: ResponseFormat = "text") -> str:
        """Issue one request and return the text payload ('' on any failure)."""
        self.request_count += 1
        self.last_used = time.time()
        try:
            text = await self._call_provider(prompt, format)
            return text or ""
        except Exception as e:
            self.error_count += 1
            logger.error(f"[TextGenerator] {self.name} failed: {str(e)[:300]}")
            return ""

    async def _call_provider(self, prompt: str, format: ResponseFormat) -> str:
        kind = self.config.kind

        if kind in OPENAI_COMPATIBLE_KINDS:
            return await self._call_openai(prompt, format)

        elif kind == LLMProviderKind.ANTHROPIC:
            return await self._call_anthropic(prompt, format)

        elif kind == LLMProviderKind.GROQ:
            return await self._call_groq(prompt, format)

        elif kind == LLMProviderKind.GEMINI:
            return await self._call_gemini(prompt, format)

        else:
            raise ValueError(f"Unknown provider: {kind}")

    def _chat_kwargs(self, prompt: str, format: ResponseFormat) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if format == "json":
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def _call_openai(self, prompt: str, format: ResponseFormat) -> str:
        """OpenAI-compatible chat completions (OpenAI, DeepSeek, Qwen, Kimi, OpenRouter)"""
        if self._client is None:
            self._client = openai.AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.endpoint or None,
            )
        response = await self._client.chat.completions.create(**self._chat_kwargs(prompt, format))
        return response.choices[0].message.content

    async def _call_groq(self, prompt: str, format: ResponseFormat) -> str:
        if self._client is None:
            self._client = AsyncGroq(api_key=self.config.api_key)
        response = await self._client.chat.completions.create(**self._chat_kwargs(prompt, format))
        return response.choices[0].message.content

    async def _call_anthropic(self, prompt: str, format: ResponseFormat) -> str:
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self.config.api_key,
                base_url=self.config.endpoint or None,
            )
        kwargs: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if format == "json":
            kwargs["system"] = "Respond ONLY with valid JSON, no markdown or extra text."
        response = await self._client.messages.create(**kwargs)
        return response.content[0].text

    async def _call_gemini(self, prompt: str, format: ResponseFormat) -> str:
        if self._client is None:
            genai.configure(api_key=self.config.api_key)
            self._client = genai.GenerativeModel(self.config.model)
        generation_config = genai.types.GenerationConfig(
            max_output_tokens=self.max_tokens,
            temperature=self.temperature,
            response_mime_type="application/json" if format == "json" else "text/plain",
        )
        response = await self._client.generate_content_async(prompt, generation_config=generation_config)
        return response.text
