from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx
import ollama
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from prompt_optimizer.core.errors import ErrorKind, OptimizationError
from prompt_optimizer.services.preferences import ProviderName


DEFAULT_TEMPERATURE = 0.4
DEFAULT_MAX_OUTPUT_TOKENS = 4096

GEMINI_SAFETY_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)

_BLOCKING_FINISH_REASONS = {"SAFETY", "RECITATION"}


@dataclass(frozen=True)
class ProviderInfo:
    id: ProviderName
    name: str
    model: str
    free: bool

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "model": self.model, "free": self.free}


class ProviderStatusError(Exception):
    """Provider answered with a non-success HTTP status."""

    def __init__(self, status: int, message: str = ""):
        super().__init__(message or f"HTTP {status}")
        self.status = status
        self.message = message


class ProviderConnectionError(Exception):
    """No HTTP response at all (DNS, refused connection, timeout)."""


class LLMProvider(Protocol):
    name: ProviderName
    model: str

    def generate(self, prompt: str) -> str: ...


def _enum_name(value: Any) -> str:
    return str(getattr(value, "value", value) or "")


@dataclass
class GeminiProvider:
    model: str
    client: genai.Client  # created with the request's api key
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    name: ProviderName = "gemini"

    def generation_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            top_p=0.9,
            # Every category explicitly at BLOCK_NONE.
            safety_settings=[
                types.SafetySetting(category=c, threshold=types.HarmBlockThreshold.BLOCK_NONE)
                for c in GEMINI_SAFETY_CATEGORIES
            ],
        )

    def generate(self, prompt: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=self.generation_config(),
            )
        except genai_errors.APIError as e:
            raise ProviderStatusError(e.code, e.message or "") from e
        except httpx.TransportError as e:
            raise ProviderConnectionError(str(e)) from e
        return self._extract_text(response)

    @staticmethod
    def _extract_text(response: Any) -> str:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback else None
        if block_reason:
            raise OptimizationError(
                ErrorKind.CONTENT_BLOCKED,
                f"Content blocked: {_enum_name(block_reason)}. Try rephrasing your prompt.",
            )

        candidates = getattr(response, "candidates", None) or []
        candidate = candidates[0] if candidates else None
        content = getattr(candidate, "content", None) if candidate else None
        if content is None:
            reason = _enum_name(getattr(candidate, "finish_reason", None))
            if reason == "SAFETY":
                raise OptimizationError(
                    ErrorKind.CONTENT_BLOCKED,
                    "Response blocked by safety filters. Try rephrasing your prompt.",
                )
            if reason == "RECITATION":
                raise OptimizationError(
                    ErrorKind.CONTENT_BLOCKED,
                    "Response blocked due to recitation concerns.",
                )
            raise OptimizationError(ErrorKind.EMPTY_RESPONSE, "No response from Gemini API. Please try again.")

        texts = [p.text for p in (getattr(content, "parts", None) or []) if getattr(p, "text", None)]
        if not texts:
            reason = _enum_name(getattr(candidate, "finish_reason", None))
            if reason in _BLOCKING_FINISH_REASONS:
                raise OptimizationError(ErrorKind.CONTENT_BLOCKED, f"Response blocked ({reason}).")
            raise OptimizationError(ErrorKind.EMPTY_RESPONSE, "Empty response from Gemini API. Please try again.")
        return "\n".join(texts)


@dataclass
class OpenAIProvider:
    model: str
    client: openai.OpenAI  # max_retries=0: one attempt per call
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    name: ProviderName = "openai"

    def generate(self, prompt: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_output_tokens,
            )
        except openai.APIStatusError as e:
            raise ProviderStatusError(e.status_code, _openai_message(e)) from e
        except openai.APIConnectionError as e:
            raise ProviderConnectionError(str(e)) from e

        choices = getattr(response, "choices", None) or []
        text = (choices[0].message.content if choices else "") or ""
        if not text:
            raise OptimizationError(ErrorKind.EMPTY_RESPONSE, "No response from OpenAI")
        return text


def _openai_message(error: openai.APIStatusError) -> str:
    body = error.body
    if isinstance(body, dict):
        nested = body.get("error")
        message = body.get("message") or (nested.get("message") if isinstance(nested, dict) else None)
        if message:
            return str(message)
    return ""


@dataclass
class OllamaProvider:
    model: str
    client: ollama.Client  # host from the request's ollama url, else OLLAMA_HOST
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    name: ProviderName = "ollama"

    def generate(self, prompt: str) -> str:
        try:
            response = self.client.chat(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                options={"temperature": self.temperature, "num_predict": self.max_output_tokens},
                stream=False,
            )
        except ollama.ResponseError as e:
            raise ProviderStatusError(e.status_code, e.error or "") from e
        except (ConnectionError, httpx.TransportError) as e:
            raise ProviderConnectionError(str(e)) from e

        text = (response.get("message") or {}).get("content", "") or ""
        if not text:
            raise OptimizationError(ErrorKind.EMPTY_RESPONSE, "No response from Ollama")
        return text


def provider_info(name: ProviderName, *, gemini_model: str, openai_model: str, ollama_model: str) -> ProviderInfo:
    table = {
        "gemini": ProviderInfo("gemini", "Gemini", gemini_model, True),
        "openai": ProviderInfo("openai", "OpenAI", openai_model, False),
        "ollama": ProviderInfo("ollama", "Ollama (Local)", ollama_model, True),
    }
    return table[name]


def display_name(name: ProviderName) -> str:
    return {"gemini": "Gemini", "openai": "OpenAI", "ollama": "Ollama"}[name]


def timeout_ms(seconds: Optional[float]) -> Optional[int]:
    return int(seconds * 1000) if seconds else None
