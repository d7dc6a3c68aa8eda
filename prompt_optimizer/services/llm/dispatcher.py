"""
Sends an assembled payload to the selected provider and turns whatever comes
back into either cleaned text or a classified `OptimizationError`.

One network attempt per call. Provider clients are built per call from the
request's `ProviderConfig`, so no credential outlives the request.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Callable, Mapping, Optional

import httpx
import ollama
import openai
from google import genai
from google.genai import types
from loguru import logger

from prompt_optimizer.core.config import Settings
from prompt_optimizer.core.errors import ErrorKind, OptimizationError
from prompt_optimizer.services.llm.providers import (
    GeminiProvider,
    LLMProvider,
    OllamaProvider,
    OpenAIProvider,
    ProviderConnectionError,
    ProviderStatusError,
    display_name,
    timeout_ms,
)
from prompt_optimizer.services.preferences import PROVIDER_NAMES, ProviderConfig, ProviderName


DEFAULT_OLLAMA_URL = "http://localhost:11434"

CANARY_PAYLOAD = 'Reply with exactly: "Connection successful"'

# Boilerplate a model may put before the rewritten prompt. Tried in order; the
# first match is stripped once.
RESPONSE_PREFIX_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"^Here['’]s the optimized prompt:?\s*", re.IGNORECASE),
    re.compile(r"^Optimized prompt:?\s*", re.IGNORECASE),
    re.compile(r"^Here is the optimized version:?\s*", re.IGNORECASE),
    re.compile(r"^The optimized prompt:?\s*", re.IGNORECASE),
    re.compile(r"^Here is your optimized prompt:?\s*", re.IGNORECASE),
    re.compile(r"^Here is the optimized prompt:?\s*", re.IGNORECASE),
)

# (credential field, message) per provider that needs one
REQUIRED_CREDENTIALS: dict[str, tuple[str, str]] = {
    "gemini": ("api_key", "Gemini API key is required. Please configure it in Settings."),
    "openai": ("openai_key", "OpenAI API key is required. Please configure it in Settings."),
}

# (providers it applies to or None for all, statuses, kind), first match wins
STATUS_RULES: tuple[tuple[Optional[frozenset], frozenset, ErrorKind], ...] = (
    (None, frozenset({400}), ErrorKind.BAD_REQUEST),
    (None, frozenset({401, 403}), ErrorKind.INVALID_CREDENTIAL),
    (None, frozenset({429}), ErrorKind.RATE_LIMITED),
    (frozenset({"openai"}), frozenset({402}), ErrorKind.QUOTA_EXCEEDED),
    (frozenset({"ollama"}), frozenset({404}), ErrorKind.MODEL_NOT_FOUND),
)

MESSAGE_TEMPLATES: dict[ErrorKind, str] = {
    ErrorKind.BAD_REQUEST: "Invalid request. Check your prompt.",
    ErrorKind.INVALID_CREDENTIAL: "Invalid {name} API key",
    ErrorKind.RATE_LIMITED: "{name} rate limit exceeded. Wait and retry.",
    ErrorKind.QUOTA_EXCEEDED: "{name} quota exceeded - add billing",
    ErrorKind.PROVIDER_UNAVAILABLE: "{name} API is temporarily unavailable. Please try again later.",
    ErrorKind.MODEL_NOT_FOUND: 'Model "{model}" not found. Run: ollama pull {model}',
    ErrorKind.NETWORK_ERROR: "Network error. Please check your internet connection.",
}

PROVIDER_MESSAGE_OVERRIDES: dict[tuple[str, ErrorKind], str] = {
    ("gemini", ErrorKind.RATE_LIMITED): "Rate limit: 15 req/min for free tier. Wait and retry.",
    ("ollama", ErrorKind.NETWORK_ERROR): "Cannot connect to Ollama. Make sure it is running on {host}",
}


ProviderFactory = Callable[[ProviderConfig, Settings], LLMProvider]


def _build_gemini(config: ProviderConfig, settings: Settings) -> LLMProvider:
    return GeminiProvider(
        model=settings.gemini_model,
        client=genai.Client(
            api_key=config.api_key,
            http_options=types.HttpOptions(timeout=timeout_ms(settings.request_timeout)),
        ),
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
    )


def _build_openai(config: ProviderConfig, settings: Settings) -> LLMProvider:
    return OpenAIProvider(
        model=settings.openai_model,
        client=openai.OpenAI(
            api_key=config.openai_key,
            max_retries=0,
            timeout=settings.request_timeout,
        ),
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
    )


def _build_ollama(config: ProviderConfig, settings: Settings) -> LLMProvider:
    return OllamaProvider(
        model=settings.ollama_model,
        client=ollama.Client(host=ollama_host(config, settings), timeout=settings.request_timeout),
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
    )


DEFAULT_FACTORIES: dict[str, ProviderFactory] = {
    "gemini": _build_gemini,
    "openai": _build_openai,
    "ollama": _build_ollama,
}


def ollama_host(config: ProviderConfig, settings: Optional[Settings] = None) -> str:
    fallback = settings.ollama_host if settings and settings.ollama_host else DEFAULT_OLLAMA_URL
    return (config.ollama_url or fallback).rstrip("/")


def clean_response(text: str) -> str:
    result = (text or "").strip()
    for pattern in RESPONSE_PREFIX_PATTERNS:
        stripped, count = pattern.subn("", result, count=1)
        if count:
            result = stripped
            break
    return result.strip()


def _message_for(kind: ErrorKind, provider: ProviderName, **fields: str) -> str:
    template = PROVIDER_MESSAGE_OVERRIDES.get((provider, kind)) or MESSAGE_TEMPLATES[kind]
    return template.format(name=display_name(provider), **fields)


def classify_status(
    provider: ProviderName,
    status: int,
    raw_message: str = "",
    *,
    model: str = "",
) -> OptimizationError:
    """Map an HTTP status from `provider` to exactly one error kind."""
    for providers, statuses, kind in STATUS_RULES:
        if status in statuses and (providers is None or provider in providers):
            return OptimizationError(kind, _message_for(kind, provider, model=model), status=status)

    if 500 <= status <= 599:
        kind = ErrorKind.PROVIDER_UNAVAILABLE
        return OptimizationError(kind, _message_for(kind, provider), status=status)

    kind = ErrorKind.BAD_REQUEST if 400 <= status <= 499 else ErrorKind.PROVIDER_UNAVAILABLE
    message = raw_message.strip() or f"{display_name(provider)} error: {status}"
    return OptimizationError(kind, message, status=status)


def classify_network_error(provider: ProviderName, *, host: str = DEFAULT_OLLAMA_URL) -> OptimizationError:
    kind = ErrorKind.NETWORK_ERROR
    return OptimizationError(kind, _message_for(kind, provider, host=host))


@dataclass(frozen=True)
class ProviderTestResult:
    success: bool
    error: Optional[OptimizationError] = None

    def to_dict(self) -> dict:
        data: dict = {"success": self.success}
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


class ProviderDispatcher:
    """
    Closed dispatch over the three providers, keyed by `ProviderConfig.provider`.

    `factories` replaces the SDK-backed constructors (tests pass fakes).
    """

    def __init__(self, settings: Settings, factories: Optional[Mapping[str, ProviderFactory]] = None):
        self._settings = settings
        self._factories: dict[str, ProviderFactory] = dict(factories or DEFAULT_FACTORIES)

    def check_credentials(self, config: ProviderConfig) -> None:
        if config.provider not in PROVIDER_NAMES or config.provider not in self._factories:
            raise OptimizationError(ErrorKind.INVALID_ARGUMENT, f"Unknown provider: {config.provider}")
        required = REQUIRED_CREDENTIALS.get(config.provider)
        if required is None:
            return
        field_name, message = required
        if not (getattr(config, field_name) or "").strip():
            raise OptimizationError(ErrorKind.MISSING_CREDENTIAL, message)

    def dispatch(self, payload: str, config: ProviderConfig) -> str:
        self.check_credentials(config)
        try:
            provider = self._factories[config.provider](config, self._settings)
        except (ValueError, httpx.InvalidURL) as e:
            logger.warning("{} client rejected its config: {}", config.provider, e)
            raise OptimizationError(
                ErrorKind.INVALID_ARGUMENT,
                f"Invalid {display_name(config.provider)} configuration: {e}",
            ) from e

        logger.info(
            "Dispatching payload to {} (model={}, chars={})",
            config.provider,
            provider.model,
            len(payload),
        )
        try:
            text = provider.generate(payload)
        except ProviderStatusError as e:
            error = classify_status(config.provider, e.status, e.message, model=provider.model)
            logger.warning("{} returned HTTP {} -> {}", config.provider, e.status, error.kind.value)
            raise error from e
        except ProviderConnectionError as e:
            error = classify_network_error(config.provider, host=ollama_host(config, self._settings))
            logger.warning("{} unreachable: {}", config.provider, e)
            raise error from e
        except OptimizationError as e:
            logger.warning("{} response rejected -> {}", config.provider, e.kind.value)
            raise

        cleaned = clean_response(text)
        if not cleaned:
            logger.warning("{} returned only boilerplate", config.provider)
            raise OptimizationError(ErrorKind.EMPTY_RESPONSE, f"Empty response from {display_name(config.provider)}")
        return cleaned

    def test_provider(self, provider: ProviderName, config: ProviderConfig) -> ProviderTestResult:
        """Send the canary payload; reports the outcome and persists nothing."""
        try:
            self.dispatch(CANARY_PAYLOAD, replace(config, provider=provider))
        except OptimizationError as e:
            return ProviderTestResult(success=False, error=e)
        return ProviderTestResult(success=True)
