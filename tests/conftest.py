from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

import pytest

from prompt_optimizer.core.config import Settings
from prompt_optimizer.services.llm.dispatcher import ProviderDispatcher
from prompt_optimizer.services.preferences import ProviderConfig


class FakeRedis:
    """In-memory stand-in for the list commands the repositories use (bytes, like decode_responses=False)."""

    def __init__(self) -> None:
        self.lists: dict[str, list[bytes]] = {}

    @staticmethod
    def _b(value) -> bytes:
        return value if isinstance(value, bytes) else str(value).encode("utf-8")

    def lpush(self, key, *values):
        lst = self.lists.setdefault(key, [])
        for v in values:
            lst.insert(0, self._b(v))
        return len(lst)

    def rpush(self, key, *values):
        lst = self.lists.setdefault(key, [])
        lst.extend(self._b(v) for v in values)
        return len(lst)

    def lrange(self, key, start, end):
        lst = self.lists.get(key, [])
        n = len(lst)
        if start < 0:
            start = max(0, n + start)
        end = n - 1 if end == -1 else (n + end if end < 0 else end)
        return list(lst[start : end + 1])

    def ltrim(self, key, start, end):
        self.lists[key] = self.lrange(key, start, end)
        return True

    def lrem(self, key, count, value):
        lst = self.lists.get(key, [])
        value = self._b(value)
        removed = 0
        out = []
        for v in lst:
            if v == value and (count == 0 or removed < count):
                removed += 1
                continue
            out.append(v)
        self.lists[key] = out
        return removed

    def delete(self, *keys):
        return sum(1 for k in keys if self.lists.pop(k, None) is not None)


@dataclass
class FakeProvider:
    """LLMProvider double: returns `reply` or raises `error`, recording every prompt."""

    name: str
    model: str = "fake-model"
    reply: str = "Optimized text"
    error: Optional[Exception] = None
    prompts: list[str] = field(default_factory=list)

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def make_factories(provider: FakeProvider) -> dict[str, Callable]:
    def factory(config: ProviderConfig, settings: Settings) -> FakeProvider:
        provider.name = config.provider
        return provider

    return {"gemini": factory, "openai": factory, "ollama": factory}


def exploding_factories() -> dict[str, Callable]:
    def factory(config: ProviderConfig, settings: Settings):
        raise AssertionError(f"provider {config.provider} must not be built")

    return {"gemini": factory, "openai": factory, "ollama": factory}


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        google_api_key="",
        openai_api_key="",
        default_provider="gemini",
        gemini_model="gemini-1.5-flash",
        openai_model="gpt-4o-mini",
        ollama_host="http://localhost:11434",
        ollama_model="llama3.2",
        temperature=0.4,
        max_output_tokens=4096,
        request_timeout=30.0,
        redis_url="redis://localhost:6379/0",
        history_limit=50,
        log_level="INFO",
    )


@pytest.fixture()
def fake_provider() -> FakeProvider:
    return FakeProvider(name="gemini")


@pytest.fixture()
def dispatcher(settings: Settings, fake_provider: FakeProvider) -> ProviderDispatcher:
    return ProviderDispatcher(settings, factories=make_factories(fake_provider))


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()
