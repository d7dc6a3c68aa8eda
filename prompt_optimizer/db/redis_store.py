"""
Redis-backed persistence for optimization history and custom prompt templates.
Keys: optimizer:history (list, newest first), optimizer:templates (list, oldest first).
"""
from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

from redis import Redis


HISTORY_KEY = "optimizer:history"
TEMPLATES_KEY = "optimizer:templates"


@dataclass
class HistoryEntry:
    id: str
    timestamp: str
    original: str
    optimized: str
    provider: str = ""


@dataclass
class PromptTemplate:
    id: str
    name: str
    icon: str
    prompt: str
    is_custom: bool = False


DEFAULT_TEMPLATES: tuple[PromptTemplate, ...] = (
    PromptTemplate(
        id="debug",
        name="Debug Code",
        icon="🐛",
        prompt="Debug the following code. Identify the bug, explain why it occurs, and provide the corrected code:\n\n[paste code here]",
    ),
    PromptTemplate(
        id="explain",
        name="Explain Code",
        icon="📖",
        prompt="Explain this code in detail. Cover what it does, how it works, and any important patterns used:\n\n[paste code here]",
    ),
    PromptTemplate(
        id="refactor",
        name="Refactor Code",
        icon="🔧",
        prompt="Refactor this code to improve readability, performance, and maintainability. Explain your changes:\n\n[paste code here]",
    ),
    PromptTemplate(
        id="tests",
        name="Write Tests",
        icon="🧪",
        prompt="Write comprehensive unit tests for this code. Include edge cases and use appropriate testing patterns:\n\n[paste code here]",
    ),
    PromptTemplate(
        id="review",
        name="Code Review",
        icon="👀",
        prompt="Review this code for bugs, security issues, performance problems, and style. Provide specific feedback:\n\n[paste code here]",
    ),
    PromptTemplate(
        id="document",
        name="Add Documentation",
        icon="📝",
        prompt="Add comprehensive documentation to this code including docstrings, inline comments for complex logic, and a usage example:\n\n[paste code here]",
    ),
)


def _decode(raw: bytes | str) -> str:
    return raw.decode("utf-8") if isinstance(raw, bytes) else raw


class HistoryRepository:
    """Most recent optimizations, newest first, capped at `limit` entries."""

    def __init__(self, redis_client: Redis, limit: int = 50) -> None:
        self._redis = redis_client
        self._limit = limit

    def add(self, original: str, optimized: str, provider: str = "") -> HistoryEntry:
        entry = HistoryEntry(
            id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc).isoformat(),
            original=original,
            optimized=optimized,
            provider=provider,
        )
        self._redis.lpush(HISTORY_KEY, json.dumps(asdict(entry)))
        if self._limit > 0:
            self._redis.ltrim(HISTORY_KEY, 0, self._limit - 1)
        return entry

    def get_entries(self) -> list[HistoryEntry]:
        raw = self._redis.lrange(HISTORY_KEY, 0, -1)
        return [HistoryEntry(**json.loads(_decode(r))) for r in (raw or [])]

    def delete(self, entry_id: str) -> bool:
        """Remove one entry by id. Returns False if it was not found."""
        for r in self._redis.lrange(HISTORY_KEY, 0, -1) or []:
            if json.loads(_decode(r)).get("id") == entry_id:
                self._redis.lrem(HISTORY_KEY, 1, r)
                return True
        return False

    def clear(self) -> None:
        self._redis.delete(HISTORY_KEY)


class TemplateRepository:
    """Built-in templates followed by the user's custom ones."""

    def __init__(self, redis_client: Redis) -> None:
        self._redis = redis_client

    def _custom(self) -> list[tuple[bytes | str, PromptTemplate]]:
        raw = self._redis.lrange(TEMPLATES_KEY, 0, -1)
        return [(r, PromptTemplate(**json.loads(_decode(r)))) for r in (raw or [])]

    def get_templates(self) -> list[PromptTemplate]:
        return list(DEFAULT_TEMPLATES) + [t for _, t in self._custom()]

    def add(self, name: str, prompt: str, icon: Optional[str] = None) -> PromptTemplate:
        template = PromptTemplate(
            id=f"custom_{uuid.uuid4().hex}",
            name=name,
            icon=icon or "📋",
            prompt=prompt,
            is_custom=True,
        )
        self._redis.rpush(TEMPLATES_KEY, json.dumps(asdict(template)))
        return template

    def delete(self, template_id: str) -> bool:
        # Built-ins are not stored, so only custom ids can match.
        for raw, template in self._custom():
            if template.id == template_id:
                self._redis.lrem(TEMPLATES_KEY, 1, raw)
                return True
        return False
