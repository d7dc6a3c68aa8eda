"""
User preferences as an immutable snapshot taken per optimization call.

The four boolean flags gate directive lines in the assembled payload; the
credential fields feed the provider dispatcher through `ProviderConfig`.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal, Optional

from prompt_optimizer.core.config import Settings
from prompt_optimizer.core.errors import ErrorKind, OptimizationError


ProviderName = Literal["gemini", "openai", "ollama"]

PROVIDER_NAMES: tuple[ProviderName, ...] = ("gemini", "openai", "ollama")

PREFERENCE_FLAGS = ("no_readme", "full_code", "short_summary", "prefer_vanilla")


@dataclass(frozen=True)
class ProviderConfig:
    provider: ProviderName
    api_key: str = ""  # gemini
    openai_key: str = ""  # openai
    ollama_url: Optional[str] = None  # ollama; None -> default local host


@dataclass(frozen=True)
class PreferenceSet:
    no_readme: bool = True
    full_code: bool = True
    short_summary: bool = True
    prefer_vanilla: bool = True
    always_include_text: str = ""
    saved_snippets: tuple[str, ...] = field(default_factory=tuple)
    provider: ProviderName = "gemini"
    api_key: str = ""
    openai_key: str = ""
    ollama_url: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PreferenceSet":
        """Defaults for a request that does not carry its own credentials."""
        return cls(
            provider=parse_provider(settings.default_provider),
            api_key=settings.google_api_key,
            openai_key=settings.openai_api_key,
            ollama_url=settings.ollama_host,
        )

    def with_overrides(self, **changes) -> "PreferenceSet":
        """Copy with every non-None override applied."""
        clean = {k: v for k, v in changes.items() if v is not None}
        if "saved_snippets" in clean:
            clean["saved_snippets"] = tuple(clean["saved_snippets"])
        if "provider" in clean:
            clean["provider"] = parse_provider(clean["provider"])
        return replace(self, **clean)

    def provider_config(self) -> ProviderConfig:
        return ProviderConfig(
            provider=self.provider,
            api_key=self.api_key,
            openai_key=self.openai_key,
            ollama_url=self.ollama_url,
        )


def parse_provider(provider: str) -> ProviderName:
    p = (provider or "").lower().strip()
    if p == "local":
        p = "ollama"
    if p not in PROVIDER_NAMES:
        raise OptimizationError(
            ErrorKind.INVALID_ARGUMENT,
            f"Unknown provider: '{provider}'. Available: {', '.join(PROVIDER_NAMES)}",
        )
    return p  # type: ignore[return-value]


@dataclass(frozen=True)
class Preset:
    id: str
    name: str
    icon: str
    flags: dict[str, bool]

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "icon": self.icon, "preferences": dict(self.flags)}


DEFAULT_PRESETS: tuple[Preset, ...] = (
    Preset(
        id="quick",
        name="Quick Coding",
        icon="⚡",
        flags={"no_readme": True, "full_code": True, "short_summary": True, "prefer_vanilla": True},
    ),
    Preset(
        id="learning",
        name="Learning Mode",
        icon="📚",
        flags={"no_readme": False, "full_code": True, "short_summary": False, "prefer_vanilla": False},
    ),
    Preset(
        id="docs",
        name="Documentation",
        icon="📄",
        flags={"no_readme": False, "full_code": False, "short_summary": False, "prefer_vanilla": False},
    ),
)


def get_preset(preset_id: str) -> Preset:
    for preset in DEFAULT_PRESETS:
        if preset.id == preset_id:
            return preset
    raise OptimizationError(ErrorKind.INVALID_ARGUMENT, f"Unknown preset: '{preset_id}'")


def apply_preset(prefs: PreferenceSet, preset_id: str) -> PreferenceSet:
    """Return a new snapshot with the preset's flags taking precedence."""
    return replace(prefs, **get_preset(preset_id).flags)
