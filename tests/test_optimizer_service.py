import dataclasses

import pytest

from conftest import FakeProvider, exploding_factories, make_factories
from prompt_optimizer.core.errors import ErrorKind
from prompt_optimizer.services.llm.dispatcher import ProviderDispatcher
from prompt_optimizer.services.llm.providers import ProviderStatusError
from prompt_optimizer.services.optimizer_service import OptimizerService
from prompt_optimizer.services.payload.assembler import ContextFile
from prompt_optimizer.services.preferences import (
    PreferenceSet,
    apply_preset,
    parse_provider,
)
from prompt_optimizer.core.errors import OptimizationError


GEMINI_PREFS = PreferenceSet(provider="gemini", api_key="test-key")


def test_success_returns_cleaned_text_and_stats(settings):
    provider = FakeProvider(name="gemini", reply="Here's the optimized prompt: Fix the failing parser test in parser.py")
    service = OptimizerService(settings, ProviderDispatcher(settings, factories=make_factories(provider)))

    result = service.optimize("fix my code", GEMINI_PREFS)

    assert result.ok is True
    assert result.text == "Fix the failing parser test in parser.py"
    assert result.error is None
    assert result.stats.original_tokens == 3
    assert result.stats.optimized_tokens > 3
    assert result.stats.savings.is_reduction is False
    assert "fix my code" in provider.prompts[0]


def test_context_reaches_the_payload(settings):
    provider = FakeProvider(name="gemini")
    service = OptimizerService(settings, ProviderDispatcher(settings, factories=make_factories(provider)))

    service.optimize(
        "refactor",
        GEMINI_PREFS,
        ["a.py", "a.py", "b.js"],
        [ContextFile.from_upload("util.py", "def f():\n    pass")],
    )

    payload = provider.prompts[0]
    assert "a.py, b.js" in payload
    assert "```python\ndef f():\n    pass\n```" in payload


def test_blank_prompt_is_invalid(settings):
    service = OptimizerService(settings, ProviderDispatcher(settings, factories=exploding_factories()))
    result = service.optimize("   ", GEMINI_PREFS)
    assert result.ok is False
    assert result.error.kind is ErrorKind.INVALID_ARGUMENT


def test_missing_credential_short_circuits(settings):
    service = OptimizerService(settings, ProviderDispatcher(settings, factories=exploding_factories()))
    result = service.optimize("fix my code", PreferenceSet(provider="openai", openai_key=""))
    assert result.ok is False
    assert result.text is None
    assert result.error.kind is ErrorKind.MISSING_CREDENTIAL
    assert result.to_dict()["error"]["kind"] == "MissingCredential"


def test_provider_error_passes_through(settings):
    provider = FakeProvider(name="gemini", error=ProviderStatusError(429))
    service = OptimizerService(settings, ProviderDispatcher(settings, factories=make_factories(provider)))

    result = service.optimize("fix my code", GEMINI_PREFS)

    assert result.ok is False
    assert result.error.kind is ErrorKind.RATE_LIMITED
    assert result.stats is None


def test_result_is_immutable(settings, dispatcher):
    result = OptimizerService(settings, dispatcher).optimize("x", GEMINI_PREFS)
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.text = "changed"  # type: ignore[misc]


class TestPreferences:
    def test_defaults(self):
        prefs = PreferenceSet()
        assert (prefs.no_readme, prefs.full_code, prefs.short_summary, prefs.prefer_vanilla) == (True, True, True, True)
        assert prefs.always_include_text == ""
        assert prefs.saved_snippets == ()

    def test_snapshot_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            PreferenceSet().full_code = False  # type: ignore[misc]

    def test_from_settings_uses_env_credentials(self, settings):
        settings = dataclasses.replace(settings, google_api_key="env-key", default_provider="ollama")
        prefs = PreferenceSet.from_settings(settings)
        assert prefs.api_key == "env-key"
        assert prefs.provider == "ollama"
        assert prefs.ollama_url == "http://localhost:11434"

    def test_overrides_skip_none(self):
        prefs = PreferenceSet(api_key="keep").with_overrides(api_key=None, full_code=False, saved_snippets=["a"])
        assert prefs.api_key == "keep"
        assert prefs.full_code is False
        assert prefs.saved_snippets == ("a",)

    def test_provider_config(self):
        config = PreferenceSet(provider="openai", openai_key="sk").provider_config()
        assert config.provider == "openai"
        assert config.openai_key == "sk"

    def test_parse_provider(self):
        assert parse_provider(" OpenAI ") == "openai"
        assert parse_provider("local") == "ollama"
        with pytest.raises(OptimizationError) as exc:
            parse_provider("claude")
        assert exc.value.kind is ErrorKind.INVALID_ARGUMENT

    def test_apply_preset(self):
        prefs = apply_preset(PreferenceSet(api_key="k"), "learning")
        assert prefs.no_readme is False
        assert prefs.full_code is True
        assert prefs.api_key == "k"

    def test_unknown_preset(self):
        with pytest.raises(OptimizationError) as exc:
            apply_preset(PreferenceSet(), "nope")
        assert exc.value.kind is ErrorKind.INVALID_ARGUMENT
