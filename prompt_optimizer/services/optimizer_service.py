from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from loguru import logger

from prompt_optimizer.core.config import Settings
from prompt_optimizer.core.errors import ErrorKind, OptimizationError
from prompt_optimizer.core.tokens import TokenSavings, calculate_savings, estimate_tokens
from prompt_optimizer.services.llm.dispatcher import ProviderDispatcher
from prompt_optimizer.services.payload.assembler import ContextFile, assemble_payload
from prompt_optimizer.services.preferences import PreferenceSet, ProviderName


@dataclass(frozen=True)
class TokenStats:
    original_tokens: int
    optimized_tokens: int
    savings: TokenSavings

    def to_dict(self) -> dict:
        return {
            "original_tokens": self.original_tokens,
            "optimized_tokens": self.optimized_tokens,
            "savings": self.savings.to_dict(),
        }


@dataclass(frozen=True)
class OptimizationResult:
    ok: bool
    provider: ProviderName
    text: Optional[str] = None
    error: Optional[OptimizationError] = None
    stats: Optional[TokenStats] = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "provider": self.provider,
            "text": self.text,
            "error": self.error.to_dict() if self.error else None,
            "stats": self.stats.to_dict() if self.stats else None,
        }


class OptimizerService:
    """
    Workflow: validate input → assemble payload → dispatch to provider
    (response cleaned there) → token stats → result.

    Holds no per-request state; every call works from its own preference snapshot.
    Persisting the result is the caller's job.
    """

    def __init__(self, settings: Settings, dispatcher: Optional[ProviderDispatcher] = None):
        self._settings = settings
        self._dispatcher = dispatcher or ProviderDispatcher(settings)

    @property
    def dispatcher(self) -> ProviderDispatcher:
        return self._dispatcher

    def optimize(
        self,
        raw_text: str,
        prefs: PreferenceSet,
        scraped_filenames: Sequence[str] = (),
        context_files: Sequence[ContextFile] = (),
    ) -> OptimizationResult:
        try:
            if not (raw_text or "").strip():
                raise OptimizationError(ErrorKind.INVALID_ARGUMENT, "Please enter a prompt")
            config = prefs.provider_config()
            self._dispatcher.check_credentials(config)

            payload = assemble_payload(raw_text, prefs, scraped_filenames, context_files)
            logger.debug("Assembled payload: {} chars, {} context files", len(payload), len(context_files))

            text = self._dispatcher.dispatch(payload, config)
        except OptimizationError as e:
            return OptimizationResult(ok=False, provider=prefs.provider, error=e)

        before = estimate_tokens(raw_text)
        after = estimate_tokens(text)
        stats = TokenStats(original_tokens=before, optimized_tokens=after, savings=calculate_savings(before, after))
        logger.debug("Token estimate {} -> {} ({}%)", before, after, stats.savings.percentage)
        return OptimizationResult(ok=True, provider=prefs.provider, text=text, stats=stats)
