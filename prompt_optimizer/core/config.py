import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Project root (directory containing the "prompt_optimizer" package)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _load_env() -> None:
    """Load .env from project root so it works regardless of current working directory."""
    load_dotenv(_PROJECT_ROOT / ".env")
    load_dotenv()  # cwd override


@dataclass(frozen=True)
class Settings:
    # Provider credentials (defaults; a request may supply its own)
    google_api_key: str
    openai_api_key: str
    default_provider: str

    # Models
    gemini_model: str
    openai_model: str
    ollama_host: str
    ollama_model: str

    # Generation
    temperature: float
    max_output_tokens: int
    request_timeout: float

    # Redis (history / custom templates)
    redis_url: str
    history_limit: int

    log_level: str


@lru_cache
def get_settings() -> Settings:
    """
    Loads env vars from project root .env then cwd. Returns typed settings.
    """
    _load_env()

    def _int(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            return default

    def _float(name: str, default: float) -> float:
        raw = os.getenv(name)
        if raw is None or raw == "":
            return default
        try:
            return float(raw)
        except ValueError:
            return default

    return Settings(
        google_api_key=os.getenv("GOOGLE_API_KEY", "").strip(),
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        default_provider=os.getenv("DEFAULT_PROVIDER", "gemini"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        ollama_host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        ollama_model=os.getenv("OLLAMA_MODEL", "llama3.2"),
        temperature=_float("OPTIMIZER_TEMPERATURE", 0.4),
        max_output_tokens=_int("MAX_OUTPUT_TOKENS", 4096),
        request_timeout=_float("REQUEST_TIMEOUT", 60.0),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        history_limit=_int("HISTORY_LIMIT", 50),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
