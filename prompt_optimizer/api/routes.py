from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from prompt_optimizer.core.config import Settings, get_settings
from prompt_optimizer.core.diff import line_diff, similarity, word_diff
from prompt_optimizer.core.errors import OptimizationError
from prompt_optimizer.core.tokens import calculate_savings, estimate_cost, estimate_tokens, format_count
from prompt_optimizer.db.redis_store import HistoryRepository, TemplateRepository
from prompt_optimizer.services.llm.providers import provider_info
from prompt_optimizer.services.optimizer_service import OptimizerService
from prompt_optimizer.services.payload.assembler import ContextFile
from prompt_optimizer.services.preferences import (
    DEFAULT_PRESETS,
    PROVIDER_NAMES,
    PreferenceSet,
    ProviderName,
    apply_preset,
    parse_provider,
)


router = APIRouter()


class PreferencesIn(BaseModel):
    no_readme: Optional[bool] = None
    full_code: Optional[bool] = None
    short_summary: Optional[bool] = None
    prefer_vanilla: Optional[bool] = None
    always_include_text: Optional[str] = None
    saved_snippets: Optional[list[str]] = None
    provider: Optional[ProviderName] = None
    api_key: Optional[str] = None
    openai_key: Optional[str] = None
    ollama_url: Optional[str] = None


class FileIn(BaseModel):
    name: str
    text: str


class OptimizeIn(BaseModel):
    text: str
    preferences: PreferencesIn = Field(default_factory=PreferencesIn)
    preset: Optional[str] = None
    filenames: list[str] = Field(default_factory=list)
    files: list[FileIn] = Field(default_factory=list)


class CredentialsIn(BaseModel):
    api_key: Optional[str] = None
    openai_key: Optional[str] = None
    ollama_url: Optional[str] = None


class TextIn(BaseModel):
    text: str


class DiffIn(BaseModel):
    original: str
    optimized: str


class TemplateIn(BaseModel):
    name: str
    prompt: str
    icon: Optional[str] = None


def get_optimizer_service(settings: Settings = Depends(get_settings)) -> OptimizerService:
    return OptimizerService(settings=settings)


def get_history_repository(request: Request) -> HistoryRepository:
    return request.app.state.history_repository


def get_template_repository(request: Request) -> TemplateRepository:
    return request.app.state.template_repository


def build_preferences(body: PreferencesIn, settings: Settings, preset: Optional[str] = None) -> PreferenceSet:
    """Settings defaults, then request overrides, then the preset's flags."""
    prefs = PreferenceSet.from_settings(settings).with_overrides(**body.model_dump())
    if preset:
        prefs = apply_preset(prefs, preset)
    return prefs


@router.get("/")
def home():
    return {"status": "Prompt optimizer is running"}


@router.get("/providers")
def list_providers(settings: Settings = Depends(get_settings)) -> dict:
    return {
        "providers": [
            provider_info(
                name,
                gemini_model=settings.gemini_model,
                openai_model=settings.openai_model,
                ollama_model=settings.ollama_model,
            ).to_dict()
            for name in PROVIDER_NAMES
        ]
    }


@router.post("/optimize")
def optimize(
    body: OptimizeIn,
    settings: Settings = Depends(get_settings),
    service: OptimizerService = Depends(get_optimizer_service),
    history: HistoryRepository = Depends(get_history_repository),
) -> dict:
    """
    Rewrite a raw prompt with the selected provider.

    Classified failures come back as `ok: false` with `error.kind` and a
    display-ready `error.message`; the HTTP status stays 200.
    """
    try:
        prefs = build_preferences(body.preferences, settings, body.preset)
    except OptimizationError as e:
        return {"ok": False, "provider": None, "text": None, "error": e.to_dict(), "stats": None}

    files = [ContextFile.from_upload(f.name, f.text) for f in body.files]
    result = service.optimize(body.text, prefs, body.filenames, files)
    if result.ok:
        history.add(body.text, result.text or "", provider=result.provider)
    return result.to_dict()


@router.post("/providers/{provider}/test")
def check_provider(
    provider: str,
    body: CredentialsIn,
    settings: Settings = Depends(get_settings),
    service: OptimizerService = Depends(get_optimizer_service),
) -> dict:
    """Validate credentials with a canary prompt before the caller stores them."""
    try:
        name = parse_provider(provider)
    except OptimizationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    prefs = PreferenceSet.from_settings(settings).with_overrides(provider=name, **body.model_dump())
    return service.dispatcher.test_provider(name, prefs.provider_config()).to_dict()


@router.post("/tokens")
def count_tokens(body: TextIn) -> dict:
    tokens = estimate_tokens(body.text)
    return {"tokens": tokens, "formatted": format_count(tokens), "cost": estimate_cost(tokens)}


@router.post("/diff")
def compare(body: DiffIn) -> dict:
    words = word_diff(body.original, body.optimized)
    lines = line_diff(body.original, body.optimized)
    before, after = estimate_tokens(body.original), estimate_tokens(body.optimized)
    return {
        "original_markup": words.original_markup,
        "optimized_markup": words.optimized_markup,
        "stats": words.stats.to_dict(),
        "lines": [{"kind": line.kind, "text": line.text} for line in lines.lines],
        "similarity": similarity(body.original, body.optimized),
        "tokens": {
            "original": before,
            "optimized": after,
            "savings": calculate_savings(before, after).to_dict(),
        },
    }


@router.get("/history")
def get_history(history: HistoryRepository = Depends(get_history_repository)) -> dict:
    return {"history": [asdict(e) for e in history.get_entries()]}


@router.delete("/history")
def clear_history(history: HistoryRepository = Depends(get_history_repository)) -> dict:
    history.clear()
    return {"cleared": True}


@router.delete("/history/{entry_id}")
def delete_history_entry(entry_id: str, history: HistoryRepository = Depends(get_history_repository)) -> dict:
    if not history.delete(entry_id):
        raise HTTPException(status_code=404, detail=f"History entry '{entry_id}' not found")
    return {"deleted": entry_id}


@router.get("/templates")
def get_templates(templates: TemplateRepository = Depends(get_template_repository)) -> dict:
    return {"templates": [asdict(t) for t in templates.get_templates()]}


@router.post("/templates")
def add_template(body: TemplateIn, templates: TemplateRepository = Depends(get_template_repository)) -> dict:
    return asdict(templates.add(body.name, body.prompt, body.icon))


@router.delete("/templates/{template_id}")
def delete_template(template_id: str, templates: TemplateRepository = Depends(get_template_repository)) -> dict:
    if not templates.delete(template_id):
        raise HTTPException(status_code=404, detail=f"Custom template '{template_id}' not found")
    return {"deleted": template_id}


@router.get("/presets")
def get_presets() -> dict:
    return {"presets": [p.to_dict() for p in DEFAULT_PRESETS]}
