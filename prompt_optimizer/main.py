import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from loguru import logger
from redis import Redis

from prompt_optimizer.api.routes import router
from prompt_optimizer.core.config import get_settings
from prompt_optimizer.db.redis_store import HistoryRepository, TemplateRepository


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create Redis connection and repositories at startup; close on shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level)
    redis_client = Redis.from_url(settings.redis_url, decode_responses=False)
    app.state.redis = redis_client
    app.state.history_repository = HistoryRepository(redis_client, limit=settings.history_limit)
    app.state.template_repository = TemplateRepository(redis_client)
    logger.info("Prompt optimizer started (default provider: {})", settings.default_provider)
    yield
    redis_client.close()


def create_app() -> FastAPI:
    app = FastAPI(title="Prompt Optimizer", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()


def run(host: str = "127.0.0.1", port: int = 8000) -> None:
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    run()
