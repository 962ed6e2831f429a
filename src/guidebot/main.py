import logging
from typing import Any, Callable, TypeVar

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from guidebot.api.chat import router as chat_router
from guidebot.corpus import CorpusState
from guidebot.errors import RetrievalError
from guidebot.logging_config import configure_logging
from guidebot.services.retrieval import RetrievalService, get_retrieval_service
from guidebot.telemetry import emit_app_startup_event, emit_exception

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="GuideBot API")
app.include_router(chat_router)


T = TypeVar("T")


def _resolve_dependency(factory: Callable[[], T]) -> T:
    """Resolve a dependency while respecting FastAPI overrides."""

    override: Any | None = app.dependency_overrides.get(factory)
    resolved: Any = override if override is not None else factory
    return resolved() if callable(resolved) else resolved


@app.on_event("startup")
async def _startup_corpus_loader() -> None:
    """Optionally warm the report corpus when PRELOAD_CORPUS is set."""

    emit_app_startup_event()

    retrieval: RetrievalService = _resolve_dependency(get_retrieval_service)
    if not retrieval.settings.preload_corpus:
        return

    LOGGER.info("Preloading report corpus from %s", retrieval.settings.corpus_path)
    try:
        await retrieval.ensure_loaded()
    except RetrievalError as error:
        # The first chat request retries the load.
        emit_exception(module=__name__, error=error, suggestion="check CORPUS_PATH and embedding provider")


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"


@app.get("/readyz", response_class=PlainTextResponse)
def readiness_probe() -> str:
    """Readiness probe that reports whether the corpus index is queryable."""

    retrieval: RetrievalService = _resolve_dependency(get_retrieval_service)
    stats = retrieval.stats()
    if stats.state is not CorpusState.LOADED:
        detail = f"corpus_{stats.state.value}"
        if stats.last_error:
            detail = f"{detail}: {stats.last_error}"
        raise HTTPException(status_code=503, detail=detail)
    return "ok"
