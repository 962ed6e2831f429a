"""Environment driven configuration for the retrieval service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DEFAULT_CORPUS_FILE = "IRReports_DEID.jsonl"
DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_API_URL = "https://router.huggingface.co/hf-inference/models/{model}/pipeline/feature-extraction"
EMBEDDING_PROVIDERS = ("local", "remote", "precomputed", "hash")
TOKEN_ENV_KEYS: tuple[str, ...] = ("GUIDEBOT_TOKEN", "HF_TOKEN")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_from_env(name: str, default: int, *, minimum: int | None = None) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default
    if minimum is not None and parsed < minimum:
        LOGGER.warning("%s must be >= %s (got %s); using default %s", name, minimum, parsed, default)
        return default
    return parsed


def _float_from_env(name: str, default: float, *, minimum: float | None = None) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default
    if minimum is not None and parsed < minimum:
        LOGGER.warning("%s must be >= %s (got %s); using default %s", name, minimum, parsed, default)
        return default
    return parsed


def _resolve_token() -> Optional[str]:
    for key in TOKEN_ENV_KEYS:
        value = os.getenv(key)
        if value and value.strip():
            return value.strip()
    return None


def _resolve_path(raw_value: str) -> Path:
    path = Path(raw_value).expanduser()
    if path.is_absolute():
        return path
    cwd_candidate = Path.cwd() / path
    if cwd_candidate.exists():
        return cwd_candidate
    return PROJECT_ROOT / path


@dataclass(slots=True)
class RetrievalSettings:
    """Settings consumed by the embedding provider, corpus loader and engine."""

    corpus_path: Path
    embedding_provider: str = "local"
    embedding_model: str = DEFAULT_MODEL_NAME
    embedding_device: Optional[str] = None
    embedding_api_url: str = DEFAULT_API_URL
    api_token: Optional[str] = None
    embeddings_file: Optional[Path] = None
    batch_size: int = 5
    batch_delay_seconds: float = 0.5
    max_concurrency: int = 3
    request_timeout_seconds: float = 10.0
    max_attempts: int = 3
    backoff_seconds: float = 2.0
    top_k: int = 3
    require_report_id: bool = False
    preload_corpus: bool = False
    hash_dimension: int = 384


def load_settings() -> RetrievalSettings:
    """Build :class:`RetrievalSettings` from the process environment."""

    provider = os.getenv("EMBEDDING_PROVIDER", "local").strip().lower()
    if provider not in EMBEDDING_PROVIDERS:
        LOGGER.warning(
            "Unsupported EMBEDDING_PROVIDER %r; expected one of %s. Using 'local'.",
            provider,
            ", ".join(EMBEDDING_PROVIDERS),
        )
        provider = "local"

    embeddings_file = os.getenv("EMBEDDINGS_FILE")

    return RetrievalSettings(
        corpus_path=_resolve_path(os.getenv("CORPUS_PATH", DEFAULT_CORPUS_FILE)),
        embedding_provider=provider,
        embedding_model=os.getenv("EMBEDDING_MODEL", DEFAULT_MODEL_NAME),
        embedding_device=os.getenv("EMBEDDING_DEVICE") or None,
        embedding_api_url=os.getenv("EMBEDDING_API_URL", DEFAULT_API_URL),
        api_token=_resolve_token(),
        embeddings_file=_resolve_path(embeddings_file) if embeddings_file else None,
        batch_size=_int_from_env("EMBEDDING_BATCH_SIZE", 5, minimum=1),
        batch_delay_seconds=_float_from_env("EMBEDDING_BATCH_DELAY", 0.5, minimum=0.0),
        max_concurrency=_int_from_env("EMBEDDING_MAX_CONCURRENCY", 3, minimum=1),
        request_timeout_seconds=_float_from_env("EMBEDDING_TIMEOUT", 10.0, minimum=0.001),
        max_attempts=_int_from_env("EMBEDDING_MAX_ATTEMPTS", 3, minimum=2),
        backoff_seconds=_float_from_env("EMBEDDING_BACKOFF", 2.0, minimum=0.0),
        top_k=_int_from_env("RETRIEVAL_TOP_K", 3, minimum=1),
        require_report_id=_env_flag("REQUIRE_REPORT_ID"),
        preload_corpus=_env_flag("PRELOAD_CORPUS"),
        hash_dimension=_int_from_env("HASH_EMBEDDING_DIMENSION", 384, minimum=1),
    )


__all__ = [
    "DEFAULT_API_URL",
    "DEFAULT_CORPUS_FILE",
    "DEFAULT_MODEL_NAME",
    "EMBEDDING_PROVIDERS",
    "RetrievalSettings",
    "load_settings",
]
