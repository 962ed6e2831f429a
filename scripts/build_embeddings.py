#!/usr/bin/env python3
"""Precompute report embeddings into a JSON file served by the precomputed provider."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from guidebot.config import load_settings
from guidebot.corpus import CorpusLoader, CorpusStore
from guidebot.errors import RetrievalError
from guidebot.providers import build_embedding_provider
from guidebot.services.retrieval import loader_config_from_settings
from guidebot.telemetry import traced_duration

PROJECT_ROOT = Path(__file__).resolve().parents[1]

LOGGER = logging.getLogger("guidebot.scripts.build_embeddings")


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--corpus", type=Path, help="JSONL report corpus (defaults to CORPUS_PATH)")
    parser.add_argument(
        "--output",
        type=Path,
        default=PROJECT_ROOT / "public" / "embeddings.json",
        help="Where to write the embeddings JSON",
    )
    parser.add_argument(
        "--provider",
        choices=("local", "remote", "hash"),
        help="Embedding backend (defaults to EMBEDDING_PROVIDER)",
    )
    return parser.parse_args(argv)


async def build(corpus: Path, output: Path, provider_name: Optional[str]) -> int:
    settings = load_settings()
    settings.corpus_path = corpus
    if provider_name:
        settings.embedding_provider = provider_name
    if settings.embedding_provider == "precomputed":
        raise SystemExit("Cannot build embeddings with the precomputed provider; pass --provider")

    store = CorpusStore()
    loader = CorpusLoader(
        store,
        build_embedding_provider(settings),
        corpus,
        loader_config_from_settings(settings),
    )
    with traced_duration("embeddings.build", corpus=str(corpus), provider=settings.embedding_provider):
        await loader.ensure_loaded()

    payload = [
        {"reportId": report.id, "text": report.text, "embedding": list(report.embedding)}
        for report in store.valid_reports
    ]
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    stats = store.stats()
    LOGGER.info(
        "Successfully generated embeddings for %d/%d reports", stats.with_embeddings, stats.total
    )
    if stats.failed_ids:
        LOGGER.warning("Reports without embeddings: %s", ", ".join(stats.failed_ids))
    LOGGER.info("Saved to %s", output)
    return len(payload)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    args = _parse_args(argv)
    corpus = args.corpus or load_settings().corpus_path

    try:
        asyncio.run(build(corpus, args.output, args.provider))
    except RetrievalError as error:
        LOGGER.error("Failed to generate embeddings: %s", error)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
