"""GuideBot chat flow: ground a user question in retrieved reports."""
from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Sequence

from fastapi import Depends

from guidebot.errors import InvalidQueryError, RetrievalError
from guidebot.logging_config import AUDIT_LOGGER_NAME
from guidebot.models import ScoredReport
from guidebot.telemetry import emit_exception

from .retrieval import RetrievalService, get_retrieval_service

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

MAX_CONTEXT_CHARS = 2000
MAX_HISTORY_TURNS = 4
SNIPPET_CHARS = 120

DEFAULT_STUB_RESPONSE = (
    "The answer generator is not configured. The reports listed alongside this "
    "message are the closest matches to your question."
)


@dataclass(slots=True)
class ChatTurn:
    role: str
    text: str


@dataclass(slots=True)
class GroundedQuestion:
    """Everything an answer generator receives for one user question."""

    query: str
    context: str
    history: List[ChatTurn] = field(default_factory=list)


@dataclass(slots=True)
class UsedReport:
    id: str
    score: float
    snippet: str
    full_text: str


@dataclass(slots=True)
class ChatResult:
    result: str
    model_used: str
    used_reports: List[UsedReport]


class AnswerGenerator(ABC):
    """Produces the assistant reply from a grounded question."""

    @property
    def model_name(self) -> str:
        return "stub"

    @abstractmethod
    async def generate(self, question: GroundedQuestion) -> str:
        """Return the assistant reply."""


class StubAnswerGenerator(AnswerGenerator):
    """Fallback generator used while no language model backend is wired in."""

    def __init__(self, message: str = DEFAULT_STUB_RESPONSE) -> None:
        self._message = message

    async def generate(self, question: GroundedQuestion) -> str:
        return self._message


def build_context(reports: Sequence[ScoredReport], limit: int = MAX_CONTEXT_CHARS) -> str:
    return "\n\n".join(report.text for report in reports)[:limit]


class ChatService:
    """Orchestrates retrieval and answer generation for the chat endpoint.

    Retrieval failures never fail the chat: the question is answered without
    report context and the error is logged.
    """

    def __init__(
        self,
        retrieval: RetrievalService,
        generator: Optional[AnswerGenerator] = None,
    ) -> None:
        self._retrieval = retrieval
        self._generator = generator or StubAnswerGenerator()

    async def respond(
        self,
        query: str,
        *,
        history: Sequence[ChatTurn] = (),
        top_k: Optional[int] = None,
    ) -> ChatResult:
        if not query or not query.strip():
            raise InvalidQueryError("Valid query required")

        req_id = uuid.uuid4().hex
        reports = await self._retrieve_context(query, top_k, req_id)

        question = GroundedQuestion(
            query=query.strip(),
            context=build_context(reports),
            history=list(history)[-MAX_HISTORY_TURNS:],
        )
        answer = (await self._generator.generate(question)).strip()

        used_reports = [
            UsedReport(
                id=report.id,
                score=report.score,
                snippet=report.snippet(SNIPPET_CHARS),
                full_text=report.text,
            )
            for report in reports
        ]
        AUDIT_LOGGER.info(
            {
                "event": "chat",
                "req_id": req_id,
                "query": query,
                "reports": [report.id for report in reports],
            }
        )
        return ChatResult(result=answer, model_used=self._generator.model_name, used_reports=used_reports)

    async def _retrieve_context(self, query: str, top_k: Optional[int], req_id: str) -> List[ScoredReport]:
        try:
            await self._retrieval.ensure_loaded()
            reports = await self._retrieval.retrieve(query, top_k)
        except RetrievalError as error:
            LOGGER.warning("Reports retrieval failed: %s", error)
            emit_exception(
                module=f"{__name__}.retrieval",
                error=error,
                req_id=req_id,
                suggestion="answering without report context",
            )
            return []
        LOGGER.info("Retrieved %d relevant reports", len(reports))
        return reports


@lru_cache()
def get_answer_generator() -> AnswerGenerator:
    """Return the shared answer generator (the stub until a model backend exists)."""

    return StubAnswerGenerator()


def get_chat_service(
    retrieval: RetrievalService = Depends(get_retrieval_service),
    generator: AnswerGenerator = Depends(get_answer_generator),
) -> ChatService:
    """FastAPI dependency composing the chat flow from its own dependencies.

    Overriding ``get_retrieval_service`` or ``get_answer_generator`` in
    ``app.dependency_overrides`` therefore also changes the chat service.
    """

    return ChatService(retrieval, generator)
