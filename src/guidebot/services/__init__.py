"""Application services composing the retrieval core."""
from __future__ import annotations

from .chat import (
    AnswerGenerator,
    ChatResult,
    ChatService,
    ChatTurn,
    StubAnswerGenerator,
    get_answer_generator,
    get_chat_service,
)
from .retrieval import (
    RetrievalService,
    build_retrieval_service,
    get_retrieval_service,
    reset_retrieval_service_cache,
)

__all__ = [
    "AnswerGenerator",
    "ChatResult",
    "ChatService",
    "ChatTurn",
    "RetrievalService",
    "StubAnswerGenerator",
    "build_retrieval_service",
    "get_answer_generator",
    "get_chat_service",
    "get_retrieval_service",
    "reset_retrieval_service_cache",
]
