"""API router exposing the GuideBot chat and corpus diagnostics endpoints."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from guidebot.errors import InvalidQueryError
from guidebot.services.chat import ChatResult, ChatService, ChatTurn, get_chat_service
from guidebot.services.retrieval import RetrievalService, get_retrieval_service

router = APIRouter(tags=["guidebot"])


class ChatHistoryItem(BaseModel):
    role: str = Field(..., description="Either 'user' or 'assistant'.")
    text: str


class ChatRequest(BaseModel):
    """Request body accepted by the chat endpoint."""

    query: str = Field(..., min_length=1, description="Question about the radiology reports.")
    conversation_history: list[ChatHistoryItem] = Field(default_factory=list)
    top_k: Optional[int] = Field(None, ge=1, le=20, description="How many reports to use as context.")


class UsedReportItem(BaseModel):
    id: str
    score: float
    snippet: str
    full_text: str


class ChatResponse(BaseModel):
    result: str
    model_used: str
    used_reports: list[UsedReportItem]


class CorpusStatsResponse(BaseModel):
    state: str
    total: int
    with_embeddings: int
    embedding_dimension: int
    failed_ids: list[str]
    last_error: Optional[str] = None


def _serialise_result(result: ChatResult) -> ChatResponse:
    return ChatResponse(
        result=result.result,
        model_used=result.model_used,
        used_reports=[
            UsedReportItem(
                id=report.id,
                score=report.score,
                snippet=report.snippet,
                full_text=report.full_text,
            )
            for report in result.used_reports
        ],
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Answer a question using the most relevant reports as context."""

    if not request.query.strip():
        raise HTTPException(status_code=422, detail="Valid query required")

    history = [
        ChatTurn(role="user" if item.role == "user" else "assistant", text=item.text)
        for item in request.conversation_history
    ]
    try:
        result = await chat_service.respond(request.query, history=history, top_k=request.top_k)
    except InvalidQueryError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _serialise_result(result)


@router.get("/corpus/stats", response_model=CorpusStatsResponse)
def corpus_stats(
    retrieval: RetrievalService = Depends(get_retrieval_service),
) -> CorpusStatsResponse:
    """Expose corpus size, embedding coverage and load state."""

    stats = retrieval.stats()
    return CorpusStatsResponse(
        state=stats.state.value,
        total=stats.total,
        with_embeddings=stats.with_embeddings,
        embedding_dimension=stats.embedding_dimension,
        failed_ids=stats.failed_ids,
        last_error=stats.last_error,
    )
