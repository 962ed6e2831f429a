"""Remote embedding provider using the Hugging Face inference API."""
from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Sequence

import numpy as np
import requests

from guidebot.config import DEFAULT_API_URL, DEFAULT_MODEL_NAME
from guidebot.errors import (
    EmbeddingError,
    EmbeddingTimeoutError,
    ProviderUnavailableError,
    RateLimitedError,
)

from .base import EmbeddingProvider

_UNAVAILABLE_STATUSES = {401, 403, 404}


def _retry_after(response: requests.Response, payload: Any) -> Optional[float]:
    header = response.headers.get("Retry-After")
    if header:
        try:
            return max(0.0, float(header))
        except ValueError:
            pass
    if isinstance(payload, dict) and isinstance(payload.get("estimated_time"), (int, float)):
        return float(payload["estimated_time"])
    return None


def _error_message(response: requests.Response, payload: Any) -> str:
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return response.text[:200] or response.reason or "no details"


def _to_vectors(payload: Any, count: int) -> List[List[float]]:
    """Normalise a feature-extraction payload into ``count`` vectors.

    Sentence-level models answer with ``[dim]`` for one input and ``[n, dim]``
    for a batch. Token-level models answer with ``[tokens, dim]`` for one
    input and ``[n, tokens, dim]`` for a batch; both are mean pooled here.
    """

    try:
        array = np.asarray(payload, dtype=np.float64)
    except (TypeError, ValueError) as error:
        raise EmbeddingError("Embedding response is not a numeric array", cause=error) from error

    if array.ndim == 1:
        array = array[np.newaxis, :]
    elif array.ndim == 2 and count == 1:
        array = array.mean(axis=0, keepdims=True)
    elif array.ndim == 3:
        array = array.mean(axis=1)
    elif array.ndim != 2:
        raise EmbeddingError(f"Unexpected embedding response shape {array.shape}")

    if array.shape[0] != count or array.shape[1] == 0:
        raise EmbeddingError(f"Expected {count} embeddings, got response shape {array.shape}")
    return array.tolist()


class HuggingFaceInferenceProvider(EmbeddingProvider):
    """Request embeddings from a hosted feature-extraction endpoint."""

    supports_batching = True

    def __init__(
        self,
        token: str | None,
        *,
        model: str = DEFAULT_MODEL_NAME,
        api_url: str = DEFAULT_API_URL,
        request_timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._token = token
        self._model = model
        self._url = api_url.format(model=model)
        self._request_timeout = request_timeout
        self._session = session or requests.Session()

    @property
    def name(self) -> str:
        return f"hf-inference:{self._model}"

    def _post(self, inputs: str | List[str]) -> Any:
        if not self._token:
            raise ProviderUnavailableError(
                "No Hugging Face token configured; set GUIDEBOT_TOKEN or HF_TOKEN"
            )

        try:
            response = self._session.post(
                self._url,
                headers={"Authorization": f"Bearer {self._token}"},
                json={"inputs": inputs, "options": {"wait_for_model": False}},
                timeout=self._request_timeout,
            )
        except requests.Timeout as error:
            raise EmbeddingTimeoutError(
                f"Embedding request timed out after {self._request_timeout:.1f}s", cause=error
            ) from error
        except requests.ConnectionError as error:
            raise ProviderUnavailableError(
                f"Could not reach embedding endpoint {self._url}", cause=error
            ) from error
        except requests.RequestException as error:
            raise EmbeddingError(f"Embedding request failed: {error}", cause=error) from error

        try:
            payload = response.json()
        except ValueError:
            payload = None

        status = response.status_code
        if status == 429 or (status == 503 and isinstance(payload, dict) and "estimated_time" in payload):
            raise RateLimitedError(
                f"Embedding endpoint throttled the request ({status}): {_error_message(response, payload)}",
                retry_after=_retry_after(response, payload),
            )
        if status in _UNAVAILABLE_STATUSES:
            raise ProviderUnavailableError(
                f"Embedding endpoint rejected the request ({status}): {_error_message(response, payload)}"
            )
        if status >= 400:
            raise EmbeddingError(
                f"Embedding endpoint returned {status}: {_error_message(response, payload)}"
            )
        if payload is None:
            raise EmbeddingError("Embedding endpoint returned a non-JSON body")
        return payload

    async def embed(self, text: str) -> List[float]:
        payload = await asyncio.to_thread(self._post, text)
        return _to_vectors(payload, 1)[0]

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        payload = await asyncio.to_thread(self._post, list(texts))
        return _to_vectors(payload, len(texts))
