"""Async OpenAI client wrapper and related value objects.

The service plays two roles for the rest of the backend: the raw embedding
provider used by the cache builder and the vector index, and the text
generator used by cluster insights.

Classes:
    EmbeddingBatch: Collected embedding vectors plus metadata returned from the embeddings API.
    RawEmbeddingProvider: Protocol for anything that can embed single texts or batches.
    TextGenerator: Protocol for anything that can complete a prompt.
    OpenAIService: Embeddings and text generation with retry semantics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError
from tenacity import retry, stop_after_attempt, wait_exponential

from app.core.config import get_settings

_EMBED_BATCH_MAX = 256
_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    dim: int
    model_revision: str | None = None
    provider: str = "openai"


class RawEmbeddingProvider(Protocol):
    async def embed_text(self, text: str, *, model: Optional[str] = None) -> list[float]: ...

    async def embed_texts(self, texts: Iterable[str], *, model: Optional[str] = None) -> EmbeddingBatch: ...


class TextGenerator(Protocol):
    async def generate_text(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str: ...


class OpenAIService:
    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        settings = get_settings()
        api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
        if client is not None:
            self._client = client
        elif api_key:
            self._client = AsyncOpenAI(api_key=api_key)
        else:
            self._client = None
        self._settings = settings

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def embed_texts(
        self,
        texts: Iterable[str],
        *,
        model: Optional[str] = None,
    ) -> EmbeddingBatch:
        docs = list(texts)
        if self._client is None:
            raise RuntimeError("OpenAI client not configured. Set OPENAI_API_KEY.")

        chosen_model = model or self._settings.openai_embedding_model
        if not docs:
            return EmbeddingBatch(vectors=[], model=chosen_model, dim=0)

        vectors: list[list[float]] = []
        dim = 0
        model_revision: str | None = None

        for start in range(0, len(docs), _EMBED_BATCH_MAX):
            chunk = docs[start : start + _EMBED_BATCH_MAX]
            payload = dict(model=chosen_model, input=chunk)
            response = await _retry_embeddings(self._client, payload)

            chunk_vectors = [item.embedding for item in response.data]
            vectors.extend(chunk_vectors)
            if not dim and chunk_vectors:
                dim = len(chunk_vectors[0])
            response_model = getattr(response, "model", None)
            if response_model:
                model_revision = response_model

        return EmbeddingBatch(
            vectors=vectors,
            model=chosen_model,
            dim=dim,
            model_revision=model_revision,
            provider="openai",
        )

    async def embed_text(self, text: str, *, model: Optional[str] = None) -> list[float]:
        batch = await self.embed_texts([text], model=model)
        if not batch.vectors:
            raise RuntimeError("Embedding provider returned no vector")
        return batch.vectors[0]

    async def generate_text(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        if self._client is None:
            raise RuntimeError("OpenAI client not configured. Set OPENAI_API_KEY.")

        payload = dict(
            model=model or self._settings.openai_insight_model,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature if temperature is not None else self._settings.insight_temperature,
            n=1,
        )
        response = await _retry_chat(self._client, payload)
        content = getattr(response.choices[0].message, "content", "") or ""
        return content.strip()


_MAX_ATTEMPTS = max(1, get_settings().openai_max_attempts)


@retry(wait=wait_exponential(multiplier=1, min=1, max=20), stop=stop_after_attempt(_MAX_ATTEMPTS), reraise=True)
async def _retry_chat(client: AsyncOpenAI, payload: dict[str, Any]):
    return await client.chat.completions.create(**payload)


@retry(wait=wait_exponential(multiplier=1, min=1, max=20), stop=stop_after_attempt(_MAX_ATTEMPTS), reraise=True)
async def _retry_embeddings(client: AsyncOpenAI, payload: dict[str, Any]):
    fallback_model = get_settings().openai_embedding_fallback_model
    try:
        return await client.embeddings.create(**payload)
    except OpenAIError:
        if payload.get("model") == fallback_model:
            raise
        _LOGGER.warning("Embedding model %s failed; retrying with %s", payload.get("model"), fallback_model)
        payload["model"] = fallback_model
        return await client.embeddings.create(**payload)
