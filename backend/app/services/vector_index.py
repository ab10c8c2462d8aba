"""Chunked vector index used for participant semantic search.

Entries are keyed per namespace so re-adding the same key replaces the entry
instead of duplicating it, and re-adding unchanged content is a no-op. Each
entry's text is split into line-aligned chunks that are embedded individually;
searches rank chunks by cosine similarity and return them with a window of
neighbouring chunks from the same entry.

Classes:
    ContentSpan, SearchResult, SearchEntry, SearchResponse, AddResult: Value objects returned by the index.
    VectorIndex: Protocol the search and indexing services depend on.
    SqlVectorIndex: Implementation storing entries and chunk vectors through SQLModel.

Functions:
    chunk_text(text, max_words): Split text into line-aligned chunks bounded by word count.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from uuid import UUID

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity
from sqlalchemy import delete, func, select

from app.core.config import get_settings
from app.models import RagChunk, RagEntry
from app.schemas import validate_entry_metadata
from app.services.openai_client import RawEmbeddingProvider
from app.utils.clock import utc_now
from app.utils.text import content_hash

_WORD_RE = re.compile(r"\S+")
_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ContentSpan:
    text: str


@dataclass(slots=True)
class SearchResult:
    entry_id: str
    score: float
    order: int
    content: list[ContentSpan] = field(default_factory=list)


@dataclass(slots=True)
class SearchEntry:
    entry_id: str
    key: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SearchResponse:
    results: list[SearchResult] = field(default_factory=list)
    entries: list[SearchEntry] = field(default_factory=list)


@dataclass(slots=True)
class AddResult:
    entry_id: str
    created: bool = False
    replaced: bool = False
    unchanged: bool = False
    chunk_count: int = 0


class VectorIndex(Protocol):
    async def add(
        self,
        session,
        *,
        namespace: str,
        key: str,
        text: str,
        metadata: dict[str, Any],
    ) -> AddResult: ...

    async def remove(self, session, *, namespace: str, key: str) -> bool: ...

    async def search(
        self,
        session,
        *,
        namespace: str,
        query: str,
        limit: int,
        chunk_context: tuple[int, int] = (0, 0),
    ) -> SearchResponse: ...

    async def count(self, session, *, namespace: str) -> int: ...


def chunk_text(text: str, max_words: int) -> list[str]:
    max_words = max(1, int(max_words))
    chunks: list[str] = []
    buffer: list[str] = []
    buffer_words = 0

    def flush() -> None:
        nonlocal buffer_words
        if buffer:
            chunks.append("\n".join(buffer))
            buffer.clear()
        buffer_words = 0

    for line in text.splitlines():
        if not line.strip():
            continue
        words = _WORD_RE.findall(line)
        if len(words) > max_words:
            flush()
            for start in range(0, len(words), max_words):
                chunks.append(" ".join(words[start : start + max_words]))
            continue
        if buffer and buffer_words + len(words) > max_words:
            flush()
        buffer.append(line)
        buffer_words += len(words)
    flush()
    return chunks


def _to_bytes(vector: list[float]) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def _from_bytes(blob: bytes, dim: int) -> np.ndarray:
    arr = np.frombuffer(blob, dtype=np.float32)
    if dim and arr.size > dim:
        arr = arr[:dim]
    return arr


class SqlVectorIndex:
    def __init__(
        self,
        embedder: RawEmbeddingProvider,
        *,
        chunk_max_words: Optional[int] = None,
        embedding_model: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self._embedder = embedder
        self._chunk_max_words = chunk_max_words or settings.rag_chunk_max_words
        self._embedding_model = embedding_model or settings.openai_embedding_model

    async def _get_entry(self, session, namespace: str, key: str) -> Optional[RagEntry]:
        result = await session.exec(
            select(RagEntry).where(RagEntry.namespace == namespace, RagEntry.key == key)
        )
        return result.scalars().first()

    async def add(
        self,
        session,
        *,
        namespace: str,
        key: str,
        text: str,
        metadata: dict[str, Any],
    ) -> AddResult:
        validated = validate_entry_metadata(metadata).model_dump()
        digest = content_hash(text, validated)

        existing = await self._get_entry(session, namespace, key)
        if existing is not None and existing.content_hash == digest:
            return AddResult(entry_id=str(existing.id), unchanged=True, chunk_count=existing.chunk_count)

        chunks = chunk_text(text, self._chunk_max_words)
        if not chunks:
            raise ValueError(f"Entry {key!r} has no text to index")

        # Embed before touching the store so a provider failure leaves the old entry intact.
        batch = await self._embedder.embed_texts(chunks, model=self._embedding_model)
        if len(batch.vectors) != len(chunks):
            raise RuntimeError(
                f"Embedding provider returned {len(batch.vectors)} vectors for {len(chunks)} chunks"
            )

        if existing is None:
            entry = RagEntry(
                namespace=namespace,
                key=key,
                text=text,
                content_hash=digest,
                metadata_json=validated,
                chunk_count=len(chunks),
            )
            session.add(entry)
            await session.flush()
        else:
            entry = existing
            await session.execute(delete(RagChunk).where(RagChunk.entry_id == entry.id))
            entry.text = text
            entry.content_hash = digest
            entry.metadata_json = validated
            entry.chunk_count = len(chunks)
            entry.updated_at = utc_now()
            session.add(entry)

        for position, (chunk, vector) in enumerate(zip(chunks, batch.vectors)):
            session.add(
                RagChunk(
                    entry_id=entry.id,
                    namespace=namespace,
                    position=position,
                    text=chunk,
                    dim=len(vector),
                    vector=_to_bytes(vector),
                )
            )
        await session.commit()

        return AddResult(
            entry_id=str(entry.id),
            created=existing is None,
            replaced=existing is not None,
            chunk_count=len(chunks),
        )

    async def remove(self, session, *, namespace: str, key: str) -> bool:
        entry = await self._get_entry(session, namespace, key)
        if entry is None:
            return False
        await session.execute(delete(RagChunk).where(RagChunk.entry_id == entry.id))
        await session.delete(entry)
        await session.commit()
        return True

    async def count(self, session, *, namespace: str) -> int:
        result = await session.exec(
            select(func.count()).select_from(RagEntry).where(RagEntry.namespace == namespace)
        )
        return int(result.scalar_one())

    async def search(
        self,
        session,
        *,
        namespace: str,
        query: str,
        limit: int,
        chunk_context: tuple[int, int] = (0, 0),
    ) -> SearchResponse:
        if limit <= 0 or not query or not query.strip():
            return SearchResponse()

        chunk_rows = await session.exec(
            select(RagChunk)
            .where(RagChunk.namespace == namespace)
            .order_by(RagChunk.entry_id, RagChunk.position)
        )
        chunks = chunk_rows.scalars().all()
        if not chunks:
            return SearchResponse()

        query_vector = np.asarray(
            await self._embedder.embed_text(query, model=self._embedding_model),
            dtype=np.float32,
        )

        candidates: list[RagChunk] = []
        vectors: list[np.ndarray] = []
        for chunk in chunks:
            vector = _from_bytes(chunk.vector, chunk.dim)
            if vector.size != query_vector.size:
                _LOGGER.warning(
                    "Skipping chunk %s of entry %s in namespace %s: dim %s != query dim %s",
                    chunk.id,
                    chunk.entry_id,
                    namespace,
                    vector.size,
                    query_vector.size,
                )
                continue
            candidates.append(chunk)
            vectors.append(vector)
        if not candidates:
            return SearchResponse()

        scores = cosine_similarity(query_vector.reshape(1, -1), np.vstack(vectors))[0]
        ranked = np.argsort(-scores, kind="stable")[:limit]

        texts_by_entry: dict[UUID, dict[int, str]] = defaultdict(dict)
        for chunk in chunks:
            texts_by_entry[chunk.entry_id][chunk.position] = chunk.text

        before, after = chunk_context
        results: list[SearchResult] = []
        entry_order: list[UUID] = []
        for idx in ranked:
            chunk = candidates[int(idx)]
            positions = texts_by_entry[chunk.entry_id]
            window = range(chunk.position - max(0, before), chunk.position + max(0, after) + 1)
            content = [ContentSpan(text=positions[pos]) for pos in window if pos in positions]
            results.append(
                SearchResult(
                    entry_id=str(chunk.entry_id),
                    score=float(scores[int(idx)]),
                    order=chunk.position,
                    content=content,
                )
            )
            if chunk.entry_id not in entry_order:
                entry_order.append(chunk.entry_id)

        entry_rows = await session.exec(select(RagEntry).where(RagEntry.id.in_(entry_order)))
        entry_map = {entry.id: entry for entry in entry_rows.scalars().all()}
        entries = [
            SearchEntry(
                entry_id=str(entry_id),
                key=entry_map[entry_id].key,
                text=entry_map[entry_id].text,
                metadata=dict(entry_map[entry_id].metadata_json or {}),
            )
            for entry_id in entry_order
            if entry_id in entry_map
        ]
        return SearchResponse(results=results, entries=entries)
