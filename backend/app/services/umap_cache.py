"""Versioned participant embedding cache.

The cache holds one row per participant with the raw embedding, its 2D layout
coordinates and its clustering projection. Rebuilds run through a persisted
status row (empty -> clearing -> populating -> ready) so a build that died part
way is recognised and redone on the next request.

Classes:
    CachedEmbeddingRecord: In-memory record written to the cache.
    UMAPCacheBuilder: Embeds participants, projects them, and persists the result.

Functions:
    persist_umap_cache(session, records, version, ...): Replace the cache with a new version in chunks.
    save_cache_chunk(session, records, version, clear_old): Insert one chunk, optionally clearing old rows first.
    get_cache_status(session): Current build status row (or None).
    get_umap_cache_stats(session): Row count, latest version, and build state.
    load_cached_records(session): All cached rows in insert order.
    encode_vector(values), decode_vector(blob): float32 byte (de)serialisation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence
from uuid import UUID

import numpy as np
from sqlalchemy import delete, func, select

from app.core.config import Settings, get_settings
from app.models import (
    UMAP_CACHE_STATUS_ID,
    CacheBuildState,
    CacheBuildStatus,
    UMAPEmbeddingCache,
)
from app.schemas import UMAPCacheResult, UMAPCacheStats
from app.services.openai_client import RawEmbeddingProvider
from app.services.participant_text import (
    generate_participant_text,
    list_participant_ids,
    participant_metadata,
)
from app.services.projection import DualProjection, compute_dual_projection
from app.utils.text import has_indexable_content

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CachedEmbeddingRecord:
    participant_id: UUID
    embedding: list[float]
    x: float = 0.0
    y: float = 0.0
    clustering_embedding: Optional[list[float]] = None
    metadata: dict[str, Any] = field(default_factory=dict)


def encode_vector(values: Sequence[float] | np.ndarray) -> bytes:
    return np.asarray(values, dtype=np.float32).tobytes()


def decode_vector(blob: Optional[bytes]) -> Optional[np.ndarray]:
    if blob is None:
        return None
    return np.frombuffer(blob, dtype=np.float32)


def new_cache_version() -> str:
    return f"v1-{int(time.time() * 1000)}"


async def get_cache_status(session) -> Optional[CacheBuildStatus]:
    return await session.get(CacheBuildStatus, UMAP_CACHE_STATUS_ID)


async def _set_status(
    session,
    state: str,
    *,
    version: Optional[str] = None,
    expected_count: Optional[int] = None,
    written_count: Optional[int] = None,
) -> CacheBuildStatus:
    status = await get_cache_status(session)
    if status is None:
        status = CacheBuildStatus(id=UMAP_CACHE_STATUS_ID)
    status.state = state
    if version is not None:
        status.version = version
    if expected_count is not None:
        status.expected_count = expected_count
    if written_count is not None:
        status.written_count = written_count
    session.add(status)
    await session.commit()
    return status


async def save_cache_chunk(
    session,
    records: Sequence[CachedEmbeddingRecord],
    version: str,
    *,
    clear_old: bool = False,
) -> int:
    if clear_old:
        result = await session.execute(delete(UMAPEmbeddingCache))
        await session.commit()
        _LOGGER.info("Cleared %s cached UMAP rows before writing version %s", result.rowcount, version)

    for record in records:
        embedding = np.asarray(record.embedding, dtype=np.float32)
        clustering = (
            np.asarray(record.clustering_embedding, dtype=np.float32)
            if record.clustering_embedding is not None
            else None
        )
        session.add(
            UMAPEmbeddingCache(
                participant_id=record.participant_id,
                x=float(record.x),
                y=float(record.y),
                embedding=embedding.tobytes(),
                embedding_dim=int(embedding.size),
                clustering_embedding=clustering.tobytes() if clustering is not None else None,
                clustering_dim=int(clustering.size) if clustering is not None else 0,
                metadata_json=dict(record.metadata),
                version=version,
            )
        )
    await session.commit()
    return len(records)


async def persist_umap_cache(
    session,
    records: Sequence[CachedEmbeddingRecord],
    version: str,
    *,
    chunk_size: Optional[int] = None,
) -> int:
    """Replace every cached row with ``records`` under ``version``.

    Only the first chunk clears existing rows, and it commits the delete before
    anything of the new version is inserted, so versions never mix.
    """

    chunk_size = max(1, chunk_size or get_settings().umap_cache_chunk_size)
    total = len(records)
    await _set_status(session, CacheBuildState.CLEARING, version=version, expected_count=total, written_count=0)

    written = 0
    if total == 0:
        await save_cache_chunk(session, [], version, clear_old=True)
    for chunk_index, start in enumerate(range(0, total, chunk_size)):
        chunk = records[start : start + chunk_size]
        written += await save_cache_chunk(session, chunk, version, clear_old=chunk_index == 0)
        await _set_status(session, CacheBuildState.POPULATING, written_count=written)
        _LOGGER.info("Cached chunk %s (%s/%s rows) for version %s", chunk_index + 1, written, total, version)

    await _set_status(session, CacheBuildState.READY, version=version, written_count=written)
    return written


async def get_umap_cache_stats(session) -> UMAPCacheStats:
    count_result = await session.exec(select(func.count()).select_from(UMAPEmbeddingCache))
    count = int(count_result.scalar_one())

    latest_result = await session.exec(
        select(UMAPEmbeddingCache)
        .order_by(UMAPEmbeddingCache.created_at.desc(), UMAPEmbeddingCache.id.desc())
        .limit(1)
    )
    latest = latest_result.scalars().first()

    status = await get_cache_status(session)
    if status is not None:
        state = status.state
    else:
        state = CacheBuildState.READY if count else CacheBuildState.EMPTY

    return UMAPCacheStats(
        count=count,
        latest_version=latest.version if latest else None,
        created_at=latest.created_at if latest else None,
        state=state,
    )


async def load_cached_records(session) -> list[UMAPEmbeddingCache]:
    result = await session.exec(select(UMAPEmbeddingCache).order_by(UMAPEmbeddingCache.id))
    return list(result.scalars().all())


class UMAPCacheBuilder:
    def __init__(
        self,
        embedder: RawEmbeddingProvider,
        *,
        settings: Optional[Settings] = None,
        reducer: Optional[Callable[..., DualProjection]] = None,
    ) -> None:
        self._embedder = embedder
        self._settings = settings or get_settings()
        self._reducer = reducer or compute_dual_projection

    async def _embed_participant(self, participant_id: UUID, text: str) -> Optional[list[float]]:
        try:
            return await self._embedder.embed_text(text, model=self._settings.openai_embedding_model)
        except Exception as exc:  # noqa: BLE001 - a failed participant is dropped from the run
            _LOGGER.warning("Failed to embed participant %s: %s", participant_id, exc)
            return None

    async def _collect_embeddings(self, session, participant_ids: Sequence[UUID]) -> list[CachedEmbeddingRecord]:
        batch_size = max(1, self._settings.embedding_batch_size)
        total_batches = (len(participant_ids) + batch_size - 1) // batch_size
        collected: list[CachedEmbeddingRecord] = []

        for batch_number, start in enumerate(range(0, len(participant_ids), batch_size), start=1):
            batch = participant_ids[start : start + batch_size]
            _LOGGER.info("Processing batch %s/%s (%s participants)", batch_number, total_batches, len(batch))

            # The session is not safe for concurrent use; texts load sequentially, embeddings fan out.
            pending: list[tuple[UUID, str, dict[str, Any]]] = []
            for participant_id in batch:
                try:
                    consolidated = await generate_participant_text(session, participant_id)
                except Exception as exc:  # noqa: BLE001
                    _LOGGER.warning("Failed to load participant %s: %s", participant_id, exc)
                    continue
                if not has_indexable_content(consolidated.text):
                    continue
                metadata = participant_metadata(consolidated.participant).model_dump()
                pending.append((participant_id, consolidated.text, metadata))

            vectors = await asyncio.gather(
                *(self._embed_participant(participant_id, text) for participant_id, text, _ in pending)
            )
            valid = 0
            for (participant_id, _, metadata), vector in zip(pending, vectors):
                if vector is None:
                    continue
                collected.append(
                    CachedEmbeddingRecord(participant_id=participant_id, embedding=list(vector), metadata=metadata)
                )
                valid += 1
            _LOGGER.info("Batch %s/%s complete (%s/%s successful)", batch_number, total_batches, valid, len(batch))

        return collected

    async def generate_umap_cache(
        self,
        session,
        *,
        limit: Optional[int] = None,
        force_refresh: bool = False,
    ) -> UMAPCacheResult:
        version = new_cache_version()

        if not force_refresh:
            status = await get_cache_status(session)
            interrupted = status is not None and status.is_interrupted
            stats = await get_umap_cache_stats(session)
            if stats.count > 0 and not interrupted:
                _LOGGER.info("Using existing UMAP cache with %s entries", stats.count)
                return UMAPCacheResult(cached=0, skipped=stats.count, version=stats.latest_version or "unknown")
            if interrupted:
                _LOGGER.warning("Previous UMAP cache build stopped in state %s; rebuilding", stats.state)

        participant_ids = await list_participant_ids(session, limit)
        if not participant_ids:
            return UMAPCacheResult(cached=0, skipped=0, version=version)

        _LOGGER.info("Starting UMAP cache generation %s for %s participants", version, len(participant_ids))
        records = await self._collect_embeddings(session, participant_ids)

        if len(records) < self._settings.umap_min_participants:
            _LOGGER.warning(
                "Not enough participants for UMAP: %s embeddings, need %s",
                len(records),
                self._settings.umap_min_participants,
            )
            return UMAPCacheResult(cached=0, skipped=len(records), version=version)

        projection = self._reducer(
            np.asarray([record.embedding for record in records], dtype=np.float32),
            settings=self._settings,
        )
        for idx, record in enumerate(records):
            record.x = float(projection.coords_2d[idx][0])
            record.y = float(projection.coords_2d[idx][1])
            record.clustering_embedding = [float(value) for value in projection.coords_clustering[idx]]

        cached = await persist_umap_cache(
            session,
            records,
            version,
            chunk_size=self._settings.umap_cache_chunk_size,
        )
        _LOGGER.info("Cached %s UMAP embeddings for version %s", cached, version)
        return UMAPCacheResult(cached=cached, skipped=0, version=version)
