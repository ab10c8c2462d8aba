"""Tests for the embedding cache builder and its persistence."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import numpy as np
import pytest
from sqlalchemy import select

from app.core.config import Settings
from app.models import CacheBuildState, CacheBuildStatus, UMAPEmbeddingCache
from app.services.umap_cache import (
    CachedEmbeddingRecord,
    UMAPCacheBuilder,
    decode_vector,
    get_cache_status,
    get_umap_cache_stats,
    load_cached_records,
    persist_umap_cache,
)

SECTORS = ["Tecnologia", "Saúde", "Educação", "Finanças", "Varejo", "Energia", "Agro", "Logística"]


class SpyReducer:
    def __init__(self, reducer) -> None:
        self.reducer = reducer
        self.calls = 0

    def __call__(self, features, **kwargs):
        self.calls += 1
        return self.reducer(features, **kwargs)


class ConcurrencyTrackingEmbedder:
    def __init__(self, inner) -> None:
        self.inner = inner
        self.in_flight = 0
        self.peak_in_flight = 0

    async def embed_text(self, text: str, **kwargs: object) -> list[float]:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await self.inner.embed_text(text, **kwargs)
        finally:
            self.in_flight -= 1


async def _seed(make_participant, count: int) -> list:
    return [
        await make_participant(name=f"Pessoa {idx}", role="Analista", sector=SECTORS[idx % len(SECTORS)])
        for idx in range(count)
    ]


def _records(count: int) -> list[CachedEmbeddingRecord]:
    return [
        CachedEmbeddingRecord(
            participant_id=uuid4(),
            embedding=[float(idx), 1.0, 2.0],
            x=float(idx),
            y=-float(idx),
            clustering_embedding=[float(idx), 0.5],
            metadata={"name": f"P{idx}"},
        )
        for idx in range(count)
    ]


@pytest.mark.asyncio
async def test_fewer_than_five_embeddings_skip_reduction(session, make_participant, fake_openai, reducer):
    await _seed(make_participant, 4)
    spy = SpyReducer(reducer)
    builder = UMAPCacheBuilder(fake_openai, reducer=spy)

    result = await builder.generate_umap_cache(session)

    assert result.cached == 0
    assert result.skipped == 4
    assert result.version.startswith("v1-")
    assert spy.calls == 0
    assert await load_cached_records(session) == []


@pytest.mark.asyncio
async def test_no_participants_returns_empty_result(session, fake_openai, reducer):
    result = await UMAPCacheBuilder(fake_openai, reducer=reducer).generate_umap_cache(session)
    assert (result.cached, result.skipped) == (0, 0)


@pytest.mark.asyncio
async def test_generate_cache_persists_projection_rows(session, make_participant, fake_openai, reducer):
    participants = await _seed(make_participant, 6)
    builder = UMAPCacheBuilder(fake_openai, reducer=reducer)

    result = await builder.generate_umap_cache(session)

    assert result.cached == 6
    assert result.skipped == 0
    rows = await load_cached_records(session)
    assert len(rows) == 6
    assert {row.version for row in rows} == {result.version}
    assert {row.participant_id for row in rows} == {participant.id for participant in participants}
    assert all(row.clustering_dim == 8 for row in rows)
    assert all(row.embedding_dim == 32 for row in rows)
    first = rows[0]
    embedding = decode_vector(first.embedding)
    assert first.x == pytest.approx(float(embedding[0]))
    assert first.metadata_json["sector"] in SECTORS

    stats = await get_umap_cache_stats(session)
    assert stats.count == 6
    assert stats.latest_version == result.version
    assert stats.state == CacheBuildState.READY


@pytest.mark.asyncio
async def test_existing_cache_is_reused_unless_forced(session, make_participant, fake_openai, reducer):
    await _seed(make_participant, 6)
    builder = UMAPCacheBuilder(fake_openai, reducer=reducer)
    built = await builder.generate_umap_cache(session)
    calls_after_build = len(fake_openai.embed_calls)

    reused = await builder.generate_umap_cache(session)
    assert reused.cached == 0
    assert reused.skipped == 6
    assert reused.version == built.version
    assert len(fake_openai.embed_calls) == calls_after_build

    await make_participant(name="Nova", sector="Energia")
    forced = await builder.generate_umap_cache(session, force_refresh=True)
    assert forced.cached == 7
    rows = await load_cached_records(session)
    assert {row.version for row in rows} == {forced.version}


@pytest.mark.asyncio
async def test_interrupted_build_is_redone_without_force(session, make_participant, fake_openai, reducer):
    await _seed(make_participant, 6)
    builder = UMAPCacheBuilder(fake_openai, reducer=reducer)
    await builder.generate_umap_cache(session)

    status = await get_cache_status(session)
    status.state = CacheBuildState.POPULATING
    session.add(status)
    await session.commit()
    assert status.is_interrupted

    rebuilt = await builder.generate_umap_cache(session)

    assert rebuilt.cached == 6
    assert (await get_cache_status(session)).state == CacheBuildState.READY


@pytest.mark.asyncio
async def test_failed_and_blank_participants_are_dropped(session, make_participant, fake_openai_factory, reducer):
    await _seed(make_participant, 5)
    await make_participant()
    await make_participant(name="Quebrado", sector="Tecnologia")
    builder = UMAPCacheBuilder(fake_openai_factory(fail_on="Quebrado"), reducer=reducer)

    result = await builder.generate_umap_cache(session)

    assert result.cached == 5
    assert len(await load_cached_records(session)) == 5


@pytest.mark.asyncio
async def test_persist_replaces_previous_version_in_chunks(session):
    await persist_umap_cache(session, _records(3), "v1-old", chunk_size=2)
    written = await persist_umap_cache(session, _records(5), "v1-new", chunk_size=2)

    assert written == 5
    rows = (await session.exec(select(UMAPEmbeddingCache).order_by(UMAPEmbeddingCache.id))).scalars().all()
    assert [row.version for row in rows] == ["v1-new"] * 5
    assert [row.x for row in rows] == [0.0, 1.0, 2.0, 3.0, 4.0]
    assert np.allclose(decode_vector(rows[1].clustering_embedding), [1.0, 0.5])

    status = (await session.exec(select(CacheBuildStatus))).scalars().one()
    assert status.state == CacheBuildState.READY
    assert status.version == "v1-new"
    assert (status.expected_count, status.written_count) == (5, 5)


@pytest.mark.asyncio
async def test_embedding_fan_out_is_bounded_by_batch_size(session, make_participant, fake_openai, reducer):
    participants = await _seed(make_participant, 5)
    tracker = ConcurrencyTrackingEmbedder(fake_openai)
    settings = Settings(embedding_batch_size=2, umap_min_participants=5)

    result = await UMAPCacheBuilder(tracker, settings=settings, reducer=reducer).generate_umap_cache(session)

    assert tracker.peak_in_flight == 2
    assert len(fake_openai.embed_calls) == 5
    assert result.cached == 5
    rows = await load_cached_records(session)
    assert {row.participant_id for row in rows} == {participant.id for participant in participants}
