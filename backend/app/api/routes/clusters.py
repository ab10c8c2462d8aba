"""Embedding cache, clustering, and cluster insight endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.api.deps import get_cache_builder, get_clustering_service, get_insight_generator
from app.db.session import get_session
from app.schemas import (
    CachedClusterResults,
    ClusterInsight,
    ClusteringRequest,
    ClusteringResult,
    InsightRequest,
    UMAPCacheRequest,
    UMAPCacheResult,
    UMAPCacheStats,
)
from app.services.clustering import ClusteringService
from app.services.errors import ClusteringInputError, EmptyCacheError
from app.services.insights import ClusterInsightGenerator
from app.services.umap_cache import UMAPCacheBuilder, get_umap_cache_stats

router = APIRouter(prefix="/clusters", tags=["clusters"])


@router.post("/umap-cache", response_model=UMAPCacheResult)
async def generate_umap_cache(
    payload: Optional[UMAPCacheRequest] = Body(default=None),
    session: AsyncSession = Depends(get_session),
    builder: UMAPCacheBuilder = Depends(get_cache_builder),
) -> UMAPCacheResult:
    payload = payload or UMAPCacheRequest()
    return await builder.generate_umap_cache(session, limit=payload.limit, force_refresh=payload.force_refresh)


@router.get("/umap-cache/stats", response_model=UMAPCacheStats)
async def umap_cache_stats(session: AsyncSession = Depends(get_session)) -> UMAPCacheStats:
    return await get_umap_cache_stats(session)


@router.post("/run", response_model=ClusteringResult)
async def run_clustering(
    payload: Optional[ClusteringRequest] = Body(default=None),
    session: AsyncSession = Depends(get_session),
    service: ClusteringService = Depends(get_clustering_service),
) -> ClusteringResult:
    payload = payload or ClusteringRequest()
    try:
        return await service.run_clustering_on_cache(
            session,
            min_cluster_size=payload.min_cluster_size,
            min_samples=payload.min_samples,
        )
    except (EmptyCacheError, ClusteringInputError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/insights", response_model=list[ClusterInsight])
async def cluster_insights(
    payload: InsightRequest,
    generator: ClusterInsightGenerator = Depends(get_insight_generator),
) -> list[ClusterInsight]:
    return await generator.generate_cluster_insights(payload.cluster_points)


@router.get("/cached", response_model=Optional[CachedClusterResults])
async def cached_cluster_results(
    min_cluster_size: Optional[int] = Query(default=None, ge=2),
    min_samples: Optional[int] = Query(default=None, ge=1),
    session: AsyncSession = Depends(get_session),
    service: ClusteringService = Depends(get_clustering_service),
) -> Optional[CachedClusterResults]:
    return await service.get_cached_cluster_results(
        session,
        min_cluster_size=min_cluster_size,
        min_samples=min_samples,
    )
