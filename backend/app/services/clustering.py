"""Density clustering over the cached participant projections.

Classes:
    ClusteringService: Runs HDBSCAN on the embedding cache and keeps the latest snapshot.

Functions:
    summarise_clusters(labels): Per-cluster counts sorted largest first.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Optional, Sequence

import numpy as np
from sqlalchemy import delete, select

from app.core.config import Settings, get_settings
from app.models import ClusterResultCache, UMAPEmbeddingCache
from app.schemas import (
    CachedClusterResults,
    ClusteringParameters,
    ClusteringResult,
    ClusterPoint,
    ClusterStat,
    ParticipantMetadata,
)
from app.services.errors import ClusteringInputError, EmptyCacheError
from app.services.projection import ClusterResult, run_hdbscan
from app.services.umap_cache import decode_vector, load_cached_records

_LOGGER = logging.getLogger(__name__)

NOISE_LABEL = -1


def summarise_clusters(labels: Sequence[int]) -> list[ClusterStat]:
    counts = Counter(int(label) for label in labels)
    stats = [
        ClusterStat(
            cluster_id=cluster_id,
            count=count,
            label="Noise" if cluster_id == NOISE_LABEL else f"Cluster {cluster_id}",
        )
        for cluster_id, count in counts.items()
    ]
    stats.sort(key=lambda stat: (-stat.count, stat.cluster_id))
    return stats


class ClusteringService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        clusterer: Optional[Callable[..., ClusterResult]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clusterer = clusterer or run_hdbscan

    def _feature_matrix(self, rows: Sequence[UMAPEmbeddingCache]) -> np.ndarray:
        missing = sum(1 for row in rows if not row.clustering_embedding or not row.clustering_dim)
        if not missing:
            _LOGGER.info("Clustering %s rows on %sD projections", len(rows), rows[0].clustering_dim)
            return np.vstack([decode_vector(row.clustering_embedding)[: row.clustering_dim] for row in rows])

        if not self._settings.allow_2d_cluster_fallback:
            raise ClusteringInputError(
                f"{missing} cached rows lack a clustering projection; regenerate the UMAP cache"
            )
        _LOGGER.warning(
            "%s of %s cached rows lack a clustering projection; clustering on 2D coordinates",
            missing,
            len(rows),
        )
        return np.asarray([[row.x, row.y] for row in rows], dtype=np.float32)

    async def run_clustering_on_cache(
        self,
        session,
        *,
        min_cluster_size: Optional[int] = None,
        min_samples: Optional[int] = None,
    ) -> ClusteringResult:
        rows = await load_cached_records(session)
        if not rows:
            raise EmptyCacheError("No cached UMAP embeddings found. Run generate_umap_cache first.")

        min_cluster_size = min_cluster_size or self._settings.hdbscan_default_min_cluster_size
        min_samples = min_samples or self._settings.hdbscan_default_min_samples
        _LOGGER.info(
            "Running HDBSCAN on %s cached rows (min_cluster_size=%s, min_samples=%s)",
            len(rows),
            min_cluster_size,
            min_samples,
        )

        features = self._feature_matrix(rows)
        clustering = self._clusterer(features, min_cluster_size=min_cluster_size, min_samples=min_samples)
        labels = [int(label) for label in clustering.labels]

        points = [
            ClusterPoint(
                participant_id=row.participant_id,
                x=row.x,
                y=row.y,
                cluster=label,
                metadata=ParticipantMetadata.model_validate(row.metadata_json or {}),
            )
            for row, label in zip(rows, labels)
        ]
        stats = summarise_clusters(labels)
        for stat in stats:
            _LOGGER.info("%s: %s participants", stat.label, stat.count)

        result = ClusteringResult(
            points=points,
            cluster_stats=stats,
            total_participants=len(rows),
            parameters=ClusteringParameters(min_cluster_size=min_cluster_size, min_samples=min_samples),
        )
        await self._save_snapshot(session, result, rows[0].version or "unknown")
        return result

    async def _save_snapshot(self, session, result: ClusteringResult, cache_version: str) -> None:
        await session.execute(delete(ClusterResultCache))
        session.add(
            ClusterResultCache(
                points_json=[point.model_dump(mode="json") for point in result.points],
                cluster_stats_json=[stat.model_dump(mode="json") for stat in result.cluster_stats],
                total_participants=result.total_participants,
                min_cluster_size=result.parameters.min_cluster_size,
                min_samples=result.parameters.min_samples,
                umap_cache_version=cache_version,
            )
        )
        await session.commit()
        _LOGGER.info(
            "Saved clustering snapshot (%s participants, %s clusters)",
            result.total_participants,
            len(result.cluster_stats),
        )

    async def get_cached_cluster_results(
        self,
        session,
        *,
        min_cluster_size: Optional[int] = None,
        min_samples: Optional[int] = None,
    ) -> Optional[CachedClusterResults]:
        result = await session.exec(
            select(ClusterResultCache)
            .order_by(ClusterResultCache.created_at.desc(), ClusterResultCache.id.desc())
            .limit(1)
        )
        snapshot = result.scalars().first()
        if snapshot is None:
            return None
        if min_cluster_size is not None and snapshot.min_cluster_size != min_cluster_size:
            return None
        if min_samples is not None and snapshot.min_samples != min_samples:
            return None

        return CachedClusterResults(
            points=[ClusterPoint.model_validate(point) for point in snapshot.points_json or []],
            cluster_stats=[ClusterStat.model_validate(stat) for stat in snapshot.cluster_stats_json or []],
            total_participants=snapshot.total_participants,
            parameters=ClusteringParameters(
                min_cluster_size=snapshot.min_cluster_size,
                min_samples=snapshot.min_samples,
            ),
            umap_cache_version=snapshot.umap_cache_version,
            created_at=snapshot.created_at,
        )
