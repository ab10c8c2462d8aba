"""Dimensionality reduction and density clustering helpers.

Classes:
    DualProjection: 2D layout coordinates plus the higher-dimensional clustering projection.
    ClusterResult: HDBSCAN labels and membership probabilities.

Functions:
    effective_neighbors(count, max_neighbors): Neighbour count used for a given number of points.
    compute_umap(features, ...): Project features with UMAP, guarding small inputs.
    compute_dual_projection(features, ...): Run the visual and clustering UMAP passes.
    run_hdbscan(features, ...): Density clustering with contiguous, first-appearance labels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import hdbscan
import numpy as np
import umap

from app.core.config import Settings, get_settings

_LOGGER = logging.getLogger(__name__)

_MIN_NEIGHBORS = 2
_MIN_UMAP_POINTS = 3


@dataclass(slots=True)
class DualProjection:
    coords_2d: np.ndarray
    coords_clustering: np.ndarray
    n_neighbors: int


@dataclass(slots=True)
class ClusterResult:
    labels: np.ndarray
    probabilities: np.ndarray

    @property
    def cluster_count(self) -> int:
        return len({int(label) for label in self.labels if label >= 0})


def effective_neighbors(count: int, max_neighbors: int = 15) -> int:
    """Neighbour count for ``count`` points: ``min(max_neighbors, count // 3)`` floored at 2."""

    return max(_MIN_NEIGHBORS, min(max_neighbors, count // 3))


def compute_umap(
    features: np.ndarray,
    *,
    n_components: int = 2,
    n_neighbors: int = 15,
    min_dist: float = 0.1,
    spread: float = 1.0,
    metric: str = "euclidean",
    random_state: Optional[int] = None,
) -> np.ndarray:
    data = np.asarray(features, dtype=np.float32)
    if data.ndim != 2:
        raise ValueError("features must be a 2D array")
    count, dim = data.shape
    target = max(1, min(int(n_components), dim)) if dim else int(n_components)
    if count == 0:
        return np.zeros((0, target), dtype=np.float32)
    if count < _MIN_UMAP_POINTS or dim == 0:
        # Too few points for a neighbour graph; spread a pair along the first axis.
        coords = np.zeros((count, target), dtype=np.float32)
        if count == 2 and dim:
            coords[:, 0] = (-1.0, 1.0)
        return coords

    neighbors = max(_MIN_NEIGHBORS, min(int(n_neighbors), count - 1))
    # Spectral init needs more points than target dimensions.
    init = "spectral" if count > target + 1 else "random"
    reducer = umap.UMAP(
        n_components=target,
        n_neighbors=neighbors,
        min_dist=min_dist,
        spread=spread,
        metric=metric,
        init=init,
        random_state=random_state,
    )
    coords = reducer.fit_transform(data)
    return np.asarray(coords, dtype=np.float32)


def compute_dual_projection(
    features: np.ndarray,
    *,
    settings: Optional[Settings] = None,
) -> DualProjection:
    """Project embeddings twice: a 2D layout for display and a denser space for clustering.

    Both passes share the same neighbour count and seed and preserve input order.
    """

    settings = settings or get_settings()
    data = np.asarray(features, dtype=np.float32)
    neighbors = effective_neighbors(data.shape[0], settings.umap_max_neighbors)

    _LOGGER.info("Computing 2D UMAP for %s vectors (n_neighbors=%s)", data.shape[0], neighbors)
    coords_2d = compute_umap(
        data,
        n_components=2,
        n_neighbors=neighbors,
        min_dist=settings.umap_visual_min_dist,
        spread=settings.umap_visual_spread,
        random_state=settings.umap_seed,
    )

    _LOGGER.info(
        "Computing %sD UMAP for clustering (n_neighbors=%s)",
        settings.umap_clustering_components,
        neighbors,
    )
    coords_clustering = compute_umap(
        data,
        n_components=settings.umap_clustering_components,
        n_neighbors=neighbors,
        min_dist=settings.umap_clustering_min_dist,
        spread=settings.umap_clustering_spread,
        random_state=settings.umap_seed,
    )
    return DualProjection(coords_2d=coords_2d, coords_clustering=coords_clustering, n_neighbors=neighbors)


def _relabel_by_first_appearance(labels: np.ndarray) -> np.ndarray:
    mapping: dict[int, int] = {}
    relabelled = np.full(labels.shape, -1, dtype=int)
    for idx, label in enumerate(labels):
        label = int(label)
        if label < 0:
            continue
        if label not in mapping:
            mapping[label] = len(mapping)
        relabelled[idx] = mapping[label]
    return relabelled


def run_hdbscan(
    features: np.ndarray,
    *,
    min_cluster_size: int = 5,
    min_samples: int = 3,
) -> ClusterResult:
    data = np.asarray(features, dtype=np.float64)
    count = data.shape[0] if data.ndim else 0
    min_cluster_size = max(2, int(min_cluster_size))
    min_samples = max(1, int(min_samples))

    if count < min_cluster_size or count <= min_samples:
        _LOGGER.info(
            "Too few points (%s) for min_cluster_size=%s min_samples=%s; labelling all as noise",
            count,
            min_cluster_size,
            min_samples,
        )
        return ClusterResult(labels=np.full(count, -1, dtype=int), probabilities=np.zeros(count, dtype=float))

    clusterer = hdbscan.HDBSCAN(min_cluster_size=min_cluster_size, min_samples=min_samples, metric="euclidean")
    labels = clusterer.fit_predict(data)
    probabilities = getattr(clusterer, "probabilities_", None)
    if probabilities is None:
        probabilities = np.zeros(count, dtype=float)
    return ClusterResult(
        labels=_relabel_by_first_appearance(np.asarray(labels)),
        probabilities=np.asarray(probabilities, dtype=float),
    )
