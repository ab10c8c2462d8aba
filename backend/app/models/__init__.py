"""Convenience exports for ORM models.

Surface frequently used SQLModel classes so calling code can import them from a single module.
"""

from .participant import Participant, ParticipantProfile
from .rag import RagChunk, RagEntry
from .embedding_cache import UMAPEmbeddingCache
from .cache_status import CacheBuildState, CacheBuildStatus, UMAP_CACHE_STATUS_ID
from .cluster_result import ClusterResultCache

__all__ = [
    "Participant",
    "ParticipantProfile",
    "RagEntry",
    "RagChunk",
    "UMAPEmbeddingCache",
    "CacheBuildState",
    "CacheBuildStatus",
    "UMAP_CACHE_STATUS_ID",
    "ClusterResultCache",
]
