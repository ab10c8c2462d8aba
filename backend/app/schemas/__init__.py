"""Convenience exports for API schemas.

Re-exports the pydantic models used across the backend so consumers can import from one module.
"""

from .participant import (
    BatchIndexError,
    BatchIndexRequest,
    BatchIndexResult,
    IndexParticipantResult,
    IndexStats,
    ParticipantMetadata,
    ParticipantTextResponse,
    SimilarParticipant,
    SimilaritySearchRequest,
)
from .clustering import (
    CachedClusterResults,
    ClusterInsight,
    ClusteringParameters,
    ClusteringRequest,
    ClusteringResult,
    ClusterPoint,
    ClusterStat,
    InsightRequest,
    UMAPCacheRequest,
    UMAPCacheResult,
    UMAPCacheStats,
)
from .rag import (
    DocumentEntryMetadata,
    ParticipantEntryMetadata,
    parse_entry_metadata,
    validate_entry_metadata,
)

__all__ = [
    "ParticipantMetadata",
    "SimilaritySearchRequest",
    "SimilarParticipant",
    "ParticipantTextResponse",
    "IndexParticipantResult",
    "BatchIndexRequest",
    "BatchIndexError",
    "BatchIndexResult",
    "IndexStats",
    "UMAPCacheRequest",
    "UMAPCacheResult",
    "UMAPCacheStats",
    "ClusteringRequest",
    "ClusterPoint",
    "ClusterStat",
    "ClusteringParameters",
    "ClusteringResult",
    "CachedClusterResults",
    "InsightRequest",
    "ClusterInsight",
    "ParticipantEntryMetadata",
    "DocumentEntryMetadata",
    "validate_entry_metadata",
    "parse_entry_metadata",
]
