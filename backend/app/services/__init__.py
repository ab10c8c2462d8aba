"""Service layer exports.

Expose the participant search, indexing, caching, clustering, and insight services for easy importing.
"""

from .openai_client import OpenAIService
from .vector_index import SqlVectorIndex
from .participant_index import ParticipantIndexService
from .similarity import SimilaritySearchService
from .umap_cache import UMAPCacheBuilder
from .clustering import ClusteringService
from .insights import ClusterInsightGenerator

__all__ = [
    "OpenAIService",
    "SqlVectorIndex",
    "ParticipantIndexService",
    "SimilaritySearchService",
    "UMAPCacheBuilder",
    "ClusteringService",
    "ClusterInsightGenerator",
]
