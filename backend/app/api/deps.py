"""FastAPI dependencies that hand request handlers their service objects.

Long-lived clients (the OpenAI service and the vector index) are built once in
the application lifespan and kept on ``app.state``; per-request services are
thin wrappers around them.
"""

from __future__ import annotations

from fastapi import Depends, Request

from app.services import (
    ClusterInsightGenerator,
    ClusteringService,
    OpenAIService,
    ParticipantIndexService,
    SimilaritySearchService,
    UMAPCacheBuilder,
)
from app.services.vector_index import VectorIndex


def get_openai_service(request: Request) -> OpenAIService:
    return request.app.state.openai_service


def get_vector_index(request: Request) -> VectorIndex:
    return request.app.state.vector_index


def get_similarity_service(index: VectorIndex = Depends(get_vector_index)) -> SimilaritySearchService:
    return SimilaritySearchService(index)


def get_participant_index_service(index: VectorIndex = Depends(get_vector_index)) -> ParticipantIndexService:
    return ParticipantIndexService(index)


def get_cache_builder(openai_service: OpenAIService = Depends(get_openai_service)) -> UMAPCacheBuilder:
    return UMAPCacheBuilder(openai_service)


def get_clustering_service() -> ClusteringService:
    return ClusteringService()


def get_insight_generator(openai_service: OpenAIService = Depends(get_openai_service)) -> ClusterInsightGenerator:
    return ClusterInsightGenerator(openai_service)
