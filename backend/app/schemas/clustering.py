"""Pydantic schemas for the UMAP cache, clustering runs, and cluster insights."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .participant import ParticipantMetadata


class UMAPCacheRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)
    force_refresh: bool = False


class UMAPCacheResult(BaseModel):
    cached: int
    skipped: int
    version: str


class UMAPCacheStats(BaseModel):
    count: int
    latest_version: Optional[str] = None
    created_at: Optional[datetime] = None
    state: str


class ClusteringRequest(BaseModel):
    min_cluster_size: Optional[int] = Field(default=None, ge=2)
    min_samples: Optional[int] = Field(default=None, ge=1)


class ClusterPoint(BaseModel):
    participant_id: UUID
    x: float
    y: float
    cluster: int
    metadata: ParticipantMetadata = Field(default_factory=ParticipantMetadata)


class ClusterStat(BaseModel):
    cluster_id: int
    count: int
    label: str


class ClusteringParameters(BaseModel):
    min_cluster_size: int
    min_samples: int


class ClusteringResult(BaseModel):
    points: list[ClusterPoint]
    cluster_stats: list[ClusterStat]
    total_participants: int
    parameters: ClusteringParameters


class CachedClusterResults(ClusteringResult):
    umap_cache_version: str
    created_at: datetime


class InsightRequest(BaseModel):
    cluster_points: list[ClusterPoint]


class ClusterInsight(BaseModel):
    cluster_id: int
    name: str
    description: str
    commonalities: list[str] = Field(default_factory=list)
    count: int
