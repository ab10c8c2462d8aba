"""Cluster result snapshot model.

Classes:
    ClusterResultCache: The single most recent clustering snapshot computed from the UMAP cache.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.utils.clock import utc_now


class ClusterResultCache(SQLModel, table=True):
    __tablename__ = "cluster_results_cache"

    id: Optional[int] = Field(default=None, primary_key=True)
    points_json: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    cluster_stats_json: list[dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    total_participants: int
    min_cluster_size: int
    min_samples: int
    umap_cache_version: str
    created_at: datetime = Field(default_factory=utc_now, index=True)
