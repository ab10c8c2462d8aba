"""UMAP embedding cache model.

One row per participant per generation run: the raw embedding, its 2D layout
coordinates, the 50D clustering projection, and a metadata snapshot.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, Column, LargeBinary
from sqlmodel import Field, SQLModel

from app.utils.clock import utc_now


class UMAPEmbeddingCache(SQLModel, table=True):
    __tablename__ = "umap_embeddings_cache"

    id: Optional[int] = Field(default=None, primary_key=True)
    participant_id: UUID = Field(index=True)
    x: float
    y: float
    embedding: bytes = Field(sa_column=Column(LargeBinary))
    embedding_dim: int
    clustering_embedding: Optional[bytes] = Field(default=None, sa_column=Column(LargeBinary))
    clustering_dim: int = Field(default=0)
    metadata_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    version: str = Field(index=True)
    created_at: datetime = Field(default_factory=utc_now)
