"""Persisted state of the UMAP cache rebuild.

Classes:
    CacheBuildState: Lifecycle states empty -> clearing -> populating -> ready.
    CacheBuildStatus: Single-row record tracking the state, version, and row counts of the last build.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import event
from sqlmodel import Field, SQLModel

from app.utils.clock import utc_now

UMAP_CACHE_STATUS_ID = "umap_embeddings_cache"


class CacheBuildState(str):
    EMPTY = "empty"
    CLEARING = "clearing"
    POPULATING = "populating"
    READY = "ready"

    INTERRUPTED = frozenset({CLEARING, POPULATING})


class CacheBuildStatus(SQLModel, table=True):
    __tablename__ = "cache_build_status"

    id: str = Field(default=UMAP_CACHE_STATUS_ID, primary_key=True)
    state: str = Field(default=CacheBuildState.EMPTY)
    version: Optional[str] = None
    expected_count: int = Field(default=0)
    written_count: int = Field(default=0)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_interrupted(self) -> bool:
        return self.state in CacheBuildState.INTERRUPTED


@event.listens_for(CacheBuildStatus, "before_update", propagate=True)
def set_updated_at(_, __, target):
    target.updated_at = utc_now()
