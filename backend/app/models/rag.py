"""Vector index persistence models.

Classes:
    RagEntry: One indexed unit keyed per namespace, carrying full text and validated metadata.
    RagChunk: Embedded slice of an entry's text, ordered by position.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Index, LargeBinary, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.utils.clock import utc_now


class RagEntry(SQLModel, table=True):
    __tablename__ = "rag_entries"
    __table_args__ = (
        UniqueConstraint("namespace", "key", name="uq_rag_entries_namespace_key"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    namespace: str = Field(index=True)
    key: str = Field(index=True)
    text: str = Field(sa_column=Column(Text))
    content_hash: str
    metadata_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    chunk_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RagChunk(SQLModel, table=True):
    __tablename__ = "rag_chunks"
    __table_args__ = (
        Index("ix_rag_chunks_entry_position", "entry_id", "position"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    entry_id: UUID = Field(foreign_key="rag_entries.id", index=True)
    namespace: str = Field(index=True)
    position: int
    text: str = Field(sa_column=Column(Text))
    dim: int
    vector: bytes = Field(sa_column=Column(LargeBinary))
