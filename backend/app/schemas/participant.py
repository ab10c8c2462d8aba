"""Pydantic schemas for participant indexing and similarity search.

Classes:
    ParticipantMetadata: Display snapshot (name, role, employer, sector, program) shared with clustering payloads.
    SimilaritySearchRequest, SimilarParticipant: Semantic search request and ranked result item.
    ParticipantTextResponse: Consolidated text view of a participant.
    IndexParticipantResult, BatchIndexRequest, BatchIndexResult, IndexStats: Index maintenance payloads.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ParticipantMetadata(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    employer: Optional[str] = None
    sector: Optional[str] = None
    program_brand: Optional[str] = None


class SimilaritySearchRequest(BaseModel):
    participant_id: Optional[UUID] = None
    query: Optional[str] = Field(default=None, max_length=4000)
    limit: Optional[int] = Field(default=None, ge=1)


class SimilarParticipant(BaseModel):
    participant_id: UUID
    score: float
    participant: ParticipantMetadata
    text_preview: str
    updated_at: int
    highlights: list[str] = Field(default_factory=list)


class ParticipantTextResponse(BaseModel):
    participant_id: UUID
    text: str
    last_updated: int


class IndexParticipantResult(BaseModel):
    success: bool
    reason: Optional[str] = None
    entry_id: Optional[UUID] = None
    unchanged: bool = False
    text_length: Optional[int] = None


class BatchIndexRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)


class BatchIndexError(BaseModel):
    participant_id: UUID
    error: str


class BatchIndexResult(BaseModel):
    total: int
    processed: int
    skipped: int
    failed: int
    errors: list[BatchIndexError] = Field(default_factory=list)


class IndexStats(BaseModel):
    total_participants: int
    indexed_entries: int
    namespace: str
    embedding_model: str
    embedding_dimensions: int
    status: str
