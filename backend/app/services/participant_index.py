"""Keeps the participant namespace of the vector index in sync with the participant store.

Classes:
    ParticipantIndexService: Add, update, remove, and batch-index participants; report index stats.

Functions:
    participant_entry_key(participant_id): Index key under which a participant is stored.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from app.core.config import Settings, get_settings
from app.schemas import (
    BatchIndexError,
    BatchIndexResult,
    IndexParticipantResult,
    IndexStats,
    ParticipantEntryMetadata,
)
from app.services.participant_text import (
    count_participants,
    generate_participant_text,
    list_participant_ids,
)
from app.services.vector_index import VectorIndex
from app.utils.text import has_indexable_content

_LOGGER = logging.getLogger(__name__)

NO_DATA_REASON = "No data to index"


def participant_entry_key(participant_id: UUID | str) -> str:
    return f"participant-{participant_id}"


class ParticipantIndexService:
    def __init__(self, index: VectorIndex, settings: Optional[Settings] = None) -> None:
        self._index = index
        self._settings = settings or get_settings()

    @property
    def namespace(self) -> str:
        return self._settings.participants_namespace

    async def add_participant(self, session, participant_id: UUID) -> IndexParticipantResult:
        """Consolidate a participant and upsert it into the index.

        Re-adding a participant whose text and metadata are unchanged leaves the
        stored entry untouched and reports ``unchanged=True``.
        """

        consolidated = await generate_participant_text(session, participant_id)
        if not has_indexable_content(consolidated.text):
            return IndexParticipantResult(success=False, reason=NO_DATA_REASON)

        participant = consolidated.participant
        metadata = ParticipantEntryMetadata(
            participant_id=str(participant.id),
            name=participant.name or "Unnamed",
            role=participant.role,
            employer=participant.display_employer,
            sector=participant.sector,
            program_brand=participant.program_brand,
            updated_at=consolidated.last_updated,
        )
        added = await self._index.add(
            session,
            namespace=self.namespace,
            key=participant_entry_key(participant.id),
            text=consolidated.text,
            metadata=metadata.model_dump(),
        )
        return IndexParticipantResult(
            success=True,
            entry_id=added.entry_id,
            unchanged=added.unchanged,
            text_length=len(consolidated.text),
        )

    async def update_participant(self, session, participant_id: UUID) -> IndexParticipantResult:
        return await self.add_participant(session, participant_id)

    async def remove_participant(self, session, participant_id: UUID) -> bool:
        removed = await self._index.remove(
            session,
            namespace=self.namespace,
            key=participant_entry_key(participant_id),
        )
        if not removed:
            _LOGGER.info("No index entry to remove for participant %s", participant_id)
        return removed

    async def batch_add_participants(self, session, limit: Optional[int] = None) -> BatchIndexResult:
        participant_ids = await list_participant_ids(session, limit)
        processed = skipped = failed = 0
        errors: list[BatchIndexError] = []

        for participant_id in participant_ids:
            try:
                result = await self.add_participant(session, participant_id)
            except Exception as exc:  # noqa: BLE001 - one participant never aborts the batch
                await session.rollback()
                failed += 1
                errors.append(BatchIndexError(participant_id=participant_id, error=str(exc)))
                _LOGGER.warning("Failed to index participant %s: %s", participant_id, exc)
                continue
            if result.success:
                processed += 1
            else:
                skipped += 1

        _LOGGER.info(
            "Batch indexed namespace %s: %s processed, %s skipped, %s failed of %s",
            self.namespace,
            processed,
            skipped,
            failed,
            len(participant_ids),
        )
        return BatchIndexResult(
            total=len(participant_ids),
            processed=processed,
            skipped=skipped,
            failed=failed,
            errors=errors,
        )

    async def get_participant_count(self, session) -> int:
        return await count_participants(session)

    async def get_index_stats(self, session) -> IndexStats:
        return IndexStats(
            total_participants=await count_participants(session),
            indexed_entries=await self._index.count(session, namespace=self.namespace),
            namespace=self.namespace,
            embedding_model=self._settings.openai_embedding_model,
            embedding_dimensions=self._settings.embedding_dimensions,
            status="active",
        )
