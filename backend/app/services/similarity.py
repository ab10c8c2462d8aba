"""Semantic participant search over the vector index.

Classes:
    SimilaritySearchService: Ranks participants similar to a participant or a free-text query.

Functions:
    extract_highlights(entry_id, results): Cleaned, deduplicated snippets for one entry.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Sequence
from uuid import UUID

from app.core.config import Settings, get_settings
from app.schemas import (
    ParticipantEntryMetadata,
    ParticipantMetadata,
    SimilarParticipant,
    parse_entry_metadata,
)
from app.services.errors import InvalidSearchArgumentsError
from app.services.participant_text import generate_participant_text
from app.services.vector_index import SearchResult, VectorIndex
from app.utils.text import sanitize_snippet, truncate_snippet

_LOGGER = logging.getLogger(__name__)

MAX_HIGHLIGHTS_PER_ENTRY = 3
PREVIEW_FALLBACK_CHARS = 400


def extract_highlights(entry_id: str, results: Sequence[SearchResult]) -> list[str]:
    highlights: list[str] = []
    seen: set[str] = set()
    for result in results:
        if result.entry_id != entry_id:
            continue
        raw = " ".join(span.text or "" for span in result.content).strip()
        cleaned = sanitize_snippet(raw)
        if not cleaned:
            continue
        snippet = truncate_snippet(cleaned)
        if snippet in seen:
            continue
        seen.add(snippet)
        highlights.append(snippet)
        if len(highlights) >= MAX_HIGHLIGHTS_PER_ENTRY:
            break
    return highlights


class SimilaritySearchService:
    def __init__(self, index: VectorIndex, settings: Optional[Settings] = None) -> None:
        self._index = index
        self._settings = settings or get_settings()

    async def search_similar(
        self,
        session,
        *,
        participant_id: Optional[UUID] = None,
        query: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[SimilarParticipant]:
        """Return up to ``limit`` participants most similar to a participant or query.

        Exactly one of ``participant_id`` and ``query`` must be supplied. When
        searching by participant the participant itself is never returned.
        """

        effective_limit = limit or self._settings.search_default_limit
        return await self._search(session, participant_id, query, effective_limit)

    async def search_similar_public(
        self,
        session,
        *,
        participant_id: Optional[UUID] = None,
        query: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[SimilarParticipant]:
        effective_limit = limit or self._settings.search_default_limit
        effective_limit = max(1, min(effective_limit, self._settings.search_max_limit))
        return await self._search(session, participant_id, query, effective_limit)

    async def _resolve_query(
        self,
        session,
        participant_id: Optional[UUID],
        query: Optional[str],
    ) -> str:
        has_query = bool(query and query.strip())
        if participant_id is not None and has_query:
            raise InvalidSearchArgumentsError("Provide either participantId or query, not both")
        if participant_id is not None:
            consolidated = await generate_participant_text(session, participant_id)
            _LOGGER.info("Searching for participants similar to %s", participant_id)
            return consolidated.text
        if has_query:
            _LOGGER.info("Searching participants with query %r", query)
            return query
        raise InvalidSearchArgumentsError("Must provide either participantId or query")

    async def _search(
        self,
        session,
        participant_id: Optional[UUID],
        query: Optional[str],
        limit: int,
    ) -> list[SimilarParticipant]:
        search_text = await self._resolve_query(session, participant_id, query)
        context = self._settings.search_chunk_context
        namespace = self._settings.participants_namespace

        # One extra hit leaves room for the self-match dropped below.
        response = await self._index.search(
            session,
            namespace=namespace,
            query=search_text,
            limit=limit + 1,
            chunk_context=(context, context),
        )
        _LOGGER.debug(
            "Found %s matching chunks across %s entries in %s",
            len(response.results),
            len(response.entries),
            namespace,
        )

        score_by_entry: dict[str, float] = {}
        for result in response.results:
            if result.score > score_by_entry.get(result.entry_id, float("-inf")):
                score_by_entry[result.entry_id] = result.score

        ordered = sorted(
            response.entries,
            key=lambda entry: (-score_by_entry.get(entry.entry_id, 0.0), entry.entry_id),
        )

        excluded = str(participant_id) if participant_id is not None else None
        seen: set[str] = set()
        matches: list[SimilarParticipant] = []
        for entry in ordered:
            metadata = parse_entry_metadata(entry.metadata)
            if not isinstance(metadata, ParticipantEntryMetadata):
                _LOGGER.warning("Skipping entry %s in %s: missing participant id metadata", entry.entry_id, namespace)
                continue
            try:
                matched_id = UUID(metadata.participant_id)
            except ValueError:
                _LOGGER.warning(
                    "Skipping entry %s in %s: invalid participant id %r",
                    entry.entry_id,
                    namespace,
                    metadata.participant_id,
                )
                continue

            key = str(matched_id)
            if key in seen or key == excluded:
                continue
            seen.add(key)

            highlights = extract_highlights(entry.entry_id, response.results)
            preview = highlights[0] if highlights else entry.text[:PREVIEW_FALLBACK_CHARS]
            matches.append(
                SimilarParticipant(
                    participant_id=matched_id,
                    score=score_by_entry.get(entry.entry_id, 0.0),
                    participant=ParticipantMetadata(
                        name=metadata.name,
                        role=metadata.role,
                        employer=metadata.employer,
                        sector=metadata.sector,
                        program_brand=metadata.program_brand,
                    ),
                    text_preview=preview,
                    updated_at=metadata.updated_at or int(time.time() * 1000),
                    highlights=highlights,
                )
            )
            if len(matches) >= limit:
                break
        return matches
