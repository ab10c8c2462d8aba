"""Participant search and index maintenance endpoints.

Endpoints:
    search_participants(payload, ...): Semantic search by participant or free-text query.
    participant_count(session): Number of participants in the store.
    index_stats(session, ...): Size and configuration of the participant index.
    batch_index(payload, ...): Index the newest participants sequentially.
    participant_text(participant_id, session): Consolidated text for one participant.
    index_participant(participant_id, ...): Add or refresh one participant's index entry.
    remove_participant(participant_id, ...): Drop one participant's index entry.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.api.deps import get_participant_index_service, get_similarity_service
from app.db.session import get_session
from app.schemas import (
    BatchIndexRequest,
    BatchIndexResult,
    IndexParticipantResult,
    IndexStats,
    ParticipantTextResponse,
    SimilarParticipant,
    SimilaritySearchRequest,
)
from app.services.errors import InvalidSearchArgumentsError, ParticipantNotFoundError
from app.services.participant_index import ParticipantIndexService
from app.services.participant_text import generate_participant_text
from app.services.similarity import SimilaritySearchService

router = APIRouter(prefix="/participants", tags=["participants"])

_LOGGER = logging.getLogger(__name__)


def _http_error(exc: ValueError) -> HTTPException:
    message = str(exc)
    if "not found" in message.lower():
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


@router.post("/search", response_model=list[SimilarParticipant])
async def search_participants(
    payload: SimilaritySearchRequest,
    session: AsyncSession = Depends(get_session),
    service: SimilaritySearchService = Depends(get_similarity_service),
) -> list[SimilarParticipant]:
    try:
        return await service.search_similar_public(
            session,
            participant_id=payload.participant_id,
            query=payload.query,
            limit=payload.limit,
        )
    except (ParticipantNotFoundError, InvalidSearchArgumentsError) as exc:
        raise _http_error(exc) from exc
    except Exception:  # noqa: BLE001 - index outages degrade to an empty result set
        _LOGGER.exception("Participant search failed (participant=%s)", payload.participant_id)
        return []


@router.get("/count")
async def participant_count(
    session: AsyncSession = Depends(get_session),
    service: ParticipantIndexService = Depends(get_participant_index_service),
) -> dict[str, int]:
    return {"count": await service.get_participant_count(session)}


@router.get("/index/stats", response_model=IndexStats)
async def index_stats(
    session: AsyncSession = Depends(get_session),
    service: ParticipantIndexService = Depends(get_participant_index_service),
) -> IndexStats:
    return await service.get_index_stats(session)


@router.post("/index/batch", response_model=BatchIndexResult)
async def batch_index(
    payload: Optional[BatchIndexRequest] = Body(default=None),
    session: AsyncSession = Depends(get_session),
    service: ParticipantIndexService = Depends(get_participant_index_service),
) -> BatchIndexResult:
    payload = payload or BatchIndexRequest()
    return await service.batch_add_participants(session, limit=payload.limit)


@router.get("/{participant_id}/text", response_model=ParticipantTextResponse)
async def participant_text(
    participant_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> ParticipantTextResponse:
    try:
        consolidated = await generate_participant_text(session, participant_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return ParticipantTextResponse(
        participant_id=participant_id,
        text=consolidated.text,
        last_updated=consolidated.last_updated,
    )


@router.post("/{participant_id}/index", response_model=IndexParticipantResult)
async def index_participant(
    participant_id: UUID,
    session: AsyncSession = Depends(get_session),
    service: ParticipantIndexService = Depends(get_participant_index_service),
) -> IndexParticipantResult:
    try:
        return await service.update_participant(session, participant_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@router.delete("/{participant_id}/index")
async def remove_participant(
    participant_id: UUID,
    session: AsyncSession = Depends(get_session),
    service: ParticipantIndexService = Depends(get_participant_index_service),
) -> dict[str, bool]:
    return {"removed": await service.remove_participant(session, participant_id)}
