"""Participant text consolidation.

Builds the single canonical text blob that represents a participant in the
vector index, in similarity queries, and in the embedding cache. The first
line is a hidden ``[ID:<participantId>]`` token so search hits can be mapped
back to a participant without exposing the id in snippets.

Classes:
    ParticipantText: Consolidated text plus the source participant and its freshness timestamp.

Functions:
    build_participant_text(participant, profile): Pure, deterministic text builder.
    generate_participant_text(session, participant_id): Load the records and consolidate them.
    participant_metadata(participant): Display snapshot shared by index metadata and the cache.
    list_participant_ids(session, limit): Newest-first participant ids.
    find_participant_by_name(session, name, role): Exact-name lookup with an optional role tie-break.
    count_participants(session): Total number of participants.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select

from app.models import Participant, ParticipantProfile
from app.schemas import ParticipantMetadata
from app.services.errors import ParticipantNotFoundError
from app.utils.clock import to_millis
from app.utils.text import hidden_id_token

_PARTICIPANT_FIELDS: tuple[tuple[str, str], ...] = (
    ("Nome", "name"),
    ("Cargo", "role"),
    ("Empresa", "display_employer"),
    ("Setor", "sector"),
    ("Tipo de Organização", "organization_type"),
    ("Senioridade", "seniority"),
    ("Anos de Carreira", "career_years"),
    ("Estado", "state"),
    ("País", "country"),
    ("Gênero", "gender"),
    ("Raça", "race"),
    ("Programa", "program_brand"),
    ("Programas Singuê anteriores", "previous_singue_programs"),
    ("Programas Pactuá anteriores", "previous_pactua_programs"),
)

_PROFILE_FIELDS: tuple[tuple[str, str], ...] = (
    ("Realizações", "achievements"),
    ("Visão de Futuro", "future_vision"),
    ("Desafios Superados", "challenges_overcome"),
    ("Desafios Atuais", "current_challenges"),
    ("Motivação", "motivation"),
)

_FLAG_FIELDS: tuple[tuple[str, str], ...] = (
    ("Membro de Conselho", "council_member"),
    ("Atua no Mercado Financeiro", "financial_market"),
    ("Black Sister in Law", "black_sister_in_law"),
)


@dataclass(slots=True)
class ParticipantText:
    text: str
    participant: Participant
    last_updated: int


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def build_participant_text(participant: Participant, profile: Optional[ParticipantProfile]) -> str:
    lines = [hidden_id_token(participant.id)]

    for label, attr in _PARTICIPANT_FIELDS:
        value = getattr(participant, attr)
        if _present(value):
            lines.append(f"{label}: {value}")

    if profile is not None:
        for label, attr in _PROFILE_FIELDS:
            value = getattr(profile, attr)
            if _present(value):
                lines.append(f"{label}: {value}")

    for label, attr in _FLAG_FIELDS:
        if getattr(participant, attr):
            lines.append(label)

    tags = [tag for tag in (participant.tags or []) if _present(tag)]
    if tags:
        lines.append(f"Tags: {', '.join(tags)}")

    return "\n".join(lines)


def participant_metadata(participant: Participant) -> ParticipantMetadata:
    return ParticipantMetadata(
        name=participant.name,
        role=participant.role,
        employer=participant.display_employer,
        sector=participant.sector,
        program_brand=participant.program_brand,
    )


async def load_profile(session, participant_id: UUID) -> Optional[ParticipantProfile]:
    result = await session.exec(
        select(ParticipantProfile)
        .where(ParticipantProfile.participant_id == participant_id)
        .order_by(ParticipantProfile.created_at, ParticipantProfile.id)
        .limit(1)
    )
    return result.scalars().first()


async def generate_participant_text(session, participant_id: UUID) -> ParticipantText:
    participant = await session.get(Participant, participant_id)
    if participant is None:
        raise ParticipantNotFoundError(participant_id)

    profile = await load_profile(session, participant_id)
    last_updated = max(
        to_millis(participant.created_at),
        to_millis(profile.created_at) if profile is not None else 0,
        0,
    )
    return ParticipantText(
        text=build_participant_text(participant, profile),
        participant=participant,
        last_updated=last_updated,
    )


async def list_participant_ids(session, limit: Optional[int] = None) -> list[UUID]:
    stmt = select(Participant.id).order_by(Participant.created_at.desc(), Participant.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.exec(stmt)
    return list(result.scalars().all())


async def count_participants(session) -> int:
    result = await session.exec(select(func.count()).select_from(Participant))
    return int(result.scalar_one())


async def find_participant_by_name(session, name: str, role: Optional[str] = None) -> Optional[Participant]:
    """Exact-name lookup; ``role`` only disambiguates when several participants share the name."""

    result = await session.exec(
        select(Participant).where(Participant.name == name).order_by(Participant.created_at, Participant.id)
    )
    matches = list(result.scalars().all())
    if len(matches) > 1 and role:
        for participant in matches:
            if participant.role == role:
                return participant
    return matches[0] if matches else None
