from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.models import Participant, ParticipantProfile
from app.services.errors import ParticipantNotFoundError
from app.services.participant_text import (
    build_participant_text,
    count_participants,
    generate_participant_text,
    find_participant_by_name,
    list_participant_ids,
    participant_metadata,
    to_millis,
)


def test_build_participant_text_orders_labelled_lines():
    participant = Participant(
        name="Ana Souza",
        role="Diretora",
        employer="Acme",
        program_employer="Acme Brasil",
        sector="Tecnologia",
        career_years=12,
        state="SP",
        program_brand="Singuê",
        council_member=True,
        black_sister_in_law=True,
        tags=["lideranca", "", "dados"],
    )
    profile = ParticipantProfile(
        participant_id=participant.id,
        achievements="Liderou a transformação digital",
        motivation="  ",
    )

    text = build_participant_text(participant, profile)

    assert text.splitlines() == [
        f"[ID:{participant.id}]",
        "Nome: Ana Souza",
        "Cargo: Diretora",
        "Empresa: Acme Brasil",
        "Setor: Tecnologia",
        "Anos de Carreira: 12",
        "Estado: SP",
        "Programa: Singuê",
        "Realizações: Liderou a transformação digital",
        "Membro de Conselho",
        "Black Sister in Law",
        "Tags: lideranca, dados",
    ]


def test_build_participant_text_is_deterministic():
    participant = Participant(name="Bruno", role="Analista", sector="Financeiro", tags=["a", "b"])
    assert build_participant_text(participant, None) == build_participant_text(participant, None)


def test_empty_participant_yields_only_hidden_id_line():
    participant = Participant(career_years=0, name="   ")
    assert build_participant_text(participant, None) == f"[ID:{participant.id}]"


def test_participant_metadata_prefers_program_employer():
    participant = Participant(name="Carla", employer="Old Co", program_employer=None, sector="Saúde")
    metadata = participant_metadata(participant)
    assert metadata.employer == "Old Co"
    assert metadata.sector == "Saúde"
    participant.program_employer = "New Co"
    assert participant_metadata(participant).employer == "New Co"


def test_to_millis_uses_utc_epoch():
    assert to_millis(datetime(1970, 1, 1, 0, 0, 1, 500000)) == 1500
    assert to_millis(datetime(1970, 1, 1, 0, 0, 1, 500000, tzinfo=timezone.utc)) == 1500
    assert to_millis(datetime(1970, 1, 1, 3, 0, 1, tzinfo=timezone(timedelta(hours=3)))) == 1000
    assert to_millis(None) == 0


@pytest.mark.asyncio
async def test_default_timestamps_are_timezone_aware(session):
    participant = Participant(name="Eva")
    assert participant.created_at.tzinfo is not None

    session.add(participant)
    await session.commit()
    profile = ParticipantProfile(participant_id=participant.id, motivation="Impacto")
    session.add(profile)
    await session.commit()

    consolidated = await generate_participant_text(session, participant.id)
    assert consolidated.last_updated >= to_millis(participant.created_at)


@pytest.mark.asyncio
async def test_generate_participant_text_uses_latest_timestamp(session, make_participant):
    participant = await make_participant(
        name="Daniela",
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        profile={"future_vision": "Abrir uma empresa", "created_at": datetime(2025, 3, 1, tzinfo=timezone.utc)},
    )

    consolidated = await generate_participant_text(session, participant.id)

    assert consolidated.participant.id == participant.id
    assert "Visão de Futuro: Abrir uma empresa" in consolidated.text
    assert consolidated.last_updated == to_millis(datetime(2025, 3, 1, tzinfo=timezone.utc))


@pytest.mark.asyncio
async def test_generate_participant_text_raises_for_unknown_participant(session):
    missing = uuid4()
    with pytest.raises(ParticipantNotFoundError) as exc_info:
        await generate_participant_text(session, missing)
    assert "not found" in str(exc_info.value)
    assert exc_info.value.participant_id == missing


@pytest.mark.asyncio
async def test_list_participant_ids_is_newest_first(session, make_participant):
    first = await make_participant(name="Primeiro")
    second = await make_participant(name="Segundo")
    third = await make_participant(name="Terceiro")

    assert await list_participant_ids(session) == [third.id, second.id, first.id]
    assert await list_participant_ids(session, limit=2) == [third.id, second.id]
    assert await count_participants(session) == 3


@pytest.mark.asyncio
async def test_find_participant_by_name_uses_role_only_to_disambiguate(session, make_participant):
    unique = await make_participant(name="Fernanda", role="Diretora")
    first_joao = await make_participant(name="João", role="Analista")
    second_joao = await make_participant(name="João", role="Gerente")

    assert (await find_participant_by_name(session, "Fernanda", role="Outro")).id == unique.id
    assert (await find_participant_by_name(session, "João", role="Gerente")).id == second_joao.id
    assert (await find_participant_by_name(session, "João", role="Estagiário")).id == first_joao.id
    assert (await find_participant_by_name(session, "João")).id == first_joao.id
    assert await find_participant_by_name(session, "Ninguém") is None
