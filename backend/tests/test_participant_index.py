import pytest
from sqlalchemy import select

from app.models import RagEntry
from app.services.participant_index import ParticipantIndexService, participant_entry_key
from app.services.vector_index import SqlVectorIndex


@pytest.mark.asyncio
async def test_add_participant_indexes_under_participant_key(session, make_participant, vector_index):
    participant = await make_participant(name="Ana", role="Diretora", employer="Acme", sector="Tecnologia")
    service = ParticipantIndexService(vector_index)

    result = await service.add_participant(session, participant.id)

    assert result.success is True
    assert result.unchanged is False
    entry = (await session.exec(select(RagEntry))).scalars().one()
    assert entry.key == participant_entry_key(participant.id)
    assert entry.namespace == "participants"
    assert entry.metadata_json["participant_id"] == str(participant.id)
    assert entry.metadata_json["employer"] == "Acme"
    assert entry.text.startswith(f"[ID:{participant.id}]")


@pytest.mark.asyncio
async def test_reindexing_unchanged_participant_is_a_noop(session, make_participant, vector_index, fake_openai):
    participant = await make_participant(name="Ana", sector="Tecnologia")
    service = ParticipantIndexService(vector_index)

    first = await service.add_participant(session, participant.id)
    embed_calls = len(fake_openai.embed_calls)
    second = await service.update_participant(session, participant.id)

    assert second.unchanged is True
    assert second.entry_id == first.entry_id
    assert len(fake_openai.embed_calls) == embed_calls
    assert await vector_index.count(session, namespace="participants") == 1


@pytest.mark.asyncio
async def test_participant_without_data_is_not_indexed(session, make_participant, vector_index):
    participant = await make_participant()
    service = ParticipantIndexService(vector_index)

    result = await service.add_participant(session, participant.id)

    assert result.success is False
    assert result.reason == "No data to index"
    assert await vector_index.count(session, namespace="participants") == 0


@pytest.mark.asyncio
async def test_remove_participant_drops_entry(session, make_participant, vector_index):
    participant = await make_participant(name="Ana")
    service = ParticipantIndexService(vector_index)
    await service.add_participant(session, participant.id)

    assert await service.remove_participant(session, participant.id) is True
    assert await service.remove_participant(session, participant.id) is False


@pytest.mark.asyncio
async def test_batch_add_counts_processed_skipped_and_failed(session, make_participant, fake_openai_factory):
    embedder = fake_openai_factory(fail_on="Quebrado")
    service = ParticipantIndexService(SqlVectorIndex(embedder, chunk_max_words=40, embedding_model="fake-embedding"))
    await make_participant(name="Ana", sector="Tecnologia")
    await make_participant()
    broken_id = (await make_participant(name="Quebrado")).id
    await make_participant(name="Carla", sector="Saúde")

    result = await service.batch_add_participants(session)

    assert result.total == 4
    assert result.processed == 2
    assert result.skipped == 1
    assert result.failed == 1
    assert [error.participant_id for error in result.errors] == [broken_id]
    assert "Quebrado" in result.errors[0].error


@pytest.mark.asyncio
async def test_batch_add_respects_limit_newest_first(session, make_participant, vector_index):
    await make_participant(name="Antigo")
    await make_participant(name="Novo")
    service = ParticipantIndexService(vector_index)

    result = await service.batch_add_participants(session, limit=1)

    assert result.total == 1
    entry = (await session.exec(select(RagEntry))).scalars().one()
    assert "Nome: Novo" in entry.text


@pytest.mark.asyncio
async def test_index_stats_report_counts_and_model(session, make_participant, vector_index):
    participant = await make_participant(name="Ana")
    await make_participant(name="Bruno")
    service = ParticipantIndexService(vector_index)
    await service.add_participant(session, participant.id)

    stats = await service.get_index_stats(session)

    assert stats.total_participants == 2
    assert stats.indexed_entries == 1
    assert stats.namespace == "participants"
    assert stats.embedding_model == "text-embedding-3-small"
    assert stats.embedding_dimensions == 1536
    assert stats.status == "active"
    assert await service.get_participant_count(session) == 2
