from __future__ import annotations

import zlib
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import numpy as np
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import app.models  # noqa: F401
from app.api.deps import get_openai_service, get_vector_index
from app.db.session import get_session
from app.main import app
from app.models import Participant, ParticipantProfile
from app.services.openai_client import EmbeddingBatch
from app.services.projection import DualProjection
from app.services.vector_index import SqlVectorIndex

FAKE_DIM = 32


def fake_vector(text: str, dim: int = FAKE_DIM) -> list[float]:
    """Deterministic bag-of-words vector so similar texts score higher."""

    vector = [0.0] * dim
    for word in text.lower().split():
        vector[zlib.crc32(word.encode("utf-8")) % dim] += 1.0
    return vector


class FakeOpenAIService:
    def __init__(self, *, fail_on: Optional[str] = None, insight_reply: Optional[str] = None) -> None:
        self.fail_on = fail_on
        self.insight_reply = insight_reply
        self.embed_calls: list[list[str]] = []
        self.prompts: list[str] = []
        self.temperatures: list[Optional[float]] = []

    @property
    def is_configured(self) -> bool:
        return False

    def _check(self, text: str) -> None:
        if self.fail_on and self.fail_on in text:
            raise RuntimeError(f"embedding failed for {self.fail_on}")

    async def embed_texts(self, texts: Iterable[str], **_: object) -> EmbeddingBatch:
        docs = list(texts)
        self.embed_calls.append(docs)
        for doc in docs:
            self._check(doc)
        return EmbeddingBatch(vectors=[fake_vector(doc) for doc in docs], model="fake-embedding", dim=FAKE_DIM)

    async def embed_text(self, text: str, **_: object) -> list[float]:
        self.embed_calls.append([text])
        self._check(text)
        return fake_vector(text)

    async def generate_text(self, prompt: str, *, model=None, temperature=None) -> str:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        if self.insight_reply is None:
            raise RuntimeError("LLM unavailable")
        return self.insight_reply


def fake_reducer(features: np.ndarray, **_: object) -> DualProjection:
    data = np.asarray(features, dtype=np.float32)
    return DualProjection(
        coords_2d=data[:, :2].copy(),
        coords_clustering=data[:, :8].copy(),
        n_neighbors=2,
    )


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture()
async def session() -> AsyncGenerator[AsyncSession, None]:
    engine: AsyncEngine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    async_session = AsyncSession(engine, expire_on_commit=False)
    try:
        yield async_session
    finally:
        await async_session.close()
        await engine.dispose()


@pytest.fixture()
def fake_openai() -> FakeOpenAIService:
    return FakeOpenAIService()


@pytest.fixture()
def fake_openai_factory():
    return FakeOpenAIService


@pytest.fixture()
def vector_index(fake_openai) -> SqlVectorIndex:
    return SqlVectorIndex(fake_openai, chunk_max_words=40, embedding_model="fake-embedding")


@pytest.fixture()
def reducer():
    return fake_reducer


@pytest.fixture()
def make_participant(session):
    base_time = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    created: list[Participant] = []

    async def _create(*, profile: Optional[dict] = None, **fields) -> Participant:
        fields.setdefault("created_at", base_time + timedelta(minutes=len(created)))
        participant = Participant(**fields)
        session.add(participant)
        await session.commit()
        if profile is not None:
            profile.setdefault("created_at", fields["created_at"])
            session.add(ParticipantProfile(participant_id=participant.id, **profile))
            await session.commit()
        created.append(participant)
        return participant

    return _create


@pytest_asyncio.fixture()
async def client(session: AsyncSession, fake_openai, vector_index) -> AsyncGenerator[AsyncClient, None]:
    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_openai_service] = lambda: fake_openai
    app.dependency_overrides[get_vector_index] = lambda: vector_index
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()
