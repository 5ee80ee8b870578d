"""Pytest configuration and shared fixtures."""

from datetime import timedelta
from typing import List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from helm_campaign.core.database import DatabaseClient, create_session_maker
from helm_campaign.models import (
    EnrichmentRun,
    ImportRun,
    Note,
    NoteType,
    NUCLINO_SOURCE_SYSTEM,
)
from helm_campaign.models.ai_models import NoteForClassification
from helm_campaign.repositories.memory_storage import InMemoryStorage
from helm_campaign.repositories.sql_storage import SQLAlchemyStorage
from helm_campaign.services.ai.ai_cache import AICache
from helm_campaign.services.ai.mock_provider import MockAIProvider

TEAM_ID = "team-1"
USER_ID = "user-1"


@pytest.fixture
def storage() -> InMemoryStorage:
    """Create an empty in-memory storage.

    Returns:
        InMemoryStorage: Fresh storage instance
    """
    return InMemoryStorage()


@pytest.fixture
def mock_provider() -> MockAIProvider:
    return MockAIProvider()


@pytest.fixture
def ai_cache(storage: InMemoryStorage) -> AICache:
    """AI cache over the in-memory storage with fixed TTL settings."""
    return AICache(
        storage,
        ttl=timedelta(days=30),
        model_id="test-model",
        expiring_soon=timedelta(days=7),
    )


@pytest_asyncio.fixture
async def sql_storage():
    """SQLAlchemy storage on a shared in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    client = DatabaseClient(engine)
    await client.create_tables()
    yield SQLAlchemyStorage(create_session_maker(engine))
    await client.disconnect()


@pytest.fixture
def sample_classification_notes() -> List[NoteForClassification]:
    return [
        NoteForClassification(id="n1", title="Lord Vexmoor", content="A scheming noble of the eastern court."),
        NoteForClassification(id="n2", title="The City of Ironforge", content="A dwarven city carved into the mountain."),
        NoteForClassification(id="n3", title="Session 12", content="The party met Lord Vexmoor at the inn."),
    ]


@pytest.fixture
def make_note():
    """Factory for team notes with sensible defaults."""
    def _make(note_id: str, title: str, content: str = "", note_type: NoteType = NoteType.NOTE, **kwargs) -> Note:
        kwargs.setdefault("team_id", TEAM_ID)
        return Note(id=note_id, title=title, content=content, note_type=note_type, **kwargs)
    return _make


@pytest.fixture
def seed_import():
    """Create an import run in ``storage`` and attach ``notes`` to it."""
    async def _seed(storage, notes: List[Note], team_id: str = TEAM_ID) -> ImportRun:
        run = await storage.create_import_run(ImportRun(team_id=team_id, source_system=NUCLINO_SOURCE_SYSTEM))
        for note in notes:
            await storage.create_note(note.model_copy(update={"import_run_id": run.id, "team_id": team_id}))
        return run
    return _seed


@pytest.fixture
def seed_enrichment_run():
    async def _seed(storage, import_run: ImportRun) -> EnrichmentRun:
        return await storage.create_enrichment_run(EnrichmentRun(
            import_run_id=import_run.id,
            team_id=import_run.team_id,
            created_by_user_id=USER_ID,
        ))
    return _seed
