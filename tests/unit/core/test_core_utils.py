"""Tests for JSON parsing, settings and database helpers."""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from helm_campaign.core.config import AISettings, DatabaseSettings, EnrichmentSettings
from helm_campaign.core.exceptions import DatabaseError
from helm_campaign.core.database import create_engine_from_settings, init_database
from helm_campaign.utils.json_parser import parse_json_safely


class TestParseJsonSafely:

    def test_plain_json(self):
        assert parse_json_safely('[{"noteId": "n1"}]') == [{"noteId": "n1"}]

    def test_fenced_json_with_prose(self):
        text = 'Here you go:\n```json\n{"relationships": []}\n```\nHope that helps.'
        assert parse_json_safely(text) == {"relationships": []}

    def test_leading_prose_and_trailing_data(self):
        assert parse_json_safely('Result: [1, 2, 3] and some more text') == [1, 2, 3]

    def test_unparseable(self):
        assert parse_json_safely("no json here") is None
        assert parse_json_safely("") is None


class TestSettings:

    def test_connection_url_normalization(self):
        assert DatabaseSettings(DATABASE_URL="postgres://u:p@db/helm").connection_url == (
            "postgresql+asyncpg://u:p@db/helm"
        )
        assert DatabaseSettings(DATABASE_URL="sqlite+aiosqlite:///helm.db").connection_url == (
            "sqlite+aiosqlite:///helm.db"
        )

    def test_ai_settings_select_vendor(self):
        ai = AISettings(
            AI_PROVIDER="openrouter",
            OPENROUTER_API_KEY="or-key",
            OPENROUTER_MODEL="vendor/model",
            ANTHROPIC_API_KEY="an-key",
        )
        assert ai.api_key == "or-key"
        assert ai.model == "vendor/model"
        assert ai.api_url.startswith("https://openrouter.ai")

    def test_enrichment_timeout_default(self, monkeypatch):
        monkeypatch.delenv("ENRICHMENT_PROVIDER_TIMEOUT_SECONDS", raising=False)
        assert EnrichmentSettings().provider_timeout_seconds == 300.0


class TestDatabase:

    def test_sqlite_engine_has_no_pool_options(self):
        engine = create_engine_from_settings(DatabaseSettings(DATABASE_URL="sqlite+aiosqlite://"))
        assert engine.dialect.name == "sqlite"

    @pytest.mark.asyncio
    async def test_init_database_creates_tables(self):
        engine = create_async_engine("sqlite+aiosqlite://")
        client = await init_database(engine)
        try:
            assert client.is_connected is True
            health = await client.health_check()
            assert health["status"] == "healthy"
            assert health["dialect"] == "sqlite"
        finally:
            await client.disconnect()
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_unreachable_database_raises_database_error(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'helm.db'}")

        with pytest.raises(DatabaseError) as exc_info:
            await init_database(engine)

        assert exc_info.value.original_error is not None
        await engine.dispose()
