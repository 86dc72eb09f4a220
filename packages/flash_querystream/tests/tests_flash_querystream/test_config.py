import pytest
from flash_querystream import QueryBuilder, QueryStreamSettings, querystream_settings
from flash_querystream import db as db_module


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("QUERYSTREAM_DATABASE_URL", raising=False)
        settings = QueryStreamSettings(_env_file=None)
        assert settings.DATABASE_URL is None
        assert settings.ECHO is False
        assert settings.LOG_COMPILED_SQL is False
        assert settings.ALLOW_UNFILTERED_BULK is False

    def test_environment_overrides(self, monkeypatch):
        """Settings are read from QUERYSTREAM_-prefixed variables."""
        monkeypatch.setenv("QUERYSTREAM_ECHO", "true")
        monkeypatch.setenv("QUERYSTREAM_ALLOW_UNFILTERED_BULK", "1")
        settings = QueryStreamSettings(_env_file=None)
        assert settings.ECHO is True
        assert settings.ALLOW_UNFILTERED_BULK is True

    def test_postgres_url_uses_async_driver(self):
        settings = QueryStreamSettings(
            _env_file=None, DATABASE_URL="postgresql://user@localhost/shop"
        )
        assert settings.DATABASE_URL == "postgresql+asyncpg://user@localhost/shop"

    def test_other_urls_untouched(self):
        url = "sqlite+aiosqlite:///shop.sqlite3"
        assert QueryStreamSettings(_env_file=None, DATABASE_URL=url).DATABASE_URL == url


class TestDatabase:
    def test_init_requires_url(self, monkeypatch):
        monkeypatch.setattr(querystream_settings, "DATABASE_URL", None)
        with pytest.raises(RuntimeError, match="No database URL"):
            db_module.init_db()

    def test_engine_requires_init(self, monkeypatch):
        monkeypatch.setattr(db_module, "_engine", None)
        with pytest.raises(RuntimeError, match="not initialized"):
            db_module.get_engine()

    @pytest.mark.asyncio
    async def test_init_falls_back_to_settings(self, monkeypatch):
        monkeypatch.setattr(
            querystream_settings, "DATABASE_URL", "sqlite+aiosqlite:///:memory:"
        )
        db_module.init_db()
        try:
            assert db_module.get_engine().url.drivername == "sqlite+aiosqlite"
            async for qb in db_module.get_query_builder():
                assert isinstance(qb, QueryBuilder)
        finally:
            await db_module.close_db()

        with pytest.raises(RuntimeError, match="not initialized"):
            db_module.get_engine()

    @pytest.mark.asyncio
    async def test_query_builder_requires_init(self, monkeypatch):
        monkeypatch.setattr(db_module, "_session_factory", None)
        with pytest.raises(RuntimeError, match="not initialized"):
            async for _ in db_module.get_query_builder():
                pass
