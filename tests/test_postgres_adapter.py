"""Tests for the PostgreSQL adapter's SQL building and error classification.

These run without a database: the engine is created lazily and never
connects.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from forum_recovery.adapters.postgres import (
    AsyncPostgresAdapter,
    build_where,
    is_unique_violation,
    normalize_url,
)


class _PgError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


class TestNormalizeUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "postgres://u:p@localhost/forum",
            "postgresql://u:p@localhost/forum",
            "postgresql+asyncpg://u:p@localhost/forum",
        ],
    )
    def test_asyncpg_scheme(self, url):
        assert normalize_url(url) == "postgresql+asyncpg://u:p@localhost/forum"


class TestBuildWhere:
    def test_scalar(self):
        clause, params = build_where({"tenant_id": "t1", "email": "a@x"})
        assert clause == "tenant_id = :p_0 AND email = :p_1"
        assert params == {"p_0": "t1", "p_1": "a@x"}

    def test_list_becomes_any(self):
        clause, params = build_where({"id": ("u1", "u2")})
        assert clause == "id = ANY(:p_0)"
        assert params == {"p_0": ["u1", "u2"]}

    def test_none_becomes_is_null(self):
        clause, params = build_where({"tenant_id": None, "name": "x"}, prefix="where")
        assert clause == "tenant_id IS NULL AND name = :where_1"
        assert params == {"where_1": "x"}


class TestIsUniqueViolation:
    def test_unique(self):
        exc = IntegrityError("INSERT", {}, _PgError("duplicate key", sqlstate="23505"))
        assert is_unique_violation(exc) is True

    def test_foreign_key(self):
        exc = IntegrityError("INSERT", {}, _PgError("fk violation", sqlstate="23503"))
        assert is_unique_violation(exc) is False

    def test_wrapped_driver_error(self):
        orig = _PgError("wrapped")
        orig.__cause__ = _PgError("duplicate key", sqlstate="23505")
        exc = IntegrityError("INSERT", {}, orig)
        assert is_unique_violation(exc) is True


class TestAdapterHelpers:
    @pytest.fixture
    def adapter(self):
        return AsyncPostgresAdapter("postgres://u:p@localhost/forum")

    def test_engine_uses_asyncpg(self, adapter):
        assert adapter._engine.url.drivername == "postgresql+asyncpg"

    def test_jsonb_placeholder(self, adapter):
        assert adapter._placeholders(["id", "settings"]) == [":id", "CAST(:settings AS jsonb)"]

    def test_dict_values_serialized(self, adapter):
        prepared = adapter._prepare({"id": "t1", "settings": {"theme": "dark"}})
        assert prepared == {"id": "t1", "settings": '{"theme": "dark"}'}

    def test_custom_jsonb_columns(self):
        adapter = AsyncPostgresAdapter("postgresql://localhost/forum", jsonb_columns=["meta"])
        assert adapter._placeholders(["settings", "meta"]) == [":settings", "CAST(:meta AS jsonb)"]

    async def test_delete_nothing(self, adapter):
        assert await adapter.delete_many("posts", []) == 0
