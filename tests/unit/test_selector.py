"""
Unit Tests - Backend Selection
"""
from contextlib import asynccontextmanager

import pytest

from storefront.database.adapters.base import DatabaseAdapter, QueryResult
from storefront.database.adapters.sqlite import SQLiteAdapter
from storefront.database.errors import ConnectivityError, InitializationError, StatementError
from storefront.database.selector import BackendHandle, initialize
from storefront.database.sql import Dialect


class FakeAdapter(DatabaseAdapter):
    """Scriptable adapter; answers every statement with an admin count of 1"""

    dialect = Dialect.POSTGRES

    def __init__(self, name="fake", open_error=None, execute_error=None):
        self.name = name
        self.open_error = open_error
        self.execute_error = execute_error
        self.opened = False
        self.closed = False
        self.statements = []

    async def open(self):
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    async def close(self):
        self.closed = True

    async def execute(self, statement, params=()):
        self.statements.append(statement)
        if self.execute_error is not None:
            raise self.execute_error
        return QueryResult(rows=[{"count": 1}], rows_affected=1)

    @asynccontextmanager
    async def _transaction(self):
        raise NotImplementedError
        yield


class TestInitialize:
    """Tests for boot-time failover"""

    @pytest.mark.asyncio
    async def test_primary_used_when_healthy(self, test_settings):
        """Test a healthy primary is selected without fallback"""
        primary = FakeAdapter("postgresql")
        secondary = FakeAdapter("sqlite")

        handle = await initialize(
            test_settings,
            primary_factory=lambda s: primary,
            secondary_factory=lambda s: secondary,
        )

        assert handle.adapter is primary
        assert handle.backend == "postgresql"
        assert not handle.is_fallback
        assert primary.statements
        assert not secondary.opened

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_unreachable(self, test_settings):
        """Test an unreachable primary selects SQLite with the same schema"""
        primary = FakeAdapter("postgresql", open_error=ConnectivityError("connection refused"))

        handle = await initialize(
            test_settings,
            primary_factory=lambda s: primary,
            secondary_factory=lambda s: SQLiteAdapter(s.sqlite),
        )
        try:
            assert handle.backend == "sqlite"
            assert handle.dialect is Dialect.SQLITE
            assert handle.is_fallback
            assert handle.fallback_reason == "connection refused"
            assert primary.closed

            admins = await handle.query("SELECT username FROM users WHERE role = 'admin'")
            assert [row["username"] for row in admins.rows] == ["admin"]
        finally:
            await handle.close()

    @pytest.mark.asyncio
    async def test_already_exists_does_not_fall_back(self, test_settings):
        """Test a benign DDL collision keeps the primary"""
        primary = FakeAdapter(
            "postgresql",
            execute_error=StatementError('relation "users" already exists'),
        )
        secondary = FakeAdapter("sqlite")

        handle = await initialize(
            test_settings,
            primary_factory=lambda s: primary,
            secondary_factory=lambda s: secondary,
        )

        assert handle.adapter is primary
        assert not handle.is_fallback
        assert not primary.closed
        assert not secondary.opened

    @pytest.mark.asyncio
    async def test_schema_failure_falls_back(self, test_settings):
        """Test a non-benign schema error on the primary still falls back"""
        primary = FakeAdapter("postgresql", execute_error=StatementError("permission denied for schema public"))
        secondary = FakeAdapter("sqlite")

        handle = await initialize(
            test_settings,
            primary_factory=lambda s: primary,
            secondary_factory=lambda s: secondary,
        )

        assert handle.adapter is secondary
        assert handle.fallback_reason == "permission denied for schema public"
        assert primary.closed

    @pytest.mark.asyncio
    async def test_both_fail(self, test_settings):
        """Test initialization refuses to continue without any backend"""
        primary = FakeAdapter("postgresql", open_error=ConnectivityError("connection refused"))
        secondary = FakeAdapter("sqlite", open_error=ConnectivityError("unable to open database file"))

        with pytest.raises(InitializationError) as exc_info:
            await initialize(
                test_settings,
                primary_factory=lambda s: primary,
                secondary_factory=lambda s: secondary,
            )

        assert "Unable to initialize any database" in str(exc_info.value)
        assert isinstance(exc_info.value.cause, ConnectivityError)
        assert primary.closed and secondary.closed


class TestBackendHandle:
    """Tests for the handle itself"""

    def test_immutable(self):
        handle = BackendHandle(adapter=FakeAdapter())

        with pytest.raises(AttributeError):
            handle.fallback_reason = "changed"

    @pytest.mark.asyncio
    async def test_ping_false_on_error(self):
        handle = BackendHandle(adapter=FakeAdapter(execute_error=ConnectivityError("gone")))

        assert await handle.ping() is False
