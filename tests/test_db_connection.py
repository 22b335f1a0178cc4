"""Tests for pairvault.db.connection — pool creation and the transaction boundary."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from pairvault.db import connection


@pytest.fixture
def mock_pool(monkeypatch):
    pool = MagicMock()
    pool.closed = False
    conn = MagicMock()
    pool.getconn.return_value = conn
    monkeypatch.setattr(connection, "_pool", pool)
    return pool, conn


@pytest.fixture
def no_pool(monkeypatch):
    monkeypatch.setattr(connection, "_pool", None)


class TestGetConnection:
    def test_commits_on_success(self, mock_pool):
        pool, conn = mock_pool
        with connection.get_connection() as c:
            assert c is conn
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_rolls_back_and_reraises(self, mock_pool):
        pool, conn = mock_pool
        with pytest.raises(RuntimeError, match="boom"):
            with connection.get_connection():
                raise RuntimeError("boom")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_failed_commit_rolls_back(self, mock_pool):
        pool, conn = mock_pool
        conn.commit.side_effect = psycopg2.OperationalError("server closed the connection")
        with pytest.raises(psycopg2.OperationalError):
            with connection.get_connection():
                pass
        conn.rollback.assert_called_once()
        pool.putconn.assert_called_once_with(conn)


class TestGetPool:
    def test_pool_from_config(self, no_pool, clean_env, monkeypatch):
        monkeypatch.setenv("PAIRVAULT_DB_NAME", "vault_test")
        monkeypatch.setenv("PAIRVAULT_DB_POOL_MAX", "3")
        with patch("psycopg2.pool.ThreadedConnectionPool") as pool_cls:
            pool_cls.return_value.closed = False
            pool = connection.get_pool()
        kwargs = pool_cls.call_args.kwargs
        assert kwargs["minconn"] == 1
        assert kwargs["maxconn"] == 3
        assert kwargs["dbname"] == "vault_test"
        assert pool is pool_cls.return_value

    def test_pool_reused(self, no_pool):
        with patch("psycopg2.pool.ThreadedConnectionPool") as pool_cls:
            pool_cls.return_value.closed = False
            assert connection.get_pool() is connection.get_pool()
        pool_cls.assert_called_once()

    def test_unreachable_database(self, no_pool):
        with patch(
            "psycopg2.pool.ThreadedConnectionPool",
            side_effect=psycopg2.OperationalError("could not connect"),
        ):
            with pytest.raises(ConnectionError, match="PAIRVAULT_DB_"):
                connection.get_pool()

    def test_close_pool(self, mock_pool):
        pool, _ = mock_pool
        connection.close_pool()
        pool.closeall.assert_called_once()
        assert connection._pool is None
