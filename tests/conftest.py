"""
Shared pytest fixtures and configuration for typedrow tests.

This module provides:
- Global state cleanup (registry, shape cache, snapshots, logger, settings)
- An in-memory sqlite3 database with the test schema
- Recording executor and capturing logger doubles
"""

import sqlite3
from typing import Generator

import pytest

from tests._support.recording import CapturingLogger, RecordingExecutor
from typedrow.executor import DBAPIExecutor
from typedrow.logging import clear_context, set_logger
from typedrow.registry import clear_registry
from typedrow.settings import reset_settings
from typedrow.shape import clear_shape_cache
from typedrow.snapshot import clear_snapshots

SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL DEFAULT '',
    email TEXT NOT NULL DEFAULT '',
    password TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT
);
CREATE TABLE profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL DEFAULT '',
    bio TEXT NOT NULL DEFAULT '',
    age INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT
);
CREATE TABLE user_posts (
    user_id INTEGER NOT NULL,
    post_id INTEGER NOT NULL,
    note TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (user_id, post_id)
);
CREATE TABLE customers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    created_by TEXT,
    secret_note TEXT,
    city TEXT,
    zip_code TEXT
);
CREATE TABLE outputs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL DEFAULT ''
);
"""


# =============================================================================
# State Cleanup
# =============================================================================


def _reset_global_state() -> None:
    clear_registry()
    clear_shape_cache()
    clear_snapshots()
    set_logger(None)
    reset_settings()
    clear_context()


@pytest.fixture(autouse=True)
def clean_global_state() -> Generator[None, None, None]:
    """Every test starts with an empty registry, cache and snapshot table."""
    _reset_global_state()
    yield
    _reset_global_state()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def sqlite_conn() -> Generator[sqlite3.Connection, None, None]:
    conn = sqlite3.connect(":memory:")
    conn.executescript(SCHEMA)
    yield conn
    conn.close()


@pytest.fixture
def sqlite_executor(sqlite_conn: sqlite3.Connection) -> DBAPIExecutor:
    return DBAPIExecutor(sqlite_conn, "sqlite3")


@pytest.fixture
def recording() -> RecordingExecutor:
    return RecordingExecutor("postgres")


@pytest.fixture
def captured_logger() -> CapturingLogger:
    logger = CapturingLogger()
    set_logger(logger)
    return logger
