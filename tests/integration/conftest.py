"""Integration test fixtures.

Provides settings for a SQLite-backed engine rooted in a per-test temporary
directory. Shared fixtures (clock, make_context) come from tests/conftest.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from pagestate.config import Settings

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "nested" / "data" / "state.db"


@pytest.fixture()
def sqlite_settings(db_path: Path) -> Settings:
    """Settings for a two-locale engine persisting to SQLite."""
    return Settings(
        i18n={"locales": ["en-US", "fr-FR"], "default_locale": "en-US"},
        store={"backend": "sqlite", "db_path": str(db_path)},
        build={"concurrency": 2},
    )
