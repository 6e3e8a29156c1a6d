"""Programmatic Alembic upgrades for the reader database."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from feedsync.reader.storage.common import sqlite_url

logger = logging.getLogger(__name__)

# alembic.ini and alembic/ live at the project root, next to src/.
PROJECT_ROOT = Path(__file__).resolve().parents[4]


def alembic_config(db_path: Path, *, root: Path = PROJECT_ROOT) -> Config:
    config = Config(str(root / "alembic.ini"))
    config.set_main_option("script_location", str(root / "alembic"))
    config.set_main_option("sqlalchemy.url", sqlite_url(db_path))
    return config


def upgrade_head(db_path: Path) -> None:
    """Bring `db_path` to the latest schema revision; a no-op when already current."""

    logger.debug("Upgrading %s to head", db_path)
    command.upgrade(alembic_config(db_path), "head")
