#!/usr/bin/env python3
"""Put databases built by ``seed_data.py`` under Alembic control.

``Base.metadata.create_all`` leaves no ``alembic_version`` row behind, so the
first ``alembic upgrade head`` would try to create tables that already exist.
Stamping the baseline revision once makes later upgrades apply normally.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from parts_recovery import models  # noqa: F401  (registers tables on Base.metadata)
from parts_recovery.database import Base, engine

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parent / "alembic.ini"
BASELINE_REVISION = os.getenv("ALEMBIC_BASELINE_REVISION", "001")


def unversioned_tables(bind) -> list[str]:
    """Model tables found in a database without alembic_version; empty once versioned."""
    inspector = inspect(bind)
    if inspector.has_table("alembic_version"):
        return []
    return sorted(name for name in Base.metadata.tables if inspector.has_table(name))


def stamp_baseline(bind=None, *, config_path: Path = ALEMBIC_INI) -> bool:
    present = unversioned_tables(bind if bind is not None else engine)
    if not present:
        logger.info("alembic.bootstrap stamp not required")
        return False

    logger.warning(
        "alembic.bootstrap stamping revision=%s existing_tables=%s",
        BASELINE_REVISION,
        len(present),
    )
    config = Config(str(config_path))
    config.set_main_option("script_location", str(config_path.parent / "alembic"))
    command.stamp(config, BASELINE_REVISION)
    return True


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    stamp_baseline()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
