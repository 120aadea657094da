#!/usr/bin/env python3
"""Initialize the analytics database schema.

Creates the tables declared in db.models against the database pointed to by
DATABASE_URL.

Usage:
  python -m db.init_db

Requirements:
  - DATABASE_URL must be set
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy import create_engine, inspect

from db.models import Base

logger = logging.getLogger(__name__)


def init_schema(database_url: str) -> list[str]:
    """Create any missing analytics tables. Returns the table names present afterwards."""
    engine = create_engine(database_url, echo=False)
    try:
        Base.metadata.create_all(engine)
        return sorted(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def main(database_url: Optional[str] = None) -> int:
    database_url = database_url or os.getenv("DATABASE_URL")
    if not database_url:
        raise SystemExit("DATABASE_URL is not set")

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    tables = init_schema(database_url)
    logger.info(f"Database schema applied: {', '.join(tables)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
