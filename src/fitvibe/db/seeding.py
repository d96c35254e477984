"""Idempotent reference-data upserts keyed on a unique ``slug`` column."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from fitvibe.db.base import Base


async def upsert_by_slug(db: AsyncSession, model: type[Base], rows: list[dict[str, Any]]) -> int:
    """Insert ``rows`` or refresh every non-key column of existing ones."""
    dialect = db.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert
    for row in rows:
        stmt = insert(model).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={col: getattr(stmt.excluded, col) for col in row if col != "slug"},
        )
        await db.execute(stmt)
    return len(rows)
