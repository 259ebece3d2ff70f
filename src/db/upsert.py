"""方言別のUPSERT — 一意キー + INSERT ... ON CONFLICT"""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import Base, utcnow


def _insert_for(session: AsyncSession, model: type[Base]) -> Any:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"UPSERT未対応の方言: {dialect}")


async def upsert(
    session: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    conflict_columns: list[str],
) -> int:
    """一意キー衝突時は更新するINSERTを発行し、行IDを返す

    同一キーへの同時保存でも重複行は作られない（DBの一意制約で直列化）。
    """
    stmt = _insert_for(session, model).values(**values)
    update_set = {key: stmt.excluded[key] for key in values if key not in conflict_columns}
    update_set["updated_at"] = utcnow()
    stmt = stmt.on_conflict_do_update(index_elements=conflict_columns, set_=update_set)
    stmt = stmt.returning(model.id)  # type: ignore[attr-defined]
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def insert_ignore(
    session: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    conflict_columns: list[str],
) -> bool:
    """一意キー衝突時は何もしないINSERT。挿入した場合True"""
    stmt = _insert_for(session, model).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=conflict_columns)
    result = await session.execute(stmt)
    return bool(result.rowcount)  # type: ignore[union-attr]
