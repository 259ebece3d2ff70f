"""Generic CRUD Repository — 組織分離対応"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """組織分離対応の汎用CRUDリポジトリ

    organization_id を持つモデルでは全クエリに組織フィルタを適用する。
    """

    def __init__(self, model: type[ModelT], session: AsyncSession) -> None:
        self._model = model
        self._session = session

    @property
    def _is_org_scoped(self) -> bool:
        return hasattr(self._model, "organization_id")

    def _scoped(self, query: Any, organization_id: int | None) -> Any:
        if organization_id is not None and self._is_org_scoped:
            query = query.where(self._model.organization_id == organization_id)  # type: ignore[attr-defined]
        return query

    async def get_by_id(self, id_: int, organization_id: int | None = None) -> ModelT | None:
        """IDでレコード取得"""
        query = select(self._model).where(self._model.id == id_)  # type: ignore[attr-defined]
        query = self._scoped(query, organization_id)
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def list(
        self,
        organization_id: int | None = None,
        offset: int = 0,
        limit: int = 100,
        order_by: str | None = None,
        **filters: Any,
    ) -> list[ModelT]:
        """一覧取得（ページネーション対応）"""
        query = self._scoped(select(self._model), organization_id)

        for key, value in filters.items():
            if hasattr(self._model, key) and value is not None:
                query = query.where(getattr(self._model, key) == value)

        if order_by and hasattr(self._model, order_by):
            query = query.order_by(getattr(self._model, order_by))
        else:
            query = query.order_by(self._model.id)  # type: ignore[attr-defined]

        query = query.offset(offset).limit(limit)
        result = await self._session.execute(query)
        return list(result.scalars().all())

