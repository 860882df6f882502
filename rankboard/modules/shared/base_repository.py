"""
Generic async repository for one mapped model.

Repositories only build and run statements. Sessions come from
`DatabaseService`; commit and rollback stay with the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import Select, func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def model_name(self) -> str:
        return self.model_class.__name__

    def _trace(self, action: str, **fields: Any) -> None:
        self.log.debug(
            f"{self.model_name}.{action}",
            extra={"model": self.model_name, **fields},
        )

    def _rows(self, conditions: Sequence[ColumnElement[bool]]) -> Select:
        return select(self.model_class).where(*conditions)

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        """
        At most one row matching `conditions`.

        `for_update=True` adds `FOR UPDATE`, holding the row until the
        transaction ends. SQLite drops the clause silently.
        """
        stmt = self._rows(conditions)
        if for_update:
            stmt = stmt.with_for_update()

        found = (await session.execute(stmt)).scalar_one_or_none()
        self._trace("find_one_where", found=found is not None, locked=for_update)
        return found

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[List[Any]] = None,
        limit: Optional[int] = None,
    ) -> List[T]:
        stmt = self._rows(conditions).order_by(*(order_by or ()))
        if limit is not None:
            stmt = stmt.limit(limit)

        rows = list((await session.execute(stmt)).scalars())
        self._trace("find_many_where", rows=len(rows), limit=limit)
        return rows

    async def count_where(
        self, session: AsyncSession, *conditions: ColumnElement[bool]
    ) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        return int((await session.execute(stmt)).scalar_one())

    async def create(self, session: AsyncSession, instance: T) -> T:
        """Stage `instance` and flush, so the id and column defaults are filled in."""
        session.add(instance)
        await session.flush()
        self._trace("create")
        return instance

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
