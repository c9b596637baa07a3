# repository.py - Store access bound to one caller identity
import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from policies import Action, NotFound, authorize, owned_clause

logger = logging.getLogger("clientdesk.repository")


class ConstraintViolation(HTTPException):
    def __init__(self, detail: str = "Constraint violation"):
        super().__init__(status_code=409, detail=detail)


class ScopedRepository:
    """Every read and write runs through the ownership policy for ``user``.

    Lookups by id return None when no row exists and raise AccessDenied when
    the row belongs to someone else.
    """

    def __init__(self, db: AsyncSession, user: CurrentUser):
        self.db = db
        self.user = user

    @property
    def identity(self) -> str:
        return self.user.id

    async def get(self, model, obj_id: str, action: Action = Action.READ) -> Optional[Any]:
        obj = await self.db.get(model, obj_id)
        if obj is None:
            return None
        await authorize(self.db, obj, action, self.identity)
        return obj

    async def get_or_404(self, model, obj_id: str, action: Action = Action.READ) -> Any:
        obj = await self.get(model, obj_id, action)
        if obj is None:
            raise NotFound(f"{model.__name__} not found")
        return obj

    async def list(
        self, model, *criteria, order_by=None, limit: Optional[int] = None, offset: int = 0,
    ) -> List[Any]:
        stmt = select(model).where(owned_clause(model, self.identity), *criteria)
        if order_by is not None:
            stmt = stmt.order_by(*order_by) if isinstance(order_by, (list, tuple)) else stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def add(self, obj) -> Any:
        await authorize(self.db, obj, Action.INSERT, self.identity)
        self.db.add(obj)
        return obj

    async def update(self, obj, values: Dict[str, Any]) -> Any:
        """Apply ``values`` then re-check ownership of the resulting row"""
        for key, value in values.items():
            setattr(obj, key, value)
        await authorize(self.db, obj, Action.UPDATE, self.identity)
        return obj

    async def delete(self, obj) -> None:
        await authorize(self.db, obj, Action.DELETE, self.identity)
        await self.db.delete(obj)

    async def flush(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self._reject(e)

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self._reject(e)

    async def refresh(self, obj) -> None:
        await self.db.refresh(obj)

    async def _reject(self, exc: IntegrityError) -> None:
        await self.db.rollback()
        logger.warning(f"Constraint violation for user {self.identity}: {exc.orig}")
        raise ConstraintViolation() from exc


async def get_repository(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ScopedRepository:
    return ScopedRepository(db, user)
