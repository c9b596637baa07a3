# policies.py - Ownership-scoped access policy
"""
Per-model, per-action ownership predicates.

Every row either names its owning user directly (``user_id``) or belongs to a
parent row that does. A request may touch a row only when every owner reachable
from it is the caller. Rows owned by someone else are rejected with 403; they
are never silently filtered out of a by-id lookup.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    Client, ClientCategory, Task, TaskComment, TaskAttachment, Meeting, CalendarEvent,
)

logger = logging.getLogger("clientdesk.policies")


class Action(str, Enum):
    READ = "read"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class AccessDenied(HTTPException):
    def __init__(self, detail: str = "Access denied"):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


@dataclass(frozen=True)
class ParentRef:
    fk_attr: str
    model: type


@dataclass(frozen=True)
class OwnershipRule:
    owner_attr: Optional[str] = None
    parents: Tuple[ParentRef, ...] = ()


OWNERSHIP_RULES = {
    Client: OwnershipRule(owner_attr="user_id"),
    ClientCategory: OwnershipRule(parents=(ParentRef("client_id", Client),)),
    Task: OwnershipRule(owner_attr="user_id", parents=(ParentRef("client_id", Client),)),
    TaskComment: OwnershipRule(owner_attr="user_id", parents=(ParentRef("task_id", Task),)),
    TaskAttachment: OwnershipRule(owner_attr="user_id", parents=(ParentRef("task_id", Task),)),
    Meeting: OwnershipRule(owner_attr="user_id"),
    CalendarEvent: OwnershipRule(owner_attr="user_id"),
}


def rule_for(model) -> OwnershipRule:
    try:
        return OWNERSHIP_RULES[model]
    except KeyError:
        raise LookupError(f"No ownership rule registered for {model.__name__}")


async def resolve_owners(db: AsyncSession, obj) -> List[Optional[str]]:
    """Collect the owning identity of ``obj`` and of every parent it references.

    A null parent reference is skipped (e.g. a task without a client). A
    reference to a parent that does not exist raises NotFound.
    """
    rule = rule_for(type(obj))
    owners: List[Optional[str]] = []
    if rule.owner_attr:
        owners.append(getattr(obj, rule.owner_attr))
    for ref in rule.parents:
        parent_id = getattr(obj, ref.fk_attr)
        if parent_id is None:
            continue
        parent = await db.get(ref.model, parent_id)
        if parent is None:
            raise NotFound(f"{ref.model.__name__} not found")
        owners.extend(await resolve_owners(db, parent))
    return owners


async def authorize(db: AsyncSession, obj, action: Action, identity: str) -> None:
    """Raise AccessDenied unless ``identity`` owns ``obj`` (directly and transitively)"""
    owners = await resolve_owners(db, obj)
    if not owners or any(owner != identity for owner in owners):
        logger.warning(
            f"Denied {action.value} on {type(obj).__name__} "
            f"{getattr(obj, 'id', None)} for user {identity}"
        )
        raise AccessDenied()


def owned_clause(model, identity: str):
    """SQL predicate restricting ``model`` rows to those owned by ``identity``"""
    rule = rule_for(model)
    if rule.owner_attr:
        return getattr(model, rule.owner_attr) == identity
    clauses = []
    for ref in rule.parents:
        owned_parents = select(ref.model.id).where(owned_clause(ref.model, identity))
        clauses.append(getattr(model, ref.fk_attr).in_(owned_parents))
    return and_(*clauses)
