# routers/clients.py - Clients and their category buckets
import logging
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import select, func

from models import Client, ClientCategory, Task, TaskAttachment
from policies import Action, owned_clause
from provisioning import DEFAULT_CATEGORIES, CATEGORY_LABELS, create_client
from repository import ScopedRepository, get_repository
import storage

logger = logging.getLogger("clientdesk.clients")

router = APIRouter(prefix="/api/v1/clients", tags=["Clients"])


# ============================================================
# SCHEMAS
# ============================================================

class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class ClientUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class CategoryOut(BaseModel):
    id: str
    client_id: str
    category: str
    label: str
    task_count: int = 0
    created_at: Optional[str] = None


class ClientOut(BaseModel):
    id: str
    name: str
    user_id: str
    categories: List[CategoryOut] = []
    task_count: int = 0
    created_at: Optional[str] = None


# ============================================================
# HELPERS
# ============================================================

def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


_CATEGORY_ORDER = {c["category"].value: i for i, c in enumerate(DEFAULT_CATEGORIES)}


async def _task_counts(repo: ScopedRepository, client_ids: List[str]) -> dict:
    """Map (client_id, category) to the number of tasks filed there"""
    if not client_ids:
        return {}
    stmt = (
        select(Task.client_id, Task.category, func.count(Task.id))
        .where(owned_clause(Task, repo.identity), Task.client_id.in_(client_ids))
        .group_by(Task.client_id, Task.category)
    )
    result = await repo.db.execute(stmt)
    return {(client_id, category): count for client_id, category, count in result.all()}


def _category_to_out(c: ClientCategory, counts: dict) -> CategoryOut:
    return CategoryOut(
        id=c.id,
        client_id=c.client_id,
        category=c.category,
        label=CATEGORY_LABELS.get(c.category, c.category),
        task_count=counts.get((c.client_id, c.category), 0),
        created_at=_ts(c.created_at),
    )


async def _clients_to_out(repo: ScopedRepository, clients: List[Client]) -> List[ClientOut]:
    ids = [c.id for c in clients]
    counts = await _task_counts(repo, ids)
    categories = await repo.list(ClientCategory, ClientCategory.client_id.in_(ids)) if ids else []

    by_client = {}
    for cat in sorted(categories, key=lambda x: _CATEGORY_ORDER.get(x.category, len(_CATEGORY_ORDER))):
        by_client.setdefault(cat.client_id, []).append(_category_to_out(cat, counts))

    out = []
    for c in clients:
        client_categories = by_client.get(c.id, [])
        out.append(ClientOut(
            id=c.id,
            name=c.name,
            user_id=c.user_id,
            categories=client_categories,
            task_count=sum(cat.task_count for cat in client_categories),
            created_at=_ts(c.created_at),
        ))
    return out


# ============================================================
# CLIENT ENDPOINTS
# ============================================================

@router.get("", response_model=List[ClientOut])
async def list_clients(
    repo: ScopedRepository = Depends(get_repository),
    order: str = Query(default="created", pattern="^(created|name)$"),
):
    """List the caller's clients with categories and task counts"""
    order_by = Client.name.asc() if order == "name" else Client.created_at.desc()
    clients = await repo.list(Client, order_by=order_by)
    return await _clients_to_out(repo, clients)


@router.post("", response_model=ClientOut, status_code=201)
async def create_client_endpoint(
    data: ClientCreate,
    repo: ScopedRepository = Depends(get_repository),
):
    """Create a client; its default categories are created in the same transaction"""
    client = await create_client(repo, data.name)
    return (await _clients_to_out(repo, [client]))[0]


@router.get("/{client_id}", response_model=ClientOut)
async def get_client(
    client_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    client = await repo.get_or_404(Client, client_id)
    return (await _clients_to_out(repo, [client]))[0]


@router.patch("/{client_id}", response_model=ClientOut)
async def rename_client(
    client_id: str,
    data: ClientUpdate,
    repo: ScopedRepository = Depends(get_repository),
):
    client = await repo.get_or_404(Client, client_id, Action.UPDATE)
    await repo.update(client, {"name": data.name})
    await repo.commit()
    return (await _clients_to_out(repo, [client]))[0]


@router.delete("/{client_id}")
async def delete_client(
    client_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    """Delete a client along with its categories, tasks and their attachments"""
    client = await repo.get_or_404(Client, client_id, Action.DELETE)

    stmt = (
        select(TaskAttachment.file_url, TaskAttachment.user_id)
        .join(Task, Task.id == TaskAttachment.task_id)
        .where(Task.client_id == client.id)
    )
    stored = (await repo.db.execute(stmt)).all()

    await repo.delete(client)
    await repo.commit()

    for key, owner_id in stored:
        storage.delete_object(key, owner_id)

    logger.info(f"Deleted client {client_id} ({len(stored)} stored attachments removed)")
    return {"status": "deleted", "client_id": client_id}


@router.get("/{client_id}/categories", response_model=List[CategoryOut])
async def list_categories(
    client_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    """List the category buckets of one client"""
    client = await repo.get_or_404(Client, client_id)
    categories = await repo.list(ClientCategory, ClientCategory.client_id == client.id)
    counts = await _task_counts(repo, [client.id])
    categories.sort(key=lambda x: _CATEGORY_ORDER.get(x.category, len(_CATEGORY_ORDER)))
    return [_category_to_out(c, counts) for c in categories]
