# routers/tasks.py - Categorized tasks with comments
import logging
from datetime import datetime
from enum import Enum
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select, func

from models import (
    Client, Task, TaskComment, TaskAttachment,
    CategoryTag, TaskStatus, TaskPriority, utcnow,
)
from policies import Action, owned_clause
from repository import ScopedRepository, get_repository
import storage

logger = logging.getLogger("clientdesk.tasks")

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])

# Columns that may be cleared with an explicit null
NULLABLE_FIELDS = {"client_id", "due_date", "start_date"}


# ============================================================
# SCHEMAS
# ============================================================

# --- Task ---
class TaskCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    assignee: str = ""
    client_id: Optional[str] = None
    category: CategoryTag = CategoryTag.TASKS
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    assignee: Optional[str] = None
    client_id: Optional[str] = None
    category: Optional[CategoryTag] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    tags: Optional[List[str]] = None


class TaskOut(BaseModel):
    id: str
    user_id: str
    client_id: Optional[str] = None
    category: str
    name: str
    description: str = ""
    assignee: str = ""
    status: str
    priority: str
    due_date: Optional[str] = None
    start_date: Optional[str] = None
    tags: list = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TaskStats(BaseModel):
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    total: int = 0


# --- Comment ---
class CommentCreate(BaseModel):
    comment_text: str = Field(..., min_length=1, max_length=10000)


class CommentUpdate(BaseModel):
    comment_text: str = Field(..., min_length=1, max_length=10000)


class CommentOut(BaseModel):
    id: str
    task_id: str
    user_id: str
    user_email: str
    comment_text: str
    created_at: Optional[str] = None


# ============================================================
# HELPERS
# ============================================================

def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _column_values(data: dict) -> dict:
    """Schema values as column values: enums to their text, nulls dropped unless clearable"""
    values = {}
    for key, value in data.items():
        if value is None and key not in NULLABLE_FIELDS:
            continue
        values[key] = value.value if isinstance(value, Enum) else value
    return values


def _task_to_out(t: Task) -> TaskOut:
    return TaskOut(
        id=t.id,
        user_id=t.user_id,
        client_id=t.client_id,
        category=t.category,
        name=t.name,
        description=t.description or "",
        assignee=t.assignee or "",
        status=t.status,
        priority=t.priority,
        due_date=_ts(t.due_date),
        start_date=_ts(t.start_date),
        tags=t.tags or [],
        created_at=_ts(t.created_at),
        updated_at=_ts(t.updated_at),
    )


def _comment_to_out(c: TaskComment) -> CommentOut:
    return CommentOut(
        id=c.id,
        task_id=c.task_id,
        user_id=c.user_id,
        user_email=c.user_email,
        comment_text=c.comment_text,
        created_at=_ts(c.created_at),
    )


async def _get_comment(repo: ScopedRepository, task_id: str, comment_id: str, action: Action) -> TaskComment:
    comment = await repo.get_or_404(TaskComment, comment_id, action)
    if comment.task_id != task_id:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


async def _stored_attachments(repo: ScopedRepository, task_id: str) -> list:
    stmt = select(TaskAttachment.file_url, TaskAttachment.user_id).where(TaskAttachment.task_id == task_id)
    return (await repo.db.execute(stmt)).all()


# ============================================================
# TASK ENDPOINTS
# ============================================================

@router.get("", response_model=List[TaskOut])
async def list_tasks(
    repo: ScopedRepository = Depends(get_repository),
    client_id: Optional[str] = None,
    category: Optional[CategoryTag] = None,
    status: Optional[TaskStatus] = None,
    search: Optional[str] = None,
    limit: int = Query(default=200, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    """List the caller's tasks, newest first, one page at a time"""
    criteria = []
    if client_id:
        # Another user's client id is rejected, not answered with an empty list
        await repo.get_or_404(Client, client_id)
        criteria.append(Task.client_id == client_id)
    if category:
        criteria.append(Task.category == category.value)
    if status:
        criteria.append(Task.status == status.value)
    if search:
        criteria.append(Task.name.ilike(f"%{search}%"))

    tasks = await repo.list(
        Task, *criteria, order_by=[Task.created_at.desc(), Task.id], limit=limit, offset=offset,
    )
    return [_task_to_out(t) for t in tasks]


@router.get("/stats", response_model=TaskStats)
async def task_stats(repo: ScopedRepository = Depends(get_repository)):
    """Task counts per status for the dashboard"""
    stmt = (
        select(Task.status, func.count(Task.id))
        .where(owned_clause(Task, repo.identity))
        .group_by(Task.status)
    )
    counts = dict((await repo.db.execute(stmt)).all())
    return TaskStats(
        pending=counts.get(TaskStatus.PENDING.value, 0),
        in_progress=counts.get(TaskStatus.IN_PROGRESS.value, 0),
        completed=counts.get(TaskStatus.COMPLETED.value, 0),
        total=sum(counts.values()),
    )


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    data: TaskCreate,
    repo: ScopedRepository = Depends(get_repository),
):
    """Create a task, optionally filed under one of the caller's clients"""
    task = Task(user_id=repo.identity, **_column_values(data.model_dump()))
    await repo.add(task)
    await repo.commit()
    await repo.refresh(task)
    return _task_to_out(task)


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    task = await repo.get_or_404(Task, task_id)
    return _task_to_out(task)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    repo: ScopedRepository = Depends(get_repository),
):
    """Update task fields; moving it to another user's client is rejected"""
    task = await repo.get_or_404(Task, task_id, Action.UPDATE)
    values = _column_values(data.model_dump(exclude_unset=True))
    values["updated_at"] = utcnow()
    await repo.update(task, values)
    await repo.commit()
    await repo.refresh(task)
    return _task_to_out(task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    """Delete a task with its comments and attachments"""
    task = await repo.get_or_404(Task, task_id, Action.DELETE)
    stored = await _stored_attachments(repo, task.id)

    await repo.delete(task)
    await repo.commit()

    for key, owner_id in stored:
        storage.delete_object(key, owner_id)
    return {"status": "deleted", "task_id": task_id}


# ============================================================
# COMMENT ENDPOINTS
# ============================================================

@router.get("/{task_id}/comments", response_model=List[CommentOut])
async def list_comments(
    task_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    """Comments on a task, oldest first"""
    task = await repo.get_or_404(Task, task_id)
    comments = await repo.list(
        TaskComment, TaskComment.task_id == task.id, order_by=TaskComment.created_at.asc(),
    )
    return [_comment_to_out(c) for c in comments]


@router.post("/{task_id}/comments", response_model=CommentOut, status_code=201)
async def add_comment(
    task_id: str,
    data: CommentCreate,
    repo: ScopedRepository = Depends(get_repository),
):
    comment = TaskComment(
        task_id=task_id,
        user_id=repo.identity,
        user_email=repo.user.email or "Unknown",
        comment_text=data.comment_text,
    )
    await repo.add(comment)
    await repo.commit()
    return _comment_to_out(comment)


@router.patch("/{task_id}/comments/{comment_id}", response_model=CommentOut)
async def edit_comment(
    task_id: str,
    comment_id: str,
    data: CommentUpdate,
    repo: ScopedRepository = Depends(get_repository),
):
    """Only the text of a comment can change"""
    comment = await _get_comment(repo, task_id, comment_id, Action.UPDATE)
    await repo.update(comment, {"comment_text": data.comment_text})
    await repo.commit()
    return _comment_to_out(comment)


@router.delete("/{task_id}/comments/{comment_id}")
async def delete_comment(
    task_id: str,
    comment_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    comment = await _get_comment(repo, task_id, comment_id, Action.DELETE)
    await repo.delete(comment)
    await repo.commit()
    return {"status": "deleted", "comment_id": comment_id}
