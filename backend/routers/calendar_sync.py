# routers/calendar_sync.py - Calendar event sync proxy
"""
Single endpoint, ``?action={list|create|update|delete}[&id=...]``, that checks
the caller's bearer token and forwards exactly one operation to the
calendar_events table. Responses are ``{"events": ...}``, ``{"event": ...}`` or
``{"success": true}``; every failure is ``{"error": "<message>"}``.
"""
import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService, bearer_token
from database import get_db_session
from models import CalendarEvent, utcnow
from policies import Action
from repository import ScopedRepository

logger = logging.getLogger("clientdesk.calendar_sync")

router = APIRouter(prefix="/functions/v1", tags=["Calendar Sync"])


# --- Schemas ---

class CalendarEventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str = ""
    date: dt.date
    time: str = ""


class CalendarEventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None


class SyncError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


# --- Helpers ---

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _event_to_dict(e: CalendarEvent) -> dict:
    return {
        "id": e.id,
        "user_id": e.user_id,
        "google_event_id": e.google_event_id,
        "title": e.title,
        "description": e.description or "",
        "date": e.date.isoformat(),
        "time": e.time or "",
        "created_at": e.created_at.isoformat() if e.created_at else None,
        "updated_at": e.updated_at.isoformat() if e.updated_at else None,
    }


async def _read_body(request: Request, schema):
    try:
        body = await request.json()
    except ValueError:
        raise SyncError(400, "Request body must be JSON")
    try:
        return schema.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise SyncError(400, f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid event")


def _require_id(event_id: Optional[str]) -> str:
    if not event_id:
        raise SyncError(400, "Event ID required")
    return event_id


async def _get_event(repo: ScopedRepository, event_id: str, action: Action) -> CalendarEvent:
    event = await repo.get(CalendarEvent, event_id, action)
    if event is None:
        raise SyncError(404, "Event not found")
    return event


# --- Actions ---

async def _list_events(repo: ScopedRepository, request: Request, event_id: Optional[str]) -> dict:
    events = await repo.list(
        CalendarEvent, order_by=[CalendarEvent.date.asc(), CalendarEvent.time.asc()],
    )
    return {"events": [_event_to_dict(e) for e in events]}


async def _create_event(repo: ScopedRepository, request: Request, event_id: Optional[str]) -> dict:
    data = await _read_body(request, CalendarEventCreate)
    event = CalendarEvent(user_id=repo.identity, google_event_id=None, **data.model_dump())
    await repo.add(event)
    await repo.commit()
    return {"event": _event_to_dict(event)}


async def _update_event(repo: ScopedRepository, request: Request, event_id: Optional[str]) -> dict:
    event_id = _require_id(event_id)
    data = await _read_body(request, CalendarEventUpdate)
    event = await _get_event(repo, event_id, Action.UPDATE)
    values = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    values["updated_at"] = utcnow()
    await repo.update(event, values)
    await repo.commit()
    return {"event": _event_to_dict(event)}


async def _delete_event(repo: ScopedRepository, request: Request, event_id: Optional[str]) -> dict:
    event_id = _require_id(event_id)
    event = await _get_event(repo, event_id, Action.DELETE)
    await repo.delete(event)
    await repo.commit()
    return {"success": True}


ACTIONS = {
    "list": _list_events,
    "create": _create_event,
    "update": _update_event,
    "delete": _delete_event,
}


# --- Endpoint ---

@router.api_route("/calendar-sync", methods=["GET", "POST"])
async def calendar_sync(
    request: Request,
    action: Optional[str] = None,
    event_id: Optional[str] = Query(default=None, alias="id"),
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate the bearer token, then run one calendar event operation"""
    token = bearer_token(request)
    if token is None:
        return _error(401, "Unauthorized")
    try:
        user = await AuthService.resolve_user(token, db)
    except HTTPException:
        return _error(401, "Unauthorized")
    except SQLAlchemyError as e:
        logger.error(f"Calendar sync token lookup failed: {e}", exc_info=True)
        return _error(500, "Calendar sync failed")

    handler = ACTIONS.get(action or "")
    if handler is None:
        return _error(400, "Invalid action")

    repo = ScopedRepository(db, user)
    try:
        return await handler(repo, request, event_id)
    except SyncError as e:
        return _error(e.status_code, e.message)
    except HTTPException as e:
        # Policy denials, missing parents and constraint violations
        return _error(e.status_code, str(e.detail))
    except SQLAlchemyError as e:
        logger.error(f"Calendar sync {action} failed for user {user.id}: {e}", exc_info=True)
        return _error(500, "Calendar sync failed")
