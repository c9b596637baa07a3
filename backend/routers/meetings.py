# routers/meetings.py - Meetings shown on the calendar page
import datetime as dt
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from models import Meeting
from policies import Action
from repository import ScopedRepository, get_repository

router = APIRouter(prefix="/api/v1/meetings", tags=["Meetings"])


# --- Schemas ---

class MeetingCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str = ""
    date: dt.date
    time: str = ""


class MeetingUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None


class MeetingOut(BaseModel):
    id: str
    user_id: str
    title: str
    description: str = ""
    date: str
    time: str = ""
    created_at: Optional[str] = None


def _meeting_to_out(m: Meeting) -> MeetingOut:
    return MeetingOut(
        id=m.id,
        user_id=m.user_id,
        title=m.title,
        description=m.description or "",
        date=m.date.isoformat(),
        time=m.time or "",
        created_at=m.created_at.isoformat() if isinstance(m.created_at, dt.datetime) else None,
    )


# --- Endpoints ---

@router.get("", response_model=List[MeetingOut])
async def list_meetings(
    repo: ScopedRepository = Depends(get_repository),
    date_from: Optional[dt.date] = None,
    date_to: Optional[dt.date] = None,
):
    """List meetings ordered by date, optionally within a date window"""
    criteria = []
    if date_from:
        criteria.append(Meeting.date >= date_from)
    if date_to:
        criteria.append(Meeting.date <= date_to)
    meetings = await repo.list(Meeting, *criteria, order_by=[Meeting.date.asc(), Meeting.time.asc()])
    return [_meeting_to_out(m) for m in meetings]


@router.post("", response_model=MeetingOut, status_code=201)
async def create_meeting(
    data: MeetingCreate,
    repo: ScopedRepository = Depends(get_repository),
):
    meeting = Meeting(user_id=repo.identity, **data.model_dump())
    await repo.add(meeting)
    await repo.commit()
    return _meeting_to_out(meeting)


@router.get("/{meeting_id}", response_model=MeetingOut)
async def get_meeting(
    meeting_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    meeting = await repo.get_or_404(Meeting, meeting_id)
    return _meeting_to_out(meeting)


@router.patch("/{meeting_id}", response_model=MeetingOut)
async def update_meeting(
    meeting_id: str,
    data: MeetingUpdate,
    repo: ScopedRepository = Depends(get_repository),
):
    meeting = await repo.get_or_404(Meeting, meeting_id, Action.UPDATE)
    values = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    await repo.update(meeting, values)
    await repo.commit()
    return _meeting_to_out(meeting)


@router.delete("/{meeting_id}")
async def delete_meeting(
    meeting_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    meeting = await repo.get_or_404(Meeting, meeting_id, Action.DELETE)
    await repo.delete(meeting)
    await repo.commit()
    return {"status": "deleted", "meeting_id": meeting_id}
