# routers/attachments.py - File attachments on tasks
import logging
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File as FastAPIFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from models import Task, TaskAttachment
from policies import Action
from repository import ScopedRepository, ConstraintViolation, get_repository
import storage

logger = logging.getLogger("clientdesk.attachments")

router = APIRouter(prefix="/api/v1/tasks", tags=["Attachments"])


# --- Schemas ---

class AttachmentOut(BaseModel):
    id: str
    task_id: str
    user_id: str
    file_url: str
    file_name: str
    file_size: int
    file_type: str = ""
    uploaded_at: Optional[str] = None


# --- Helpers ---

def _attachment_to_out(a: TaskAttachment) -> AttachmentOut:
    return AttachmentOut(
        id=a.id,
        task_id=a.task_id,
        user_id=a.user_id,
        file_url=a.file_url,
        file_name=a.file_name,
        file_size=a.file_size or 0,
        file_type=a.file_type or "",
        uploaded_at=a.uploaded_at.isoformat() if isinstance(a.uploaded_at, datetime) else None,
    )


async def _get_attachment(repo: ScopedRepository, task_id: str, attachment_id: str, action: Action) -> TaskAttachment:
    attachment = await repo.get_or_404(TaskAttachment, attachment_id, action)
    if attachment.task_id != task_id:
        raise HTTPException(status_code=404, detail="Attachment not found")
    return attachment


# --- Endpoints ---

@router.get("/{task_id}/attachments", response_model=List[AttachmentOut])
async def list_attachments(
    task_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    task = await repo.get_or_404(Task, task_id)
    attachments = await repo.list(
        TaskAttachment, TaskAttachment.task_id == task.id, order_by=TaskAttachment.uploaded_at.asc(),
    )
    return [_attachment_to_out(a) for a in attachments]


@router.post("/{task_id}/attachments", response_model=AttachmentOut, status_code=201)
async def upload_attachment(
    task_id: str,
    file: UploadFile = FastAPIFile(...),
    repo: ScopedRepository = Depends(get_repository),
):
    """Upload a file into the caller's storage folder and attach it to a task.

    The task is authorized before any of the body is read, and reading stops
    with 413 once the size limit is passed.
    """
    key = storage.object_key(repo.identity, task_id, file.filename)
    attachment = TaskAttachment(
        task_id=task_id,
        user_id=repo.identity,
        file_url=key,
        file_name=file.filename or storage.safe_filename(file.filename),
        file_type=file.content_type or "",
    )
    await repo.add(attachment)

    data = await storage.read_upload(file)
    attachment.file_size = len(data)

    storage.save_object(key, repo.identity, data)
    try:
        await repo.commit()
    except ConstraintViolation:
        storage.delete_object(key, repo.identity)
        raise

    logger.info(f"Stored attachment {attachment.id} ({len(data)} bytes) on task {task_id}")
    return _attachment_to_out(attachment)


@router.get("/{task_id}/attachments/{attachment_id}/download")
async def download_attachment(
    task_id: str,
    attachment_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    attachment = await _get_attachment(repo, task_id, attachment_id, Action.READ)
    path = storage.object_path(attachment.file_url, repo.identity)
    return FileResponse(
        path,
        media_type=attachment.file_type or "application/octet-stream",
        filename=attachment.file_name,
    )


@router.delete("/{task_id}/attachments/{attachment_id}")
async def delete_attachment(
    task_id: str,
    attachment_id: str,
    repo: ScopedRepository = Depends(get_repository),
):
    """Remove the attachment row and its stored file"""
    attachment = await _get_attachment(repo, task_id, attachment_id, Action.DELETE)
    key = attachment.file_url

    await repo.delete(attachment)
    await repo.commit()
    storage.delete_object(key, repo.identity)

    return {"status": "deleted", "attachment_id": attachment_id}
