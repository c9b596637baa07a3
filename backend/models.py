# models.py - Database models for ClientDesk
# - String UUID primary keys everywhere
# - Every row carries (or inherits through a parent) an owning user
# - Enumerated columns are plain text guarded by CHECK constraints
# - Parent deletes cascade in the database (ON DELETE CASCADE)

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Date, JSON, Boolean, BigInteger,
    ForeignKey, Text, Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def _in_clause(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


# ============================================================
# ENUMS
# ============================================================

class CategoryTag(str, PyEnum):
    TASKS = "tasks"
    GTM = "gtm"
    RECURRING = "recurring"


class TaskStatus(str, PyEnum):
    PENDING = "Pending"
    IN_PROGRESS = "In-Progress"
    COMPLETED = "Completed"


class TaskPriority(str, PyEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    display_name = Column(String, nullable=False, default="")
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    id = Column(String, primary_key=True, default=new_uuid)
    jti = Column(String, unique=True, nullable=False, index=True)  # JWT ID
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    revoked_at = Column(DateTime(timezone=True), default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)  # When the token would have expired


# ============================================================
# CLIENTS
# ============================================================

class Client(Base):
    __tablename__ = "clients"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    # Relationships (children are removed by the database, never loaded for deletes)
    categories = relationship(
        "ClientCategory", back_populates="client",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    tasks = relationship("Task", back_populates="client", passive_deletes=True)


class ClientCategory(Base):
    """One of the fixed category buckets a client's tasks are filed under"""
    __tablename__ = "client_categories"

    id = Column(String, primary_key=True, default=new_uuid)
    client_id = Column(String, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    client = relationship("Client", back_populates="categories")

    __table_args__ = (
        UniqueConstraint("client_id", "category", name="uq_client_category"),
        CheckConstraint(_in_clause("category", CategoryTag), name="ck_client_category_tag"),
    )


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Nullable: tasks may exist without a client
    client_id = Column(String, ForeignKey("clients.id", ondelete="CASCADE"), nullable=True, index=True)
    category = Column(String, nullable=False, default=CategoryTag.TASKS.value)

    # Core fields
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    assignee = Column(String, default="")
    status = Column(String, nullable=False, default=TaskStatus.PENDING.value)
    priority = Column(String, nullable=False, default=TaskPriority.MEDIUM.value)

    # Scheduling
    due_date = Column(DateTime(timezone=True), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    tags = Column(JSON, default=list)  # Free-form tags

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    client = relationship("Client", back_populates="tasks")
    comments = relationship(
        "TaskComment", back_populates="task",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    attachments = relationship(
        "TaskAttachment", back_populates="task",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(_in_clause("category", CategoryTag), name="ck_task_category"),
        CheckConstraint(_in_clause("status", TaskStatus), name="ck_task_status"),
        CheckConstraint(_in_clause("priority", TaskPriority), name="ck_task_priority"),
        Index("idx_task_client_category", "client_id", "category"),
    )


class TaskComment(Base):
    """Comments on a task"""
    __tablename__ = "task_comments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    user_email = Column(String, nullable=False)  # Denormalised for display
    comment_text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="comments")


class TaskAttachment(Base):
    """File attachments on a task"""
    __tablename__ = "task_attachments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    file_url = Column(String, nullable=False)  # Storage path, "<user_id>/<task_id>/<object>"
    file_name = Column(String, nullable=False)
    file_size = Column(BigInteger, default=0)
    file_type = Column(String, default="")  # MIME type
    uploaded_at = Column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="attachments")


# ============================================================
# CALENDAR
# ============================================================

class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    date = Column(Date, nullable=False, index=True)
    time = Column(String, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)


class CalendarEvent(Base):
    """Calendar entry managed through the sync proxy"""
    __tablename__ = "calendar_events"

    id = Column(String, primary_key=True, default=new_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    google_event_id = Column(String, nullable=True, index=True)  # External calendar id, set once synced
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    date = Column(Date, nullable=False, index=True)
    time = Column(String, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
