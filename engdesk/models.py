from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def _uuid() -> str:
  return str(uuid.uuid4())


class UserRole(str, enum.Enum):
  ADMIN = "ADMIN"
  MANAGER = "MANAGER"
  ENGINEER = "ENGINEER"
  TECHNICIAN = "TECHNICIAN"
  VIEWER = "VIEWER"


class TaskStatus(str, enum.Enum):
  TODO = "TODO"
  IN_PROGRESS = "IN_PROGRESS"
  REVIEW = "REVIEW"
  DONE = "DONE"
  BLOCKED = "BLOCKED"


class TaskPriority(str, enum.Enum):
  LOW = "LOW"
  MEDIUM = "MEDIUM"
  HIGH = "HIGH"
  URGENT = "URGENT"


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default=UserRole.VIEWER.value)
  phone: Mapped[str | None] = mapped_column(String, nullable=True)
  department: Mapped[str | None] = mapped_column(String, nullable=True)
  avatar: Mapped[str | None] = mapped_column(String, nullable=True)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Project(Base):
  __tablename__ = "projects"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  name: Mapped[str] = mapped_column(String, nullable=False)
  code: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default="PLANNING")
  client_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  manager_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
  parent_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
  assignee_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
  creator_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default=TaskStatus.TODO.value)
  priority: Mapped[str] = mapped_column(String, nullable=False, default=TaskPriority.MEDIUM.value)
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  estimated_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Comment(Base):
  __tablename__ = "comments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
  author_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class ActivityLog(Base):
  __tablename__ = "activity_logs"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  action: Mapped[str] = mapped_column(String, nullable=False)  # CREATE | UPDATE | DELETE | STATUS_CHANGE
  entity: Mapped[str] = mapped_column(String, nullable=False)  # TASK | PROJECT | USER
  entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
  user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
  project_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Notification(Base):
  __tablename__ = "notifications"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  type: Mapped[str] = mapped_column(String, nullable=False, default="info")
  link: Mapped[str | None] = mapped_column(String, nullable=True)
  read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
