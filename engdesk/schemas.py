from __future__ import annotations

import re
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from engdesk.models import TaskPriority, TaskStatus, UserRole

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      dt = datetime.fromisoformat(s)
    else:
      dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def _normalize_email(value: object) -> object:
  if not isinstance(value, str):
    return value
  email = value.strip().lower()
  local, _, domain = email.partition("@")
  if not local or not domain or "." not in domain:
    raise ValueError("Invalid email")
  return email


class UserOut(BaseModel):
  id: str
  name: str
  email: str
  role: UserRole
  phone: str | None = None
  department: str | None = None
  avatar: str | None = None
  isActive: bool = True
  lastLoginAt: datetime | None = None
  createdAt: datetime | None = None


class LoginIn(BaseModel):
  email: str
  password: str = Field(min_length=6)

  @field_validator("email", mode="before")
  @classmethod
  def _email(cls, v: object) -> object:
    return _normalize_email(v)


class RegisterIn(BaseModel):
  name: str = Field(min_length=2, max_length=120)
  email: str = Field(max_length=320)
  password: str = Field(min_length=8, max_length=200)
  phone: str | None = None
  department: str | None = None

  @field_validator("email", mode="before")
  @classmethod
  def _email(cls, v: object) -> object:
    return _normalize_email(v)


class RefreshIn(BaseModel):
  refreshToken: str | None = None


class TokenPairOut(BaseModel):
  accessToken: str
  refreshToken: str


class AuthOut(TokenPairOut):
  user: UserOut


class ChangePasswordIn(BaseModel):
  currentPassword: str
  newPassword: str = Field(min_length=8, max_length=200)


class ClaimsOut(BaseModel):
  userId: str
  email: str
  role: UserRole


class SessionOut(BaseModel):
  authenticated: bool
  user: ClaimsOut | None = None


class UserCreateIn(BaseModel):
  name: str = Field(min_length=2, max_length=120)
  email: str = Field(max_length=320)
  password: str = Field(min_length=8, max_length=200)
  role: UserRole = UserRole.VIEWER
  phone: str | None = None
  department: str | None = None

  @field_validator("email", mode="before")
  @classmethod
  def _email(cls, v: object) -> object:
    return _normalize_email(v)


class UserSelfUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=2, max_length=120)
  phone: str | None = None
  department: str | None = None
  avatar: str | None = Field(default=None, max_length=2000)

  @field_validator("avatar")
  @classmethod
  def _avatar_url(cls, v: str | None) -> str | None:
    if v is not None and not v.startswith(("http://", "https://")):
      raise ValueError("avatar must be an http(s) URL")
    return v


class UserAdminUpdateIn(UserSelfUpdateIn):
  email: str | None = Field(default=None, max_length=320)
  role: UserRole | None = None
  isActive: bool | None = None

  @field_validator("email", mode="before")
  @classmethod
  def _email(cls, v: object) -> object:
    return _normalize_email(v)


class PasswordResetIn(BaseModel):
  password: str = Field(min_length=8, max_length=200)


class ProjectCreateIn(BaseModel):
  name: str = Field(min_length=2, max_length=200)
  code: str = Field(min_length=2, max_length=64)
  description: str | None = None
  status: str = "PLANNING"
  clientId: str | None = None
  managerId: str | None = None


class ProjectOut(BaseModel):
  id: str
  name: str
  code: str
  description: str | None
  status: str
  clientId: str | None
  managerId: str | None
  createdAt: datetime | None = None


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=2, max_length=300)
  description: str | None = None
  status: TaskStatus = TaskStatus.TODO
  priority: TaskPriority = TaskPriority.MEDIUM
  dueDate: datetime | None = None
  startDate: datetime | None = None
  estimatedHours: float | None = Field(default=None, gt=0)
  projectId: str
  assigneeId: str | None = None
  parentId: str | None = None

  @field_validator("dueDate", "startDate", mode="before")
  @classmethod
  def _dates_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=2, max_length=300)
  description: str | None = None
  status: TaskStatus | None = None
  priority: TaskPriority | None = None
  dueDate: datetime | None = None
  startDate: datetime | None = None
  estimatedHours: float | None = Field(default=None, gt=0)
  assigneeId: str | None = None

  @field_validator("dueDate", "startDate", mode="before")
  @classmethod
  def _dates_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskStatusIn(BaseModel):
  status: TaskStatus


class ReorderItemIn(BaseModel):
  id: str
  order: int


class ReorderIn(BaseModel):
  tasks: list[ReorderItemIn]


class CommentCreateIn(BaseModel):
  content: str = Field(min_length=1, max_length=10000)


class CommentOut(BaseModel):
  id: str
  taskId: str
  authorId: str
  content: str
  createdAt: datetime | None = None


class TaskOut(BaseModel):
  id: str
  projectId: str
  parentId: str | None
  title: str
  description: str | None
  status: TaskStatus
  priority: TaskPriority
  dueDate: datetime | None
  startDate: datetime | None
  estimatedHours: float | None
  completedAt: datetime | None
  order: int
  assigneeId: str | None
  creatorId: str
  createdAt: datetime | None = None
  updatedAt: datetime | None = None


class TaskDetailOut(TaskOut):
  subtasks: list[TaskOut] = []
  comments: list[CommentOut] = []
