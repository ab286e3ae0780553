from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from engdesk.errors import DuplicateEntry, TaskNotFound, ValidationError
from engdesk.models import Comment, Project, Task, TaskStatus, User


class AccountRepository(Protocol):
  async def find_by_email(self, email: str) -> User | None: ...

  async def find_by_id(self, user_id: str) -> User | None: ...

  async def list_users(self, *, role: str | None = None, is_active: bool | None = None) -> list[User]: ...

  async def create(
    self,
    *,
    email: str,
    name: str,
    password_hash: str,
    role: str,
    phone: str | None = None,
    department: str | None = None,
  ) -> User: ...

  async def update(self, user_id: str, fields: dict[str, Any]) -> User | None: ...

  async def update_last_login(self, user_id: str, at: datetime) -> None: ...

  async def update_password(self, user_id: str, password_hash: str) -> None: ...

  async def delete(self, user_id: str) -> bool: ...


class ProjectRepository(Protocol):
  async def get(self, project_id: str) -> Project | None: ...

  async def create(self, **fields: Any) -> Project: ...


class TaskRepository(Protocol):
  async def get(self, task_id: str) -> Task | None: ...

  async def max_order(self, project_id: str, parent_id: str | None) -> int | None: ...

  async def add(self, task: Task) -> Task: ...

  async def save(self, task: Task) -> Task: ...

  async def delete(self, task_id: str) -> bool: ...

  async def apply_orders(self, assignments: Sequence[tuple[str, int]]) -> None: ...

  async def list_for_assignee(self, user_id: str) -> list[Task]: ...

  async def list_subtasks(self, parent_id: str) -> list[Task]: ...

  async def add_comment(self, *, task_id: str, author_id: str, content: str) -> Comment: ...

  async def list_comments(self, task_id: str) -> list[Comment]: ...


def is_unique_violation(exc: IntegrityError) -> bool:
  """True for unique-constraint collisions; foreign-key and not-null failures are not duplicates."""
  orig = getattr(exc, "orig", None)
  # asyncpg errors surface sqlstate 23505 through the SQLAlchemy adapter
  if getattr(orig, "sqlstate", None) == "23505" or getattr(orig, "pgcode", None) == "23505":
    return True
  return "unique constraint" in str(orig if orig is not None else exc).lower()


def integrity_error(exc: IntegrityError, duplicate: DuplicateEntry | None = None) -> DuplicateEntry | ValidationError:
  if is_unique_violation(exc):
    return duplicate or DuplicateEntry(f"A record with this {_unique_field(exc)} already exists")
  return ValidationError("Referenced record does not exist", "INVALID_REFERENCE")


async def _commit(db: AsyncSession, duplicate: DuplicateEntry | None = None) -> None:
  try:
    await db.commit()
  except IntegrityError as exc:
    await db.rollback()
    raise integrity_error(exc, duplicate) from exc


def _unique_field(exc: IntegrityError) -> str:
  msg = str(getattr(exc, "orig", exc)).lower()
  if "email" in msg:
    return "email"
  if "code" in msg:
    return "code"
  return "field"


class SqlAccountRepository:
  def __init__(self, db: AsyncSession) -> None:
    self.db = db

  async def find_by_email(self, email: str) -> User | None:
    res = await self.db.execute(select(User).where(User.email == email.strip().lower()))
    return res.scalar_one_or_none()

  async def find_by_id(self, user_id: str) -> User | None:
    res = await self.db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()

  async def list_users(self, *, role: str | None = None, is_active: bool | None = None) -> list[User]:
    q = select(User).order_by(User.name.asc())
    if role is not None:
      q = q.where(User.role == role)
    if is_active is not None:
      q = q.where(User.is_active.is_(is_active))
    res = await self.db.execute(q)
    return list(res.scalars().all())

  async def create(
    self,
    *,
    email: str,
    name: str,
    password_hash: str,
    role: str,
    phone: str | None = None,
    department: str | None = None,
  ) -> User:
    u = User(
      email=email.strip().lower(),
      name=name,
      password_hash=password_hash,
      role=role,
      phone=phone,
      department=department,
      is_active=True,
    )
    self.db.add(u)
    await _commit(self.db, DuplicateEntry("Email already in use", "EMAIL_EXISTS"))
    return u

  async def update(self, user_id: str, fields: dict[str, Any]) -> User | None:
    u = await self.find_by_id(user_id)
    if not u:
      return None
    for key, val in fields.items():
      if key == "email" and isinstance(val, str):
        val = val.strip().lower()
      setattr(u, key, val)
    await _commit(self.db)
    return u

  async def update_last_login(self, user_id: str, at: datetime) -> None:
    await self.db.execute(update(User).where(User.id == user_id).values(last_login_at=at))
    await self.db.commit()

  async def update_password(self, user_id: str, password_hash: str) -> None:
    await self.db.execute(update(User).where(User.id == user_id).values(password_hash=password_hash))
    await self.db.commit()

  async def delete(self, user_id: str) -> bool:
    res = await self.db.execute(delete(User).where(User.id == user_id))
    await self.db.commit()
    return bool(res.rowcount)


class SqlProjectRepository:
  def __init__(self, db: AsyncSession) -> None:
    self.db = db

  async def get(self, project_id: str) -> Project | None:
    res = await self.db.execute(select(Project).where(Project.id == project_id))
    return res.scalar_one_or_none()

  async def create(self, **fields: Any) -> Project:
    p = Project(**fields)
    self.db.add(p)
    await _commit(self.db, DuplicateEntry("Project code already exists", "DUPLICATE_CODE"))
    return p


_PRIORITY_RANK = case(
  {"URGENT": 3, "HIGH": 2, "MEDIUM": 1, "LOW": 0},
  value=Task.priority,
  else_=0,
)


class SqlTaskRepository:
  def __init__(self, db: AsyncSession) -> None:
    self.db = db

  async def get(self, task_id: str) -> Task | None:
    res = await self.db.execute(select(Task).where(Task.id == task_id))
    return res.scalar_one_or_none()

  async def max_order(self, project_id: str, parent_id: str | None) -> int | None:
    q = select(func.max(Task.order)).where(Task.project_id == project_id)
    if parent_id is None:
      q = q.where(Task.parent_id.is_(None))
    else:
      q = q.where(Task.parent_id == parent_id)
    res = await self.db.execute(q)
    return res.scalar_one()

  async def add(self, task: Task) -> Task:
    self.db.add(task)
    await _commit(self.db)
    return task

  async def save(self, task: Task) -> Task:
    self.db.add(task)
    await _commit(self.db)
    return task

  async def delete(self, task_id: str) -> bool:
    res = await self.db.execute(delete(Task).where(Task.id == task_id))
    await self.db.commit()
    return bool(res.rowcount)

  async def apply_orders(self, assignments: Sequence[tuple[str, int]]) -> None:
    # One transaction: every row must be updated or none is.
    try:
      for task_id, order in assignments:
        res = await self.db.execute(update(Task).where(Task.id == task_id).values(order=order))
        if res.rowcount == 0:
          raise TaskNotFound(task_id)
      await self.db.commit()
    except Exception:
      await self.db.rollback()
      raise

  async def list_for_assignee(self, user_id: str) -> list[Task]:
    res = await self.db.execute(
      select(Task)
      .where(Task.assignee_id == user_id, Task.status != TaskStatus.DONE.value)
      .order_by(_PRIORITY_RANK.desc(), Task.due_date.asc())
    )
    return list(res.scalars().all())

  async def list_subtasks(self, parent_id: str) -> list[Task]:
    res = await self.db.execute(select(Task).where(Task.parent_id == parent_id).order_by(Task.order.asc()))
    return list(res.scalars().all())

  async def add_comment(self, *, task_id: str, author_id: str, content: str) -> Comment:
    c = Comment(task_id=task_id, author_id=author_id, content=content)
    self.db.add(c)
    await _commit(self.db)
    return c

  async def list_comments(self, task_id: str) -> list[Comment]:
    res = await self.db.execute(select(Comment).where(Comment.task_id == task_id).order_by(Comment.created_at.desc()))
    return list(res.scalars().all())


async def ensure_user_exists(accounts: AccountRepository, user_id: str | None, field: str) -> None:
  """Reject references to unknown users before they reach a foreign key."""
  if user_id and not await accounts.find_by_id(user_id):
    raise ValidationError(
      "Referenced user does not exist",
      "INVALID_REFERENCE",
      details=[{"field": field, "message": "User not found"}],
    )
