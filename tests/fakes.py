from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Sequence

from engdesk.errors import DuplicateEntry, TaskNotFound
from engdesk.models import Comment, Project, Task, TaskStatus, User, utcnow

_RANK = {"URGENT": 3, "HIGH": 2, "MEDIUM": 1, "LOW": 0}


def _id() -> str:
  return str(uuid.uuid4())


class InMemoryAccounts:
  def __init__(self) -> None:
    self.users: dict[str, User] = {}

  async def find_by_email(self, email: str) -> User | None:
    key = email.strip().lower()
    return next((u for u in self.users.values() if u.email == key), None)

  async def find_by_id(self, user_id: str) -> User | None:
    return self.users.get(user_id)

  async def list_users(self, *, role: str | None = None, is_active: bool | None = None) -> list[User]:
    out = [u for u in self.users.values() if (role is None or u.role == role) and (is_active is None or u.is_active == is_active)]
    return sorted(out, key=lambda u: u.name)

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
    if await self.find_by_email(email):
      raise DuplicateEntry("Email already in use", "EMAIL_EXISTS")
    now = utcnow()
    u = User(
      id=_id(),
      email=email.strip().lower(),
      name=name,
      password_hash=password_hash,
      role=role,
      phone=phone,
      department=department,
      avatar=None,
      is_active=True,
      last_login_at=None,
      created_at=now,
      updated_at=now,
    )
    self.users[u.id] = u
    return u

  async def update(self, user_id: str, fields: dict[str, Any]) -> User | None:
    u = self.users.get(user_id)
    if not u:
      return None
    for key, val in fields.items():
      setattr(u, key, val)
    u.updated_at = utcnow()
    return u

  async def update_last_login(self, user_id: str, at: datetime) -> None:
    if user_id in self.users:
      self.users[user_id].last_login_at = at

  async def update_password(self, user_id: str, password_hash: str) -> None:
    if user_id in self.users:
      self.users[user_id].password_hash = password_hash

  async def delete(self, user_id: str) -> bool:
    return self.users.pop(user_id, None) is not None


class InMemoryProjects:
  def __init__(self) -> None:
    self.projects: dict[str, Project] = {}

  async def get(self, project_id: str) -> Project | None:
    return self.projects.get(project_id)

  async def create(self, **fields: Any) -> Project:
    if any(p.code == fields.get("code") for p in self.projects.values()):
      raise DuplicateEntry("Project code already exists", "DUPLICATE_CODE")
    now = utcnow()
    fields.setdefault("status", "PLANNING")
    fields.setdefault("description", None)
    fields.setdefault("client_id", None)
    fields.setdefault("manager_id", None)
    p = Project(id=_id(), created_at=now, updated_at=now, **fields)
    self.projects[p.id] = p
    return p


class InMemoryTasks:
  def __init__(self) -> None:
    self.tasks: dict[str, Task] = {}
    self.comments: list[Comment] = []

  async def get(self, task_id: str) -> Task | None:
    return self.tasks.get(task_id)

  async def max_order(self, project_id: str, parent_id: str | None) -> int | None:
    orders = [t.order for t in self.tasks.values() if t.project_id == project_id and t.parent_id == parent_id]
    return max(orders) if orders else None

  async def add(self, task: Task) -> Task:
    now = utcnow()
    if task.id is None:
      task.id = _id()
    task.created_at = now
    task.updated_at = now
    self.tasks[task.id] = task
    return task

  async def save(self, task: Task) -> Task:
    task.updated_at = utcnow()
    self.tasks[task.id] = task
    return task

  async def delete(self, task_id: str) -> bool:
    return self.tasks.pop(task_id, None) is not None

  async def apply_orders(self, assignments: Sequence[tuple[str, int]]) -> None:
    for task_id, _ in assignments:
      if task_id not in self.tasks:
        raise TaskNotFound(task_id)
    for task_id, order in assignments:
      self.tasks[task_id].order = order

  async def list_for_assignee(self, user_id: str) -> list[Task]:
    mine = [t for t in self.tasks.values() if t.assignee_id == user_id and t.status != TaskStatus.DONE.value]
    return sorted(mine, key=lambda t: -_RANK.get(t.priority, 0))

  async def list_subtasks(self, parent_id: str) -> list[Task]:
    return sorted((t for t in self.tasks.values() if t.parent_id == parent_id), key=lambda t: t.order)

  async def add_comment(self, *, task_id: str, author_id: str, content: str) -> Comment:
    c = Comment(id=_id(), task_id=task_id, author_id=author_id, content=content, created_at=utcnow())
    self.comments.append(c)
    return c

  async def list_comments(self, task_id: str) -> list[Comment]:
    return [c for c in reversed(self.comments) if c.task_id == task_id]


class RecordingActivity:
  def __init__(self) -> None:
    self.records: list[dict[str, Any]] = []
    self.notifications: list[dict[str, Any]] = []

  async def record(self, **kwargs: Any) -> None:
    self.records.append(kwargs)

  async def notify(self, **kwargs: Any) -> None:
    self.notifications.append(kwargs)


class FailingActivity:
  async def record(self, **kwargs: Any) -> None:
    raise RuntimeError("activity store down")

  async def notify(self, **kwargs: Any) -> None:
    raise RuntimeError("notification store down")
