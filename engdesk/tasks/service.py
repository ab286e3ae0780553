from __future__ import annotations

from datetime import datetime
from typing import Sequence

from engdesk.errors import NotFound, TaskNotFound
from engdesk.models import Task, TaskPriority, TaskStatus
from engdesk.repositories import ProjectRepository, TaskRepository
from engdesk.schemas import TaskCreateIn, TaskUpdateIn
from engdesk.tasks.lifecycle import apply_status, check_parent, next_order, normalize_reorder

# request field -> model attribute; completed_at is derived and never listed here
_UPDATABLE = [
  ("title", "title"),
  ("description", "description"),
  ("priority", "priority"),
  ("dueDate", "due_date"),
  ("startDate", "start_date"),
  ("estimatedHours", "estimated_hours"),
  ("assigneeId", "assignee_id"),
]


async def get_task_or_404(tasks: TaskRepository, task_id: str) -> Task:
  t = await tasks.get(task_id)
  if not t:
    raise TaskNotFound(task_id)
  return t


async def create_task(
  tasks: TaskRepository,
  projects: ProjectRepository,
  payload: TaskCreateIn,
  *,
  creator_id: str,
  allow_cross_project: bool,
  now: datetime | None = None,
) -> Task:
  if not await projects.get(payload.projectId):
    raise NotFound("Project not found", "PROJECT_NOT_FOUND")
  parent = await tasks.get(payload.parentId) if payload.parentId else None
  check_parent(payload.projectId, parent, payload.parentId, allow_cross_project=allow_cross_project)

  max_order = await tasks.max_order(payload.projectId, payload.parentId)
  t = Task(
    project_id=payload.projectId,
    parent_id=payload.parentId,
    assignee_id=payload.assigneeId,
    creator_id=creator_id,
    title=payload.title,
    description=payload.description,
    status=TaskStatus.TODO.value,
    completed_at=None,
    priority=payload.priority.value,
    due_date=payload.dueDate,
    start_date=payload.startDate,
    estimated_hours=payload.estimatedHours,
    order=next_order(max_order),
  )
  apply_status(t, payload.status, now=now)
  return await tasks.add(t)


async def update_task(
  tasks: TaskRepository,
  task_id: str,
  payload: TaskUpdateIn,
  *,
  now: datetime | None = None,
) -> tuple[Task, dict]:
  """Apply the fields the caller actually sent. Returns the task and what changed."""
  t = await get_task_or_404(tasks, task_id)
  fields_set = payload.model_fields_set
  changed: dict = {}
  for field_name, attr in _UPDATABLE:
    if field_name not in fields_set:
      continue
    val = getattr(payload, field_name)
    if val is None and field_name in ("title", "priority"):
      # not nullable
      continue
    if isinstance(val, TaskPriority):
      val = val.value
    setattr(t, attr, val)
    changed[field_name] = val
  if "status" in fields_set and payload.status is not None:
    apply_status(t, payload.status, now=now)
    changed["status"] = payload.status.value
  return await tasks.save(t), changed


async def change_status(
  tasks: TaskRepository,
  task_id: str,
  new_status: TaskStatus,
  *,
  now: datetime | None = None,
) -> tuple[Task, TaskStatus]:
  t = await get_task_or_404(tasks, task_id)
  previous = TaskStatus(t.status)
  apply_status(t, new_status, now=now)
  return await tasks.save(t), previous


async def reorder(tasks: TaskRepository, assignments: Sequence[tuple[str, int]]) -> int:
  batch = normalize_reorder(assignments)
  await tasks.apply_orders(batch)
  return len(batch)
