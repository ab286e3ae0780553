from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from engdesk.errors import TaskNotFound, ValidationError
from engdesk.models import Task, TaskStatus


def _now() -> datetime:
  return datetime.now(timezone.utc)


def next_order(max_sibling_order: int | None) -> int:
  # siblings share (project_id, parent_id); first one gets 1
  return (max_sibling_order or 0) + 1


def completed_at_after(
  current_status: TaskStatus | str,
  current_completed_at: datetime | None,
  new_status: TaskStatus | str,
  now: datetime,
) -> datetime | None:
  current = TaskStatus(current_status)
  new = TaskStatus(new_status)
  if new != TaskStatus.DONE:
    return None
  if current != TaskStatus.DONE:
    return now
  return current_completed_at


def apply_status(task: Task, new_status: TaskStatus | str, *, now: datetime | None = None) -> Task:
  """Move `task` to `new_status`, deriving `completed_at`. Touches nothing else."""
  status = TaskStatus(new_status)
  task.completed_at = completed_at_after(task.status, task.completed_at, status, now or _now())
  task.status = status.value
  return task


def check_parent(project_id: str, parent: Task | None, parent_id: str | None, *, allow_cross_project: bool) -> None:
  if parent_id is None:
    return
  if parent is None:
    raise TaskNotFound(parent_id)
  if not allow_cross_project and parent.project_id != project_id:
    raise ValidationError("Parent task belongs to a different project", "PARENT_PROJECT_MISMATCH")


def normalize_reorder(assignments: Sequence[tuple[str, int]]) -> list[tuple[str, int]]:
  out = [(str(task_id), int(order)) for task_id, order in assignments]
  if not out:
    raise ValidationError("At least one task is required", "EMPTY_REORDER")
  seen: set[str] = set()
  for task_id, _ in out:
    if task_id in seen:
      raise ValidationError(f"Task {task_id} appears more than once", "DUPLICATE_TASK_IN_REORDER")
    seen.add(task_id)
  return out
