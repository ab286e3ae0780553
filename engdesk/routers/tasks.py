from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from engdesk.activity import ActivitySink, record_activity, send_notification
from engdesk.config import settings
from engdesk.deps import authenticate, get_accounts, get_activity, get_projects, get_tasks
from engdesk.errors import TaskNotFound
from engdesk.logging import get_logger
from engdesk.models import Comment, Task
from engdesk.repositories import AccountRepository, ProjectRepository, TaskRepository, ensure_user_exists
from engdesk.schemas import (
  CommentCreateIn,
  CommentOut,
  ReorderIn,
  TaskCreateIn,
  TaskDetailOut,
  TaskOut,
  TaskStatusIn,
  TaskUpdateIn,
)
from engdesk.security import Claims
from engdesk.tasks import service

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(authenticate)])
log = get_logger(__name__)


def _task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    projectId=t.project_id,
    parentId=t.parent_id,
    title=t.title,
    description=t.description,
    status=t.status,
    priority=t.priority,
    dueDate=t.due_date,
    startDate=t.start_date,
    estimatedHours=t.estimated_hours,
    completedAt=t.completed_at,
    order=t.order,
    assigneeId=t.assignee_id,
    creatorId=t.creator_id,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


def _comment_out(c: Comment) -> CommentOut:
  return CommentOut(id=c.id, taskId=c.task_id, authorId=c.author_id, content=c.content, createdAt=c.created_at)


# Fixed paths are declared before /{task_id} so they are not captured as ids.
@router.get("/my-tasks", response_model=list[TaskOut])
async def my_tasks(
  claims: Claims = Depends(authenticate),
  tasks: TaskRepository = Depends(get_tasks),
) -> list[TaskOut]:
  return [_task_out(t) for t in await tasks.list_for_assignee(claims.user_id)]


@router.post("/reorder")
async def reorder_tasks(
  payload: ReorderIn,
  claims: Claims = Depends(authenticate),
  tasks: TaskRepository = Depends(get_tasks),
) -> dict:
  count = await service.reorder(tasks, [(item.id, item.order) for item in payload.tasks])
  log.info("tasks_reordered", count=count)
  return {"message": "Tasks reordered successfully", "count": count}


@router.get("/{task_id}", response_model=TaskDetailOut)
async def get_task(task_id: str, tasks: TaskRepository = Depends(get_tasks)) -> TaskDetailOut:
  t = await service.get_task_or_404(tasks, task_id)
  subtasks = await tasks.list_subtasks(t.id)
  comments = await tasks.list_comments(t.id)
  return TaskDetailOut(
    **_task_out(t).model_dump(),
    subtasks=[_task_out(s) for s in subtasks],
    comments=[_comment_out(c) for c in comments],
  )


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
  payload: TaskCreateIn,
  claims: Claims = Depends(authenticate),
  tasks: TaskRepository = Depends(get_tasks),
  accounts: AccountRepository = Depends(get_accounts),
  projects: ProjectRepository = Depends(get_projects),
  activity: ActivitySink = Depends(get_activity),
) -> TaskOut:
  await ensure_user_exists(accounts, payload.assigneeId, "assigneeId")
  t = await service.create_task(
    tasks,
    projects,
    payload,
    creator_id=claims.user_id,
    allow_cross_project=settings.allow_cross_project_subtasks,
  )
  await record_activity(
    activity,
    action="CREATE",
    entity="TASK",
    entity_id=t.id,
    user_id=claims.user_id,
    project_id=t.project_id,
    details={"title": t.title},
  )
  if t.assignee_id and t.assignee_id != claims.user_id:
    await send_notification(
      activity,
      user_id=t.assignee_id,
      title="New Task Assigned",
      message=f"You have been assigned: {t.title}",
      type="info",
      link=f"/tasks/{t.id}",
    )
  return _task_out(t)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  claims: Claims = Depends(authenticate),
  tasks: TaskRepository = Depends(get_tasks),
  accounts: AccountRepository = Depends(get_accounts),
  activity: ActivitySink = Depends(get_activity),
) -> TaskOut:
  await ensure_user_exists(accounts, payload.assigneeId, "assigneeId")
  t, changed = await service.update_task(tasks, task_id, payload)
  await record_activity(
    activity,
    action="UPDATE",
    entity="TASK",
    entity_id=t.id,
    user_id=claims.user_id,
    project_id=t.project_id,
    details=changed,
  )
  return _task_out(t)


@router.patch("/{task_id}/status", response_model=TaskOut)
async def update_task_status(
  task_id: str,
  payload: TaskStatusIn,
  claims: Claims = Depends(authenticate),
  tasks: TaskRepository = Depends(get_tasks),
  activity: ActivitySink = Depends(get_activity),
) -> TaskOut:
  t, previous = await service.change_status(tasks, task_id, payload.status)
  await record_activity(
    activity,
    action="STATUS_CHANGE",
    entity="TASK",
    entity_id=t.id,
    user_id=claims.user_id,
    project_id=t.project_id,
    details={"from": previous.value, "to": t.status},
  )
  return _task_out(t)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
  task_id: str,
  claims: Claims = Depends(authenticate),
  tasks: TaskRepository = Depends(get_tasks),
  activity: ActivitySink = Depends(get_activity),
) -> Response:
  t = await service.get_task_or_404(tasks, task_id)
  project_id = t.project_id
  if not await tasks.delete(task_id):
    raise TaskNotFound(task_id)
  await record_activity(
    activity,
    action="DELETE",
    entity="TASK",
    entity_id=task_id,
    user_id=claims.user_id,
    project_id=project_id,
  )
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{task_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_comment(
  task_id: str,
  payload: CommentCreateIn,
  claims: Claims = Depends(authenticate),
  tasks: TaskRepository = Depends(get_tasks),
) -> CommentOut:
  await service.get_task_or_404(tasks, task_id)
  c = await tasks.add_comment(task_id=task_id, author_id=claims.user_id, content=payload.content)
  return _comment_out(c)
