from __future__ import annotations

from fastapi import APIRouter, Depends, status

from engdesk.activity import ActivitySink, record_activity
from engdesk.deps import authenticate, get_accounts, get_activity, get_projects, require_roles
from engdesk.errors import NotFound
from engdesk.models import Project, UserRole
from engdesk.repositories import AccountRepository, ProjectRepository, ensure_user_exists
from engdesk.schemas import ProjectCreateIn, ProjectOut
from engdesk.security import Claims

router = APIRouter(prefix="/projects", tags=["projects"], dependencies=[Depends(authenticate)])


def _project_out(p: Project) -> ProjectOut:
  return ProjectOut(
    id=p.id,
    name=p.name,
    code=p.code,
    description=p.description,
    status=p.status,
    clientId=p.client_id,
    managerId=p.manager_id,
    createdAt=p.created_at,
  )


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
async def create_project(
  payload: ProjectCreateIn,
  claims: Claims = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
  projects: ProjectRepository = Depends(get_projects),
  accounts: AccountRepository = Depends(get_accounts),
  activity: ActivitySink = Depends(get_activity),
) -> ProjectOut:
  await ensure_user_exists(accounts, payload.managerId, "managerId")
  p = await projects.create(
    name=payload.name,
    code=payload.code,
    description=payload.description,
    status=payload.status,
    client_id=payload.clientId,
    manager_id=payload.managerId,
  )
  await record_activity(
    activity,
    action="CREATE",
    entity="PROJECT",
    entity_id=p.id,
    user_id=claims.user_id,
    project_id=p.id,
    details={"name": p.name, "code": p.code},
  )
  return _project_out(p)


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(project_id: str, projects: ProjectRepository = Depends(get_projects)) -> ProjectOut:
  p = await projects.get(project_id)
  if not p:
    raise NotFound("Project not found", "PROJECT_NOT_FOUND")
  return _project_out(p)
