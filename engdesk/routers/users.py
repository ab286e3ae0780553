from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Response, status

from engdesk.deps import authenticate, get_accounts, require_roles
from engdesk.errors import DuplicateEntry, Forbidden, NotFound, ValidationError
from engdesk.logging import get_logger
from engdesk.models import User, UserRole
from engdesk.permissions import can_manage_users, is_self
from engdesk.repositories import AccountRepository
from engdesk.routers.auth import user_out
from engdesk.schemas import PasswordResetIn, UserAdminUpdateIn, UserCreateIn, UserOut, UserSelfUpdateIn
from engdesk.security import Claims, hash_password

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(authenticate)])
log = get_logger(__name__)

_SELF_FIELDS = {"name": "name", "phone": "phone", "department": "department", "avatar": "avatar"}
_ADMIN_FIELDS = {**_SELF_FIELDS, "email": "email", "role": "role", "isActive": "is_active"}


def _fields(payload: UserSelfUpdateIn, mapping: dict[str, str]) -> dict[str, Any]:
  out: dict[str, Any] = {}
  for field_name, val in payload.model_dump(exclude_unset=True).items():
    attr = mapping.get(field_name)
    if attr is None:
      continue
    if isinstance(val, UserRole):
      val = val.value
    out[attr] = val
  return out


async def _admin_update(user_id: str, payload: UserAdminUpdateIn, accounts: AccountRepository) -> User | None:
  fields = _fields(payload, _ADMIN_FIELDS)
  if "email" in fields:
    other = await accounts.find_by_email(fields["email"])
    if other and other.id != user_id:
      raise DuplicateEntry("Email already in use", "EMAIL_EXISTS")
  return await accounts.update(user_id, fields)


async def _self_update(user_id: str, payload: UserSelfUpdateIn, accounts: AccountRepository) -> User | None:
  return await accounts.update(user_id, _fields(payload, _SELF_FIELDS))


@router.get("", response_model=list[UserOut], dependencies=[Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER))])
async def list_users(
  role: UserRole | None = None,
  isActive: bool | None = None,
  accounts: AccountRepository = Depends(get_accounts),
) -> list[UserOut]:
  users = await accounts.list_users(role=role.value if role else None, is_active=isActive)
  return [user_out(u) for u in users]


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
  user_id: str,
  claims: Claims = Depends(authenticate),
  accounts: AccountRepository = Depends(get_accounts),
) -> UserOut:
  if not (can_manage_users(claims) or is_self(claims, user_id)):
    raise Forbidden("Not authorized", "NOT_AUTHORIZED")
  u = await accounts.find_by_id(user_id)
  if not u:
    raise NotFound("User not found", "USER_NOT_FOUND")
  return user_out(u)


@router.post(
  "",
  response_model=UserOut,
  status_code=status.HTTP_201_CREATED,
  dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def create_user(payload: UserCreateIn, accounts: AccountRepository = Depends(get_accounts)) -> UserOut:
  if await accounts.find_by_email(payload.email):
    raise DuplicateEntry("Email already in use", "EMAIL_EXISTS")
  u = await accounts.create(
    email=payload.email,
    name=payload.name,
    password_hash=hash_password(payload.password),
    role=payload.role.value,
    phone=payload.phone,
    department=payload.department,
  )
  log.info("user_created", user_id=u.id, role=u.role)
  return user_out(u)


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(
  user_id: str,
  payload: dict = Body(...),
  claims: Claims = Depends(authenticate),
  accounts: AccountRepository = Depends(get_accounts),
) -> UserOut:
  if can_manage_users(claims):
    u = await _admin_update(user_id, UserAdminUpdateIn.model_validate(payload), accounts)
  elif is_self(claims, user_id):
    u = await _self_update(user_id, UserSelfUpdateIn.model_validate(payload), accounts)
  else:
    raise Forbidden("Not authorized", "NOT_AUTHORIZED")
  if not u:
    raise NotFound("User not found", "USER_NOT_FOUND")
  return user_out(u)


@router.delete(
  "/{user_id}",
  status_code=status.HTTP_204_NO_CONTENT,
  dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def delete_user(
  user_id: str,
  claims: Claims = Depends(authenticate),
  accounts: AccountRepository = Depends(get_accounts),
) -> Response:
  if is_self(claims, user_id):
    raise ValidationError("Cannot delete your own account", "CANNOT_DELETE_SELF")
  if not await accounts.delete(user_id):
    raise NotFound("User not found", "USER_NOT_FOUND")
  log.info("user_deleted", user_id=user_id, actor_id=claims.user_id)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{user_id}/reset-password", dependencies=[Depends(require_roles(UserRole.ADMIN))])
async def reset_password(
  user_id: str,
  payload: PasswordResetIn,
  accounts: AccountRepository = Depends(get_accounts),
) -> dict:
  if not await accounts.find_by_id(user_id):
    raise NotFound("User not found", "USER_NOT_FOUND")
  await accounts.update_password(user_id, hash_password(payload.password))
  return {"message": "Password reset successfully"}
