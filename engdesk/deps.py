from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from engdesk.activity import ActivitySink, SqlActivitySink
from engdesk.db import SessionLocal
from engdesk.errors import Unauthenticated
from engdesk.models import UserRole
from engdesk.permissions import role_gate
from engdesk.repositories import (
  AccountRepository,
  ProjectRepository,
  SqlAccountRepository,
  SqlProjectRepository,
  SqlTaskRepository,
  TaskRepository,
)
from engdesk.security import Claims, TokenExpired, TokenInvalid, TokenService, token_service


async def get_db() -> AsyncIterator[AsyncSession]:
  async with SessionLocal() as session:
    yield session


def get_accounts(db: AsyncSession = Depends(get_db)) -> AccountRepository:
  return SqlAccountRepository(db)


def get_projects(db: AsyncSession = Depends(get_db)) -> ProjectRepository:
  return SqlProjectRepository(db)


def get_tasks(db: AsyncSession = Depends(get_db)) -> TaskRepository:
  return SqlTaskRepository(db)


def get_activity() -> ActivitySink:
  return SqlActivitySink(SessionLocal)


def get_token_service() -> TokenService:
  return token_service


def bearer_token(request: Request) -> str | None:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    return None
  token = auth.split(" ", 1)[1].strip()
  return token or None


async def authenticate(
  request: Request,
  accounts: AccountRepository = Depends(get_accounts),
  tokens: TokenService = Depends(get_token_service),
) -> Claims:
  token = bearer_token(request)
  if not token:
    raise Unauthenticated("No token provided", "NO_TOKEN")
  try:
    claims = tokens.verify(token)
  except TokenExpired:
    raise Unauthenticated("Token expired", "TOKEN_EXPIRED") from None
  except TokenInvalid:
    raise Unauthenticated("Invalid token", "INVALID_TOKEN") from None

  # Only the active flag is re-read; other claims stay as issued until refresh.
  account = await accounts.find_by_id(claims.user_id)
  if not account or not account.is_active:
    raise Unauthenticated("User not found or inactive", "USER_INACTIVE")

  request.state.claims = claims
  structlog.contextvars.bind_contextvars(user_id=claims.user_id)
  return claims


async def optional_authenticate(
  request: Request,
  accounts: AccountRepository = Depends(get_accounts),
  tokens: TokenService = Depends(get_token_service),
) -> Claims | None:
  token = bearer_token(request)
  if not token:
    return None
  try:
    claims = tokens.verify(token)
  except (TokenExpired, TokenInvalid):
    return None
  account = await accounts.find_by_id(claims.user_id)
  if not account or not account.is_active:
    return None
  request.state.claims = claims
  return claims


def require_roles(*roles: UserRole) -> Callable[[Request], Awaitable[Claims]]:
  """Route dependency for the role gate. `authenticate` must run first on the
  same route (declare it at router level)."""
  allowed = frozenset(roles)
  if not allowed:
    raise ValueError("require_roles() needs at least one role")

  async def _gate(request: Request) -> Claims:
    return role_gate(getattr(request.state, "claims", None), allowed)

  return _gate
