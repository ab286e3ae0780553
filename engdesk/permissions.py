from __future__ import annotations

from typing import Iterable

from engdesk.errors import Forbidden, Unauthenticated
from engdesk.models import UserRole
from engdesk.security import Claims


def role_gate(claims: Claims | None, allowed: Iterable[UserRole]) -> Claims:
  """Permit iff claims are present and their role is in `allowed`.

  `Unauthenticated` means no claims reached the gate (authentication was
  skipped or failed quietly); `Forbidden` means the caller is known but the
  role is not on the list.
  """
  allowed_roles = frozenset(allowed)
  if not allowed_roles:
    raise ValueError("role gate needs at least one allowed role")
  if claims is None:
    raise Unauthenticated("Not authenticated", "NOT_AUTHENTICATED")
  if claims.role not in allowed_roles:
    raise Forbidden("Not authorized", "NOT_AUTHORIZED")
  return claims


def can_manage_users(claims: Claims) -> bool:
  return claims.role == UserRole.ADMIN


def is_self(claims: Claims, user_id: str) -> bool:
  return claims.user_id == user_id
