from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from passlib.context import CryptContext

from engdesk.config import settings
from engdesk.models import User, UserRole

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  try:
    return pwd_context.verify(password, password_hash)
  except ValueError:
    # unrecognised or corrupt hash
    return False


@dataclass(frozen=True)
class Claims:
  user_id: str
  email: str
  role: UserRole

  def to_payload(self) -> dict[str, Any]:
    return {"userId": self.user_id, "email": self.email, "role": self.role.value}

  @classmethod
  def for_user(cls, user: User) -> Claims:
    return cls(user_id=user.id, email=user.email, role=UserRole(user.role))


@dataclass(frozen=True)
class TokenPair:
  access_token: str
  refresh_token: str


class TokenInvalid(Exception):
  pass


class TokenExpired(Exception):
  """Signature checked out but `exp` has passed.

  Carries the verified claims so the refresh exchange can renew them.
  """

  def __init__(self, claims: Claims, expired_at: datetime) -> None:
    super().__init__("Token expired")
    self.claims = claims
    self.expired_at = expired_at


def _claims_from_payload(payload: dict[str, Any]) -> Claims:
  user_id = payload.get("userId")
  email = payload.get("email")
  role = payload.get("role")
  if not isinstance(user_id, str) or not user_id or not isinstance(email, str) or not isinstance(role, str):
    raise TokenInvalid("Token payload is missing identity claims")
  try:
    return Claims(user_id=user_id, email=email, role=UserRole(role))
  except ValueError as exc:
    raise TokenInvalid(f"Unknown role {role!r}") from exc


class TokenService:
  def __init__(
    self,
    *,
    secret: str,
    algorithm: str = "HS256",
    access_ttl: timedelta,
    refresh_ttl: timedelta,
    clock: Callable[[], datetime] | None = None,
  ) -> None:
    if not secret:
      raise ValueError("token secret must not be empty")
    self._secret = secret
    self._algorithm = algorithm
    self._access_ttl = access_ttl
    self._refresh_ttl = refresh_ttl
    self._clock = clock or (lambda: datetime.now(timezone.utc))

  def _sign(self, claims: Claims, token_type: str, ttl: timedelta) -> str:
    now = self._clock()
    payload = claims.to_payload()
    payload.update(
      {
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
        "jti": uuid.uuid4().hex,
      }
    )
    return jwt.encode(payload, self._secret, algorithm=self._algorithm)

  def issue(self, claims: Claims) -> TokenPair:
    return TokenPair(
      access_token=self._sign(claims, ACCESS, self._access_ttl),
      refresh_token=self._sign(claims, REFRESH, self._refresh_ttl),
    )

  def verify(self, token: str, token_type: str = ACCESS) -> Claims:
    if not token:
      raise TokenInvalid("Empty token")
    try:
      payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
    except ExpiredSignatureError:
      payload = self._decode_ignoring_exp(token)
      claims = self._checked_claims(payload, token_type)
      raise TokenExpired(claims, datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)) from None
    except JWTError as exc:
      raise TokenInvalid(str(exc)) from exc
    return self._checked_claims(payload, token_type)

  def _decode_ignoring_exp(self, token: str) -> dict[str, Any]:
    try:
      return jwt.decode(token, self._secret, algorithms=[self._algorithm], options={"verify_exp": False})
    except JWTError as exc:
      raise TokenInvalid(str(exc)) from exc

  @staticmethod
  def _checked_claims(payload: dict[str, Any], token_type: str) -> Claims:
    if payload.get("type") != token_type:
      raise TokenInvalid(f"Expected a {token_type} token")
    return _claims_from_payload(payload)


def token_service_from_settings() -> TokenService:
  return TokenService(
    secret=settings.jwt_secret,
    algorithm=settings.jwt_algorithm,
    access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
    refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
  )


token_service = token_service_from_settings()
