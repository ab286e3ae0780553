from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from engdesk.models import UserRole
from engdesk.security import ACCESS, REFRESH, Claims, TokenExpired, TokenInvalid, TokenService

SECRET = "unit-test-secret"


def _service(clock=None) -> TokenService:
  return TokenService(
    secret=SECRET,
    access_ttl=timedelta(minutes=15),
    refresh_ttl=timedelta(days=7),
    clock=clock,
  )


def _claims(role: UserRole = UserRole.ENGINEER) -> Claims:
  return Claims(user_id="u-1", email="eng@example.com", role=role)


def test_issue_then_verify_returns_identical_claims() -> None:
  svc = _service()
  pair = svc.issue(_claims(UserRole.MANAGER))
  assert svc.verify(pair.access_token) == _claims(UserRole.MANAGER)
  assert svc.verify(pair.refresh_token, REFRESH) == _claims(UserRole.MANAGER)


def test_tokens_carry_type_and_expiry() -> None:
  svc = _service()
  pair = svc.issue(_claims())
  access = jwt.get_unverified_claims(pair.access_token)
  refresh = jwt.get_unverified_claims(pair.refresh_token)
  assert access["type"] == ACCESS
  assert refresh["type"] == REFRESH
  assert access["userId"] == "u-1"
  assert access["role"] == "ENGINEER"
  assert refresh["exp"] - refresh["iat"] == 7 * 24 * 3600
  assert access["exp"] - access["iat"] == 15 * 60
  assert access["jti"] != refresh["jti"]


def test_refresh_token_is_not_accepted_as_access() -> None:
  svc = _service()
  pair = svc.issue(_claims())
  with pytest.raises(TokenInvalid):
    svc.verify(pair.refresh_token, ACCESS)
  with pytest.raises(TokenInvalid):
    svc.verify(pair.access_token, REFRESH)


def test_expired_token_reports_expired_with_claims() -> None:
  past = datetime.now(timezone.utc) - timedelta(days=30)
  old = _service(clock=lambda: past)
  pair = old.issue(_claims(UserRole.TECHNICIAN))

  with pytest.raises(TokenExpired) as excinfo:
    _service().verify(pair.access_token)
  assert excinfo.value.claims == _claims(UserRole.TECHNICIAN)
  assert excinfo.value.expired_at < datetime.now(timezone.utc)


def test_wrong_secret_is_invalid_not_expired() -> None:
  pair = _service().issue(_claims())
  other = TokenService(secret="another-secret", access_ttl=timedelta(minutes=5), refresh_ttl=timedelta(days=1))
  with pytest.raises(TokenInvalid):
    other.verify(pair.access_token)


def test_expired_token_with_wrong_secret_is_invalid() -> None:
  past = datetime.now(timezone.utc) - timedelta(days=30)
  pair = _service(clock=lambda: past).issue(_claims())
  other = TokenService(secret="another-secret", access_ttl=timedelta(minutes=5), refresh_ttl=timedelta(days=1))
  with pytest.raises(TokenInvalid):
    other.verify(pair.access_token)


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_tokens_are_invalid(token: str) -> None:
  with pytest.raises(TokenInvalid):
    _service().verify(token)


def test_token_with_unknown_role_is_invalid() -> None:
  now = datetime.now(timezone.utc)
  token = jwt.encode(
    {
      "userId": "u-1",
      "email": "x@example.com",
      "role": "SUPERUSER",
      "type": ACCESS,
      "iat": int(now.timestamp()),
      "exp": int((now + timedelta(minutes=5)).timestamp()),
    },
    SECRET,
    algorithm="HS256",
  )
  with pytest.raises(TokenInvalid):
    _service().verify(token)


def test_token_missing_identity_is_invalid() -> None:
  now = datetime.now(timezone.utc)
  token = jwt.encode(
    {"type": ACCESS, "exp": int((now + timedelta(minutes=5)).timestamp())},
    SECRET,
    algorithm="HS256",
  )
  with pytest.raises(TokenInvalid):
    _service().verify(token)


def test_empty_secret_is_rejected() -> None:
  with pytest.raises(ValueError):
    TokenService(secret="", access_ttl=timedelta(minutes=1), refresh_ttl=timedelta(days=1))
