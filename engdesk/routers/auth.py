from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Request, status

from engdesk.config import settings
from engdesk.deps import authenticate, get_accounts, get_token_service, optional_authenticate
from engdesk.errors import DuplicateEntry, NotFound, Unauthenticated, ValidationError
from engdesk.logging import get_logger
from engdesk.models import User, UserRole
from engdesk.rate_limit import limiter
from engdesk.repositories import AccountRepository
from engdesk.schemas import (
  AuthOut,
  ChangePasswordIn,
  ClaimsOut,
  LoginIn,
  RefreshIn,
  RegisterIn,
  SessionOut,
  TokenPairOut,
  UserOut,
)
from engdesk.security import REFRESH, Claims, TokenExpired, TokenInvalid, TokenService, hash_password, verify_password

router = APIRouter(prefix="/auth", tags=["auth"])
log = get_logger(__name__)


def user_out(u: User) -> UserOut:
  return UserOut(
    id=u.id,
    name=u.name,
    email=u.email,
    role=u.role,
    phone=u.phone,
    department=u.department,
    avatar=u.avatar,
    isActive=bool(u.is_active),
    lastLoginAt=u.last_login_at,
    createdAt=u.created_at,
  )


def _auth_out(u: User, tokens: TokenService) -> AuthOut:
  pair = tokens.issue(Claims.for_user(u))
  return AuthOut(user=user_out(u), accessToken=pair.access_token, refreshToken=pair.refresh_token)


def _client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"


@router.post("/login", response_model=AuthOut)
async def login(
  payload: LoginIn,
  request: Request,
  accounts: AccountRepository = Depends(get_accounts),
  tokens: TokenService = Depends(get_token_service),
) -> AuthOut:
  await limiter.check(f"auth:login:ip:{_client_ip(request)}", limit=settings.rate_limit_login_ip_per_minute, window_seconds=60)
  await limiter.check(f"auth:login:email:{payload.email}", limit=settings.rate_limit_login_email_per_minute, window_seconds=60)

  u = await accounts.find_by_email(payload.email)
  if not u or not verify_password(payload.password, u.password_hash):
    log.warning("login_failed", email_domain=payload.email.partition("@")[2], ip=_client_ip(request))
    raise Unauthenticated("Invalid credentials", "INVALID_CREDENTIALS")
  if not u.is_active:
    log.warning("login_rejected_inactive", user_id=u.id)
    raise Unauthenticated("Account is deactivated", "ACCOUNT_DEACTIVATED")

  now = datetime.now(timezone.utc)
  await accounts.update_last_login(u.id, now)
  u.last_login_at = now
  log.info("login_succeeded", user_id=u.id, role=u.role)
  return _auth_out(u, tokens)


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register(
  payload: RegisterIn,
  accounts: AccountRepository = Depends(get_accounts),
  tokens: TokenService = Depends(get_token_service),
) -> AuthOut:
  if await accounts.find_by_email(payload.email):
    raise DuplicateEntry("Email already in use", "EMAIL_EXISTS")
  u = await accounts.create(
    email=payload.email,
    name=payload.name,
    password_hash=hash_password(payload.password),
    role=UserRole.VIEWER.value,
    phone=payload.phone,
    department=payload.department,
  )
  log.info("user_registered", user_id=u.id)
  return _auth_out(u, tokens)


@router.post("/refresh", response_model=TokenPairOut)
async def refresh(
  payload: RefreshIn | None = None,
  accounts: AccountRepository = Depends(get_accounts),
  tokens: TokenService = Depends(get_token_service),
) -> TokenPairOut:
  if payload is None or not payload.refreshToken:
    raise ValidationError("Refresh token required", "NO_REFRESH_TOKEN")
  try:
    claims = tokens.verify(payload.refreshToken, REFRESH)
  except TokenExpired as exc:
    grace = settings.refresh_expired_grace_seconds
    if grace is not None and datetime.now(timezone.utc) - exc.expired_at > timedelta(seconds=grace):
      raise Unauthenticated("Refresh token expired", "TOKEN_EXPIRED") from None
    claims = exc.claims
  except TokenInvalid:
    raise Unauthenticated("Invalid token", "INVALID_TOKEN") from None

  # Claims are rebuilt from the account, so role changes land here.
  u = await accounts.find_by_id(claims.user_id)
  if not u or not u.is_active:
    raise Unauthenticated("User not found or inactive", "USER_INACTIVE")
  pair = tokens.issue(Claims.for_user(u))
  log.info("tokens_refreshed", user_id=u.id)
  return TokenPairOut(accessToken=pair.access_token, refreshToken=pair.refresh_token)


@router.get("/me", response_model=UserOut)
async def me(
  claims: Claims = Depends(authenticate),
  accounts: AccountRepository = Depends(get_accounts),
) -> UserOut:
  u = await accounts.find_by_id(claims.user_id)
  if not u:
    raise NotFound("User not found", "USER_NOT_FOUND")
  return user_out(u)


@router.post("/change-password")
async def change_password(
  payload: ChangePasswordIn,
  claims: Claims = Depends(authenticate),
  accounts: AccountRepository = Depends(get_accounts),
) -> dict:
  u = await accounts.find_by_id(claims.user_id)
  if not u:
    raise NotFound("User not found", "USER_NOT_FOUND")
  if not verify_password(payload.currentPassword, u.password_hash):
    raise ValidationError("Current password is incorrect", "INVALID_PASSWORD")
  await accounts.update_password(u.id, hash_password(payload.newPassword))
  log.info("password_changed", user_id=u.id)
  return {"message": "Password changed successfully"}


@router.get("/session", response_model=SessionOut)
async def session(claims: Claims | None = Depends(optional_authenticate)) -> SessionOut:
  if claims is None:
    return SessionOut(authenticated=False)
  return SessionOut(authenticated=True, user=ClaimsOut(userId=claims.user_id, email=claims.email, role=claims.role))
