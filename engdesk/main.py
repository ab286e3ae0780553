from __future__ import annotations

from datetime import datetime, timezone
from time import monotonic

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from engdesk.config import settings
from engdesk.errors import AppError, RateLimited
from engdesk.logging import get_logger, set_request_id
from engdesk.repositories import integrity_error
from engdesk.routers.auth import router as auth_router
from engdesk.routers.projects import router as projects_router
from engdesk.routers.tasks import router as tasks_router
from engdesk.routers.users import router as users_router

log = get_logger(__name__)

_PLACEHOLDER_SECRETS = {"dev-secret-change-me", "replace_with_strong_random_secret", "change-me"}

app = FastAPI(
  title="Engdesk API",
  version=settings.app_version,
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


def _validation_details(errors: list[dict]) -> list[dict]:
  out = []
  for err in errors:
    loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
    out.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
  return out


@app.exception_handler(AppError)
async def _app_error_handler(_: Request, exc: AppError) -> JSONResponse:
  headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimited) else None
  return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=headers)


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
  return JSONResponse(
    status_code=400,
    content={"error": "Validation failed", "code": "VALIDATION_ERROR", "details": _validation_details(exc.errors())},
  )


@app.exception_handler(PydanticValidationError)
async def _pydantic_validation_handler(_: Request, exc: PydanticValidationError) -> JSONResponse:
  return JSONResponse(
    status_code=400,
    content={"error": "Validation failed", "code": "VALIDATION_ERROR", "details": _validation_details(exc.errors())},
  )


@app.exception_handler(IntegrityError)
async def _integrity_error_handler(_: Request, exc: IntegrityError) -> JSONResponse:
  log.warning("integrity_error", error=str(exc.orig))
  err = integrity_error(exc)
  if err.status_code == 409:
    return JSONResponse(status_code=409, content={"error": "Duplicate entry", "code": "DUPLICATE_ENTRY"})
  return JSONResponse(status_code=err.status_code, content=err.body())


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
  if exc.status_code == 404:
    return JSONResponse(status_code=404, content={"error": "Not found"})
  return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
  log.exception("unhandled_error", path=request.url.path)
  return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(projects_router, prefix="/api")
app.include_router(tasks_router, prefix="/api")


@app.middleware("http")
async def _request_log_middleware(request: Request, call_next):
  structlog.contextvars.clear_contextvars()
  rid = set_request_id(request.headers.get("x-request-id"))
  start = monotonic()
  try:
    response = await call_next(request)
  except Exception:
    # Errors that escape the handlers still get the envelope and the correlation id.
    log.exception("unhandled_error", path=request.url.path)
    response = JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})
  elapsed_ms = round((monotonic() - start) * 1000.0, 1)
  fields = {"method": request.method, "path": request.url.path, "status": response.status_code, "duration_ms": elapsed_ms}
  if response.status_code >= 500:
    log.error("request", **fields)
  elif response.status_code >= 400:
    log.warning("request", **fields)
  else:
    log.info("request", **fields)
  response.headers["X-Request-ID"] = rid
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "environment": settings.environment}


@app.on_event("startup")
async def _startup() -> None:
  if settings.is_test():
    return
  if not settings.jwt_secret or settings.jwt_secret.strip().lower() in _PLACEHOLDER_SECRETS:
    raise RuntimeError("JWT_SECRET is required and must not be a placeholder")
  log.info("startup", version=settings.app_version, environment=settings.environment)
