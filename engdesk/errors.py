from __future__ import annotations

from typing import Any


class AppError(Exception):
  """Base error with a stable HTTP status and machine-readable code.

  Handlers in `engdesk.main` turn these into `{"error": ..., "code": ...}`.
  """

  status_code = 500
  default_code = "INTERNAL_ERROR"

  def __init__(self, message: str, code: str | None = None, *, details: list[dict[str, Any]] | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.code = code or self.default_code
    self.details = details

  def body(self) -> dict[str, Any]:
    out: dict[str, Any] = {"error": self.message, "code": self.code}
    if self.details:
      out["details"] = self.details
    return out


class Unauthenticated(AppError):
  status_code = 401
  default_code = "NOT_AUTHENTICATED"


class Forbidden(AppError):
  status_code = 403
  default_code = "NOT_AUTHORIZED"


class NotFound(AppError):
  status_code = 404
  default_code = "NOT_FOUND"


class TaskNotFound(NotFound):
  default_code = "TASK_NOT_FOUND"

  def __init__(self, task_id: str | None = None) -> None:
    super().__init__("Task not found")
    self.task_id = task_id


class ValidationError(AppError):
  status_code = 400
  default_code = "VALIDATION_ERROR"


class DuplicateEntry(AppError):
  status_code = 409
  default_code = "DUPLICATE_ENTRY"


class RateLimited(AppError):
  status_code = 429
  default_code = "RATE_LIMITED"

  def __init__(self, retry_after: int) -> None:
    super().__init__("Too many requests, please try again later.")
    self.retry_after = retry_after
