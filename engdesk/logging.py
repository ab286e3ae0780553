from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Any

import structlog

from engdesk.config import settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_REDACT_KEYS = ("password", "secret", "token", "authorization")


def get_request_id() -> str | None:
  return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
  rid = (request_id or "").strip() or uuid.uuid4().hex[:16]
  request_id_var.set(rid)
  return rid


def _add_request_id(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
  rid = get_request_id()
  if rid:
    event_dict["request_id"] = rid
  return event_dict


def _redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
  for key in list(event_dict.keys()):
    if any(k in key.lower() for k in _REDACT_KEYS) and isinstance(event_dict[key], str):
      event_dict[key] = "***"
  return event_dict


def configure_logging(*, log_level: str = "INFO", json_output: bool = True) -> None:
  shared = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    _add_request_id,
    _redact_secrets,
    structlog.processors.StackInfoRenderer(),
  ]
  if json_output:
    renderer = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
  else:
    renderer = [structlog.dev.ConsoleRenderer(colors=True)]

  structlog.configure(
    processors=shared + renderer,
    wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper(), logging.INFO)),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
  )


configure_logging(log_level=settings.log_level, json_output=settings.log_json)


def get_logger(name: str) -> Any:
  return structlog.get_logger(name)
