from __future__ import annotations

from typing import Any, Protocol

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engdesk.logging import get_logger
from engdesk.models import ActivityLog, Notification

log = get_logger(__name__)


class ActivitySink(Protocol):
  async def record(
    self,
    *,
    action: str,
    entity: str,
    entity_id: str,
    user_id: str | None,
    project_id: str | None = None,
    details: dict[str, Any] | None = None,
  ) -> None: ...

  async def notify(
    self,
    *,
    user_id: str,
    title: str,
    message: str,
    type: str = "info",
    link: str | None = None,
  ) -> None: ...


class SqlActivitySink:
  """Writes activity and notification rows in a session of its own, so a
  failure here never touches the caller's transaction."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def record(
    self,
    *,
    action: str,
    entity: str,
    entity_id: str,
    user_id: str | None,
    project_id: str | None = None,
    details: dict[str, Any] | None = None,
  ) -> None:
    async with self._session_factory() as db:
      db.add(
        ActivityLog(
          action=action,
          entity=entity,
          entity_id=entity_id,
          user_id=user_id,
          project_id=project_id,
          details=jsonable_encoder(details or {}),
        )
      )
      await db.commit()

  async def notify(
    self,
    *,
    user_id: str,
    title: str,
    message: str,
    type: str = "info",
    link: str | None = None,
  ) -> None:
    async with self._session_factory() as db:
      db.add(Notification(user_id=user_id, title=title, message=message, type=type, link=link))
      await db.commit()


async def record_activity(sink: ActivitySink, **kwargs: Any) -> None:
  try:
    await sink.record(**kwargs)
  except Exception:
    log.exception("activity_record_failed", action=kwargs.get("action"), entity_id=kwargs.get("entity_id"))


async def send_notification(sink: ActivitySink, **kwargs: Any) -> None:
  try:
    await sink.notify(**kwargs)
  except Exception:
    log.exception("notification_failed", user_id=kwargs.get("user_id"))
