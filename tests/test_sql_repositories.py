from __future__ import annotations

import pytest
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from engdesk.activity import SqlActivitySink
from engdesk.errors import DuplicateEntry, TaskNotFound, ValidationError
from engdesk.models import ActivityLog, Base, Notification, Task, TaskStatus
from engdesk.repositories import SqlAccountRepository, SqlProjectRepository, SqlTaskRepository


@pytest.fixture
async def session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
  engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'engdesk.db'}")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
  await engine.dispose()


@pytest.fixture
async def fk_session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
  engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'engdesk_fk.db'}")

  @event.listens_for(engine.sync_engine, "connect")
  def _foreign_keys_on(dbapi_conn, _record) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()

  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
  await engine.dispose()


async def _project(factory: async_sessionmaker[AsyncSession], code: str = "P-1") -> str:
  async with factory() as db:
    p = await SqlProjectRepository(db).create(name="Switchgear", code=code)
    return p.id


def _task(project_id: str, title: str, **kw) -> Task:
  kw.setdefault("status", TaskStatus.TODO.value)
  kw.setdefault("priority", "MEDIUM")
  return Task(project_id=project_id, creator_id="creator", title=title, **kw)


@pytest.mark.anyio
async def test_accounts_roundtrip(session_factory) -> None:
  async with session_factory() as db:
    repo = SqlAccountRepository(db)
    u = await repo.create(email="Eng@Example.com", name="Eng", password_hash="x", role="ENGINEER")
    await repo.create(email="old@example.com", name="Old", password_hash="x", role="ENGINEER")
    await repo.update((await repo.find_by_email("old@example.com")).id, {"is_active": False})

    uid = u.id
    assert u.email == "eng@example.com"
    assert (await repo.find_by_email("ENG@example.com")).id == uid
    assert [x.email for x in await repo.list_users(role="ENGINEER", is_active=True)] == ["eng@example.com"]
    assert len(await repo.list_users()) == 2

    with pytest.raises(DuplicateEntry) as excinfo:
      await repo.create(email="eng@example.com", name="Dup", password_hash="x", role="VIEWER")
    assert excinfo.value.code == "EMAIL_EXISTS"

    assert await repo.update("missing", {"name": "x"}) is None
    assert await repo.delete(uid) is True
    assert await repo.delete(uid) is False


@pytest.mark.anyio
async def test_duplicate_project_code(session_factory) -> None:
  await _project(session_factory, "DUP")
  with pytest.raises(DuplicateEntry) as excinfo:
    await _project(session_factory, "DUP")
  assert excinfo.value.code == "DUPLICATE_CODE"


@pytest.mark.anyio
async def test_max_order_is_scoped_to_siblings(session_factory) -> None:
  project_id = await _project(session_factory)
  async with session_factory() as db:
    repo = SqlTaskRepository(db)
    assert await repo.max_order(project_id, None) is None
    parent = await repo.add(_task(project_id, "Parent", order=1))
    await repo.add(_task(project_id, "Top", order=5))
    await repo.add(_task(project_id, "Child", parent_id=parent.id, order=2))

    assert await repo.max_order(project_id, None) == 5
    assert await repo.max_order(project_id, parent.id) == 2
    assert await repo.max_order("other", None) is None


@pytest.mark.anyio
async def test_apply_orders_commits_every_row(session_factory) -> None:
  project_id = await _project(session_factory)
  async with session_factory() as db:
    repo = SqlTaskRepository(db)
    a = await repo.add(_task(project_id, "A", order=1))
    b = await repo.add(_task(project_id, "B", order=2))
    await repo.apply_orders([(a.id, 2), (b.id, 1)])

  async with session_factory() as db:
    res = await db.execute(select(Task.title, Task.order).order_by(Task.order))
    assert [tuple(r) for r in res.all()] == [("B", 1), ("A", 2)]


@pytest.mark.anyio
async def test_apply_orders_rolls_back_on_missing_task(session_factory) -> None:
  project_id = await _project(session_factory)
  async with session_factory() as db:
    repo = SqlTaskRepository(db)
    a = await repo.add(_task(project_id, "A", order=1))
    b = await repo.add(_task(project_id, "B", order=2))
    with pytest.raises(TaskNotFound):
      await repo.apply_orders([(a.id, 10), ("ghost", 11), (b.id, 12)])

  async with session_factory() as db:
    res = await db.execute(select(Task.title, Task.order).order_by(Task.title))
    assert [tuple(r) for r in res.all()] == [("A", 1), ("B", 2)]


@pytest.mark.anyio
async def test_list_for_assignee_skips_done_and_ranks_priority(session_factory) -> None:
  project_id = await _project(session_factory)
  async with session_factory() as db:
    repo = SqlTaskRepository(db)
    await repo.add(_task(project_id, "Low", assignee_id="u1", priority="LOW", order=1))
    await repo.add(_task(project_id, "Urgent", assignee_id="u1", priority="URGENT", order=2))
    await repo.add(_task(project_id, "High", assignee_id="u1", priority="HIGH", order=3))
    await repo.add(_task(project_id, "Done", assignee_id="u1", status="DONE", order=4))
    await repo.add(_task(project_id, "Other", assignee_id="u2", order=5))

    assert [t.title for t in await repo.list_for_assignee("u1")] == ["Urgent", "High", "Low"]


@pytest.mark.anyio
async def test_subtasks_and_comments(session_factory) -> None:
  project_id = await _project(session_factory)
  async with session_factory() as db:
    repo = SqlTaskRepository(db)
    parent = await repo.add(_task(project_id, "Parent", order=1))
    await repo.add(_task(project_id, "Second", parent_id=parent.id, order=2))
    await repo.add(_task(project_id, "First", parent_id=parent.id, order=1))
    assert [t.title for t in await repo.list_subtasks(parent.id)] == ["First", "Second"]

    c = await repo.add_comment(task_id=parent.id, author_id="u1", content="Looks good")
    assert c.id
    assert [x.content for x in await repo.list_comments(parent.id)] == ["Looks good"]

    assert await repo.delete(parent.id) is True
    assert await repo.get(parent.id) is None


@pytest.mark.anyio
async def test_activity_sink_writes_in_its_own_session(session_factory) -> None:
  sink = SqlActivitySink(session_factory)
  await sink.record(action="CREATE", entity="TASK", entity_id="t1", user_id=None, project_id="p1", details={"title": "A"})
  await sink.notify(user_id="u1", title="New Task Assigned", message="You have been assigned: A", link="/tasks/t1")

  async with session_factory() as db:
    log = (await db.execute(select(ActivityLog))).scalar_one()
    assert (log.action, log.entity, log.details) == ("CREATE", "TASK", {"title": "A"})
    note = (await db.execute(select(Notification))).scalar_one()
    assert note.user_id == "u1"
    assert note.type == "info"


@pytest.mark.anyio
async def test_foreign_key_failures_are_not_duplicates(fk_session_factory) -> None:
  async with fk_session_factory() as db:
    with pytest.raises(ValidationError) as excinfo:
      await SqlProjectRepository(db).create(name="Switchgear", code="FK-1", manager_id="no-such-user")
    assert excinfo.value.code == "INVALID_REFERENCE"

  async with fk_session_factory() as db:
    owner = await SqlAccountRepository(db).create(email="pm@example.com", name="Pat", password_hash="x", role="MANAGER")
    project = await SqlProjectRepository(db).create(name="Switchgear", code="FK-1", manager_id=owner.id)
    repo = SqlTaskRepository(db)
    with pytest.raises(ValidationError):
      await repo.add(Task(project_id=project.id, creator_id=owner.id, assignee_id="no-such-user", title="Wiring", status="TODO", priority="MEDIUM", order=1))

    with pytest.raises(DuplicateEntry) as excinfo:
      await SqlProjectRepository(db).create(name="Again", code="FK-1")
    assert excinfo.value.code == "DUPLICATE_CODE"
