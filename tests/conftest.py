from __future__ import annotations

import os
from dataclasses import dataclass, field

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-engdesk")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./engdesk_test.db")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from httpx import ASGITransport, AsyncClient

from engdesk.deps import get_accounts, get_activity, get_projects, get_tasks
from engdesk.main import app
from engdesk.models import User, UserRole
from engdesk.rate_limit import limiter
from engdesk.security import hash_password
from fakes import InMemoryAccounts, InMemoryProjects, InMemoryTasks, RecordingActivity

DEFAULT_PASSWORD = "correct-horse-1"


@dataclass
class Stores:
  accounts: InMemoryAccounts = field(default_factory=InMemoryAccounts)
  projects: InMemoryProjects = field(default_factory=InMemoryProjects)
  tasks: InMemoryTasks = field(default_factory=InMemoryTasks)
  activity: object = field(default_factory=RecordingActivity)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
  limiter.reset_prefix("auth:")
  yield
  limiter.reset_prefix("auth:")


@pytest.fixture
def stores() -> Stores:
  s = Stores()
  app.dependency_overrides[get_accounts] = lambda: s.accounts
  app.dependency_overrides[get_projects] = lambda: s.projects
  app.dependency_overrides[get_tasks] = lambda: s.tasks
  app.dependency_overrides[get_activity] = lambda: s.activity
  yield s
  app.dependency_overrides.clear()


@pytest.fixture
async def client(stores: Stores) -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def make_user(
  stores: Stores,
  email: str,
  role: UserRole = UserRole.ENGINEER,
  *,
  password: str = DEFAULT_PASSWORD,
  name: str | None = None,
  is_active: bool = True,
) -> User:
  u = await stores.accounts.create(
    email=email,
    name=name or email.split("@")[0].title(),
    password_hash=hash_password(password),
    role=role.value,
  )
  u.is_active = is_active
  return u


async def login(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD) -> dict:
  res = await client.post("/api/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  return res.json()


def bearer(token: str) -> dict[str, str]:
  return {"Authorization": f"Bearer {token}"}


async def auth_headers(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
  return bearer((await login(client, email, password))["accessToken"])
