from __future__ import annotations

import asyncio
import os
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import select

from engdesk.db import SessionLocal
from engdesk.logging import get_logger
from engdesk.models import Project, Task, TaskPriority, TaskStatus, User, UserRole
from engdesk.security import hash_password
from engdesk.tasks.lifecycle import apply_status

log = get_logger(__name__)

_SEED_USERS = [
  ("admin@engdesk.local", "Admin", UserRole.ADMIN, "SEED_ADMIN_PASSWORD"),
  ("manager@engdesk.local", "Manager", UserRole.MANAGER, "SEED_MANAGER_PASSWORD"),
  ("engineer@engdesk.local", "Engineer", UserRole.ENGINEER, "SEED_ENGINEER_PASSWORD"),
]


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def seed() -> None:
  boot_lines: list[str] = []
  async with SessionLocal() as db:
    users: dict[UserRole, User] = {}
    for email, name, role, env_key in _SEED_USERS:
      res = await db.execute(select(User).where(User.email == email))
      u = res.scalar_one_or_none()
      if not u:
        password, generated = _bootstrap_password(env_key)
        u = User(email=email, name=name, role=role.value, password_hash=hash_password(password))
        db.add(u)
        boot_lines.append(f"{email}={password} (generated={str(generated).lower()})")
      users[role] = u
    await db.flush()

    if os.getenv("SEED_DEMO_PROJECT", "").strip().lower() in ("1", "true", "yes", "y"):
      code = "DEMO-001"
      res = await db.execute(select(Project).where(Project.code == code))
      project = res.scalar_one_or_none()
      if not project:
        project = Project(name="Demo Plant Upgrade", code=code, status="IN_PROGRESS", manager_id=users[UserRole.MANAGER].id)
        db.add(project)
        await db.flush()

        now = datetime.now(timezone.utc)
        samples = [
          ("Site survey", TaskStatus.DONE, TaskPriority.HIGH),
          ("Load calculations", TaskStatus.IN_PROGRESS, TaskPriority.URGENT),
          ("Panel schedule review", TaskStatus.TODO, TaskPriority.MEDIUM),
        ]
        for idx, (title, status, priority) in enumerate(samples):
          t = Task(
            project_id=project.id,
            creator_id=users[UserRole.MANAGER].id,
            assignee_id=users[UserRole.ENGINEER].id,
            title=title,
            status=TaskStatus.TODO.value,
            priority=priority.value,
            due_date=now + timedelta(days=7 * (idx + 1)),
            order=idx + 1,
          )
          apply_status(t, status, now=now)
          db.add(t)

    await db.commit()

  if boot_lines:
    out_dir = Path(os.getenv("BOOTSTRAP_CREDENTIALS_DIR", "data"))
    out_dir.mkdir(parents=True, exist_ok=True)
    out_file = out_dir / "bootstrap_credentials.txt"
    stamp = datetime.now(timezone.utc).isoformat()
    out_file.write_text(f"[{stamp}]\n" + "\n".join(boot_lines) + "\n", encoding="utf-8")
    print("Engdesk seed credentials created:")
    for ln in boot_lines:
      print(f"  {ln}")
    print(f"Saved to {out_file}")
  log.info("seed_complete", created_users=len(boot_lines))


def main() -> None:
  asyncio.run(seed())


if __name__ == "__main__":
  main()
