from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://engdesk:engdesk@db:5432/engdesk"
  environment: str = "development"  # development | production | test
  app_version: str = "v2026-10-18"
  api_docs_enabled: bool = True

  jwt_secret: str = "dev-secret-change-me"
  jwt_algorithm: str = "HS256"
  access_token_expire_minutes: int = 60
  refresh_token_expire_days: int = 7
  # None: an expired refresh token stays renewable while the account is active.
  refresh_expired_grace_seconds: int | None = None
  bcrypt_rounds: int = 12

  log_level: str = "INFO"
  log_json: bool = True

  cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

  rate_limit_login_ip_per_minute: int = 30
  rate_limit_login_email_per_minute: int = 10
  redis_url: str | None = None

  allow_cross_project_subtasks: bool = True

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def is_production(self) -> bool:
    return self.environment.strip().lower() == "production"

  def is_test(self) -> bool:
    return self.environment.strip().lower() == "test"


settings = Settings()
