from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://kanflow:kanflow@db:5432/kanflow"
  app_version: str = "v2026-10-17"
  build_sha: str = "dev"
  log_level: str = "INFO"

  cookie_secure: bool = False
  cookie_domain: str | None = None

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20
  rate_limit_register_ip_per_minute: int = 10

  cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):(3000|5173)$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,testserver"

  boards_page_limit_default: int = 20
  boards_page_limit_max: int = 100
  task_search_limit: int = 20

  ai_provider: str = "local"  # local | openai
  openai_api_key: str | None = None
  openai_base_url: str = "https://api.openai.com/v1"
  openai_model: str = "gpt-4o-mini"

  redis_url: str | None = None

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


settings = Settings()
