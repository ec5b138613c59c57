"""
运行时配置，从环境变量（及可选的 .env 文件）加载
"""
import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from dotenv import load_dotenv


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    database_url: str = "sqlite+aiosqlite:///./automation.db"
    workflows_dir: Optional[str] = None
    scheduler_poll_interval: float = 30.0
    scheduler_concurrency: int = 4
    scheduler_enabled: bool = True
    action_timeout: float = 30.0
    dedup_events: bool = True
    stale_approval_hours: float = 24.0
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False
    cors_origins: str = "*"
    log_level: str = "INFO"

    @property
    def stale_approval_age(self) -> timedelta:
        return timedelta(hours=self.stale_approval_hours)

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            workflows_dir=os.getenv("WORKFLOWS_DIR") or None,
            scheduler_poll_interval=float(
                os.getenv("SCHEDULER_POLL_INTERVAL", defaults.scheduler_poll_interval)
            ),
            scheduler_concurrency=int(
                os.getenv("SCHEDULER_CONCURRENCY", defaults.scheduler_concurrency)
            ),
            scheduler_enabled=_env_bool("SCHEDULER_ENABLED", defaults.scheduler_enabled),
            action_timeout=float(os.getenv("ACTION_TIMEOUT", defaults.action_timeout)),
            dedup_events=_env_bool("DEDUP_EVENTS", defaults.dedup_events),
            stale_approval_hours=float(
                os.getenv("STALE_APPROVAL_HOURS", defaults.stale_approval_hours)
            ),
            api_host=os.getenv("API_HOST", defaults.api_host),
            api_port=int(os.getenv("API_PORT", defaults.api_port)),
            api_reload=_env_bool("API_RELOAD", defaults.api_reload),
            cors_origins=os.getenv("CORS_ORIGINS", defaults.cors_origins),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
