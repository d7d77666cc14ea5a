from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from croniter import CroniterBadCronError, croniter
from pydantic import BaseModel, Field, field_validator

from .github.api import DEFAULT_API_URL, DEFAULT_TIMEOUT
from .github.listing import DEFAULT_MAX_PAGES
from .orchestrator import DEFAULT_WORKERS

TOKEN_ENV_VARS: Tuple[str, ...] = ("GH_TOKEN", "GITHUB_TOKEN")


class ConfigurationError(Exception):
    """Raised when the backup configuration is invalid."""


class SchedulerConfig(BaseModel):
    cron: str
    timezone: str = "UTC"
    run_on_startup: bool = True

    @field_validator("cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        try:
            croniter(value, datetime.now(timezone.utc))
        except (CroniterBadCronError, ValueError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc
        return value

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value


class BackupConfig(BaseModel):
    organization: Optional[str] = Field(default=None, description="GitHub organization to mirror.")
    backup_dir: Optional[Path] = Field(default=None, description="Defaults to ./<organization>_backup.")
    workers: int = Field(default=DEFAULT_WORKERS, ge=1)
    max_pages: int = Field(default=DEFAULT_MAX_PAGES, ge=1)
    request_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    transfer_timeout: Optional[float] = Field(default=None, gt=0, description="Seconds per git operation.")
    dry_run: bool = False
    api_url: str = DEFAULT_API_URL
    scheduler: Optional[SchedulerConfig] = None

    @field_validator("backup_dir")
    @classmethod
    def _expand_backup_dir(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    def effective_backup_dir(self) -> Path:
        if self.backup_dir is not None:
            return self.backup_dir
        if not self.organization:
            raise ConfigurationError("An organization is required to derive the backup directory.")
        return Path(f"{self.organization}_backup")


def load_config(path: Path) -> BackupConfig:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    try:
        return BackupConfig.model_validate(raw)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(str(exc)) from exc


def resolve_token(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    env = os.environ if environ is None else environ
    for name in TOKEN_ENV_VARS:
        value = env.get(name)
        if value:
            return value
    return None
