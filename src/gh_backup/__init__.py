"""GitHub organisation backup package."""

from __future__ import annotations

from .config import BackupConfig, load_config  # noqa: F401
from .orchestrator import BackupOrchestrator  # noqa: F401
