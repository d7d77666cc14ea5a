from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .config import BackupConfig
from .errors import IdentityResolutionError, RepositoryListingError
from .git import GitTransfer
from .github import GitHubAPI, list_repositories, resolve_identity
from .orchestrator import BackupOrchestrator, Transfer
from .report import BackupReport, Manifest

LOG = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_UNIT_FAILURE = 1
EXIT_FATAL = 2

ApiFactory = Callable[[BackupConfig, str], GitHubAPI]
TransferFactory = Callable[[BackupConfig], Transfer]


def _default_api(config: BackupConfig, token: str) -> GitHubAPI:
    return GitHubAPI(token, base_url=config.api_url, timeout=config.request_timeout)


def _default_transfer(config: BackupConfig) -> Transfer:
    return GitTransfer(timeout=config.transfer_timeout)


@dataclass
class JobResult:
    organization: str
    status: str
    started_at: datetime
    completed_at: datetime
    report: BackupReport = field(default_factory=BackupReport)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "success"

    @property
    def exit_code(self) -> int:
        if self.status == "success":
            return EXIT_SUCCESS
        if self.status == "partial":
            return EXIT_UNIT_FAILURE
        return EXIT_FATAL


class BackupJob:
    """Resolves identity, lists repositories and hands them to the orchestrator.

    Identity and listing failures end the job before anything touches the
    disk; per-repository failures are collected into the report.
    """

    def __init__(
        self,
        config: BackupConfig,
        token: str,
        api_factory: ApiFactory = _default_api,
        transfer_factory: TransferFactory = _default_transfer,
    ) -> None:
        if not config.organization:
            raise ValueError("BackupJob requires an organization")
        self._config = config
        self._token = token
        self._api_factory = api_factory
        self._transfer_factory = transfer_factory

    def run(self, manifest_path: Optional[Path] = None) -> JobResult:
        organization = self._config.organization
        backup_dir = self._config.effective_backup_dir()
        started_at = datetime.now(timezone.utc)

        if backup_dir.exists():
            LOG.warning("Backup directory %s does already exist", backup_dir)

        api = self._api_factory(self._config, self._token)
        try:
            LOG.info("Getting user info")
            identity = resolve_identity(api)
            LOG.info("Authenticated as %s", identity.login)

            LOG.info("Getting repos of %s", organization)
            repositories = list_repositories(api, organization, max_pages=self._config.max_pages)
        except IdentityResolutionError as exc:
            return self._fatal(started_at, f"Failed to fetch user: {exc}")
        except RepositoryListingError as exc:
            return self._fatal(started_at, f"Failed to fetch repos: {exc}")
        finally:
            api.close()

        LOG.info("Found %s repositories in %s", len(repositories), organization)

        if not self._config.dry_run:
            try:
                backup_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                return self._fatal(started_at, f"Failed to create backup directory: {exc}")

        orchestrator = BackupOrchestrator(
            transfer=self._transfer_factory(self._config),
            workers=self._config.workers,
            dry_run=self._config.dry_run,
        )
        report = orchestrator.run(repositories, identity, self._token, backup_dir)
        completed_at = datetime.now(timezone.utc)

        errors = report.errors()
        if manifest_path is not None:
            manifest = Manifest(
                organization=organization,
                started_at=started_at,
                completed_at=completed_at,
                dry_run=self._config.dry_run,
                report=report,
            )
            try:
                manifest.write(manifest_path)
            except OSError as exc:
                LOG.error("Failed to write backup manifest %s: %s", manifest_path, exc)
                errors.append(f"Failed to write backup manifest {manifest_path}: {exc}")
            else:
                LOG.info("Backup manifest written to %s", manifest_path)

        return JobResult(
            organization=organization,
            status="success" if not errors else "partial",
            started_at=started_at,
            completed_at=completed_at,
            report=report,
            errors=errors,
        )

    def _fatal(self, started_at: datetime, message: str) -> JobResult:
        LOG.error(message)
        return JobResult(
            organization=self._config.organization or "",
            status="failed",
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            errors=[message],
        )
