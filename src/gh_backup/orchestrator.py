from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .errors import RepositoryBackupError, TransferError
from .git import LocalRepository
from .models import AuthenticatedUser, BackupUnit, Credentials, RemoteRepository, UnitState
from .report import BackupReport, UnitOutcome

LOG = logging.getLogger(__name__)

DEFAULT_WORKERS = 10


class Transfer(Protocol):
    def clone(self, url: str, destination: Path, credentials: Credentials) -> LocalRepository:
        ...

    def open(self, path: Path) -> LocalRepository:
        ...

    def list_remotes(self, repository: LocalRepository) -> List[str]:
        ...

    def remote_download(self, repository: LocalRepository, remote: str, credentials: Credentials) -> None:
        ...


class BackupOrchestrator:
    """Clones or updates every repository through a fixed-size worker pool."""

    def __init__(self, transfer: Transfer, workers: int = DEFAULT_WORKERS, dry_run: bool = False) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._transfer = transfer
        self._workers = workers
        self._dry_run = dry_run

    def run(
        self,
        repositories: Sequence[RemoteRepository],
        identity: AuthenticatedUser,
        token: str,
        backup_dir: Path,
    ) -> BackupReport:
        credentials = Credentials(username=identity.login, token=token)
        units = [
            BackupUnit(repository=repo, target_path=backup_dir / repo.name, credentials=credentials)
            for repo in repositories
        ]
        report = BackupReport()
        if not units:
            return report

        with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="backup") as executor:
            futures = {}
            for unit in units:
                unit.transition(UnitState.DISPATCHED)
                futures[executor.submit(self._execute, unit)] = unit
            for future in as_completed(futures):
                report.record(future.result())
        return report

    def _execute(self, unit: BackupUnit) -> UnitOutcome:
        repo = unit.repository
        try:
            exists = unit.target_path.exists()
        except OSError as exc:
            return self._fail(unit, TransferError.LOCAL_FILESYSTEM, str(exc))
        unit.action = "fetch" if exists else "clone"

        if self._dry_run:
            LOG.info("[dry-run] Would %s %s into %s", unit.action, repo.full_name, unit.target_path)
            unit.transition(UnitState.SKIPPED)
            return self._outcome(unit)

        LOG.info("Started to back up %s from %s", repo.full_name, repo.clone_url)
        try:
            if exists:
                unit.transition(UnitState.FETCHING)
                self._fetch(unit)
            else:
                unit.transition(UnitState.CLONING)
                self._transfer.clone(repo.clone_url, unit.target_path, unit.credentials)
        except RepositoryBackupError as exc:
            return self._fail(unit, exc.reason, str(exc))
        except OSError as exc:
            return self._fail(unit, TransferError.LOCAL_FILESYSTEM, str(exc))
        except Exception as exc:  # noqa: BLE001
            LOG.debug("Unexpected error backing up %s", repo.full_name, exc_info=True)
            return self._fail(unit, TransferError.UNKNOWN, str(exc))

        unit.transition(UnitState.SUCCEEDED)
        LOG.info("Finished %s of %s", unit.action, repo.full_name)
        return self._outcome(unit)

    def _fetch(self, unit: BackupUnit) -> None:
        local = self._transfer.open(unit.target_path)
        remotes = self._transfer.list_remotes(local)
        if not remotes:
            LOG.warning("%s has no remotes; nothing to fetch", unit.target_path)
            return

        first_error: Optional[RepositoryBackupError] = None
        for remote in remotes:
            try:
                self._transfer.remote_download(local, remote, unit.credentials)
            except RepositoryBackupError as exc:
                LOG.warning("Fetching remote %s of %s failed: %s", remote, unit.repository.full_name, exc)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def _fail(self, unit: BackupUnit, reason: TransferError, message: str) -> UnitOutcome:
        unit.transition(UnitState.FAILED)
        LOG.error("Failed to %s %s (%s): %s", unit.action or "back up", unit.repository.full_name, reason.value, message)
        return self._outcome(unit, reason, message)

    @staticmethod
    def _outcome(unit: BackupUnit, error: Optional[TransferError] = None, message: str = "") -> UnitOutcome:
        return UnitOutcome(
            repository=unit.repository.name,
            action=unit.action,
            state=unit.state,
            error=error,
            message=message,
        )
