from __future__ import annotations

import base64
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .errors import RepositoryBackupError, TransferError, classify_git_failure
from .models import Credentials

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalRepository:
    path: Path


class GitTransfer:
    """Runs the git executable for clone and fetch operations.

    Credentials reach git as an ``http.extraHeader`` set through
    ``GIT_CONFIG_*`` environment variables, never through argv.
    """

    def __init__(self, git_binary: str = "git", timeout: Optional[float] = None) -> None:
        self._git = git_binary
        self._timeout = timeout

    def clone(self, url: str, destination: Path, credentials: Credentials) -> LocalRepository:
        LOG.debug("Cloning %s to %s", url, destination)
        try:
            self._run(["clone", "--no-checkout", url, str(destination)], credentials=credentials)
        except RepositoryBackupError as exc:
            # a killed clone leaves a half-initialised directory behind
            if exc.reason is TransferError.TIMEOUT:
                shutil.rmtree(destination, ignore_errors=True)
            raise
        repository = LocalRepository(path=destination)
        # clone itself never writes FETCH_HEAD
        self.remote_download(repository, "origin", credentials)
        return repository

    def open(self, path: Path) -> LocalRepository:
        if not path.is_dir():
            raise RepositoryBackupError(TransferError.LOCAL_FILESYSTEM, f"{path} is not a directory")
        git_dir = Path(self._run(["-C", str(path), "rev-parse", "--absolute-git-dir"]).strip())
        # rev-parse also succeeds inside an enclosing repository
        root = path.resolve()
        if git_dir.resolve() not in (root, root / ".git"):
            raise RepositoryBackupError(TransferError.LOCAL_FILESYSTEM, f"{path} is not a git repository")
        return LocalRepository(path=path)

    def list_remotes(self, repository: LocalRepository) -> List[str]:
        output = self._run(["-C", str(repository.path), "remote"])
        return [line.strip() for line in output.splitlines() if line.strip()]

    def remote_download(self, repository: LocalRepository, remote: str, credentials: Credentials) -> None:
        LOG.debug("Fetching %s in %s", remote, repository.path)
        self._run(
            ["-C", str(repository.path), "fetch", "--tags", "--no-recurse-submodules", remote],
            credentials=credentials,
        )

    def _run(self, args: Sequence[str], credentials: Optional[Credentials] = None) -> str:
        cmd = [self._git, *args]
        try:
            completed = subprocess.run(
                cmd,
                env=_build_env(credentials),
                check=True,
                capture_output=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise RepositoryBackupError(
                TransferError.TIMEOUT, f"git {args[0]} timed out after {self._timeout}s"
            ) from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", "ignore").strip()
            raise RepositoryBackupError(classify_git_failure(stderr), stderr or f"git exited with {exc.returncode}") from exc
        except OSError as exc:
            raise RepositoryBackupError(TransferError.LOCAL_FILESYSTEM, str(exc)) from exc
        return completed.stdout.decode("utf-8", "ignore")


def _build_env(credentials: Optional[Credentials]) -> Dict[str, str]:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    if credentials is None:
        return env

    basic = base64.b64encode(f"{credentials.username}:{credentials.token}".encode("utf-8")).decode("ascii")
    index = int(env.get("GIT_CONFIG_COUNT", "0") or "0")
    env[f"GIT_CONFIG_KEY_{index}"] = "http.extraHeader"
    env[f"GIT_CONFIG_VALUE_{index}"] = f"Authorization: Basic {basic}"
    env["GIT_CONFIG_COUNT"] = str(index + 1)
    return env
