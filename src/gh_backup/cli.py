from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence
from zoneinfo import ZoneInfo

from croniter import croniter

from .config import BackupConfig, ConfigurationError, SchedulerConfig, load_config, resolve_token
from .job_engine import EXIT_FATAL, EXIT_SUCCESS, BackupJob, JobResult
from .logger import configure_logging, get_logger

LOG = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Tool for creating backups from GitHub organisations.")
    parser.add_argument(
        "-d",
        "--dry",
        action="store_true",
        default=None,
        help="Perform a dry run. No data will be persisted.",
    )
    parser.add_argument(
        "--backup-dir",
        type=Path,
        help="Path to the backup directory. Defaults to ./<organisation>_backup.",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("GH_BACKUP_CONFIG"),
        help="Optional YAML configuration file; command-line options take precedence.",
    )
    parser.add_argument("--workers", type=int, help="Maximum number of concurrent repository transfers.")
    parser.add_argument("--timeout", type=float, help="Timeout in seconds for each git operation.")
    parser.add_argument("--max-pages", type=int, help="Upper bound on repository listing pages.")
    parser.add_argument("--manifest", type=Path, help="Write a JSON report of the run to this path.")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Log level (default INFO).",
    )
    parser.add_argument("organisation", nargs="?", help="Name of the GitHub organisation.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BackupConfig:
    config = load_config(Path(args.config).expanduser()) if args.config else BackupConfig()
    overrides: Dict[str, Any] = {
        "organization": args.organisation,
        "backup_dir": args.backup_dir,
        "workers": args.workers,
        "transfer_timeout": args.timeout,
        "max_pages": args.max_pages,
        "dry_run": args.dry,
    }
    merged = config.model_dump()
    merged.update({key: value for key, value in overrides.items() if value is not None})
    try:
        config = BackupConfig.model_validate(merged)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(str(exc)) from exc

    if not config.organization:
        raise ConfigurationError("An organisation must be given on the command line or in the configuration.")
    return config


def run_job(config: BackupConfig, token: str, manifest_path: Optional[Path] = None) -> int:
    result = BackupJob(config, token).run(manifest_path=manifest_path)
    _log_summary(result)
    return result.exit_code


def _log_summary(result: JobResult) -> None:
    if result.status == "failed":
        return

    report = result.report
    LOG.info(
        "Backup of %s finished in %.2fs: %s repositories, %s failed",
        result.organization,
        (result.completed_at - result.started_at).total_seconds(),
        len(report.outcomes),
        len(report.failures),
    )
    for error in result.errors:
        LOG.error(error)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = build_config(args)
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return EXIT_FATAL

    token = resolve_token()
    if not token:
        LOG.error("Set the GitHub token via the environment variables GH_TOKEN or GITHUB_TOKEN.")
        return EXIT_FATAL

    if config.scheduler:
        return run_with_scheduler(args, config, token)
    return run_job(config, token, args.manifest)


def run_with_scheduler(args: argparse.Namespace, initial_config: BackupConfig, token: str) -> int:
    """Run a backup at every cron tick until signalled.

    Returns the worst exit code seen across all runs.
    """
    stop_event = threading.Event()

    def _handle_signal(signum: int, _frame: Optional[object]) -> None:
        LOG.info("Received signal %s; stopping scheduler", signum)
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    config = initial_config
    scheduler = _require_scheduler(config.scheduler)
    if scheduler.run_on_startup:
        next_run = datetime.now(ZoneInfo(scheduler.timezone))
        LOG.info("Executing initial run immediately")
    else:
        next_run = _next_run(scheduler)
        LOG.info("Next run of %s scheduled for %s", config.organization, next_run.isoformat())

    worst_exit_code = EXIT_SUCCESS
    while not stop_event.is_set():
        remaining = (next_run - datetime.now(ZoneInfo(scheduler.timezone))).total_seconds()
        if remaining > 0:
            stop_event.wait(min(remaining, 60))
            continue

        config = _reload_config(args, config)
        if not config.scheduler:
            LOG.info("Scheduler removed from configuration; exiting loop")
            break
        scheduler = config.scheduler

        exit_code = run_job(config, token, args.manifest)
        if exit_code != EXIT_SUCCESS:
            LOG.warning("Scheduled backup of %s finished with exit code %s", config.organization, exit_code)
        worst_exit_code = max(worst_exit_code, exit_code)

        next_run = _next_run(scheduler)
        LOG.info("Next run of %s scheduled for %s", config.organization, next_run.isoformat())

    LOG.info("Scheduler stopped")
    return worst_exit_code


def _reload_config(args: argparse.Namespace, current: BackupConfig) -> BackupConfig:
    try:
        return build_config(args)
    except ConfigurationError as exc:
        LOG.error("Failed to reload configuration: %s; keeping previous settings", exc)
        return current


def _require_scheduler(scheduler: Optional[SchedulerConfig]) -> SchedulerConfig:
    if not scheduler:
        raise ValueError("Scheduler configuration is required")
    return scheduler


def _next_run(scheduler: SchedulerConfig) -> datetime:
    reference = datetime.now(ZoneInfo(scheduler.timezone))
    return croniter(scheduler.cron, reference).get_next(datetime)


if __name__ == "__main__":
    sys.exit(main())
