from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .errors import TransferError
from .models import UnitState


@dataclass(frozen=True)
class UnitOutcome:
    repository: str
    action: Optional[str]
    state: UnitState
    error: Optional[TransferError] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.state in (UnitState.SUCCEEDED, UnitState.SKIPPED)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "repository": self.repository,
            "action": self.action,
            "state": self.state.value,
            "error": self.error.value if self.error else None,
            "message": self.message,
        }


@dataclass
class BackupReport:
    outcomes: Dict[str, UnitOutcome] = field(default_factory=dict)

    def record(self, outcome: UnitOutcome) -> None:
        self.outcomes[outcome.repository] = outcome

    @property
    def failures(self) -> List[UnitOutcome]:
        return [outcome for outcome in self.outcomes.values() if not outcome.success]

    @property
    def success(self) -> bool:
        return not self.failures

    def errors(self) -> List[str]:
        return [
            f"Repository {outcome.repository} {outcome.action or 'backup'} failed "
            f"({outcome.error.value if outcome.error else 'unknown'}): {outcome.message}"
            for outcome in self.failures
        ]


@dataclass
class Manifest:
    organization: str
    started_at: datetime
    completed_at: datetime
    dry_run: bool
    report: BackupReport
    schema_version: str = "1.0.0"

    def to_dict(self) -> Dict:
        return {
            "schema_version": self.schema_version,
            "organization": self.organization,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "dry_run": self.dry_run,
            "repositories": [
                outcome.to_dict()
                for _, outcome in sorted(self.report.outcomes.items())
            ],
            "errors": self.report.errors(),
        }

    def write(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2)
