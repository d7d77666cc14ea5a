from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional


class PayloadError(ValueError):
    """Raised when an API payload lacks a required field."""


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise PayloadError(f"Field '{key}' missing or not a string")
    return value


@dataclass(frozen=True)
class RemoteRepository:
    name: str
    full_name: str
    clone_url: str

    @classmethod
    def from_payload(cls, payload: Any) -> "RemoteRepository":
        if not isinstance(payload, Mapping):
            raise PayloadError("Repository entry is not an object")
        return cls(
            name=_require_str(payload, "name"),
            full_name=_require_str(payload, "full_name"),
            clone_url=_require_str(payload, "clone_url"),
        )


@dataclass(frozen=True)
class AuthenticatedUser:
    login: str

    @classmethod
    def from_payload(cls, payload: Any) -> "AuthenticatedUser":
        if not isinstance(payload, Mapping):
            raise PayloadError("User payload is not an object")
        return cls(login=_require_str(payload, "login"))


@dataclass(frozen=True)
class Credentials:
    username: str
    token: str = field(repr=False)


class UnitState(Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    CLONING = "cloning"
    FETCHING = "fetching"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (UnitState.SUCCEEDED, UnitState.FAILED, UnitState.SKIPPED)


_TRANSITIONS: Dict[UnitState, tuple] = {
    UnitState.PENDING: (UnitState.DISPATCHED,),
    UnitState.DISPATCHED: (UnitState.CLONING, UnitState.FETCHING, UnitState.FAILED, UnitState.SKIPPED),
    UnitState.CLONING: (UnitState.SUCCEEDED, UnitState.FAILED),
    UnitState.FETCHING: (UnitState.SUCCEEDED, UnitState.FAILED),
}


@dataclass
class BackupUnit:
    """Work item for one repository; lives only while the backup runs."""

    repository: RemoteRepository
    target_path: Path
    credentials: Credentials
    state: UnitState = UnitState.PENDING
    action: Optional[str] = None

    def transition(self, new_state: UnitState) -> None:
        allowed = _TRANSITIONS.get(self.state, ())
        if new_state not in allowed:
            raise ValueError(
                f"Illegal state transition for {self.repository.name}: "
                f"{self.state.value} -> {new_state.value}"
            )
        self.state = new_state
