# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events of one gluon invocation
    host: str         # machine the run executes on

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def now_ts() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_ctx(host: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": now_ts(),
        "run_id": run_id or str(uuid.uuid4()),
        "host": host,
    }


# ---------------------------------------------------------------------
# Machine reconciliation (gluon setup)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ReconcileStarted(BaseEvent):
    services: List[str]

@dataclass(frozen=True)
class ServiceReconciled(BaseEvent):
    name: str
    index: int
    changed: bool
    duration_ms: int

@dataclass(frozen=True)
class ReconcileFailed(BaseEvent):
    name: str
    error: str

@dataclass(frozen=True)
class ReconcileSummary(BaseEvent):
    status: str          # "OK" or "FAILED"
    reconciled: int
    changed: int
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Fleet rollout (gluon update)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RolloutStarted(BaseEvent):
    image: str
    members: List[str]

@dataclass(frozen=True)
class ImagePulled(BaseEvent):
    member: str
    image: str

@dataclass(frozen=True)
class MachineUpdated(BaseEvent):
    member: str
    index: int

@dataclass(frozen=True)
class MachineRebooted(BaseEvent):
    member: str
    waited_s: float

@dataclass(frozen=True)
class RolloutFailed(BaseEvent):
    member: Optional[str]
    error: str

@dataclass(frozen=True)
class RolloutSummary(BaseEvent):
    status: str          # "OK", "FAILED" or "ABORTED"
    updated: int
    total: int
    error: Optional[str] = None
