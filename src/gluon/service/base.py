# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/base.py

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from gluon.artifacts.store import ArtifactStore, DesiredArtifact
from gluon.artifacts.templates import TemplateRenderer
from gluon.cluster.members import MembershipResolver
from gluon.config.models import ServiceFlags
from gluon.config.state import StateFiles
from gluon.systemd.units import UnitManager
from gluon.utils.runner import CommandRunner

SYSTEMD_UNIT_DIR = "/etc/systemd/system"


@dataclass(frozen=True)
class ReconciliationResult:
    """Whether a reconcile step changed anything on the machine. Combine with `|`."""

    changed: bool = False

    def __or__(self, other: "ReconciliationResult") -> "ReconciliationResult":
        return ReconciliationResult(self.changed or other.changed)


UNCHANGED = ReconciliationResult(False)
CHANGED = ReconciliationResult(True)


@dataclass
class ServiceDependencies:
    """Everything a reconciler may touch. Built once per `gluon setup` run."""

    units: UnitManager
    store: ArtifactStore
    renderer: TemplateRenderer
    members: MembershipResolver
    log: logging.Logger
    state: StateFiles
    commands: CommandRunner = field(default_factory=CommandRunner)
    hostname: str = field(default_factory=socket.gethostname)


class Service(Protocol):
    def name(self) -> str: ...

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult: ...


@dataclass(frozen=True)
class ServiceOutcome:
    name: str
    changed: bool
    duration_ms: int


def unit_path(unit: str) -> str:
    return f"{SYSTEMD_UNIT_DIR}/{unit}"


def write_artifacts(deps: ServiceDependencies, artifacts: Iterable[DesiredArtifact]) -> ReconciliationResult:
    """Apply every artifact, the result is changed if any of them was."""
    result = UNCHANGED
    for artifact in artifacts:
        deps.log.info(f"creating {artifact.path}")
        result = result | ReconciliationResult(deps.store.apply(artifact))
    return result


def ensure_unit(
    deps: ServiceDependencies,
    unit: str,
    changed: bool,
    force: bool,
    *,
    enable: bool = True,
    check_active: bool = True,
    restart: bool = True,
) -> ReconciliationResult:
    """
    Reload/enable/restart `unit` when one of its artifacts changed, when
    force is set, or (check_active) when the unit is not running.

    Nothing is issued to the unit manager otherwise.
    """
    needed = changed or force
    if not needed and check_active:
        needed = not deps.units.is_active(unit)
        if needed:
            deps.log.info(f"{unit} is not active")

    if not needed:
        deps.log.debug(f"{unit} is up to date")
        return UNCHANGED

    deps.units.reload()
    if enable:
        deps.units.enable(unit)
    if restart:
        deps.log.info(f"restarting {unit}")
        deps.units.restart(unit)
    return CHANGED
