# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/orchestrator.py

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Sequence

from gluon.config.models import ServiceFlags
from gluon.errors import ReconciliationError
from gluon.observers.dispatcher import EventBus
from gluon.observers.events import (
    new_ctx,
    ReconcileStarted,
    ServiceReconciled,
    ReconcileFailed,
    ReconcileSummary,
)
from .agent import GluonService
from .base import Service, ServiceDependencies, ServiceOutcome
from .binaries import BinariesService
from .docker import DockerService
from .env import EnvService
from .etcd import EtcdService
from .iptables import IptablesService
from .journal import JournalService
from .sshd import SshdService
from .weave import WeaveService

log = logging.getLogger("gluon")


def default_services() -> List[Service]:
    """
    Reconcilers in the order they must run: firewall and docker before
    the network overlay, etcd after the network, the agent last.
    """
    return [
        BinariesService(),
        EnvService(),
        IptablesService(),
        JournalService(),
        DockerService(),
        WeaveService(),
        EtcdService(),
        SshdService(),
        GluonService(),
    ]


class Orchestrator:
    """Runs every reconciler once, in order, and stops at the first failure."""

    def __init__(
        self,
        services: Optional[Sequence[Service]] = None,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict] = None,
    ):
        self.services = list(services) if services is not None else default_services()
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(host="localhost")

    def run(self, deps: ServiceDependencies, flags: ServiceFlags) -> List[ServiceOutcome]:
        total = len(self.services)
        outcomes: List[ServiceOutcome] = []
        self.bus.emit(ReconcileStarted(services=[s.name() for s in self.services], **self.run_ctx))

        for index, service in enumerate(self.services, start=1):
            name = service.name()
            deps.log.info("%d/%d: reconciling %s", index, total, name)
            t0 = time.monotonic()
            try:
                result = service.setup(deps, flags)
            except Exception as exc:
                deps.log.error(f"reconciling {name} failed: {exc}")
                self.bus.emit(ReconcileFailed(name=name, error=str(exc), **self.run_ctx))
                self.bus.emit(
                    ReconcileSummary(
                        status="FAILED",
                        reconciled=len(outcomes),
                        changed=sum(1 for o in outcomes if o.changed),
                        error=f"{name}: {exc}",
                        **self.run_ctx,
                    )
                )
                raise ReconciliationError(name, exc) from exc

            duration_ms = int((time.monotonic() - t0) * 1000)
            outcome = ServiceOutcome(name=name, changed=result.changed, duration_ms=duration_ms)
            outcomes.append(outcome)
            deps.log.debug(f"{name}: changed={result.changed} ({duration_ms}ms)")
            self.bus.emit(
                ServiceReconciled(
                    name=name,
                    index=index,
                    changed=result.changed,
                    duration_ms=duration_ms,
                    **self.run_ctx,
                )
            )

        self.bus.emit(
            ReconcileSummary(
                status="OK",
                reconciled=len(outcomes),
                changed=sum(1 for o in outcomes if o.changed),
                **self.run_ctx,
            )
        )
        deps.log.info("Done")
        return outcomes
