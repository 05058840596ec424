# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/journal.py

from __future__ import annotations

from gluon.artifacts.store import DesiredArtifact
from gluon.config.models import ServiceFlags
from .base import ReconciliationResult, ServiceDependencies, ensure_unit, write_artifacts

SOCKET_NAME = "systemd-journal-gatewayd.socket"
SOCKET_PATH = "/lib/systemd/system/" + SOCKET_NAME

SOCKET_LINES = [
    "[Unit]",
    "Description=Journal Gateway Service Socket",
    "Documentation=man:systemd-journal-gatewayd(8)",
    "",
    "[Socket]",
    "ListenStream=[::1]:19531",
    "",
    "[Install]",
    "WantedBy=sockets.target",
]


class JournalService:
    """Journal gateway, reachable on the loopback address only."""

    def name(self) -> str:
        return "journal"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        socket = DesiredArtifact(SOCKET_PATH, ("\n".join(SOCKET_LINES) + "\n").encode("utf-8"))
        changed = write_artifacts(deps, [socket])
        return changed | ensure_unit(deps, SOCKET_NAME, changed.changed, flags.force, enable=False)
