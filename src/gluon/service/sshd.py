# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/sshd.py

from __future__ import annotations

from gluon.config.models import ServiceFlags
from .base import CHANGED, ReconciliationResult, ServiceDependencies, write_artifacts

CONFIG_PATH = "/etc/ssh/sshd_config"
SERVICE_NAME = "ssh.service"

CONFIG_MODE = 0o600


class SshdService:
    """Hardened sshd_config. sshd is socket activated, new connections pick up the file."""

    def name(self) -> str:
        return "sshd"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        config = deps.renderer.render_artifact("sshd_config.j2", CONFIG_PATH, mode=CONFIG_MODE)
        changed = write_artifacts(deps, [config])
        if flags.force or changed.changed:
            deps.units.reload()
            return CHANGED
        return changed
