# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/binaries.py

from __future__ import annotations

from gluon.config.models import ServiceFlags
from .base import ReconciliationResult, ServiceDependencies, ensure_unit, unit_path, write_artifacts

MOUNT_NAME = "usr-bin.mount"
MOUNT_POINT = "/usr/bin"
UPPER_DIR = "/home/core/bin/overlay"
WORK_DIR = "/home/core/bin/overlay-work"


class BinariesService:
    """Overlays /usr/bin so binaries dropped in /home/core/bin/overlay are on the PATH."""

    def name(self) -> str:
        return "binaries"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        mount = deps.renderer.render_artifact(
            "usr-bin.mount.j2",
            unit_path(MOUNT_NAME),
            {
                "mount_point": MOUNT_POINT,
                "lower_dir": MOUNT_POINT,
                "upper_dir": UPPER_DIR,
                "work_dir": WORK_DIR,
            },
        )
        changed = write_artifacts(deps, [mount])
        return changed | ensure_unit(deps, MOUNT_NAME, changed.changed, flags.force)
