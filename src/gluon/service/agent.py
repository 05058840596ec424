# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/agent.py

from __future__ import annotations

from gluon.config.models import ServiceFlags
from gluon.config.state import save_flags
from gluon.errors import ConfigError
from .base import ReconciliationResult, ServiceDependencies, ensure_unit, unit_path, write_artifacts

SERVICE_NAME = "gluon.service"
GLUON_BINARY_PATH = "/home/core/bin/gluon"


class GluonService:
    """
    The gluon agent itself. Runs last so the saved flags describe a
    machine on which every other domain was applied.
    """

    def name(self) -> str:
        return "gluon"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        if not flags.docker.docker_subnet:
            raise ConfigError("docker-subnet is missing")

        changed_flags = ReconciliationResult(save_flags(flags, deps.state))

        unit = deps.renderer.render_artifact(
            "gluon.service.j2",
            unit_path(SERVICE_NAME),
            {
                "gluon_image": flags.gluon_image,
                "private_cluster_device": flags.network.private_cluster_device,
                "docker_subnet": flags.docker.docker_subnet,
                "weave_hostname": flags.weave.hostname,
            },
        )
        changed = changed_flags | write_artifacts(deps, [unit])

        if flags.force or changed.changed:
            # the unit extracts a fresh binary from gluon_image when it is missing
            deps.store.remove(GLUON_BINARY_PATH)

        return changed | ensure_unit(
            deps, SERVICE_NAME, changed.changed, flags.force, check_active=False, restart=False
        )
