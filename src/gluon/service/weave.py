# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/weave.py

from __future__ import annotations

from typing import List

from gluon.cluster.members import ClusterMember
from gluon.config.models import ServiceFlags
from gluon.config.state import weave_name_from_machine_id
from .base import ReconciliationResult, ServiceDependencies, ensure_unit, unit_path, write_artifacts

SERVICE_NAME = "weave.service"
CNI_CONF_PATH = "/etc/cni/net.d/10-weave.conf"
CNI_PLUGIN_DIR = "/opt/cni/bin"


def peer_name(members: List[ClusterMember], cluster_ip: str) -> str:
    """Weave name of the local machine, empty when it is not listed."""
    for m in members:
        if m.cluster_ip == cluster_ip:
            return weave_name_from_machine_id(m.machine_id)
    return ""


class WeaveService:
    """
    Weave overlay network: the router unit with all peers, plus the CNI
    plugin configuration. Needs the member list, a missing list is fatal.
    """

    def name(self) -> str:
        return "weave"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        members = deps.members.get_members(required=True)
        deps.store.ensure_dir(CNI_PLUGIN_DIR)

        unit = deps.renderer.render_artifact(
            "weave.service.j2",
            unit_path(SERVICE_NAME),
            {
                "seed": flags.weave.seed or "",
                "peers": " ".join(m.private_host_ip for m in members),
                "name": peer_name(members, flags.network.cluster_ip),
                "hostname": flags.weave.hostname,
                "ip_range": flags.weave.ip_range,
                "ip_init": flags.weave.ip_init or "seed=${SEED}",
            },
        )
        changed_unit = write_artifacts(deps, [unit])
        cni = deps.renderer.render_artifact("weave-cni.conf.j2", CNI_CONF_PATH)
        changed_cni = write_artifacts(deps, [cni])

        if flags.force or changed_cni.changed:
            deps.log.info("running weave setup-cni")
            deps.commands.run(["weave", "setup-cni"])

        return changed_unit | changed_cni | ensure_unit(
            deps, SERVICE_NAME, changed_unit.changed, flags.force, check_active=False
        )
