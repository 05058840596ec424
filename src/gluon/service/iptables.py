# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/iptables.py

from __future__ import annotations

from gluon.config.models import ServiceFlags
from .base import (
    CHANGED,
    ReconciliationResult,
    ServiceDependencies,
    unit_path,
    write_artifacts,
)
from .docker import SERVICE_NAME as DOCKER_SERVICE
from .sshd import SERVICE_NAME as SSHD_SERVICE

V4_MEMBERS_PATH = "/home/core/ip4tables.members.sh"
V4_RULES_PATH = "/home/core/ip4tables.rules"
V6_RULES_PATH = "/home/core/ip6tables.rules"

V4_SERVICE = "ip4tables.service"
V6_SERVICE = "ip6tables.service"
NETFILTER_SERVICE = "netfilter.service"

RULES_MODE = 0o600
SCRIPT_MODE = 0o700
SERVICE_MODE = 0o644

# order matters, the rules need the netfilter modules and docker needs the rules
RESTART_SERVICES = (
    NETFILTER_SERVICE,
    V4_SERVICE,
    V6_SERVICE,
    SSHD_SERVICE,
    DOCKER_SERVICE,
)


class IptablesService:
    """
    Firewall rules for the host plus a script that opens the firewall to
    every cluster member. Needs the member list, a missing list is fatal.
    """

    def name(self) -> str:
        return "iptables"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        members = deps.members.get_members(required=True)

        members_script = deps.renderer.render_artifact(
            "ip4tables.members.sh.j2",
            V4_MEMBERS_PATH,
            {
                "cluster_member_ips": [m.cluster_ip for m in members],
                "private_member_ips": [m.private_host_ip for m in members],
                "docker_subnet": flags.docker.docker_subnet,
                "private_cluster_device": flags.network.private_cluster_device,
            },
            mode=SCRIPT_MODE,
        )
        changed_members = write_artifacts(deps, [members_script])

        rules_and_units = [
            deps.renderer.render_artifact(
                "ip4tables.rules.j2",
                V4_RULES_PATH,
                {
                    "docker_subnet": flags.docker.docker_subnet,
                    "weave_subnet": flags.weave.ip_range,
                    "private_cluster_device": flags.network.private_cluster_device,
                    "cluster_subnet": flags.network.cluster_subnet,
                },
                mode=RULES_MODE,
            ),
            deps.renderer.render_artifact("ip6tables.rules.j2", V6_RULES_PATH, mode=RULES_MODE),
            deps.renderer.render_artifact("netfilter.service.j2", unit_path(NETFILTER_SERVICE), mode=SERVICE_MODE),
            deps.renderer.render_artifact(
                "ip4tables.service.j2",
                unit_path(V4_SERVICE),
                {"rules_path": V4_RULES_PATH, "members_path": V4_MEMBERS_PATH},
                mode=SERVICE_MODE,
            ),
            deps.renderer.render_artifact(
                "ip6tables.service.j2",
                unit_path(V6_SERVICE),
                {"rules_path": V6_RULES_PATH},
                mode=SERVICE_MODE,
            ),
        ]
        changed_rules = write_artifacts(deps, rules_and_units)

        result = changed_members | changed_rules
        if flags.force or changed_rules.changed:
            deps.units.reload()
            for unit in RESTART_SERVICES:
                deps.log.info(f"restarting {unit}")
                deps.units.restart(unit)
            result = result | CHANGED

        if flags.force or changed_members.changed:
            deps.log.info(f"executing {V4_MEMBERS_PATH}")
            deps.commands.run([deps.store.resolve(V4_MEMBERS_PATH)])

        return result
