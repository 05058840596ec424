# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/env.py

from __future__ import annotations

from gluon.config.models import ServiceFlags
from .base import ReconciliationResult, ServiceDependencies, write_artifacts

BASHRC_PATH = "/home/core/.bashrc"
RESOLV_CONF = "/etc/resolv.conf"
DNS_LINE = "nameserver 8.8.8.8"


class EnvService:
    """Login environment of the core user and a public resolver fallback."""

    def name(self) -> str:
        return "env"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        bashrc = deps.renderer.render_artifact(
            "bashrc.j2",
            BASHRC_PATH,
            {"roles": flags.roles, "etcd_endpoints": ""},
        )
        result = write_artifacts(deps, [bashrc])
        return result | ReconciliationResult(add_google_dns(deps))


def add_google_dns(deps: ServiceDependencies) -> bool:
    content = deps.store.read_text(RESOLV_CONF) or ""
    lines = content.splitlines()
    if any(line.strip() == DNS_LINE for line in lines):
        return False

    deps.log.info(f"adding '{DNS_LINE}' to {RESOLV_CONF}")
    lines.append(DNS_LINE)
    return deps.store.update(RESOLV_CONF, "\n".join(lines) + "\n", 0o644)
