# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/docker.py

from __future__ import annotations

import base64
import ipaddress
import json

from gluon.artifacts.store import DesiredArtifact
from gluon.config.models import DockerOptions, ServiceFlags
from gluon.errors import ConfigError
from .base import ReconciliationResult, ServiceDependencies, ensure_unit, unit_path, write_artifacts

SERVICE_NAME = "docker.service"
ROOT_CONFIG_PATHS = ("/root/.docker/config", "/root/.docker/config.json")
CLEANUP_PATH = "/home/core/bin/docker-cleanup.sh"

CONFIG_MODE = 0o600
SCRIPT_MODE = 0o755


def encode_auth(username: str, password: str) -> str:
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


def registry_config(docker: DockerOptions) -> bytes:
    """Content of the docker client config holding the private registry credentials."""
    cfg = {
        "auths": {
            docker.private_registry_url: {
                "auth": encode_auth(docker.private_registry_username, docker.private_registry_password),
                "email": "",
            }
        }
    }
    return json.dumps(cfg, indent="\t").encode("utf-8")


def bridge_ip(docker_subnet: str) -> str:
    """First host address of the docker subnet in CIDR form (172.17.0.0/16 -> 172.17.0.1/16)."""
    try:
        net = ipaddress.ip_network(docker_subnet, strict=False)
    except ValueError as exc:
        raise ConfigError(f"invalid docker subnet '{docker_subnet}'") from exc
    return f"{net.network_address + 1}/{net.prefixlen}"


class DockerService:

    def name(self) -> str:
        return "docker"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        artifacts = []
        if flags.docker.has_registry_auth():
            content = registry_config(flags.docker)
            for path in ROOT_CONFIG_PATHS:
                artifacts.append(DesiredArtifact(path, content, CONFIG_MODE))
        else:
            deps.log.warning("Skip creating .docker config")

        artifacts.append(
            deps.renderer.render_artifact(
                "docker.service.j2",
                unit_path(SERVICE_NAME),
                {
                    "docker_ip": flags.docker.docker_ip,
                    "docker_bridge_ip": bridge_ip(flags.docker.docker_subnet),
                },
            )
        )
        changed = write_artifacts(deps, artifacts)
        result = changed | ensure_unit(
            deps, SERVICE_NAME, changed.changed, flags.force, enable=False, check_active=False
        )

        cleanup = deps.renderer.render_artifact("docker-cleanup.sh.j2", CLEANUP_PATH, mode=SCRIPT_MODE)
        return result | write_artifacts(deps, [cleanup])
