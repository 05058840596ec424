# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/config/state.py

from __future__ import annotations

import ipaddress
import logging
from pathlib import PurePosixPath
from typing import List, Optional

from gluon.artifacts.store import ArtifactStore
from gluon.cluster.members import MembershipResolver
from gluon.errors import ConfigError
from .models import DEFAULT_WEAVE_IP_RANGE, ServiceFlags

log = logging.getLogger("gluon")

STATE_FILE_MODE = 0o644

GLUON_IMAGE = "gluon-image"
PRIVATE_REGISTRY_URL = "private-registry-url"
ETCD_CLUSTER_STATE = "etcd-cluster-state"
WEAVE_SEED = "weave-seed"
WEAVE_IP_RANGE = "weave-iprange"
WEAVE_IP_INIT = "weave-ipinit"
ROLES = "roles"
CLUSTER_ID = "cluster-id"


class StateFiles:
    """
    Small one-value files under the config directory (/etc/pulcy).

    Values given on one run are written here and become the defaults
    of the next run.
    """

    def __init__(self, store: ArtifactStore, config_dir: str = "/etc/pulcy"):
        self.store = store
        self.config_dir = PurePosixPath(config_dir)

    def path(self, name: str) -> str:
        return str(self.config_dir / name)

    def read(self, name: str) -> Optional[str]:
        raw = self.store.read_text(self.path(name))
        if raw is None:
            return None
        return raw.strip()

    def write(self, name: str, content: str) -> bool:
        return self.store.update(self.path(name), content.strip(), STATE_FILE_MODE)

    def read_cluster_id(self) -> str:
        cluster_id = self.read(CLUSTER_ID)
        if not cluster_id:
            raise ConfigError(f"cluster id not found in {self.path(CLUSTER_ID)}")
        return cluster_id


def weave_name_from_machine_id(machine_id: str) -> str:
    """
    Weave peer names look like MAC addresses; derive one from the first
    12 characters of the machine id.

    >>> weave_name_from_machine_id("0123456789abcdef")
    '01:23:45:67:89:ab'
    """
    if len(machine_id) < 12:
        raise ConfigError(f"machineID '{machine_id}' is too short")
    return ":".join(machine_id[i * 2:i * 2 + 2] for i in range(6))


def default_cluster_subnet(cluster_ip: str) -> str:
    """Network of cluster_ip using its classful default mask (10.1.2.3 -> 10.0.0.0/8)."""
    try:
        ip = ipaddress.ip_address(cluster_ip)
    except ValueError as exc:
        raise ConfigError(f"invalid private ip '{cluster_ip}'") from exc
    if ip.version != 4:
        raise ConfigError(f"cannot derive a cluster subnet from '{cluster_ip}', pass it explicitly")

    first = int(str(ip).split(".")[0])
    if first < 128:
        prefix = 8
    elif first < 192:
        prefix = 16
    else:
        prefix = 24
    return str(ipaddress.ip_network(f"{ip}/{prefix}", strict=False))


def _split_roles(text: str) -> List[str]:
    roles: List[str] = []
    for line in text.splitlines():
        for role in line.split(","):
            role = role.strip()
            if role:
                roles.append(role)
    return roles


def setup_defaults(
    flags: ServiceFlags,
    state: StateFiles,
    members: MembershipResolver,
    logger: Optional[logging.Logger] = None,
) -> ServiceFlags:
    """
    Return a copy of `flags` with every unset value filled in from the
    state files or built-in defaults. `flags` itself is left untouched.
    """
    logger = logger or log
    f = flags.model_copy(deep=True)

    if not f.docker.private_registry_url:
        f.docker.private_registry_url = state.read(PRIVATE_REGISTRY_URL) or None

    if not f.etcd.cluster_state:
        value = state.read(ETCD_CLUSTER_STATE)
        if value:
            value = " ".join(value.split())
            if value not in ("new", "existing"):
                raise ConfigError(f"invalid etcd cluster state '{value}' in {state.path(ETCD_CLUSTER_STATE)}")
            f.etcd.cluster_state = value

    if f.network.cluster_ip and not f.network.cluster_subnet:
        f.network.cluster_subnet = default_cluster_subnet(f.network.cluster_ip)

    if not f.gluon_image:
        f.gluon_image = state.read(GLUON_IMAGE) or None

    if not f.weave.seed:
        seed = state.read(WEAVE_SEED)
        if seed is None:
            seeds = [
                weave_name_from_machine_id(m.machine_id)
                for m in members.get_members(required=True)
                if not m.etcd_proxy
            ]
            seed = ",".join(seeds)
            logger.debug(f"derived weave seed '{seed}' from cluster members")
        f.weave.seed = seed or None

    if not f.weave.ip_range:
        f.weave.ip_range = state.read(WEAVE_IP_RANGE) or DEFAULT_WEAVE_IP_RANGE

    if not f.weave.ip_init:
        f.weave.ip_init = state.read(WEAVE_IP_INIT) or None

    # roles last, the other values are settled by now
    if not f.roles:
        content = state.read(ROLES)
        if content:
            f.roles = _split_roles(content)

    return f


def require_setup_flags(flags: ServiceFlags) -> None:
    """Raise ConfigError naming the first required option that is still empty."""
    required = [
        (flags.gluon_image, "--gluon-image"),
        (flags.docker.docker_ip, "--docker-ip"),
        (flags.docker.docker_subnet, "--docker-subnet"),
        (flags.network.cluster_ip, "--private-ip"),
        (flags.network.private_cluster_device, "--private-cluster-device"),
    ]
    for value, option in required:
        if not value:
            raise ConfigError(f"{option} is missing")


def save_flags(flags: ServiceFlags, state: StateFiles) -> bool:
    """Persist the values that serve as defaults next time. True if any file changed."""
    changed = False
    if flags.docker.private_registry_url:
        changed |= state.write(PRIVATE_REGISTRY_URL, flags.docker.private_registry_url)
    if flags.etcd.cluster_state:
        changed |= state.write(ETCD_CLUSTER_STATE, flags.etcd.cluster_state)
    if flags.gluon_image:
        changed |= state.write(GLUON_IMAGE, flags.gluon_image)
    if flags.weave.seed:
        changed |= state.write(WEAVE_SEED, flags.weave.seed)
    if flags.weave.ip_range:
        changed |= state.write(WEAVE_IP_RANGE, flags.weave.ip_range)
    if flags.roles:
        changed |= state.write(ROLES, "\n".join(flags.roles))
    return changed
