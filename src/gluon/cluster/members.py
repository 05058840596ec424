# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/cluster/members.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional, Protocol, Sequence

from gluon.errors import ConfigError

log = logging.getLogger("gluon")

CLUSTER_MEMBERS_PATH = "/etc/pulcy/cluster-members"

ETCD_PROXY_OPTION = "etcd-proxy"
PRIVATE_HOST_IP_PREFIX = "private-host-ip="
ROLES_PREFIX = "roles="


@dataclass(frozen=True)
class ClusterMember:
    machine_id: str
    cluster_ip: str              # address used for cluster-internal traffic (etcd, weave, ssh)
    private_host_ip: str         # address of the host itself, may equal cluster_ip
    etcd_proxy: bool = False     # not part of the etcd consensus group
    roles: FrozenSet[str] = field(default_factory=frozenset)


def parse_members(
    text: str,
    source: str = CLUSTER_MEMBERS_PATH,
    logger: Optional[logging.Logger] = None,
) -> List[ClusterMember]:
    """
    Parse the content of a cluster-members file.

    Every line looks like:
        <machine-id>=<cluster-ip> [etcd-proxy] [private-host-ip=<ip>] [roles=<a,b>]

    Blank lines and lines without '=' are skipped. Unknown options are
    logged and ignored.
    """
    logger = logger or log
    members: List[ClusterMember] = []

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        machine_id, sep, rest = line.partition("=")
        if not sep:
            logger.warning("Skipping malformed line '%s' in %s", line, source)
            continue

        parts = rest.split()
        if not parts:
            logger.warning("Missing IP address for '%s' in %s", machine_id, source)
            continue

        cluster_ip = parts[0]
        private_host_ip = cluster_ip
        etcd_proxy = False
        roles: FrozenSet[str] = frozenset()

        for opt in parts[1:]:
            if opt == ETCD_PROXY_OPTION:
                etcd_proxy = True
            elif opt.startswith(PRIVATE_HOST_IP_PREFIX):
                private_host_ip = opt[len(PRIVATE_HOST_IP_PREFIX):]
            elif opt.startswith(ROLES_PREFIX):
                roles = frozenset(r for r in opt[len(ROLES_PREFIX):].split(",") if r)
            else:
                logger.warning("Unknown option '%s' in %s", opt, source)

        members.append(
            ClusterMember(
                machine_id=machine_id.strip(),
                cluster_ip=cluster_ip,
                private_host_ip=private_host_ip,
                etcd_proxy=etcd_proxy,
                roles=roles,
            )
        )

    return members


class MembershipResolver(Protocol):
    def get_members(self, required: bool = True) -> List[ClusterMember]: ...

    def member_for_ip(self, cluster_ip: str, required: bool = True) -> Optional[ClusterMember]: ...


class _ResolverBase:

    def get_members(self, required: bool = True) -> List[ClusterMember]:
        raise NotImplementedError

    def member_for_ip(self, cluster_ip: str, required: bool = True) -> Optional[ClusterMember]:
        for m in self.get_members(required=required):
            if m.cluster_ip == cluster_ip:
                return m
        if required:
            raise ConfigError(f"No cluster member found for {cluster_ip}")
        return None


class ClusterMembershipResolver(_ResolverBase):
    """
    Reads the members file once per run and keeps the result.

    Construct a new instance for every independent run; membership does
    not change while a run is in progress.
    """

    def __init__(self, path: str | Path = CLUSTER_MEMBERS_PATH, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or log
        self._members: Optional[List[ClusterMember]] = None

    def get_members(self, required: bool = True) -> List[ClusterMember]:
        """
        Return the parsed member list.

        required=True raises ConfigError when the file cannot be read.
        required=False logs a warning and returns [] instead, for callers
        that can still do something useful on a single-node bootstrap.
        """
        if self._members is not None:
            return list(self._members)

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            if required:
                raise ConfigError(f"cannot read cluster members from {self.path}: {exc}") from exc
            self.logger.warning("GetClusterMembers failed: %s", exc)
            return []

        self._members = parse_members(text, source=str(self.path), logger=self.logger)
        return list(self._members)


class StaticMembershipResolver(_ResolverBase):
    """In-memory member list, used by tests and by callers that already know the fleet."""

    def __init__(self, members: Sequence[ClusterMember]):
        self._members = list(members)

    def get_members(self, required: bool = True) -> List[ClusterMember]:
        return list(self._members)
