# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/config/models.py

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from gluon.utils.duration import parse_duration

DEFAULT_DOCKER_SUBNET = "172.17.0.0/16"
DEFAULT_PRIVATE_CLUSTER_DEVICE = "eth1"
DEFAULT_WEAVE_HOSTNAME = "hosts.weave.local"
DEFAULT_WEAVE_IP_RANGE = "10.32.0.0/12"
DEFAULT_VAULT_MONKEY_IMAGE = "pulcy/vault-monkey:0.5.0"


class DockerOptions(BaseModel):
    docker_ip: Optional[str] = None                     # IP address docker binds ports to
    docker_subnet: str = DEFAULT_DOCKER_SUBNET
    private_registry_url: Optional[str] = None
    private_registry_username: Optional[str] = None
    private_registry_password: Optional[str] = None

    def has_registry_auth(self) -> bool:
        return bool(
            self.private_registry_url
            and self.private_registry_username
            and self.private_registry_password
        )


class NetworkOptions(BaseModel):
    private_cluster_device: str = DEFAULT_PRIVATE_CLUSTER_DEVICE
    cluster_subnet: Optional[str] = None                # 'a.b.c.d/x', derived from cluster_ip when empty
    cluster_ip: Optional[str] = None                    # this host's address on the cluster network


class EtcdOptions(BaseModel):
    cluster_state: Optional[Literal["new", "existing"]] = None
    use_vault_ca: bool = False
    secure_clients: bool = False


class WeaveOptions(BaseModel):
    seed: Optional[str] = None
    hostname: str = DEFAULT_WEAVE_HOSTNAME
    ip_range: Optional[str] = None                      # --ipalloc-range
    ip_init: Optional[str] = None                       # --ipalloc-init


class ServiceFlags(BaseModel):
    """Full configuration of a `gluon setup` run. Reconcilers treat it as read-only."""

    force: bool = False                                 # restart services even if nothing changed
    gluon_image: Optional[str] = None
    vault_monkey_image: str = DEFAULT_VAULT_MONKEY_IMAGE
    roles: List[str] = Field(default_factory=list)

    docker: DockerOptions = Field(default_factory=DockerOptions)
    network: NetworkOptions = Field(default_factory=NetworkOptions)
    etcd: EtcdOptions = Field(default_factory=EtcdOptions)
    weave: WeaveOptions = Field(default_factory=WeaveOptions)


class UpdateConfig(BaseModel):
    """Settings of a fleet rolling update."""

    gluon_image: str = ""
    machine_delay: timedelta = timedelta(seconds=30)
    reboot_expired: timedelta = timedelta(minutes=2)
    reboot: bool = False
    ask_confirmation: bool = False
    user_name: str = "core"

    @field_validator("machine_delay", "reboot_expired", mode="before")
    @classmethod
    def _parse_duration(cls, v):
        return parse_duration(v)


class SSHOptions(BaseModel):
    port: int = 22
    key_path: Optional[Path] = None
    password: Optional[str] = None
    connect_timeout: float = 20.0
    command_timeout: Optional[float] = 600.0


class GluonConfig(BaseModel):
    config_dir: Path = Path("/etc/pulcy")
    root: Path = Path("/")                              # filesystem root artifacts are written under
    log_dir: Optional[Path] = None
    ssh: SSHOptions = Field(default_factory=SSHOptions)
    setup: ServiceFlags = Field(default_factory=ServiceFlags)
    update: UpdateConfig = Field(default_factory=UpdateConfig)

    @property
    def members_file(self) -> Path:
        return self.config_dir / "cluster-members"
