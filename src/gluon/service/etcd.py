# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/service/etcd.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from gluon.artifacts.store import DesiredArtifact
from gluon.cluster.members import ClusterMember
from gluon.config.models import ServiceFlags
from gluon.errors import ConfigError
from .base import (
    CHANGED,
    UNCHANGED,
    ReconciliationResult,
    ServiceDependencies,
    ensure_unit,
    unit_path,
    write_artifacts,
)

SERVICE_NAME = "etcd2.service"
CONF_DIR = unit_path(SERVICE_NAME + ".d")
CONF_PATH = CONF_DIR + "/99-etcd2.conf"
ENVIRONMENT_PATH = "/etc/environment"
INIT_PATH = "/root/etcd-init.sh"
ETCD_USER = "etcd"
DATA_PATH = "/var/lib/etcd2"

CERTS_SERVICE_NAME = "etcd-certs.service"
CERTS_TEMPLATE_PATH = "/opt/certs/etcd-certs.template"
CERTS_OUTPUT_PATH = "/opt/certs/etcd.serial"
CERT_PATH = "/opt/certs/etcd-cert.pem"
KEY_PATH = "/opt/certs/etcd-key.pem"
CA_PATH = "/opt/certs/etcd-ca.pem"

CLIENT_PORT = 2379
LEGACY_CLIENT_PORT = 4001

TEMPLATE_MODE = 0o400
INIT_MODE = 0o755


@dataclass(frozen=True)
class EtcdConfig:
    cluster_state: str
    cluster_ip: str
    is_proxy: bool
    name: str
    private_host_ip: str
    listen_peer_urls: str
    advertise_peer_urls: str
    listen_client_urls: str
    advertise_client_urls: str
    endpoints: str
    initial_cluster: str
    host: str
    port: str
    scheme: str
    use_vault_ca: bool
    secure_clients: bool


def build_etcd_config(
    flags: ServiceFlags,
    members: List[ClusterMember],
    local: Optional[ClusterMember] = None,
) -> EtcdConfig:
    """
    Derive the etcd member settings of this machine from the member list.

    `local` is the member entry of this machine (None while the member list
    is not distributed yet). Members flagged etcd-proxy are not part of the
    initial cluster; a proxy machine talks to one of the real members,
    picked by its own position.
    """
    cluster_ip = flags.network.cluster_ip
    if not cluster_ip:
        raise ConfigError("private ip (cluster ip) is empty")

    scheme = "https" if flags.etcd.secure_clients else "http"
    initial_cluster: List[str] = []
    endpoints: List[str] = []
    hosts: List[str] = []
    for m in members:
        if m.etcd_proxy:
            continue
        initial_cluster.append(f"{m.machine_id}=https://{m.cluster_ip}:2380")
        initial_cluster.append(f"{m.machine_id}=https://{m.private_host_ip}:2381")
        endpoints.append(f"{scheme}://{m.cluster_ip}:{CLIENT_PORT}")
        hosts.append(m.cluster_ip)

    name = local.machine_id if local else ""
    is_proxy = local.etcd_proxy if local else False
    private_host_ip = local.private_host_ip if local else cluster_ip
    member_index = 0
    if local is not None:
        member_index = members.index(local) if is_proxy else hosts.index(local.cluster_ip)

    peer_urls = f"https://{private_host_ip}:2381,https://{cluster_ip}:2380"
    return EtcdConfig(
        cluster_state=flags.etcd.cluster_state or "new",
        cluster_ip=cluster_ip,
        is_proxy=is_proxy,
        name=name,
        private_host_ip=private_host_ip,
        listen_peer_urls=peer_urls,
        advertise_peer_urls=peer_urls,
        listen_client_urls=",".join([
            f"{scheme}://{cluster_ip}:{CLIENT_PORT}",
            f"{scheme}://{cluster_ip}:{LEGACY_CLIENT_PORT}",
            f"{scheme}://127.0.0.1:{CLIENT_PORT}",
            f"{scheme}://127.0.0.1:{LEGACY_CLIENT_PORT}",
        ]),
        advertise_client_urls=",".join([
            f"{scheme}://{cluster_ip}:{CLIENT_PORT}",
            f"{scheme}://{cluster_ip}:{LEGACY_CLIENT_PORT}",
        ]),
        endpoints=",".join(endpoints),
        initial_cluster=",".join(initial_cluster),
        # single-node bootstrap has no member list yet, use ourselves
        host=hosts[member_index % len(hosts)] if hosts else cluster_ip,
        port=str(CLIENT_PORT),
        scheme=scheme,
        use_vault_ca=flags.etcd.use_vault_ca,
        secure_clients=flags.etcd.secure_clients,
    )


def environment_pairs(cfg: EtcdConfig) -> List[Tuple[str, str]]:
    pairs = [
        ("ETCD_ENDPOINTS", cfg.endpoints),
        ("ETCDCTL_ENDPOINTS", cfg.endpoints),
        ("ETCD_HOST", cfg.host),
        ("ETCD_PORT", cfg.port),
        ("ETCD_SCHEME", cfg.scheme),
    ]
    if cfg.secure_clients:
        pairs += [
            ("ETCD_CERT_FILE", CERT_PATH),
            ("ETCD_KEY_FILE", KEY_PATH),
            ("ETCD_TRUSTED_CA_FILE", CA_PATH),
        ]
    return pairs


def dropin_conf(cfg: EtcdConfig) -> bytes:
    lines = [
        "[Service]",
        "Environment=ETCD_LISTEN_PEER_URLS=" + cfg.listen_peer_urls,
        "Environment=ETCD_LISTEN_CLIENT_URLS=" + cfg.listen_client_urls,
        "Environment=ETCD_INITIAL_CLUSTER=" + cfg.initial_cluster,
        "Environment=ETCD_INITIAL_CLUSTER_STATE=" + cfg.cluster_state,
        "Environment=ETCD_INITIAL_ADVERTISE_PEER_URLS=" + cfg.advertise_peer_urls,
        "Environment=ETCD_ADVERTISE_CLIENT_URLS=" + cfg.advertise_client_urls,
    ]
    if cfg.use_vault_ca:
        lines += [
            "Environment=ETCD_PEER_CERT_FILE=" + CERT_PATH,
            "Environment=ETCD_PEER_KEY_FILE=" + KEY_PATH,
            "Environment=ETCD_PEER_TRUSTED_CA_FILE=" + CA_PATH,
        ]
        if cfg.secure_clients:
            lines += [
                "Environment=ETCD_CERT_FILE=" + CERT_PATH,
                "Environment=ETCD_KEY_FILE=" + KEY_PATH,
                "Environment=ETCD_TRUSTED_CA_FILE=" + CA_PATH,
            ]
    else:
        lines.append("Environment=ETCD_PEER_AUTO_TLS=true")
    if cfg.name:
        lines.append("Environment=ETCD_NAME=" + cfg.name)
    if cfg.is_proxy:
        lines.append("Environment=ETCD_PROXY=on")
    return ("\n".join(lines) + "\n").encode("utf-8")


class EtcdService:
    """
    etcd2 member (or proxy) of the cluster.

    With use_vault_ca the peer certificates come from etcd-certs.service,
    which is reconciled first; when it changed or had to be (re)started,
    etcd2 is restarted as well so it picks up the new certificates.
    """

    def name(self) -> str:
        return "etcd"

    def setup(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        # a first machine can come up before the member list is distributed
        members = deps.members.get_members(required=False)
        local = deps.members.member_for_ip(flags.network.cluster_ip, required=False) if members else None
        cfg = build_etcd_config(flags, members, local)

        deps.log.info(f"updating {ENVIRONMENT_PATH}")
        result = ReconciliationResult(deps.store.update_env_file(ENVIRONMENT_PATH, environment_pairs(cfg)))
        result = result | self._init_user_and_path(deps, flags)

        if flags.etcd.use_vault_ca:
            certs = self._setup_certs(deps, flags)
        else:
            certs = self._remove_unit(deps, CERTS_SERVICE_NAME, [unit_path(CERTS_SERVICE_NAME), CERTS_TEMPLATE_PATH])
        result = result | certs

        if cfg.is_proxy:
            return result | self._remove_unit(deps, SERVICE_NAME, [unit_path(SERVICE_NAME), CONF_PATH])

        artifacts = [
            deps.renderer.render_artifact(
                "etcd.service.j2",
                unit_path(SERVICE_NAME),
                {"etcd_user": ETCD_USER, "data_path": DATA_PATH},
            ),
            DesiredArtifact(CONF_PATH, dropin_conf(cfg)),
        ]
        changed = write_artifacts(deps, artifacts)
        restart_needed = changed.changed or (flags.etcd.use_vault_ca and certs.changed)
        return result | changed | ensure_unit(deps, SERVICE_NAME, restart_needed, flags.force)

    def _init_user_and_path(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        script = deps.renderer.render_artifact(
            "etcd-init.sh.j2",
            INIT_PATH,
            {"etcd_user": ETCD_USER, "data_path": DATA_PATH},
            mode=INIT_MODE,
        )
        changed = write_artifacts(deps, [script])
        if changed.changed or flags.force:
            deps.log.info(f"running {INIT_PATH}")
            deps.commands.run([deps.store.resolve(INIT_PATH)])
        return changed

    def _setup_certs(self, deps: ServiceDependencies, flags: ServiceFlags) -> ReconciliationResult:
        template = deps.renderer.render_artifact(
            "etcd-certs.template.j2",
            CERTS_TEMPLATE_PATH,
            {
                "cluster_id": deps.state.read_cluster_id(),
                "common_name": deps.hostname,
                "cert_path": CERT_PATH,
                "key_path": KEY_PATH,
                "ca_path": CA_PATH,
            },
            mode=TEMPLATE_MODE,
        )
        unit = deps.renderer.render_artifact(
            "etcd-certs.service.j2",
            unit_path(CERTS_SERVICE_NAME),
            {
                "vault_monkey_image": flags.vault_monkey_image,
                "consul_address": f"{flags.network.cluster_ip}:8500",
                "template_path": CERTS_TEMPLATE_PATH,
                "template_output_path": CERTS_OUTPUT_PATH,
                "service_name": SERVICE_NAME,
            },
        )
        changed = write_artifacts(deps, [template, unit])
        return changed | ensure_unit(deps, CERTS_SERVICE_NAME, changed.changed, flags.force)

    def _remove_unit(self, deps: ServiceDependencies, unit: str, paths: List[str]) -> ReconciliationResult:
        if not deps.units.exists(unit):
            return UNCHANGED
        deps.log.info(f"removing {unit}")
        deps.units.disable(unit)
        for path in paths:
            deps.store.remove(path)
        deps.units.reload()
        return CHANGED
