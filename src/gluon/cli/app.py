# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/cli/app.py
from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Optional, Tuple

import typer

from gluon.artifacts.store import ArtifactStore
from gluon.artifacts.templates import TemplateRenderer
from gluon.cluster.members import ClusterMembershipResolver
from gluon.config.loader import load_config
from gluon.config.models import GluonConfig
from gluon.config.state import StateFiles, require_setup_flags, setup_defaults
from gluon.errors import GluonError
from gluon.logging.log import init_logging
from gluon.observers.console import ConsoleObserver
from gluon.observers.dispatcher import EventBus
from gluon.observers.events import new_ctx
from gluon.observers.jsonfile import JsonFileObserver
from gluon.observers.logger import LoggerObserver
from gluon.remote.executor import SSHRemoteExecutor
from gluon.rollout.coordinator import RolloutCoordinator
from gluon.service.base import ServiceDependencies
from gluon.service.orchestrator import Orchestrator
from gluon.systemd.units import SystemctlUnitManager
from gluon.utils.runner import CommandRunner
from gluon.version import __version__


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Gluon machine provisioning CLI", no_args_is_help=True)
member_app = typer.Typer(help="Inspect cluster members", no_args_is_help=True)
app.add_typer(member_app, name="member")


def fail(operation: str, exc: BaseException) -> None:
    typer.echo(f"{operation} failed: {exc}")
    raise typer.Exit(1)


def start_run(cfg: GluonConfig, debug: bool, events: bool = False) -> Tuple[logging.Logger, EventBus, dict]:
    logger, run_id, log_path = init_logging(base_dir=cfg.log_dir, verbose=debug)
    bus = EventBus(
        observers=[
            LoggerObserver(logger),
            JsonFileObserver(log_path.parent / f"{run_id}.jsonl"),
        ]
    )
    if events:
        bus.subscribe(ConsoleObserver())
    run_ctx = new_ctx(host=socket.gethostname(), run_id=run_id)
    return logger, bus, run_ctx


def members_resolver(cfg: GluonConfig, logger: Optional[logging.Logger] = None) -> ClusterMembershipResolver:
    store = ArtifactStore(cfg.root)
    return ClusterMembershipResolver(store.resolve(cfg.members_file), logger)


def make_executor(cfg: GluonConfig) -> SSHRemoteExecutor:
    return SSHRemoteExecutor(
        port=cfg.ssh.port,
        key_path=cfg.ssh.key_path,
        password=cfg.ssh.password,
        connect_timeout=cfg.ssh.connect_timeout,
        command_timeout=cfg.ssh.command_timeout,
    )


# ------------------------------------------------------------------------------
# setup
# ------------------------------------------------------------------------------

@app.command()
def setup(
    force: bool = typer.Option(False, "--force", help="Restart services, even if nothing has changed"),
    gluon_image: Optional[str] = typer.Option(None, "--gluon-image", help="Gluon docker image name"),
    docker_ip: Optional[str] = typer.Option(None, "--docker-ip", help="IP address docker binds ports to"),
    docker_subnet: Optional[str] = typer.Option(None, "--docker-subnet", help="Subnet used by docker"),
    private_ip: Optional[str] = typer.Option(None, "--private-ip", help="IP address of this host in the cluster network"),
    private_cluster_device: Optional[str] = typer.Option(
        None, "--private-cluster-device", help="Network device connected to the cluster IP"
    ),
    private_registry_url: Optional[str] = typer.Option(None, "--private-registry-url"),
    private_registry_username: Optional[str] = typer.Option(None, "--private-registry-username"),
    private_registry_password: Optional[str] = typer.Option(None, "--private-registry-password"),
    etcd_cluster_state: Optional[str] = typer.Option(None, "--etcd-cluster-state", help="new|existing"),
    weave_seed: Optional[str] = typer.Option(None, "--weave-seed", help="SEED of the weave network"),
    weave_hostname: Optional[str] = typer.Option(None, "--weave-hostname", help="DNS name for exposed host"),
    config: Optional[Path] = typer.Option(None, "--config", help="gluon.yaml with defaults"),
    debug: bool = typer.Option(False, "--debug"),
    events: bool = typer.Option(False, "--events", help="Print lifecycle events to the console"),
):
    """Reconcile this machine's configuration once."""
    overrides = {
        "setup": {
            "gluon_image": gluon_image,
            "docker": {
                "docker_ip": docker_ip,
                "docker_subnet": docker_subnet,
                "private_registry_url": private_registry_url,
                "private_registry_username": private_registry_username,
                "private_registry_password": private_registry_password,
            },
            "network": {
                "cluster_ip": private_ip,
                "private_cluster_device": private_cluster_device,
            },
            "etcd": {"cluster_state": etcd_cluster_state},
            "weave": {"seed": weave_seed, "hostname": weave_hostname},
        }
    }
    if force:
        overrides["setup"]["force"] = True

    try:
        cfg = load_config(config, overrides)
        logger, bus, run_ctx = start_run(cfg, debug, events)
        logger.info(f"gluon {__version__}")

        store = ArtifactStore(cfg.root)
        state = StateFiles(store, str(cfg.config_dir))
        members = members_resolver(cfg, logger)

        flags = setup_defaults(cfg.setup, state, members, logger)
        require_setup_flags(flags)

        deps = ServiceDependencies(
            units=SystemctlUnitManager(),
            store=store,
            renderer=TemplateRenderer(),
            members=members,
            log=logger,
            state=state,
            commands=CommandRunner(logger=logger),
        )
        Orchestrator(bus=bus, run_ctx=run_ctx).run(deps, flags)
    except GluonError as exc:
        fail("Setup", exc)


# ------------------------------------------------------------------------------
# update
# ------------------------------------------------------------------------------

@app.command()
def update(
    image: str = typer.Argument(..., help="Gluon image to roll out"),
    machine_delay: Optional[str] = typer.Option(None, "--machine-delay", help="Pause between machines, e.g. 30s"),
    reboot: bool = typer.Option(False, "--reboot", help="Reboot every machine after updating it"),
    reboot_expired: Optional[str] = typer.Option(None, "--reboot-expired", help="Max wait for a rebooted machine, e.g. 2m"),
    confirm: bool = typer.Option(False, "--confirm", help="Ask before continuing with the next machine"),
    user: Optional[str] = typer.Option(None, "--user", help="SSH user on the machines"),
    ssh_key: Optional[Path] = typer.Option(None, "--ssh-key"),
    config: Optional[Path] = typer.Option(None, "--config", help="gluon.yaml with defaults"),
    debug: bool = typer.Option(False, "--debug"),
    events: bool = typer.Option(False, "--events", help="Print lifecycle events to the console"),
):
    """Roll a new gluon image out to every cluster member."""
    overrides = {
        "update": {
            "gluon_image": image,
            "machine_delay": machine_delay,
            "reboot_expired": reboot_expired,
            "user_name": user,
        },
        "ssh": {"key_path": str(ssh_key) if ssh_key else None},
    }
    if reboot:
        overrides["update"]["reboot"] = True
    if confirm:
        overrides["update"]["ask_confirmation"] = True

    try:
        cfg = load_config(config, overrides)
        logger, bus, run_ctx = start_run(cfg, debug, events)

        coordinator = RolloutCoordinator(
            make_executor(cfg),
            members_resolver(cfg, logger),
            bus=bus,
            run_ctx=run_ctx,
        )
        coordinator.update_all(cfg.update)
        logger.info("Done")
    except GluonError as exc:
        fail("Update", exc)


# ------------------------------------------------------------------------------
# member / version
# ------------------------------------------------------------------------------

@member_app.command("list")
def member_list(
    config: Optional[Path] = typer.Option(None, "--config", help="gluon.yaml with defaults"),
):
    """Print the cluster IP of every member, one per line."""
    try:
        cfg = load_config(config)
        for m in members_resolver(cfg).get_members(required=True):
            typer.echo(m.cluster_ip)
    except GluonError as exc:
        fail("List members", exc)


@app.command()
def version():
    """Show the gluon version."""
    typer.echo(f"gluon {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
