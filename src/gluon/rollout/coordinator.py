# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/rollout/coordinator.py

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Callable, Dict, List, Optional

import typer

from gluon.cluster.members import ClusterMember, MembershipResolver
from gluon.config.models import UpdateConfig
from gluon.errors import (
    GluonError,
    RebootTimeoutError,
    RemoteExecError,
    RolloutAbortedError,
)
from gluon.observers.dispatcher import EventBus
from gluon.observers.events import (
    new_ctx,
    RolloutStarted,
    ImagePulled,
    MachineUpdated,
    MachineRebooted,
    RolloutFailed,
    RolloutSummary,
)
from gluon.remote.executor import RemoteExecutor
from gluon.utils.concurrency import TaskGroup
from gluon.utils.duration import format_duration

log = logging.getLogger("gluon")

REBOOT_WARMUP = timedelta(seconds=15)
POLL_INTERVAL = timedelta(seconds=2)
MAX_PULL_WORKERS = 16

GLUON_IMAGE_PATH = "/etc/pulcy/gluon-image"
BINARY_DESTINATION = "/home/core/bin/"


def prompt_confirmation(question: str) -> bool:
    """Ask on the terminal, no timeout. Ctrl-C or EOF aborts the rollout."""
    try:
        return typer.confirm(question, default=False)
    except typer.Abort as exc:
        raise RolloutAbortedError("rollout interrupted at confirmation prompt") from exc


class RolloutCoordinator:
    """
    Rolls a new gluon image out to every cluster member.

    1. pull the image on all members in parallel, any failure stops here
    2. one member at a time: extract the binary, record the image,
       restart gluon, optionally reboot and wait for the machine
    3. ask the operator before moving on when requested, and always after
       a core (non etcd-proxy) member came back from a reboot; the rollout
       waits until the answer is yes

    sleep, clock and confirm are injectable so the flow can be driven
    without real time passing or a terminal attached.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        members: MembershipResolver,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        confirm: Callable[[str], bool] = prompt_confirmation,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict] = None,
    ):
        self.executor = executor
        self.members = members
        self.sleep = sleep
        self.clock = clock
        self.confirm = confirm
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(host="localhost")

    # ------------------------- entry point -------------------------

    def update_all(self, cfg: UpdateConfig) -> int:
        """Returns the number of updated members. Raises on the first failure."""
        if not cfg.gluon_image:
            raise GluonError("gluon image is missing")

        members = self.members.get_members(required=True)
        self.bus.emit(
            RolloutStarted(image=cfg.gluon_image, members=[m.cluster_ip for m in members], **self.run_ctx)
        )

        updated = 0
        current: Optional[ClusterMember] = None
        try:
            self.pull_all(members, cfg)
            for index, member in enumerate(members):
                current = member
                if index > 0:
                    log.info(f"Waiting {format_duration(cfg.machine_delay)}...")
                    self.sleep(cfg.machine_delay.total_seconds())
                self.update_machine(member, index, cfg)
                updated += 1
        except RolloutAbortedError as exc:
            self._summary("ABORTED", updated, len(members), str(exc))
            raise
        except Exception as exc:
            self.bus.emit(
                RolloutFailed(member=current.cluster_ip if current else None, error=str(exc), **self.run_ctx)
            )
            self._summary("FAILED", updated, len(members), str(exc))
            raise

        self._summary("OK", updated, len(members))
        return updated

    # ------------------------- phases -------------------------

    def pull_all(self, members: List[ClusterMember], cfg: UpdateConfig) -> None:
        log.info(f"Pulling gluon image on {len(members)} machines")
        with TaskGroup(max_workers=min(MAX_PULL_WORKERS, max(1, len(members)))) as tg:
            for m in members:
                tg.spawn(self._pull, m, cfg)

    def _pull(self, member: ClusterMember, cfg: UpdateConfig) -> None:
        self.executor.run(member, cfg.user_name, f"docker pull {cfg.gluon_image}")
        self.bus.emit(ImagePulled(member=member.cluster_ip, image=cfg.gluon_image, **self.run_ctx))

    def update_machine(self, member: ClusterMember, index: int, cfg: UpdateConfig) -> None:
        ask_confirmation = cfg.ask_confirmation
        log.info(f"Updating {member.cluster_ip}...")

        run = self.executor.run
        run(member, cfg.user_name, f"docker run --rm -v {BINARY_DESTINATION}:/destination/ {cfg.gluon_image}")
        run(member, cfg.user_name, f"sudo tee {GLUON_IMAGE_PATH}", stdin=cfg.gluon_image)
        run(member, cfg.user_name, "sudo systemctl restart gluon")
        self.bus.emit(MachineUpdated(member=member.cluster_ip, index=index, **self.run_ctx))

        if cfg.reboot:
            self.reboot(member, cfg)
            if not member.etcd_proxy:
                log.warning(f"Core machine {member.cluster_ip} is back up, check services")
                ask_confirmation = True
            else:
                log.info(f"Machine {member.cluster_ip} is back up")

        if ask_confirmation:
            self.wait_for_confirmation()

    def wait_for_confirmation(self) -> None:
        """Block until the operator answers yes; anything else asks again."""
        question = "Can we continue?"
        while not self.confirm(question):
            question = "Please enter 'yes' to confirm."

    def reboot(self, member: ClusterMember, cfg: UpdateConfig) -> None:
        log.info(f"Rebooting {member.cluster_ip}...")
        start = self.clock()
        try:
            # the connection drops while the command runs
            self.executor.run(member, cfg.user_name, "sudo reboot -f", quiet=True)
        except RemoteExecError as exc:
            log.debug(f"reboot of {member.cluster_ip} reported: {exc}")
        self.sleep(REBOOT_WARMUP.total_seconds())
        self.wait_until_up(member, cfg)
        self.bus.emit(MachineRebooted(member=member.cluster_ip, waited_s=self.clock() - start, **self.run_ctx))

    def wait_until_up(self, member: ClusterMember, cfg: UpdateConfig) -> None:
        """Poll until the machine answers, give up once reboot_expired has passed."""
        start = self.clock()
        deadline = cfg.reboot_expired.total_seconds()
        while True:
            try:
                self.executor.run(member, cfg.user_name, "cat /etc/machine-id", quiet=True)
                return
            except RemoteExecError:
                pass
            if self.clock() - start > deadline:
                raise RebootTimeoutError(f"Machine {member.cluster_ip} took too long to reboot")
            self.sleep(POLL_INTERVAL.total_seconds())

    def _summary(self, status: str, updated: int, total: int, error: Optional[str] = None) -> None:
        self.bus.emit(RolloutSummary(status=status, updated=updated, total=total, error=error, **self.run_ctx))
