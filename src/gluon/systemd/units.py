# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/systemd/units.py

from __future__ import annotations

import enum
import logging
import subprocess
from typing import Optional, Protocol, Sequence

from gluon.errors import UnitManagerError

log = logging.getLogger("gluon")

JOB_TIMEOUT_SECONDS = 60


class JobResult(enum.Enum):
    """Outcome of a systemd job, as reported by the unit manager."""

    DONE = "done"
    FAILED = "failed"
    CANCELED = "canceled"
    TIMEOUT = "timeout"
    DEPENDENCY_FAILED = "dependency"
    SKIPPED = "skipped"


def job_result_from_systemctl(returncode: int, stderr: str) -> Optional[JobResult]:
    """
    Translate a `systemctl start|restart|stop` exit into a JobResult.

    systemctl only reports the job outcome through its error message, e.g.
    "Job for x.service canceled." or "A dependency job for x.service failed."
    Returns None when no job was queued at all ("Failed to restart x.service:
    Unit x.service not found."), which callers must treat as an error.
    """
    if returncode == 0:
        return JobResult.DONE
    msg = stderr.lower()
    if "dependency job" in msg:
        return JobResult.DEPENDENCY_FAILED
    if "job for" not in msg:
        return None
    if "canceled" in msg or "cancelled" in msg:
        return JobResult.CANCELED
    # "failed because a timeout was exceeded" is a failed job, not a job timeout
    if "timed out" in msg:
        return JobResult.TIMEOUT
    if "skipped" in msg:
        return JobResult.SKIPPED
    return JobResult.FAILED


class UnitManager(Protocol):
    """
    Contract for the process-init facility.
    Start/restart/stop raise UnitManagerError on unacceptable outcomes.
    """

    def reload(self) -> None: ...

    def start(self, unit: str) -> JobResult: ...

    def restart(self, unit: str) -> JobResult: ...

    def stop(self, unit: str) -> JobResult: ...

    def enable(self, unit: str) -> None: ...

    def disable(self, unit: str) -> None: ...

    def exists(self, unit: str) -> bool: ...

    def is_active(self, unit: str) -> bool: ...


# A start/restart that "failed" usually means the unit is already running.
_START_TOLERATED = frozenset({JobResult.DONE, JobResult.FAILED})
# A stop whose job got canceled leaves the unit stopped anyway.
_STOP_TOLERATED = frozenset({JobResult.DONE, JobResult.CANCELED})


class SystemctlUnitManager:
    """
    UnitManager backed by the `systemctl` binary.
    Testable by mocking subprocess.run.
    """

    def __init__(self, systemctl: str = "systemctl", timeout: int = JOB_TIMEOUT_SECONDS):
        self.systemctl = systemctl
        self.timeout = timeout

    # ------------------------- internal helpers -------------------------

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        argv = [self.systemctl, *args]
        log.debug("$ %s", " ".join(argv))
        try:
            return subprocess.run(
                argv,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise UnitManagerError(f"{self.systemctl} not found: {exc}") from exc

    def _job(self, verb: str, unit: str, tolerated: frozenset) -> JobResult:
        log.debug("%s %s", verb, unit)
        try:
            cp = self._run([verb, "--job-mode=replace", unit])
        except subprocess.TimeoutExpired:
            result = JobResult.TIMEOUT
            stderr = f"no job result after {self.timeout}s"
        else:
            stderr = (cp.stderr or "").strip()
            result = job_result_from_systemctl(cp.returncode, stderr)
            if result is None:
                log.error("%s %s failed: %s", verb, unit, stderr)
                raise UnitManagerError(f"{verb} {unit} failed (rc={cp.returncode}): {stderr or 'no output'}")

        if result in tolerated:
            if result is not JobResult.DONE:
                log.warning("%s %s finished with '%s', continuing", verb, unit, result.value)
            return result

        log.error("%s %s failed: %s (%s)", verb, unit, result.value, stderr)
        raise UnitManagerError(f"{verb} {unit}: {result.value}: {stderr}", result=result)

    def _simple(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        try:
            cp = self._run(args)
        except subprocess.TimeoutExpired as exc:
            raise UnitManagerError(f"systemctl {' '.join(args)} timed out", result=JobResult.TIMEOUT) from exc
        if cp.returncode != 0:
            log.error("systemctl %s failed: %s", " ".join(args), (cp.stderr or "").strip())
            raise UnitManagerError(f"systemctl {' '.join(args)} failed (rc={cp.returncode}): {(cp.stderr or '').strip()}")
        return cp

    # ------------------------- public API -------------------------

    def reload(self) -> None:
        log.debug("reloading daemon")
        self._simple(["daemon-reload"])

    def start(self, unit: str) -> JobResult:
        return self._job("start", unit, _START_TOLERATED)

    def restart(self, unit: str) -> JobResult:
        return self._job("restart", unit, _START_TOLERATED)

    def stop(self, unit: str) -> JobResult:
        return self._job("stop", unit, _STOP_TOLERATED)

    def enable(self, unit: str) -> None:
        log.debug("enabling %s", unit)
        self._simple(["enable", unit])

    def disable(self, unit: str) -> None:
        log.debug("disabling %s", unit)
        self._simple(["disable", unit])

    def exists(self, unit: str) -> bool:
        cp = self._simple(["list-units", "--all", "--plain", "--no-legend", unit])
        return any(line.split()[0] == unit for line in cp.stdout.splitlines() if line.strip())

    def is_active(self, unit: str) -> bool:
        # is-active exits non-zero for anything but "active", that's not an error here
        try:
            cp = self._run(["is-active", unit])
        except subprocess.TimeoutExpired as exc:
            raise UnitManagerError(f"systemctl is-active {unit} timed out", result=JobResult.TIMEOUT) from exc
        return cp.stdout.strip() == "active"
