# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/errors.py

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from gluon.systemd.units import JobResult


class GluonError(RuntimeError):
    """Base class for all gluon failures."""


class ConfigError(GluonError):
    """Required input is missing or cannot be parsed."""


class ArtifactWriteError(GluonError):
    """Writing or chmod-ing a file failed."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"cannot write {path}: {cause}")
        self.path = path
        self.cause = cause


class UnitManagerError(GluonError):
    """systemd reported a non-success job outcome or could not be reached."""

    def __init__(self, message: str, result: Optional["JobResult"] = None):
        super().__init__(message)
        self.result = result


class RemoteExecError(GluonError):
    """A remote command exited non-zero or the SSH transport failed."""

    def __init__(self, host: str, command: str, stderr: str = "", exit_code: Optional[int] = None):
        detail = stderr.strip() or "no output"
        rc = f" (rc={exit_code})" if exit_code is not None else ""
        super().__init__(f"{host}: '{command}' failed{rc}: {detail}")
        self.host = host
        self.command = command
        self.stderr = stderr
        self.exit_code = exit_code


class RebootTimeoutError(GluonError):
    """A machine did not come back within the reboot deadline."""


class RolloutAbortedError(GluonError):
    """The operator declined to continue a rollout."""


class ReconciliationError(GluonError):
    """A service reconciler failed; carries the service name."""

    def __init__(self, service: str, cause: BaseException):
        super().__init__(f"{service}: {cause}")
        self.service = service
        self.cause = cause


class CommandError(GluonError):
    """A local helper program (weave setup-cni, an init script) exited non-zero."""

    def __init__(self, argv, returncode: int, output: str = ""):
        cmd = " ".join(map(str, argv))
        super().__init__(f"'{cmd}' failed (rc={returncode}): {output.strip() or 'no output'}")
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
