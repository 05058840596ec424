# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/remote/executor.py

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Callable, Optional, Protocol

import paramiko

from gluon.cluster.members import ClusterMember
from gluon.errors import ConfigError, RemoteExecError

log = logging.getLogger("gluon")


class RemoteExecutor(Protocol):
    def run(
        self,
        member: ClusterMember,
        user: str,
        command: str,
        stdin: str = "",
        quiet: bool = False,
    ) -> str: ...


def load_private_key(path: str | Path) -> Optional[paramiko.PKey]:
    """
    Try the key types we deploy, in order. None if the file is none of them,
    ConfigError if it cannot be read at all.
    """
    for key_cls in (
        paramiko.RSAKey,
        paramiko.Ed25519Key,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(str(path))
        except paramiko.SSHException:
            continue
        except OSError as exc:
            raise ConfigError(f"cannot read ssh key {path}: {exc}") from exc
    return None


class SSHRemoteExecutor:
    """
    Runs one command per connection on a member's cluster IP.

    Host keys are not verified: machines get new keys when they are
    reinstalled and the fleet is addressed by its private cluster IPs.
    """

    def __init__(
        self,
        *,
        port: int = 22,
        key_path: Optional[str | Path] = None,
        password: Optional[str] = None,
        connect_timeout: float = 20.0,
        command_timeout: Optional[float] = 600.0,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        self.port = port
        self.key_path = key_path
        self.password = password
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.client_factory = client_factory
        self._pkey: Optional[paramiko.PKey] = None
        if key_path:
            self._pkey = load_private_key(key_path)
            if self._pkey is None:
                log.warning(f"cannot load ssh key {key_path}, falling back to agent/default keys")

    def _connect(self, host: str, user: str) -> paramiko.SSHClient:
        client = self.client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            hostname=host,
            port=self.port,
            username=user,
            password=self.password if not self._pkey else None,
            pkey=self._pkey,
            timeout=self.connect_timeout,
            allow_agent=True,
            look_for_keys=True,
        )
        return client

    def run(
        self,
        member: ClusterMember,
        user: str,
        command: str,
        stdin: str = "",
        quiet: bool = False,
    ) -> str:
        host = member.cluster_ip
        log.debug(f"[ssh {user}@{host}] $ {command}")

        client = None
        try:
            client = self._connect(host, user)
            chan_in, chan_out, chan_err = client.exec_command(command, timeout=self.command_timeout)
            if stdin:
                chan_in.write(stdin)
                chan_in.flush()
            chan_in.channel.shutdown_write()

            out = chan_out.read().decode("utf-8", errors="replace")
            err = chan_err.read().decode("utf-8", errors="replace")
            rc = chan_out.channel.recv_exit_status()
        except (paramiko.SSHException, socket.error, EOFError) as exc:
            if not quiet:
                log.error(f"SSH to {user}@{host} failed: {exc}")
            raise RemoteExecError(host, command, str(exc)) from exc
        finally:
            if client is not None:
                client.close()

        if rc != 0:
            if not quiet:
                log.error(f"SSH failed: {user}@{host} '{command}' (rc={rc}): {err.strip()}")
            raise RemoteExecError(host, command, err, exit_code=rc)

        return out[:-1] if out.endswith("\n") else out
