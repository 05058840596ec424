# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/utils/runner.py

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from gluon.errors import CommandError

Cmd = Sequence[Union[str, os.PathLike]]


@dataclass
class CommandRunner:
    """Runs local programs on the machine being reconciled."""

    logger: Optional[logging.Logger] = None
    label: Optional[str] = None
    timeout: Optional[float] = 300.0

    def run(self, cmd: Cmd, *, check: bool = True) -> subprocess.CompletedProcess:
        logger = self.logger or logging.getLogger("gluon")
        label = self.label or "cmd"
        cmd_str = " ".join(map(str, cmd))
        logger.debug(f"[{label}] $ {cmd_str}")

        start = time.time()
        try:
            result = subprocess.run(
                [str(c) for c in cmd],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=False,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise CommandError(cmd, -1, str(exc)) from exc

        duration = time.time() - start
        if result.stdout:
            logger.debug(f"[{label}][output]\n{result.stdout.rstrip()}")
        logger.debug(f"[{label}][exit {result.returncode}] ({duration:.2f}s)")

        if check and result.returncode != 0:
            logger.error(f"{cmd_str} failed:\n{result.stdout or ''}")
            raise CommandError(cmd, result.returncode, result.stdout or "")
        return result
