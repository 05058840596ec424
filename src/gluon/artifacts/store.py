# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/artifacts/store.py

from __future__ import annotations

import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple

from gluon.errors import ArtifactWriteError

log = logging.getLogger("gluon")


@dataclass(frozen=True)
class DesiredArtifact:
    """
    A file as it should exist on the machine.
    Never persisted itself, only written through the ArtifactStore.
    """
    path: str
    content: bytes
    mode: int = 0o644


class ArtifactStore:
    """
    Writes files only when they differ from what is on disk.

    All paths are absolute machine paths (e.g. /etc/systemd/system/docker.service).
    They are re-based on `root`, which is "/" in production and a temp dir in tests.
    """

    def __init__(self, root: str | Path = "/", dir_mode: int = 0o755):
        self.root = Path(root)
        self.dir_mode = dir_mode

    def resolve(self, path: str | Path) -> Path:
        p = Path(path)
        if p.is_absolute():
            p = p.relative_to(p.anchor)
        return self.root / p

    # ------------------------- reads -------------------------

    def exists(self, path: str | Path) -> bool:
        return self.resolve(path).exists()

    def read_bytes(self, path: str | Path) -> Optional[bytes]:
        try:
            return self.resolve(path).read_bytes()
        except FileNotFoundError:
            return None

    def read_text(self, path: str | Path) -> Optional[str]:
        raw = self.read_bytes(path)
        if raw is None:
            return None
        return raw.decode("utf-8")

    # ------------------------- writes -------------------------

    def apply(self, artifact: DesiredArtifact) -> bool:
        return self.update(artifact.path, artifact.content, artifact.mode)

    def update(self, path: str | Path, content: bytes | str, mode: int = 0o644) -> bool:
        """
        Make sure the file at `path` has exactly `content` and `mode`.

        Returns True when the file was created, rewritten or chmod-ed,
        False when it already matched (nothing is written in that case).
        """
        if isinstance(content, str):
            content = content.encode("utf-8")
        target = self.resolve(path)

        try:
            target.parent.mkdir(parents=True, exist_ok=True, mode=self.dir_mode)
            try:
                st = target.stat()
            except FileNotFoundError:
                st = None

            if st is not None and target.read_bytes() == content:
                if stat.S_IMODE(st.st_mode) == mode:
                    return False
                log.debug(f"chmod {oct(mode)} {path}")
                os.chmod(target, mode)
                return True

            self._write_atomic(target, content, mode)
        except OSError as exc:
            raise ArtifactWriteError(str(path), exc) from exc

        log.debug(f"wrote {path} ({len(content)} bytes, mode {oct(mode)})")
        return True

    def update_env_file(
        self,
        path: str | Path,
        pairs: Iterable[Tuple[str, str]],
        mode: int = 0o644,
    ) -> bool:
        """
        Ensure every KEY=value pair is present in an environment file.
        Existing keys are rewritten in place, missing keys appended,
        unrelated lines left alone.
        """
        existing = self.read_text(path)
        lines = existing.splitlines() if existing else []

        for key, value in pairs:
            wanted = f"{key}={value}"
            found = False
            for idx, line in enumerate(lines):
                k, sep, _ = line.partition("=")
                if sep and k.strip() == key:
                    lines[idx] = wanted
                    found = True
            if not found:
                lines.append(wanted)

        return self.update(path, "\n".join(lines) + "\n", mode)

    def ensure_dir(self, path: str | Path, mode: int = 0o755) -> bool:
        target = self.resolve(path)
        if target.is_dir():
            return False
        try:
            target.mkdir(parents=True, exist_ok=True, mode=mode)
        except OSError as exc:
            raise ArtifactWriteError(str(path), exc) from exc
        log.debug(f"created directory {path}")
        return True

    def remove(self, path: str | Path) -> bool:
        target = self.resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ArtifactWriteError(str(path), exc) from exc
        log.debug(f"removed {path}")
        return True

    def _write_atomic(self, target: Path, content: bytes, mode: int) -> None:
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, mode)
            os.replace(tmp, target)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise
