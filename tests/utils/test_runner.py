import subprocess

import pytest

from gluon.errors import CommandError
from gluon.utils.runner import CommandRunner


class FakeCompleted:
    def __init__(self, returncode, stdout=""):
        self.returncode = returncode
        self.stdout = stdout


def test_run_returns_output(monkeypatch):
    seen = {}

    def fake_run(cmd, **kwargs):
        seen["cmd"] = cmd
        return FakeCompleted(0, "ok\n")

    monkeypatch.setattr(subprocess, "run", fake_run)
    out = CommandRunner().run(["weave", "setup-cni"])
    assert seen["cmd"] == ["weave", "setup-cni"]
    assert out.stdout == "ok\n"


def test_nonzero_exit_raises(monkeypatch):
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: FakeCompleted(2, "bad things"))
    with pytest.raises(CommandError) as info:
        CommandRunner().run(["/root/etcd-init.sh"])
    assert info.value.returncode == 2
    assert "bad things" in str(info.value)


def test_check_false_tolerates_failure(monkeypatch):
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: FakeCompleted(1, ""))
    CommandRunner().run(["false"], check=False)


def test_missing_program(monkeypatch):
    def boom(cmd, **kw):
        raise FileNotFoundError("weave")

    monkeypatch.setattr(subprocess, "run", boom)
    with pytest.raises(CommandError) as info:
        CommandRunner().run(["weave", "setup-cni"])
    assert info.value.returncode == -1
