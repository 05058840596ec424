import threading

import pytest
import typer

from gluon.cluster.members import ClusterMember, StaticMembershipResolver
from gluon.config.models import UpdateConfig
from gluon.errors import GluonError, RebootTimeoutError, RemoteExecError, RolloutAbortedError
from gluon.observers.dispatcher import EventBus
from gluon.observers.events import RolloutSummary
from gluon.rollout import coordinator as rollout
from gluon.rollout.coordinator import RolloutCoordinator

IMAGE = "pulcy/gluon:1.0.0"

MEMBERS = [
    ClusterMember("aabbccddeeff00112233", "10.0.0.1", "192.168.1.1"),
    ClusterMember("112233445566778899aa", "10.0.0.2", "10.0.0.2"),
    ClusterMember("ffeeddccbbaa99887766", "10.0.0.3", "10.0.0.3", etcd_proxy=True),
]


# ----------------- Fakes -----------------

class FakeExecutor:
    """Records every remote command; `fail` decides which ones raise."""

    def __init__(self, fail=None):
        self.calls = []
        self.fail = fail or (lambda ip, command: False)
        self._lock = threading.Lock()

    def run(self, member, user, command, stdin="", quiet=False):
        with self._lock:
            self.calls.append((member.cluster_ip, user, command, stdin, quiet))
        if self.fail(member.cluster_ip, command):
            raise RemoteExecError(member.cluster_ip, command, "boom", exit_code=1)
        return ""

    def commands(self, ip=None):
        return [c[2] for c in self.calls if ip is None or c[0] == ip]


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


class Capture:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


def _cfg(**kw):
    data = {"gluon_image": IMAGE, "machine_delay": "30s", "reboot_expired": "2m"}
    data.update(kw)
    return UpdateConfig.model_validate(data)


def _coordinator(executor, clock=None, confirm=None, members=None, bus=None):
    clock = clock or FakeClock()
    return RolloutCoordinator(
        executor,
        StaticMembershipResolver(MEMBERS if members is None else members),
        sleep=clock.sleep,
        clock=clock,
        confirm=confirm or (lambda q: pytest.fail("unexpected confirmation")),
        bus=bus,
    )


# ----------------- Tests -----------------

def test_pull_everywhere_before_any_apply():
    ex = FakeExecutor()
    assert _coordinator(ex).update_all(_cfg()) == 3

    commands = ex.commands()
    pulls = [i for i, c in enumerate(commands) if c.startswith("docker pull")]
    first_apply = min(i for i, c in enumerate(commands) if c.startswith("docker run"))
    assert len(pulls) == 3
    assert max(pulls) < first_apply


def test_update_commands_per_machine():
    ex = FakeExecutor()
    _coordinator(ex).update_all(_cfg())

    assert ex.commands("10.0.0.2") == [
        f"docker pull {IMAGE}",
        f"docker run --rm -v /home/core/bin/:/destination/ {IMAGE}",
        "sudo tee /etc/pulcy/gluon-image",
        "sudo systemctl restart gluon",
    ]
    tee = [c for c in ex.calls if c[2] == "sudo tee /etc/pulcy/gluon-image"]
    assert all(c[3] == IMAGE for c in tee)
    assert all(c[1] == "core" for c in ex.calls)


def test_failed_pull_stops_before_apply():
    ex = FakeExecutor(fail=lambda ip, cmd: ip == "10.0.0.2" and cmd.startswith("docker pull"))
    capture = Capture()

    with pytest.raises(RemoteExecError):
        _coordinator(ex, bus=EventBus([capture])).update_all(_cfg())

    assert not any(c.startswith("docker run") for c in ex.commands())
    # the other pulls still ran to completion
    assert len([c for c in ex.commands() if c.startswith("docker pull")]) == 3
    summary = capture.events[-1]
    assert isinstance(summary, RolloutSummary)
    assert (summary.status, summary.updated, summary.total) == ("FAILED", 0, 3)


def test_machine_delay_between_members():
    clock = FakeClock()
    _coordinator(FakeExecutor(), clock=clock).update_all(_cfg())
    assert clock.sleeps == [30.0, 30.0]


def test_machine_delay_falls_between_machines():
    ex = FakeExecutor()
    clock = FakeClock()

    def sleep(seconds):
        ex.calls.append((None, None, f"sleep {seconds:g}", "", False))
        clock.sleep(seconds)

    coordinator = _coordinator(ex, clock=clock)
    coordinator.sleep = sleep
    coordinator.update_all(_cfg())

    steps = [
        (ip, cmd) for ip, _, cmd, _, _ in ex.calls
        if cmd.startswith(("sleep", "docker run", "sudo systemctl restart"))
    ]
    assert steps == [
        ("10.0.0.1", f"docker run --rm -v /home/core/bin/:/destination/ {IMAGE}"),
        ("10.0.0.1", "sudo systemctl restart gluon"),
        (None, "sleep 30"),
        ("10.0.0.2", f"docker run --rm -v /home/core/bin/:/destination/ {IMAGE}"),
        ("10.0.0.2", "sudo systemctl restart gluon"),
        (None, "sleep 30"),
        ("10.0.0.3", f"docker run --rm -v /home/core/bin/:/destination/ {IMAGE}"),
        ("10.0.0.3", "sudo systemctl restart gluon"),
    ]


def test_failed_machine_stops_the_rollout():
    ex = FakeExecutor(fail=lambda ip, cmd: ip == "10.0.0.2" and cmd.startswith("docker run"))
    with pytest.raises(RemoteExecError):
        _coordinator(ex).update_all(_cfg())
    assert not any(c.startswith("docker run") for c in ex.commands("10.0.0.3"))


def test_reboot_waits_until_machine_answers():
    polls = {"n": 0}

    def fail(ip, cmd):
        if cmd == "cat /etc/machine-id":
            polls["n"] += 1
            return polls["n"] <= 3
        return False

    clock = FakeClock()
    ex = FakeExecutor(fail=fail)
    proxy = [m for m in MEMBERS if m.etcd_proxy]
    _coordinator(ex, clock=clock, members=proxy).update_all(_cfg(reboot=True))

    assert clock.sleeps == [15.0, 2.0, 2.0, 2.0]
    reboot = [c for c in ex.calls if c[2] == "sudo reboot -f"]
    assert reboot and reboot[0][4] is True


def test_reboot_gives_up_after_deadline():
    clock = FakeClock()
    ex = FakeExecutor(fail=lambda ip, cmd: cmd in ("cat /etc/machine-id", "sudo reboot -f"))
    proxy = [m for m in MEMBERS if m.etcd_proxy]

    with pytest.raises(RebootTimeoutError):
        _coordinator(ex, clock=clock, members=proxy).update_all(_cfg(reboot=True))

    waited = sum(clock.sleeps[1:])
    assert waited > 120
    assert waited <= 124


def test_core_member_reboot_asks_confirmation():
    questions = []

    def confirm(q):
        questions.append(q)
        return True

    _coordinator(FakeExecutor(), confirm=confirm).update_all(_cfg(reboot=True))
    # two core members, the etcd proxy does not ask
    assert len(questions) == 2


def test_confirmation_requested_for_every_member():
    questions = []

    def confirm(q):
        questions.append(q)
        return True

    _coordinator(FakeExecutor(), confirm=confirm).update_all(_cfg(ask_confirmation=True))
    assert len(questions) == 3


def test_declined_confirmation_asks_again():
    answers = iter([False, False, True])
    questions = []

    def confirm(q):
        questions.append(q)
        return next(answers)

    ex = FakeExecutor()
    _coordinator(ex, confirm=confirm, members=MEMBERS[:1]).update_all(_cfg(ask_confirmation=True))

    assert questions == [
        "Can we continue?",
        "Please enter 'yes' to confirm.",
        "Please enter 'yes' to confirm.",
    ]


def test_interrupted_confirmation_aborts():
    def interrupted(q):
        raise RolloutAbortedError("rollout interrupted at confirmation prompt")

    capture = Capture()
    ex = FakeExecutor()
    with pytest.raises(RolloutAbortedError):
        _coordinator(ex, confirm=interrupted, bus=EventBus([capture])).update_all(
            _cfg(ask_confirmation=True)
        )

    assert ex.commands("10.0.0.2") == [f"docker pull {IMAGE}"]
    summary = capture.events[-1]
    assert (summary.status, summary.updated) == ("ABORTED", 0)


def test_missing_image_is_rejected():
    with pytest.raises(GluonError):
        _coordinator(FakeExecutor()).update_all(_cfg(gluon_image=""))


def test_summary_on_success():
    capture = Capture()
    _coordinator(FakeExecutor(), bus=EventBus([capture])).update_all(_cfg())
    summary = capture.events[-1]
    assert (summary.status, summary.updated, summary.total) == ("OK", 3, 3)


def test_prompt_interrupt_becomes_abort(monkeypatch):
    def interrupted(question, default=False):
        raise typer.Abort()

    monkeypatch.setattr(typer, "confirm", interrupted)
    with pytest.raises(RolloutAbortedError):
        rollout.prompt_confirmation("Can we continue?")
