import logging
from pathlib import Path

import pytest

from gluon.artifacts.store import ArtifactStore
from gluon.artifacts.templates import TemplateRenderer
from gluon.cluster.members import ClusterMember, StaticMembershipResolver
from gluon.config.models import ServiceFlags
from gluon.config.state import StateFiles
from gluon.service.base import ServiceDependencies
from gluon.systemd.units import JobResult


# ----------------- Fakes -----------------

class FakeUnitManager:
    """Records every call; restart/start make a unit active."""

    def __init__(self, active=None, existing=None):
        self.calls = []
        self.active = set(active or [])
        self.existing = set(existing or [])

    def reload(self):
        self.calls.append(("reload",))

    def start(self, unit):
        self.calls.append(("start", unit))
        self.active.add(unit)
        return JobResult.DONE

    def restart(self, unit):
        self.calls.append(("restart", unit))
        self.active.add(unit)
        self.existing.add(unit)
        return JobResult.DONE

    def stop(self, unit):
        self.calls.append(("stop", unit))
        self.active.discard(unit)
        return JobResult.DONE

    def enable(self, unit):
        self.calls.append(("enable", unit))
        self.existing.add(unit)

    def disable(self, unit):
        self.calls.append(("disable", unit))
        self.existing.discard(unit)

    def exists(self, unit):
        return unit in self.existing

    def is_active(self, unit):
        return unit in self.active

    def mutating(self):
        """reload/enable/restart/disable calls, i.e. anything that changes the machine."""
        return [c for c in self.calls if c[0] in ("reload", "enable", "restart", "start", "disable")]


class FakeCommandRunner:
    def __init__(self):
        self.commands = []

    def run(self, cmd, *, check=True):
        self.commands.append([str(c) for c in cmd])


MEMBERS = [
    ClusterMember("aabbccddeeff00112233", "10.0.0.1", "192.168.1.1"),
    ClusterMember("112233445566778899aa", "10.0.0.2", "10.0.0.2"),
    ClusterMember("ffeeddccbbaa99887766", "10.0.0.3", "10.0.0.3", etcd_proxy=True),
]


# ----------------- Fixtures -----------------

@pytest.fixture
def members():
    return list(MEMBERS)


@pytest.fixture
def flags():
    return ServiceFlags.model_validate(
        {
            "gluon_image": "pulcy/gluon:0.9.0",
            "docker": {"docker_ip": "192.168.1.1", "docker_subnet": "172.17.0.0/16"},
            "network": {
                "cluster_ip": "10.0.0.1",
                "cluster_subnet": "10.0.0.0/8",
                "private_cluster_device": "eth1",
            },
            "weave": {"seed": "aa:bb:cc:dd:ee:ff", "ip_range": "10.32.0.0/12"},
            "etcd": {"cluster_state": "new"},
        }
    )


@pytest.fixture
def make_deps(tmp_path: Path):
    def _make(members=None, units=None):
        store = ArtifactStore(tmp_path)
        return ServiceDependencies(
            units=units or FakeUnitManager(),
            store=store,
            renderer=TemplateRenderer(),
            members=StaticMembershipResolver(MEMBERS if members is None else members),
            log=logging.getLogger("gluon.test"),
            state=StateFiles(store),
            commands=FakeCommandRunner(),
            hostname="node-1",
        )
    return _make


@pytest.fixture
def deps(make_deps):
    return make_deps()


@pytest.fixture
def make_units():
    return FakeUnitManager


@pytest.fixture(autouse=True)
def _reset_gluon_logger():
    # init_logging detaches the gluon logger from root, which hides records from caplog
    yield
    lg = logging.getLogger("gluon")
    for h in list(lg.handlers):
        lg.removeHandler(h)
        h.close()
    lg.propagate = True
    lg.setLevel(logging.NOTSET)
