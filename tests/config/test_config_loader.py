import logging
from datetime import timedelta
from pathlib import Path

import pytest

from gluon.artifacts.store import ArtifactStore
from gluon.cluster.members import ClusterMember, StaticMembershipResolver
from gluon.config import loader
from gluon.config.loader import deep_merge, find_config_file, load_config
from gluon.config.models import ServiceFlags
from gluon.config.state import (
    StateFiles,
    default_cluster_subnet,
    require_setup_flags,
    save_flags,
    setup_defaults,
    weave_name_from_machine_id,
)
from gluon.errors import ConfigError


@pytest.fixture(autouse=True)
def no_ambient_config(monkeypatch, tmp_path):
    monkeypatch.delenv("GLUON_CONFIG", raising=False)
    monkeypatch.setattr(loader, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")


@pytest.fixture
def state(tmp_path):
    return StateFiles(ArtifactStore(tmp_path))


def write_state(tmp_path: Path, name: str, content: str):
    p = tmp_path / "etc/pulcy" / name
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content)


# ----------------- loader -----------------

def test_yaml_with_env_expansion_and_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("GLUON_TEST_IMAGE", "pulcy/gluon:0.9.0")
    cfg_file = tmp_path / "gluon.yaml"
    cfg_file.write_text(
        "setup:\n"
        "  gluon_image: ${GLUON_TEST_IMAGE}\n"
        "  docker:\n"
        "    docker_ip: 192.168.1.1\n"
        "update:\n"
        "  machine_delay: 1m\n"
    )

    cfg = load_config(cfg_file, {"setup": {"docker": {"docker_ip": "192.168.1.9", "docker_subnet": None}}})

    assert cfg.setup.gluon_image == "pulcy/gluon:0.9.0"
    assert cfg.setup.docker.docker_ip == "192.168.1.9"
    assert cfg.setup.docker.docker_subnet == "172.17.0.0/16"
    assert cfg.update.machine_delay == timedelta(minutes=1)
    assert cfg.members_file == Path("/etc/pulcy/cluster-members")


def test_gluon_config_env_variable(tmp_path, monkeypatch):
    cfg_file = tmp_path / "other.yaml"
    cfg_file.write_text("config_dir: /srv/pulcy\n")
    monkeypatch.setenv("GLUON_CONFIG", str(cfg_file))

    assert find_config_file() == cfg_file
    assert load_config().config_dir == Path("/srv/pulcy")


def test_no_config_file_uses_defaults():
    cfg = load_config()
    assert cfg.update.user_name == "core"
    assert cfg.update.reboot_expired == timedelta(minutes=2)


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


def test_invalid_duration_is_a_config_error(tmp_path):
    cfg_file = tmp_path / "gluon.yaml"
    cfg_file.write_text("update:\n  machine_delay: soon\n")
    with pytest.raises(ConfigError):
        load_config(cfg_file)


def test_non_mapping_yaml_is_rejected(tmp_path):
    cfg_file = tmp_path / "gluon.yaml"
    cfg_file.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        load_config(cfg_file)


def test_deep_merge_skips_empty_values():
    base = {"a": {"b": 1, "c": 2}, "d": "x"}
    merged = deep_merge(base, {"a": {"b": None, "c": 3}, "d": "", "e": {"f": None}})
    assert merged == {"a": {"b": 1, "c": 3}, "d": "x", "e": {}}


# ----------------- state files -----------------

def test_weave_name_from_machine_id():
    assert weave_name_from_machine_id("aabbccddeeff00112233") == "aa:bb:cc:dd:ee:ff"
    with pytest.raises(ConfigError):
        weave_name_from_machine_id("abc")


@pytest.mark.parametrize(
    "ip, subnet",
    [("10.1.2.3", "10.0.0.0/8"), ("172.16.5.4", "172.16.0.0/16"), ("192.168.7.1", "192.168.7.0/24")],
)
def test_default_cluster_subnet(ip, subnet):
    assert default_cluster_subnet(ip) == subnet


def test_defaults_come_from_state_files(tmp_path, state):
    write_state(tmp_path, "gluon-image", "pulcy/gluon:0.8.0\n")
    write_state(tmp_path, "weave-seed", "aa:bb:cc:dd:ee:ff\n")
    write_state(tmp_path, "etcd-cluster-state", "existing\n")
    write_state(tmp_path, "roles", "core\nlb, worker\n")

    flags = ServiceFlags.model_validate({"network": {"cluster_ip": "10.0.0.1"}})
    f = setup_defaults(flags, state, StaticMembershipResolver([]))

    assert f.gluon_image == "pulcy/gluon:0.8.0"
    assert f.weave.seed == "aa:bb:cc:dd:ee:ff"
    assert f.weave.ip_range == "10.32.0.0/12"
    assert f.etcd.cluster_state == "existing"
    assert f.roles == ["core", "lb", "worker"]
    assert f.network.cluster_subnet == "10.0.0.0/8"
    # the input is not modified
    assert flags.gluon_image is None


def test_explicit_values_win_over_state(tmp_path, state):
    write_state(tmp_path, "gluon-image", "pulcy/gluon:0.8.0")
    flags = ServiceFlags.model_validate({"gluon_image": "pulcy/gluon:0.9.0", "weave": {"seed": "s"}})
    assert setup_defaults(flags, state, StaticMembershipResolver([])).gluon_image == "pulcy/gluon:0.9.0"


def test_weave_seed_derived_from_core_members(state):
    members = StaticMembershipResolver([
        ClusterMember("aabbccddeeff00112233", "10.0.0.1", "10.0.0.1"),
        ClusterMember("112233445566778899aa", "10.0.0.2", "10.0.0.2"),
        ClusterMember("ffeeddccbbaa99887766", "10.0.0.3", "10.0.0.3", etcd_proxy=True),
    ])
    f = setup_defaults(ServiceFlags(), state, members, logging.getLogger("gluon"))
    assert f.weave.seed == "aa:bb:cc:dd:ee:ff,11:22:33:44:55:66"


def test_invalid_cluster_state_file(tmp_path, state):
    write_state(tmp_path, "etcd-cluster-state", "sometimes")
    with pytest.raises(ConfigError):
        setup_defaults(ServiceFlags(weave={"seed": "s"}), state, StaticMembershipResolver([]))


def test_require_setup_flags_names_missing_option():
    flags = ServiceFlags.model_validate({"gluon_image": "img", "docker": {"docker_ip": "1.2.3.4"}})
    with pytest.raises(ConfigError, match="--private-ip is missing"):
        require_setup_flags(flags)


def test_save_flags_is_idempotent(tmp_path, state):
    flags = ServiceFlags.model_validate(
        {"gluon_image": "pulcy/gluon:0.9.0", "etcd": {"cluster_state": "new"}, "weave": {"seed": "s"}}
    )
    assert save_flags(flags, state) is True
    assert save_flags(flags, state) is False
    assert (tmp_path / "etc/pulcy/etcd-cluster-state").read_text() == "new"
    assert state.read("gluon-image") == "pulcy/gluon:0.9.0"


def test_missing_cluster_id(state):
    with pytest.raises(ConfigError):
        state.read_cluster_id()
