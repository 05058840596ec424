# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/config/loader.py

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from gluon.errors import ConfigError
from .models import GluonConfig

log = logging.getLogger("gluon")

DEFAULT_CONFIG_PATH = Path("/etc/pulcy/gluon.yaml")


def deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if isinstance(value, dict):
            existing = base.get(key)
            if not isinstance(existing, dict):
                existing = {}
            base[key] = deep_merge(existing, value)
        elif value not in (None, ""):
            base[key] = value
    return base


def find_config_file(explicit: Optional[str | Path] = None) -> Optional[Path]:
    """
    Locate the gluon config file using this priority:

    1. explicit path (--config); must exist
    2. GLUON_CONFIG environment variable
    3. /etc/pulcy/gluon.yaml when present
    """
    if explicit:
        p = Path(explicit)
        if not p.is_file():
            raise ConfigError(f"config file {p} does not exist")
        return p

    env = os.environ.get("GLUON_CONFIG")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("GLUON_CONFIG=%s does not exist, skipping", env)
        return None

    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH
    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(path: Optional[str | Path] = None, overrides: Optional[dict] = None) -> GluonConfig:
    """
    Load and validate the gluon configuration.

    The YAML file (if any) provides defaults, `overrides` (built from CLI
    flags) wins over it. Values left unset are defaulted later from the
    state files under config_dir.
    """
    data: dict = {}
    cfg_path = find_config_file(path)
    if cfg_path:
        log.debug("Loading config from %s", cfg_path)
        try:
            data = _load_yaml(cfg_path)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot load {cfg_path}: {exc}") from exc
    else:
        log.debug("No config file found, using built-in defaults")

    if overrides:
        deep_merge(data, overrides)

    try:
        return GluonConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc
