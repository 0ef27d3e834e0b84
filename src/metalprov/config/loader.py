# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/config/loader.py

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import ValidationError

from .errors import ConfigurationError
from .models import ControllerConfig

log = logging.getLogger("metalprov")

ENV_PREFIX = "METALPROV_"

# The metadata service address has always been read from this variable.
TINKERBELL_IP_ENV = "TINKERBELL_IP"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_overrides_file(config_path: Optional[Path], environ: Mapping[str, str]) -> Optional[Path]:
    """
    Locate an overrides file:

    1. METALPROV_OVERRIDES_FILE environment variable
    2. overrides.yaml in the same directory as the main config
    """
    env = environ.get("METALPROV_OVERRIDES_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("METALPROV_OVERRIDES_FILE=%s does not exist, skipping", env)
        return None

    if config_path is not None:
        p = config_path.parent / "overrides.yaml"
        if p.is_file():
            return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def _env_overrides(environ: Mapping[str, str]) -> dict:
    """
    METALPROV_WORKERS=8 -> {"workers": "8"}. pydantic does the coercion.
    """
    out = {}
    if environ.get(TINKERBELL_IP_ENV):
        out["tinkerbell_ip"] = environ[TINKERBELL_IP_ENV]

    for name in ControllerConfig.model_fields:
        value = environ.get(ENV_PREFIX + name.upper())
        if value not in (None, ""):
            out[name] = value
    return out


def load_config(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ControllerConfig:
    """
    Load and validate controller settings.

    Precedence, lowest first: model defaults, the YAML file at *path*,
    an overrides file (see _find_overrides_file), METALPROV_* variables.
    ${ENV_VAR} placeholders inside either YAML file are expanded.
    """
    environ = os.environ if environ is None else environ
    data: dict = {}

    config_path = Path(path) if path else None
    if config_path is not None:
        if not config_path.is_file():
            raise ConfigurationError(f"config file {config_path} does not exist")
        data = _load_yaml(config_path)

    overrides_path = _find_overrides_file(config_path, environ)
    if overrides_path:
        log.debug("Merging overrides from %s", overrides_path)
        _deep_merge(data, _load_yaml(overrides_path))

    _deep_merge(data, _env_overrides(environ))

    try:
        return ControllerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e
