#!/usr/bin/env python3
# CUI // SP-CTI
"""Load the quantum risk policy file (args/quantum_risk_config.yaml).

The file is versioned separately from code so that scoring tables, algorithm
metadata, PQC control mappings and migration deadlines can change without a
release. Every consumer keeps in-code defaults for sections the file omits.
"""

import logging
from pathlib import Path
from typing import Dict

import yaml

from grctools.resilience.errors import ConfigurationError

logger = logging.getLogger("grctools.quantum.policy_config")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = BASE_DIR / "args" / "quantum_risk_config.yaml"

_CONFIG_CACHE: Dict[str, Dict] = {}


def load_quantum_config(config_path=None) -> Dict:
    """Return the ``quantum_risk`` section, or {} when the file is absent.

    Raises:
        ConfigurationError: The file exists but is not valid YAML mapping.
    """
    path = Path(config_path) if config_path else CONFIG_PATH
    key = str(path)
    if key in _CONFIG_CACHE:
        return _CONFIG_CACHE[key]
    if not path.exists():
        logger.debug("No quantum risk config at %s, using defaults", path)
        _CONFIG_CACHE[key] = {}
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid quantum risk config: {path}")
    section = data.get("quantum_risk", {}) or {}
    _CONFIG_CACHE[key] = section
    return section
