#!/usr/bin/env python3
# CUI // SP-CTI
"""Scenario category and workflow registry.

Loads the scenario-to-control mappings and the playbook registry from
args/scenario_mappings.yaml. Built-in defaults are used for any section the
file does not provide. A registry is populated once and never mutated, so it
can be shared between concurrent assessments.

Usage (library):
    from grctools.compliance.scenario_registry import load_registry
    registry = load_registry()
    registry.get_workflow("sc-7-boundary-protection")

Usage (CLI):
    python -m grctools.compliance.scenario_registry --json
"""

import argparse
import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from grctools.compliance.models import ScenarioCategory, WorkflowDescriptor
from grctools.resilience.errors import ConfigurationError

logger = logging.getLogger("grctools.compliance.scenario_registry")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = BASE_DIR / "args" / "scenario_mappings.yaml"

DEFAULT_WORKFLOW_ROOT = "/ansible/playbooks"
DEFAULT_RUNTIME_MINUTES = 5

DEFAULT_CATEGORIES = {
    "access_control": {
        "keywords": ["access", "authentication", "authorization", "login", "user", "permission"],
        "controls": ["AC-3", "AC-6", "AC-7", "AC-8"],
        "workflows": ["ac-3-access-enforcement", "ac-6-least-privilege"],
    },
    "audit_logging": {
        "keywords": ["audit", "log", "monitoring", "tracking", "compliance"],
        "controls": ["AU-2", "AU-3", "AU-4", "AU-5"],
        "workflows": ["au-2-audit-events"],
    },
    "network_security": {
        "keywords": ["network", "firewall", "boundary", "traffic", "connection"],
        "controls": ["SC-7", "SC-8", "SC-9", "SC-10"],
        "workflows": ["sc-7-boundary-protection"],
    },
    "data_protection": {
        "keywords": ["data", "encryption", "privacy", "sensitive", "confidential"],
        "controls": ["SC-28", "SC-29", "SC-30", "SC-31"],
        "workflows": ["sc-28-data-protection"],
    },
    "pqc_migration": {
        "keywords": [
            "post-quantum", "quantum", "pqc", "cryptography", "cryptographic",
            "migration", "fips 203", "fips 204", "fips 205", "ml-kem", "ml-dsa",
            "slh-dsa", "rsa", "ecc", "elliptic curve", "harvest now decrypt later",
        ],
        "controls": ["SC-12", "SC-13", "SC-17", "SC-28"],
        "workflows": [
            "pqc/inventory", "pqc/assess", "pqc/deploy-mlkem",
            "pqc/deploy-mldsa", "pqc/deploy-slhdsa",
        ],
    },
    "quantum_risk": {
        "keywords": [
            "quantum risk", "quantum threat", "quantum computing",
            "quantum vulnerability", "quantum resistant", "quantum safe",
        ],
        "controls": ["SC-12", "SC-13", "SC-17"],
        "workflows": ["pqc/assess", "pqc/validate"],
    },
}

# Registration order is execution order.
DEFAULT_WORKFLOWS = [
    {"id": "ac-3-access-enforcement", "estimated_minutes": 3},
    {"id": "ac-6-least-privilege", "estimated_minutes": 5},
    {"id": "au-2-audit-events", "estimated_minutes": 2},
    {"id": "sc-7-boundary-protection", "estimated_minutes": 4},
    {"id": "sc-28-data-protection"},
    {"id": "pqc/inventory", "controls": ["SC-12", "SC-13"], "estimated_minutes": 5},
    {"id": "pqc/assess", "controls": ["SC-12", "SC-13", "SC-17"], "estimated_minutes": 3},
    {"id": "pqc/deploy-mlkem", "controls": ["SC-12", "SC-13"], "estimated_minutes": 10},
    {"id": "pqc/deploy-mldsa", "controls": ["SC-17", "SI-7"], "estimated_minutes": 10},
    {"id": "pqc/deploy-slhdsa", "controls": ["SC-17", "SI-7"], "estimated_minutes": 10},
    {"id": "pqc/hybrid-crypto", "controls": ["SC-12", "SC-13"], "estimated_minutes": 8},
    {"id": "pqc/validate", "controls": ["SC-13", "CA-7"], "estimated_minutes": 5},
]

_CONTROL_ID_RE = re.compile(r"^([A-Za-z]{2})-(\d+)")

_REGISTRY_CACHE: Dict[str, "ScenarioRegistry"] = {}


def normalize_control_id(control_id: str) -> str:
    """Canonical control ID: uppercase, hyphenated (sc-7 -> SC-7)."""
    if not control_id:
        return ""
    cid = control_id.strip().upper()
    return re.sub(r"\.(\d+)", r"(\1)", cid)


def controls_from_workflow_name(workflow_id: str) -> List[str]:
    """Infer the control a workflow validates from its name.

    "ac-3-access-enforcement" -> ["AC-3"]. Names that do not start with a
    control ID yield an empty list.
    """
    name = workflow_id.rsplit("/", 1)[-1]
    m = _CONTROL_ID_RE.match(name)
    if not m:
        return []
    return [f"{m.group(1).upper()}-{m.group(2)}"]


class ScenarioRegistry:
    """Read-only registry of scenario categories and workflows."""

    def __init__(self, categories, workflows, source=None):
        self._categories: Tuple[ScenarioCategory, ...] = tuple(categories)
        self._workflows: Tuple[WorkflowDescriptor, ...] = tuple(workflows)
        self._by_id = {w.id: w for w in self._workflows}
        self._order = {w.id: i for i, w in enumerate(self._workflows)}
        self.source = source

    @property
    def categories(self) -> Tuple[ScenarioCategory, ...]:
        return self._categories

    @property
    def workflows(self) -> Tuple[WorkflowDescriptor, ...]:
        return self._workflows

    def get_category(self, category_id: str) -> Optional[ScenarioCategory]:
        for cat in self._categories:
            if cat.id == category_id:
                return cat
        return None

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowDescriptor]:
        return self._by_id.get(workflow_id)

    def registration_index(self, workflow_id: str) -> int:
        """Position in registration order; unknown workflows sort last."""
        return self._order.get(workflow_id, len(self._order))

    def workflows_for_control(self, control_id: str) -> List[WorkflowDescriptor]:
        """Registered workflows whose bound controls include control_id."""
        cid = normalize_control_id(control_id)
        return [w for w in self._workflows if cid in w.controls]

    def estimate_runtime(self, workflow_id: str) -> int:
        wf = self._by_id.get(workflow_id)
        return wf.estimated_minutes if wf else DEFAULT_RUNTIME_MINUTES

    def to_dict(self):
        return {
            "source": self.source,
            "categories": [c.to_dict() for c in self._categories],
            "workflows": [w.to_dict() for w in self._workflows],
        }


def _build_category(category_id, spec) -> ScenarioCategory:
    if not isinstance(spec, dict):
        raise ConfigurationError(
            f"Category '{category_id}' must be a mapping.", config_key=category_id
        )
    keywords = tuple(str(k).lower().strip() for k in spec.get("keywords") or [] if str(k).strip())
    if not keywords:
        raise ConfigurationError(
            f"Category '{category_id}' has no keywords.", config_key=category_id
        )
    return ScenarioCategory(
        id=str(category_id),
        keywords=keywords,
        controls=tuple(normalize_control_id(c) for c in spec.get("controls") or []),
        workflows=tuple(str(w) for w in spec.get("workflows") or []),
    )


def _build_workflow(spec, workflow_root) -> WorkflowDescriptor:
    if isinstance(spec, str):
        spec = {"id": spec}
    wf_id = str(spec.get("id", "")).strip()
    if not wf_id:
        raise ConfigurationError("Workflow entry without 'id'.", config_key="workflows")
    declared = spec.get("controls")
    if declared:
        controls = tuple(normalize_control_id(c) for c in declared)
        source = "explicit"
    else:
        controls = tuple(controls_from_workflow_name(wf_id))
        source = "naming-convention"
    path = spec.get("path") or f"{workflow_root}/{wf_id}.yml"
    return WorkflowDescriptor(
        id=wf_id,
        path=path,
        controls=controls,
        estimated_minutes=int(spec.get("estimated_minutes", DEFAULT_RUNTIME_MINUTES)),
        control_source=source,
    )


def _load_config(config_path: Path) -> Dict:
    if not config_path.exists():
        return {}
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid registry config: {config_path}")
    return data.get("scenario_mappings", {}) or {}


def load_registry(config_path=None, use_cache=True) -> ScenarioRegistry:
    """Build the registry from YAML config, falling back to built-in defaults.

    Args:
        config_path: Explicit path to a scenario mappings YAML file.
        use_cache: Reuse a registry already loaded from the same path.

    Returns:
        ScenarioRegistry.

    Raises:
        ConfigurationError: The config file is malformed.
    """
    path = Path(config_path) if config_path else CONFIG_PATH
    cache_key = str(path)
    if use_cache and cache_key in _REGISTRY_CACHE:
        return _REGISTRY_CACHE[cache_key]

    try:
        cfg = _load_config(path)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc

    categories_cfg = cfg.get("categories") or DEFAULT_CATEGORIES
    workflows_cfg = cfg.get("workflows") or DEFAULT_WORKFLOWS
    workflow_root = cfg.get("workflow_root", DEFAULT_WORKFLOW_ROOT)

    categories = [_build_category(cid, spec) for cid, spec in categories_cfg.items()]
    workflows = [_build_workflow(spec, workflow_root) for spec in workflows_cfg]

    ids = [w.id for w in workflows]
    if len(ids) != len(set(ids)):
        raise ConfigurationError("Duplicate workflow IDs in registry.", config_key="workflows")

    registry = ScenarioRegistry(
        categories, workflows, source=str(path) if path.exists() else "defaults"
    )
    logger.debug(
        "Loaded scenario registry from %s: %d categories, %d workflows",
        registry.source, len(categories), len(workflows),
    )
    if use_cache:
        _REGISTRY_CACHE[cache_key] = registry
    return registry


def main():
    parser = argparse.ArgumentParser(description="Show the scenario/workflow registry")
    parser.add_argument("--config", help="Path to scenario mappings YAML")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    registry = load_registry(args.config)
    if args.json:
        print(json.dumps(registry.to_dict(), indent=2))
        return
    print(f"Source: {registry.source}")
    for cat in registry.categories:
        print(f"  {cat.id}: {', '.join(cat.controls)}  ({len(cat.keywords)} keywords)")
    print("Workflows:")
    for wf in registry.workflows:
        print(f"  {wf.id} -> {', '.join(wf.controls) or '-'} [{wf.control_source}]")


if __name__ == "__main__":
    main()
