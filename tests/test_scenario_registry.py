#!/usr/bin/env python3
# CUI // SP-CTI
"""Tests for grctools.compliance.scenario_registry."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from grctools.compliance.scenario_registry import (
    CONFIG_PATH,
    DEFAULT_RUNTIME_MINUTES,
    controls_from_workflow_name,
    load_registry,
    normalize_control_id,
)
from grctools.resilience.errors import ConfigurationError


class TestNormalizeControlId:

    @pytest.mark.parametrize("raw,expected", [
        ("sc-7", "SC-7"),
        ("  AC-3 ", "AC-3"),
        ("ac-2.1", "AC-2(1)"),
        ("AC-2(1)", "AC-2(1)"),
        ("", ""),
    ])
    def test_normalizes(self, raw, expected):
        assert normalize_control_id(raw) == expected


class TestControlsFromWorkflowName:

    def test_control_prefix(self):
        assert controls_from_workflow_name("ac-3-access-enforcement") == ["AC-3"]

    def test_two_digit_control(self):
        assert controls_from_workflow_name("sc-28-data-protection") == ["SC-28"]

    def test_nested_name_without_control(self):
        assert controls_from_workflow_name("pqc/assess") == []


class TestLoadRegistry:

    def test_loads_bundled_config(self, registry):
        assert registry.source == str(CONFIG_PATH)
        ids = [c.id for c in registry.categories]
        assert ids == [
            "access_control", "audit_logging", "network_security",
            "data_protection", "pqc_migration", "quantum_risk",
        ]
        assert len(registry.workflows) == 12

    def test_naming_convention_binding(self, registry):
        wf = registry.get_workflow("ac-3-access-enforcement")
        assert wf.controls == ("AC-3",)
        assert wf.control_source == "naming-convention"
        assert wf.path == "/ansible/playbooks/ac-3-access-enforcement.yml"
        assert wf.estimated_minutes == 3

    def test_explicit_binding(self, registry):
        wf = registry.get_workflow("pqc/assess")
        assert wf.controls == ("SC-12", "SC-13", "SC-17")
        assert wf.control_source == "explicit"
        assert wf.path == "/ansible/playbooks/pqc/assess.yml"

    def test_unknown_workflow(self, registry):
        assert registry.get_workflow("does-not-exist") is None
        assert registry.estimate_runtime("does-not-exist") == DEFAULT_RUNTIME_MINUTES
        assert registry.registration_index("does-not-exist") == len(registry.workflows)

    def test_workflows_for_control_in_registration_order(self, registry):
        ids = [w.id for w in registry.workflows_for_control("sc-17")]
        assert ids == ["pqc/assess", "pqc/deploy-mldsa", "pqc/deploy-slhdsa"]

    def test_workflows_for_unbound_control(self, registry):
        assert registry.workflows_for_control("SC-29") == []

    def test_category_lookup(self, registry):
        cat = registry.get_category("network_security")
        assert "firewall" in cat.keywords
        assert cat.controls == ("SC-7", "SC-8", "SC-9", "SC-10")
        assert registry.get_category("missing") is None

    def test_missing_file_uses_defaults(self, tmp_path):
        reg = load_registry(tmp_path / "absent.yaml", use_cache=False)
        assert reg.source == "defaults"
        assert reg.get_category("pqc_migration") is not None
        assert reg.get_workflow("pqc/validate").controls == ("SC-13", "CA-7")

    def test_cached_by_path(self, tmp_path):
        path = tmp_path / "mappings.yaml"
        path.write_text("scenario_mappings: {}\n", encoding="utf-8")
        assert load_registry(path) is load_registry(path)
        assert load_registry(path, use_cache=False) is not load_registry(path)

    def test_custom_workflow_root(self, tmp_path):
        path = tmp_path / "mappings.yaml"
        path.write_text(
            "scenario_mappings:\n"
            "  workflow_root: /srv/playbooks\n"
            "  workflows:\n"
            "    - id: si-7-integrity\n",
            encoding="utf-8",
        )
        reg = load_registry(path, use_cache=False)
        wf = reg.get_workflow("si-7-integrity")
        assert wf.path == "/srv/playbooks/si-7-integrity.yml"
        assert wf.controls == ("SI-7",)
        assert wf.estimated_minutes == DEFAULT_RUNTIME_MINUTES


class TestRegistryConfigErrors:

    def _write(self, tmp_path, text):
        path = tmp_path / "mappings.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_duplicate_workflow_ids(self, tmp_path):
        path = self._write(tmp_path, (
            "scenario_mappings:\n"
            "  workflows:\n"
            "    - id: ac-3-access-enforcement\n"
            "    - id: ac-3-access-enforcement\n"
        ))
        with pytest.raises(ConfigurationError) as exc_info:
            load_registry(path, use_cache=False)
        assert exc_info.value.config_key == "workflows"

    def test_category_without_keywords(self, tmp_path):
        path = self._write(tmp_path, (
            "scenario_mappings:\n"
            "  categories:\n"
            "    empty:\n"
            "      keywords: []\n"
            "      controls: [AC-3]\n"
        ))
        with pytest.raises(ConfigurationError) as exc_info:
            load_registry(path, use_cache=False)
        assert exc_info.value.config_key == "empty"

    def test_unparseable_yaml(self, tmp_path):
        path = self._write(tmp_path, "scenario_mappings: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_registry(path, use_cache=False)

    def test_non_mapping_root(self, tmp_path):
        path = self._write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_registry(path, use_cache=False)
