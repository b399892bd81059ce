#!/usr/bin/env python3
# CUI // SP-CTI
"""Tests for the control catalog adapter.

Covers:
    - Flat catalog format: normalization, defaults, withdrawn controls
    - Official OSCAL format: nested groups, enhancements, props
    - Missing catalog: degraded lookups
    - CatalogCollaborator lookup() semantics on the bundled catalog
"""

import sys
from pathlib import Path

import pytest

BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from grctools.compliance.oscal_catalog_adapter import OscalCatalogAdapter


class TestFlatCatalog:

    def test_get_control(self, flat_catalog_file):
        adapter = OscalCatalogAdapter(catalog_path=flat_catalog_file)
        ctrl = adapter.get_control("ac-3")
        assert ctrl.id == "AC-3"
        assert ctrl.title == "Access Enforcement"
        assert ctrl.priority == "high"
        assert ctrl.workflow == "ac-3-access-enforcement"
        assert ctrl.source == "flat"

    def test_defaults_for_sparse_entry(self, flat_catalog_file):
        ctrl = OscalCatalogAdapter(catalog_path=flat_catalog_file).get_control("AC-6")
        assert ctrl.priority == "medium"
        assert ctrl.family == "AC"
        assert ctrl.workflow is None

    def test_list_excludes_withdrawn(self, flat_catalog_file):
        adapter = OscalCatalogAdapter(catalog_path=flat_catalog_file)
        assert [c.id for c in adapter.list_controls()] == ["AC-3", "AC-6"]
        assert [c.id for c in adapter.list_controls(include_withdrawn=True)] == [
            "AC-3", "AC-6", "SC-9",
        ]
        assert [c.id for c in adapter.list_controls(family="sc", include_withdrawn=True)] == [
            "SC-9",
        ]

    def test_stats(self, flat_catalog_file):
        stats = OscalCatalogAdapter(catalog_path=flat_catalog_file).get_catalog_stats()
        assert stats["source_format"] == "flat"
        assert stats["total_controls"] == 3
        assert stats["withdrawn"] == 1
        assert stats["workflow_bound"] == 1
        assert stats["metadata"]["title"] == "Test Catalog"

    def test_href_is_source_path(self, flat_catalog_file):
        adapter = OscalCatalogAdapter(catalog_path=flat_catalog_file)
        assert adapter.href == str(flat_catalog_file)
        assert adapter.is_loaded()
        assert not adapter.is_official_catalog()

    async def test_lookup_treats_withdrawn_as_miss(self, flat_catalog_file):
        adapter = OscalCatalogAdapter(catalog_path=flat_catalog_file)
        assert adapter.get_control("SC-9") is not None
        assert await adapter.lookup("SC-9") is None
        assert (await adapter.lookup("ac-3")).id == "AC-3"


class TestOscalCatalog:

    def test_statement_and_props(self, oscal_catalog_file):
        adapter = OscalCatalogAdapter(catalog_path=oscal_catalog_file)
        assert adapter.is_official_catalog()
        ctrl = adapter.get_control("SC-13")
        assert ctrl.description == "Implement cryptography."
        assert ctrl.priority == "high"
        assert ctrl.workflow == "pqc/assess"
        assert ctrl.family == "SC"
        assert ctrl.source == "nist_oscal"

    def test_enhancement_normalized(self, oscal_catalog_file):
        adapter = OscalCatalogAdapter(catalog_path=oscal_catalog_file)
        enh = adapter.get_control("sc-13.1")
        assert enh.id == "SC-13(1)"
        assert enh.priority == "medium"
        assert adapter.get_catalog_stats()["enhancements"] == 1

    async def test_withdrawn_prop(self, oscal_catalog_file):
        adapter = OscalCatalogAdapter(catalog_path=oscal_catalog_file)
        assert await adapter.lookup("SC-9") is None


class TestMissingCatalog:

    async def test_degrades_to_misses(self, tmp_path):
        adapter = OscalCatalogAdapter(catalog_path=tmp_path / "absent.json")
        assert not adapter.is_loaded()
        assert adapter.href == "#catalog-unavailable"
        assert await adapter.lookup("SC-7") is None

    def test_unrecognized_format(self, tmp_path):
        path = tmp_path / "odd.json"
        path.write_text('{"something": []}', encoding="utf-8")
        assert not OscalCatalogAdapter(catalog_path=path).is_loaded()

    def test_falls_back_through_sources(self, tmp_path, flat_catalog_file):
        adapter = OscalCatalogAdapter(
            catalog_sources=[tmp_path / "absent.json", flat_catalog_file]
        )
        assert adapter.href == str(flat_catalog_file)


class TestBundledCatalog:

    @pytest.mark.parametrize("cid,workflow", [
        ("AC-3", "ac-3-access-enforcement"),
        ("SC-12", "pqc/inventory"),
        ("SC-13", "pqc/assess"),
        ("SC-17", "pqc/deploy-mldsa"),
        ("SC-28", "sc-28-data-protection"),
    ])
    async def test_workflow_bindings(self, catalog, cid, workflow):
        assert (await catalog.lookup(cid)).workflow == workflow

    async def test_unbound_control(self, catalog):
        ctrl = await catalog.lookup("SC-29")
        assert ctrl.title == "Heterogeneity"
        assert ctrl.workflow is None

    async def test_withdrawn_sc9(self, catalog):
        assert await catalog.lookup("SC-9") is None
