#!/usr/bin/env python3
# CUI // SP-CTI
"""Shared pytest fixtures for the GRC toolkit test suite.

Centralizes the registry, catalog and executor doubles so that every test
module builds pipelines from the same collaborators.
"""

import json
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path
BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from grctools.compliance.models import Control  # noqa: E402
from grctools.compliance.oscal_catalog_adapter import OscalCatalogAdapter  # noqa: E402
from grctools.compliance.scenario_registry import load_registry  # noqa: E402

CATALOG_PATH = BASE_DIR / "context" / "compliance" / "nist_800_53_catalog.json"

ASSESSED_AT = "2025-01-15T12:00:00+00:00"

RSA_SCENARIO = "We need to assess RSA certificates used for classified long-term data retention"
AES_SCENARIO = "routine AES-256 database encryption review"


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------
class DictCatalog:
    """In-memory catalog collaborator keyed by canonical control ID."""

    def __init__(self, controls=None, href="#test-catalog"):
        self.controls = dict(controls or {})
        self.href = href
        self.lookups = []

    async def lookup(self, control_id):
        self.lookups.append(control_id)
        return self.controls.get(control_id)


class UnreachableCatalog:
    """Catalog whose transport is down."""

    href = "#unreachable"

    async def lookup(self, control_id):
        raise ConnectionError("catalog service refused connection")


class FakeExecutor:
    """Executor double returning canned outcomes.

    ``outcomes`` maps a substring of the workflow path to the outcome dict
    returned for it; unmatched workflows complete with no findings.
    """

    def __init__(self, outcomes=None):
        self.outcomes = dict(outcomes or {})
        self.calls = []

    async def execute(self, workflow_path, target_hosts):
        self.calls.append((workflow_path, list(target_hosts)))
        for fragment, outcome in self.outcomes.items():
            if fragment in workflow_path:
                return outcome
        return {"status": "completed", "output": "ok", "findings": []}


class UnreachableExecutor:
    """Executor whose transport fails on the first workflow."""

    def __init__(self):
        self.calls = 0

    async def execute(self, workflow_path, target_hosts):
        self.calls += 1
        raise ConnectionError("executor host unreachable")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def registry():
    """Scenario registry loaded from args/scenario_mappings.yaml."""
    return load_registry(use_cache=False)


@pytest.fixture
def catalog():
    """Adapter over the bundled flat NIST 800-53 catalog."""
    return OscalCatalogAdapter(catalog_path=CATALOG_PATH)


@pytest.fixture
def dict_catalog():
    return DictCatalog({
        "SC-7": Control(id="SC-7", title="Boundary Protection", priority="high",
                        workflow="sc-7-boundary-protection", family="SC"),
        "SC-8": Control(id="SC-8", title="Transmission Confidentiality and Integrity",
                        priority="high", family="SC"),
        "SC-12": Control(id="SC-12", title="Cryptographic Key Establishment and Management",
                         priority="high", workflow="pqc/inventory", family="SC"),
    })


@pytest.fixture
def flat_catalog_file(tmp_path):
    """A small flat-format catalog on disk."""
    data = {
        "metadata": {"title": "Test Catalog", "version": "0.1"},
        "controls": [
            {"id": "AC-3", "family": "AC", "title": "Access Enforcement",
             "description": "Enforce approved authorizations.", "priority": "high",
             "workflow": "ac-3-access-enforcement"},
            {"id": "ac-6", "title": "Least Privilege"},
            {"id": "SC-9", "family": "SC", "title": "Transmission Confidentiality",
             "withdrawn": True},
        ],
    }
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def oscal_catalog_file(tmp_path):
    """A small official-OSCAL-format catalog on disk."""
    data = {
        "catalog": {
            "uuid": "5d4a8a3e-6a61-4f0d-9f35-1b1f0e3b7a10",
            "metadata": {"title": "Test OSCAL Catalog", "version": "5.1.1"},
            "groups": [
                {
                    "id": "sc",
                    "title": "System and Communications Protection",
                    "controls": [
                        {
                            "id": "sc-13",
                            "title": "Cryptographic Protection",
                            "parts": [
                                {"name": "statement", "prose": "Implement cryptography."},
                            ],
                            "props": [
                                {"name": "priority", "value": "high"},
                                {"name": "workflow", "value": "pqc/assess"},
                            ],
                            "controls": [
                                {"id": "sc-13.1", "title": "FIPS-validated Cryptography"},
                            ],
                        },
                        {
                            "id": "sc-9",
                            "title": "Transmission Confidentiality",
                            "props": [{"name": "status", "value": "withdrawn"}],
                        },
                    ],
                },
            ],
        },
    }
    path = tmp_path / "oscal_catalog.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def passing_executor():
    return FakeExecutor()


@pytest.fixture
def unreachable_executor():
    return UnreachableExecutor()
