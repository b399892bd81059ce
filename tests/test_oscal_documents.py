#!/usr/bin/env python3
# CUI // SP-CTI
"""Tests for the OSCAL document builder.

Covers:
    - Assessment plan: one activity per control, degradation remarks, props
    - Assessment results: findings, execution failures, observations
    - Asset inventory: components keyed by asset UUID
    - Integrity checks: UUID uniqueness, dangling control references
    - File validation entrypoint
"""

import copy
import json
import re
import sys
import uuid
from pathlib import Path

import pytest

BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from conftest import ASSESSED_AT
from grctools.compliance import oscal_documents
from grctools.compliance.models import (
    Asset,
    Control,
    ControlEntry,
    ExecutionOutcome,
    ValidationPlan,
    ValidationRun,
    WorkflowDescriptor,
    WorkflowFinding,
    WorkflowResult,
)
from grctools.quantum import risk_model
from grctools.resilience.errors import IntegrityViolationError

SC7_WF = WorkflowDescriptor(
    id="sc-7-boundary-protection",
    path="/ansible/playbooks/sc-7-boundary-protection.yml",
    controls=("SC-7",),
    estimated_minutes=4,
    control_source="naming-convention",
)
ASSESS_WF = WorkflowDescriptor(
    id="pqc/assess",
    path="/ansible/playbooks/pqc/assess.yml",
    controls=("SC-12", "SC-13", "SC-17"),
    estimated_minutes=3,
)


@pytest.fixture
def plan():
    return ValidationPlan(
        controls=(
            ControlEntry(
                control=Control(id="SC-7", title="Boundary Protection", priority="high",
                                workflow=SC7_WF.id),
                workflow=SC7_WF.id,
                workflow_binding="catalog",
            ),
            ControlEntry(
                control=Control(id="SC-8", title="Transmission Confidentiality and Integrity",
                                priority="high"),
            ),
            ControlEntry(
                control=Control(id="SC-13", title="Cryptographic Protection",
                                source="unavailable"),
                catalog_status="unavailable",
                workflow=ASSESS_WF.id,
                workflow_binding="registry",
                pqc_relevance="high",
                fips_standards=("FIPS-203", "FIPS-204"),
            ),
        ),
        workflows=(SC7_WF, ASSESS_WF),
        estimated_duration=7,
        degradations=(
            "SC-13: catalog metadata unavailable",
            "SC-13: workflow pqc/assess inferred from registry",
        ),
    )


def _result(workflow, status, findings=(), output=""):
    return WorkflowResult(
        workflow=workflow,
        outcome=ExecutionOutcome(status=status, output=output, findings=tuple(findings)),
        timestamp="2025-01-15T12:05:00.000Z",
    )


def _run(*results):
    return ValidationRun(
        execution_id="run-0001",
        start_time="2025-01-15T12:00:00.000Z",
        end_time="2025-01-15T12:10:00.000Z",
        target_hosts=("web01", "web02"),
        results=tuple(results),
    )


@pytest.fixture
def mixed_run():
    """sc-7 fails outright; pqc/assess completes with a PASS and a WARN."""
    return _run(
        _result(SC7_WF, "failed", output="ssh timeout on web02"),
        _result(ASSESS_WF, "completed", findings=[
            WorkflowFinding("SC-13", "PASS", "FIPS mode enabled", "crypto-policies: FIPS"),
            WorkflowFinding("SC-12", "WARN", "RSA-2048 keys still in use"),
        ]),
    )


def _props(obj):
    return {p["name"]: p["value"] for p in obj.get("props", [])}


def _all_uuids(obj, found=None):
    found = [] if found is None else found
    if isinstance(obj, dict):
        for k, v in obj.items():
            if k == "uuid":
                found.append(v)
            else:
                _all_uuids(v, found)
    elif isinstance(obj, list):
        for item in obj:
            _all_uuids(item, found)
    return found


class TestHelpers:

    def test_uuids_unique_over_10000(self):
        ids = {oscal_documents._generate_uuid() for _ in range(10000)}
        assert len(ids) == 10000
        assert all(oscal_documents.UUID_PATTERN.match(i) for i in ids)

    @pytest.mark.parametrize("raw,expected", [
        ("SC-7", "sc-7"),
        ("AC-2(1)", "ac-2.1"),
        ("sc-28", "sc-28"),
        ("", ""),
    ])
    def test_control_id_to_oscal(self, raw, expected):
        assert oscal_documents._control_id_to_oscal(raw) == expected

    def test_timestamp_format(self):
        assert re.fullmatch(
            r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", oscal_documents.oscal_timestamp()
        )


class TestAssessmentPlan:

    def test_structure(self, plan):
        doc = oscal_documents.build_assessment_plan(plan, import_href="/catalogs/nist.json")
        ap = doc["assessment-plan"]
        assert ap["metadata"]["oscal-version"] == "1.1.2"
        assert ap["import-profile"] == {"href": "/catalogs/nist.json"}
        reviewed = ap["reviewed-controls"]["control-selections"][0]["include-controls"]
        assert [c["control-id"] for c in reviewed] == ["sc-7", "sc-8", "sc-13"]
        assert len(ap["assessment-activities"]) == 3
        assert oscal_documents.check_document(doc) == []

    def test_one_activity_per_reviewed_control(self, plan):
        ap = oscal_documents.build_assessment_plan(plan)["assessment-plan"]
        related = [
            a["related-controls"]["control-selections"][0]["include-controls"][0]["control-id"]
            for a in ap["assessment-activities"]
        ]
        assert related == ["sc-7", "sc-8", "sc-13"]

    def test_activity_props_and_steps(self, plan):
        ap = oscal_documents.build_assessment_plan(plan)["assessment-plan"]
        sc7, sc8, sc13 = ap["assessment-activities"]
        assert _props(sc7) == {
            "control": "SC-7",
            "priority": "high",
            "catalog-status": "found",
            "workflow-binding": "catalog",
        }
        assert sc7["steps"][0]["title"] == "Execute sc-7-boundary-protection"
        assert "remarks" not in sc7
        assert sc8["steps"][0]["title"] == "Manual review"
        fips = [p["value"] for p in sc13["props"] if p["name"] == "fips-standard"]
        assert fips == ["FIPS-203", "FIPS-204"]
        assert _props(sc13)["pqc-relevance"] == "high"

    def test_degradations_are_visible(self, plan):
        ap = oscal_documents.build_assessment_plan(plan)["assessment-plan"]
        sc13 = ap["assessment-activities"][2]
        assert "Catalog metadata unavailable" in sc13["remarks"]
        assert "degraded confidence" in sc13["remarks"]
        notes = [p["value"] for p in ap["props"] if p["name"] == "degradation"]
        assert notes == list(plan.degradations)

    def test_profile_props(self, plan):
        ap = oscal_documents.build_assessment_plan(
            plan, profile_props=[{"name": "pqc-migration", "value": "true"}],
        )["assessment-plan"]
        props = _props(ap)
        assert props["pqc-migration"] == "true"
        assert props["estimated-duration-minutes"] == "7"
        assert all(p["ns"] == oscal_documents.OSCAL_NS for p in ap["props"])

    def test_empty_plan(self):
        doc = oscal_documents.build_assessment_plan(ValidationPlan(controls=(), workflows=()))
        assert doc["assessment-plan"]["assessment-activities"] == []

    def test_fresh_uuids_per_build(self, plan):
        first = set(_all_uuids(oscal_documents.build_assessment_plan(plan)))
        second = set(_all_uuids(oscal_documents.build_assessment_plan(plan)))
        assert not first & second

    def test_large_plan_has_unique_uuids(self):
        entries = tuple(
            ControlEntry(control=Control(id=f"SI-{i}", title=f"Control {i}"))
            for i in range(1, 301)
        )
        doc = oscal_documents.build_assessment_plan(ValidationPlan(controls=entries, workflows=()))
        uuids = _all_uuids(doc)
        assert len(uuids) == len(set(uuids)) == 1 + 300 * 2


class TestAssessmentResults:

    def test_mixed_run(self, plan, mixed_run):
        doc = oscal_documents.build_assessment_results(mixed_run, plan)
        result = doc["assessment-results"]["results"][0]
        props = _props(result)
        assert props["overall-status"] == "failed"
        assert props["workflows-executed"] == "2"
        assert props["workflows-failed"] == "1"
        assert oscal_documents.results_status(doc) == "failed"

    def test_per_control_status(self, plan, mixed_run):
        assert oscal_documents.control_statuses(mixed_run, plan) == {
            "SC-7": "failed",
            "SC-12": "passed",
            "SC-13": "passed",
            "SC-17": "passed",
        }

    def test_findings(self, plan, mixed_run):
        result = oscal_documents.build_assessment_results(mixed_run, plan)[
            "assessment-results"]["results"][0]
        findings = result["findings"]
        assert len(findings) == 3
        failure = findings[0]
        assert _props(failure)["execution-failure"] == "true"
        assert failure["target"]["target-id"] == "sc-7"
        assert failure["target"]["status"]["state"] == "not-satisfied"
        assert failure["description"] == "ssh timeout on web02"
        passed = findings[1]
        assert _props(passed)["finding-status"] == "PASS"
        assert passed["target"]["status"]["state"] == "satisfied"
        assert findings[2]["target"]["target-id"] == "sc-12"

    def test_observation_per_reviewed_control(self, plan, mixed_run):
        result = oscal_documents.build_assessment_results(mixed_run, plan)[
            "assessment-results"]["results"][0]
        observed = [_props(o)["control"] for o in result["observations"]]
        assert observed == ["SC-7", "SC-12", "SC-13", "SC-17"]
        reviewed = [
            s["include-controls"][0]["control-id"]
            for s in result["reviewed-controls"]["control-selections"]
        ]
        assert reviewed == ["sc-7", "sc-12", "sc-13", "sc-17"]
        sc13 = result["observations"][2]
        assert sc13["relevant-evidence"] == [{"description": "crypto-policies: FIPS"}]

    def test_findings_link_to_observations(self, plan, mixed_run):
        result = oscal_documents.build_assessment_results(mixed_run, plan)[
            "assessment-results"]["results"][0]
        obs_ids = {o["uuid"] for o in result["observations"]}
        for finding in result["findings"]:
            for rel in finding["related-observations"]:
                assert rel["observation-uuid"] in obs_ids

    def test_import_ap_points_at_plan(self, plan, mixed_run):
        ap = oscal_documents.build_assessment_plan(plan)
        doc = oscal_documents.build_assessment_results(mixed_run, plan, plan_document=ap)
        assert doc["assessment-results"]["import-ap"]["href"] == (
            f"#{ap['assessment-plan']['uuid']}"
        )

    def test_all_passing(self, plan):
        run = _run(_result(SC7_WF, "completed"), _result(ASSESS_WF, "completed"))
        doc = oscal_documents.build_assessment_results(run, plan)
        assert oscal_documents.results_status(doc) == "passed"
        assert doc["assessment-results"]["results"][0]["findings"] == []

    def test_control_status_follows_workflow_outcome(self):
        run = _run(_result(ASSESS_WF, "completed", findings=[
            WorkflowFinding("SI-7", "FAIL", "unsigned firmware"),
        ]))
        statuses = oscal_documents.control_statuses(run)
        assert statuses["SI-7"] == "passed"
        assert oscal_documents.check_document(
            oscal_documents.build_assessment_results(run)
        ) == []

    def test_empty_run(self):
        doc = oscal_documents.build_assessment_results(_run())
        assert oscal_documents.results_status(doc) == "passed"

    def test_non_catalog_control_ids_stay_out_of_reviewed_controls(self, plan):
        run = _run(_result(SC7_WF, "completed", findings=[
            WorkflowFinding("V-230221", "FAIL", "STIG rule open"),
            WorkflowFinding("CIS 1.1", "PASS", "partition present"),
            WorkflowFinding("", "WARN", "unattributed warning"),
            WorkflowFinding("SC-7", "PASS", "default deny"),
        ]))
        doc = oscal_documents.build_assessment_results(run, plan)
        assert oscal_documents.check_document(doc) == []
        result = doc["assessment-results"]["results"][0]
        assert len(result["findings"]) == 4
        reviewed = [
            s["include-controls"][0]["control-id"]
            for s in result["reviewed-controls"]["control-selections"]
        ]
        assert reviewed == ["sc-7"]
        unmapped = [f for f in result["findings"] if _props(f).get("control-mapping")]
        assert [f["target"]["target-id"] for f in unmapped] == ["v-230221", "cis-1.1", "unknown"]
        assert all("related-observations" not in f for f in unmapped)

    @pytest.mark.parametrize("control_id,expected", [
        ("SC-7", True), ("sc-7", True), ("AC-2(1)", True),
        ("V-230221", False), ("CIS 1.1", False), ("", False), (None, False),
    ])
    def test_is_oscal_control_id(self, control_id, expected):
        assert oscal_documents.is_oscal_control_id(control_id) is expected

    def test_degradations_carried_into_results(self, plan, mixed_run):
        result = oscal_documents.build_assessment_results(mixed_run, plan)[
            "assessment-results"]["results"][0]
        notes = [p["value"] for p in result["props"] if p["name"] == "degradation"]
        assert notes == list(plan.degradations)
        unvalidated = [p["value"] for p in result["props"] if p["name"] == "unvalidated-control"]
        assert unvalidated == ["SC-8"]

        by_control = {
            _props(s)["control"]: _props(s)["catalog-status"]
            for s in result["reviewed-controls"]["control-selections"]
        }
        assert by_control == {
            "SC-7": "found",
            "SC-12": "not-in-plan",
            "SC-13": "unavailable",
            "SC-17": "not-in-plan",
        }
        sc13 = next(o for o in result["observations"] if _props(o)["control"] == "SC-13")
        assert _props(sc13)["catalog-status"] == "unavailable"
        assert sc13["remarks"] == "Catalog metadata unavailable for SC-13."

    def test_results_without_plan_have_no_degradation_props(self, mixed_run):
        result = oscal_documents.build_assessment_results(mixed_run)[
            "assessment-results"]["results"][0]
        assert not [p for p in result["props"] if p["name"] == "degradation"]


class TestAssetInventory:

    def test_components_keyed_by_asset_id(self):
        asset = Asset(
            id=str(uuid.uuid4()),
            name="TLS Server Certificate",
            asset_type="certificate",
            algorithm="RSA",
            quantum_vulnerable=True,
            data_sensitivity="classified",
            business_criticality="critical",
            discovered_at=ASSESSED_AT,
            algorithm_type="Public Key",
            vulnerability_level="critical",
        )
        ra = risk_model.score(asset, assessed_at=ASSESSED_AT)
        doc = oscal_documents.build_asset_inventory([asset], [ra])
        (component,) = doc["inventory"]["components"]
        assert component["uuid"] == asset.id
        props = _props(component)
        assert props["risk-score"] == "10.0"
        assert props["risk-level"] == "critical"
        assert props["harvest-now-risk"] == "high"
        assert props["quantum-vulnerability"] == "high"

    def test_unscored_asset(self):
        asset = Asset(
            id=str(uuid.uuid4()), name="db", asset_type="database", algorithm="Unknown",
            quantum_vulnerable=None, data_sensitivity=None, business_criticality=None,
            discovered_at=ASSESSED_AT,
        )
        (component,) = oscal_documents.build_asset_inventory([asset])["inventory"]["components"]
        assert "risk-score" not in _props(component)
        assert _props(component)["data-sensitivity"] == "unknown"

    def test_non_uuid_asset_id_rejected(self):
        asset = Asset(
            id="asset-1", name="db", asset_type="database", algorithm="RSA",
            quantum_vulnerable=True, data_sensitivity=None, business_criticality=None,
            discovered_at=ASSESSED_AT,
        )
        with pytest.raises(IntegrityViolationError):
            oscal_documents.build_asset_inventory([asset])


class TestIntegrityChecks:

    def test_dangling_reviewed_control(self, plan):
        doc = oscal_documents.build_assessment_plan(plan)
        broken = copy.deepcopy(doc)
        broken["assessment-plan"]["reviewed-controls"]["control-selections"][0][
            "include-controls"].append({"control-id": "sc-99"})
        with pytest.raises(IntegrityViolationError) as exc_info:
            oscal_documents.validate_document(broken)
        assert "Reviewed control 'sc-99' has no assessment activity." in exc_info.value.errors

    def test_duplicate_uuid(self, plan):
        doc = copy.deepcopy(oscal_documents.build_assessment_plan(plan))
        activities = doc["assessment-plan"]["assessment-activities"]
        activities[1]["uuid"] = activities[0]["uuid"]
        errors = oscal_documents.check_document(doc)
        assert any("Duplicate UUID" in e for e in errors)

    def test_invalid_uuid(self, plan):
        doc = copy.deepcopy(oscal_documents.build_assessment_plan(plan))
        doc["assessment-plan"]["uuid"] = "not-a-uuid"
        assert any("Invalid UUID" in e for e in oscal_documents.check_document(doc))

    def test_control_id_format(self, plan):
        doc = copy.deepcopy(oscal_documents.build_assessment_plan(plan))
        doc["assessment-plan"]["reviewed-controls"]["control-selections"][0][
            "include-controls"][0]["control-id"] = "SC-7"
        assert any("not in OSCAL form" in e for e in oscal_documents.check_document(doc))

    def test_reviewed_control_without_finding_or_observation(self, plan, mixed_run):
        doc = copy.deepcopy(oscal_documents.build_assessment_results(mixed_run, plan))
        result = doc["assessment-results"]["results"][0]
        result["reviewed-controls"]["control-selections"].append(
            {"include-controls": [{"control-id": "ac-3"}]}
        )
        errors = oscal_documents.check_document(doc)
        assert "Reviewed control 'ac-3' has no finding or observation." in errors

    def test_unknown_observation_reference(self, plan, mixed_run):
        doc = copy.deepcopy(oscal_documents.build_assessment_results(mixed_run, plan))
        result = doc["assessment-results"]["results"][0]
        result["observations"] = result["observations"][1:]
        errors = oscal_documents.check_document(doc)
        assert any("unknown observation" in e for e in errors)

    def test_missing_keys(self):
        errors = oscal_documents.check_document({"assessment-plan": {"uuid": str(uuid.uuid4())}})
        assert "Missing required key 'assessment-plan.metadata'." in errors
        assert "Missing metadata field: 'title'." in errors

    def test_unrecognized_root(self):
        assert oscal_documents.check_document({"catalog": {}})
        assert oscal_documents.check_document([]) == ["Root must be a JSON object."]


class TestValidateFile:

    def test_valid_file(self, tmp_path, plan):
        path = tmp_path / "ap.json"
        path.write_text(json.dumps(oscal_documents.build_assessment_plan(plan)), encoding="utf-8")
        assert oscal_documents.validate_oscal_file(path) == {"valid": True, "errors": []}

    def test_missing_file(self, tmp_path):
        result = oscal_documents.validate_oscal_file(tmp_path / "absent.json")
        assert result["valid"] is False

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        result = oscal_documents.validate_oscal_file(path)
        assert result["valid"] is False
        assert result["errors"][0].startswith("Invalid JSON")
