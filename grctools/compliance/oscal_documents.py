#!/usr/bin/env python3
# CUI // SP-CTI
"""OSCAL 1.1.2 document builder for scenario assessments.

Builds three JSON documents from pipeline data:
  - Assessment Plan     (validation plan -> assessment-activities)
  - Assessment Results  (executor outcomes -> findings + observations)
  - Asset Inventory     (cryptographic assets + quantum risk)

Every document and every nested activity, step, finding and observation gets
a fresh UUID4. Control IDs are emitted lowercase and dotted in ``control-id``
fields (SC-7 -> sc-7, AC-2(1) -> ac-2.1) and in canonical form in prop
values. Each builder runs validate_document() before returning, so a
document with duplicate UUIDs or a reviewed control that nothing references
raises IntegrityViolationError instead of leaving the builder.

Usage:
    python -m grctools.compliance.oscal_documents --validate /path/to/assessment-plan.json
"""

import argparse
import json
import logging
import re
import sys
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from grctools.compliance.models import (
    Asset,
    RiskAssessment,
    ValidationPlan,
    ValidationRun,
    WorkflowResult,
)
from grctools.resilience.errors import IntegrityViolationError

logger = logging.getLogger("grctools.compliance.oscal_documents")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

OSCAL_VERSION = "1.1.2"
OSCAL_NS = "http://csrc.nist.gov/ns/oscal/1.0"
DOCUMENT_VERSION = "1.0.0"

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)

CONTROL_ID_PATTERN = re.compile(r"^[a-z]{2,}-\d+(\.\d+)*$")

REQUIRED_KEYS = {
    "assessment-plan": (
        "uuid", "metadata", "import-profile", "assessment-subjects",
        "assessment-activities", "reviewed-controls",
    ),
    "assessment-results": ("uuid", "metadata", "import-ap", "results"),
    "inventory": ("uuid", "metadata", "components"),
}

METADATA_FIELDS = ("title", "last-modified", "version", "oscal-version")

# Executor finding status -> OSCAL finding state
_FINDING_STATE = {
    "PASS": "satisfied",
    "FAIL": "not-satisfied",
    "WARN": "not-satisfied",
}


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------

def _generate_uuid():
    """Generate a UUID4 string for OSCAL identifiers."""
    return str(uuid.uuid4())


def oscal_timestamp():
    """ISO 8601 timestamp with millisecond precision and Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _control_id_to_oscal(control_id):
    """Convert a control ID to OSCAL format (lowercase with hyphens).

    Examples:
        "AC-2"        -> "ac-2"
        "AC-2(1)"     -> "ac-2.1"
        "sc-7"        -> "sc-7"
    """
    if not control_id:
        return ""
    cid = control_id.strip().lower()
    cid = re.sub(r"\((\d+)\)", r".\1", cid)
    return cid


def is_oscal_control_id(control_id) -> bool:
    """True when the ID converts to a catalog-style OSCAL control-id.

    Executor findings may name controls from other frameworks (STIG
    "V-230221", "CIS 1.1"); those are kept as findings but never enter
    reviewed-controls.
    """
    return bool(CONTROL_ID_PATTERN.match(_control_id_to_oscal(control_id or "")))


def _target_id(control_id):
    """Token-safe target-id for a finding, whatever the control naming scheme."""
    return re.sub(r"[^a-z0-9.\-]+", "-", _control_id_to_oscal(control_id)).strip("-") or "unknown"


def _prop(name, value):
    return {"name": name, "ns": OSCAL_NS, "value": str(value)}


def _build_metadata(title):
    return {
        "title": title,
        "last-modified": oscal_timestamp(),
        "version": DOCUMENT_VERSION,
        "oscal-version": OSCAL_VERSION,
    }


def _include_controls(control_ids):
    return {
        "include-controls": [
            {"control-id": _control_id_to_oscal(cid)} for cid in control_ids
        ]
    }


# ---------------------------------------------------------------------------
# Assessment Plan
# ---------------------------------------------------------------------------

def _activity_for(entry, workflows_by_id):
    props = [
        _prop("control", entry.id),
        _prop("priority", entry.priority),
        _prop("catalog-status", entry.catalog_status),
        _prop("workflow-binding", entry.workflow_binding),
    ]
    if entry.pqc_relevance:
        props.append(_prop("pqc-relevance", entry.pqc_relevance))
        for std in entry.fips_standards:
            props.append(_prop("fips-standard", std))

    remarks = []
    if entry.catalog_status != "found":
        remarks.append(f"Catalog metadata unavailable for {entry.id}.")
    if entry.workflow_binding == "registry":
        remarks.append(
            f"Workflow {entry.workflow} inferred from the workflow registry "
            f"(degraded confidence)."
        )

    steps = []
    wf = workflows_by_id.get(entry.workflow) if entry.workflow else None
    if wf is not None:
        steps.append({
            "uuid": _generate_uuid(),
            "title": f"Execute {wf.id}",
            "description": f"Run workflow {wf.path} against the assessment subjects.",
            "props": [
                _prop("workflow", wf.id),
                _prop("estimated-minutes", wf.estimated_minutes),
            ],
        })
    else:
        steps.append({
            "uuid": _generate_uuid(),
            "title": "Manual review",
            "description": f"No registered workflow validates {entry.id}; examine manually.",
        })

    activity = {
        "uuid": _generate_uuid(),
        "title": f"{entry.id}: {entry.title}",
        "description": entry.description or f"Validate control {entry.id}.",
        "props": props,
        "steps": steps,
        "related-controls": {"control-selections": [_include_controls([entry.id])]},
    }
    if remarks:
        activity["remarks"] = " ".join(remarks)
    return activity


def build_assessment_plan(
    plan: ValidationPlan,
    import_href: str = "#catalog",
    profile_props: Sequence[Dict] = (),
    title: str = "Scenario Compliance Assessment Plan",
    scenario: Optional[str] = None,
) -> Dict:
    """Build an OSCAL assessment-plan from a validation plan.

    One assessment activity per control; every control in reviewed-controls
    is referenced by exactly one activity.

    Raises:
        IntegrityViolationError: The assembled document failed validation.
    """
    workflows_by_id = {w.id: w for w in plan.workflows}
    activities = [_activity_for(entry, workflows_by_id) for entry in plan.controls]

    props = [_prop(p["name"], p["value"]) for p in profile_props]
    props.append(_prop("estimated-duration-minutes", plan.estimated_duration))
    for note in plan.degradations:
        props.append(_prop("degradation", note))

    doc = {
        "assessment-plan": {
            "uuid": _generate_uuid(),
            "metadata": _build_metadata(title),
            "import-profile": {"href": import_href},
            "props": props,
            "assessment-subjects": [
                {
                    "type": "component",
                    "description": scenario or "Systems named in the assessment scenario.",
                    "include-all": {},
                },
            ],
            "assessment-activities": activities,
            "reviewed-controls": {
                "control-selections": [_include_controls(plan.control_ids())],
            },
        },
    }
    validate_document(doc)
    logger.info(
        "Assessment plan built: %d activities, %d degradation(s)",
        len(activities), len(plan.degradations),
    )
    return doc


# ---------------------------------------------------------------------------
# Assessment Results
# ---------------------------------------------------------------------------

def _bound_controls(result: WorkflowResult, plan: Optional[ValidationPlan]) -> List[str]:
    controls = list(result.workflow.controls)
    if plan is not None:
        for entry in plan.controls:
            if entry.workflow == result.workflow.id and entry.id not in controls:
                controls.append(entry.id)
    return controls


def control_coverage(run: ValidationRun, plan: Optional[ValidationPlan]):
    """Control ID -> covering WorkflowResults, in first-seen order.

    Findings whose control is not a catalog-style ID do not add coverage.
    """
    coverage = OrderedDict()
    for result in run.results:
        for cid in _bound_controls(result, plan):
            coverage.setdefault(cid, [])
            if result not in coverage[cid]:
                coverage[cid].append(result)
        for finding in result.outcome.findings:
            if not is_oscal_control_id(finding.control):
                continue
            coverage.setdefault(finding.control, [])
            if result not in coverage[finding.control]:
                coverage[finding.control].append(result)
    return coverage


def control_statuses(run: ValidationRun, plan: Optional[ValidationPlan] = None) -> Dict[str, str]:
    """Per-control status: "failed" if any covering workflow failed."""
    return {
        cid: "failed" if any(r.outcome.failed for r in results) else "passed"
        for cid, results in control_coverage(run, plan).items()
    }


def build_assessment_results(
    run: ValidationRun,
    plan: Optional[ValidationPlan] = None,
    plan_document: Optional[Dict] = None,
    title: str = "Scenario Compliance Assessment Results",
) -> Dict:
    """Build OSCAL assessment-results from a validation run.

    Findings map one-to-one from executor findings. A failed workflow also
    yields one execution-failure finding per control it is bound to. Every
    reviewed control gets one observation, so controls without findings
    remain traceable.

    Raises:
        IntegrityViolationError: The assembled document failed validation.
    """
    coverage = control_coverage(run, plan)
    statuses = control_statuses(run, plan)
    entries = {e.id: e for e in plan.controls} if plan is not None else {}

    def _catalog_status(cid):
        entry = entries.get(cid)
        return entry.catalog_status if entry is not None else "not-in-plan"

    observations = []
    observation_for = {}
    for cid, results in coverage.items():
        obs_uuid = _generate_uuid()
        observation_for[cid] = obs_uuid
        finding_count = sum(
            1 for r in results for f in r.outcome.findings if f.control == cid
        )
        evidence = [
            {"description": f.evidence}
            for r in results for f in r.outcome.findings
            if f.control == cid and f.evidence
        ]
        obs = {
            "uuid": obs_uuid,
            "title": f"Validation of {cid}",
            "description": (
                f"{cid} reviewed by {', '.join(r.workflow.id for r in results)}; "
                f"{finding_count} finding(s) reported."
            ),
            "methods": ["TEST"],
            "collected": results[-1].timestamp if results else run.end_time,
            "props": [
                _prop("control", cid),
                _prop("status", statuses[cid]),
                _prop("catalog-status", _catalog_status(cid)),
            ],
        }
        if evidence:
            obs["relevant-evidence"] = evidence
        if _catalog_status(cid) == "unavailable":
            obs["remarks"] = f"Catalog metadata unavailable for {cid}."
        observations.append(obs)

    findings = []
    for result in run.results:
        for f in result.outcome.findings:
            cid = f.control or "UNKNOWN"
            entry = {
                "uuid": _generate_uuid(),
                "title": f"{cid} {f.status}",
                "description": f.message or f"{cid} reported {f.status}.",
                "target": {
                    "type": "objective-id",
                    "target-id": _target_id(cid),
                    "status": {"state": _FINDING_STATE.get(f.status, "not-satisfied")},
                },
                "props": [
                    _prop("control", cid),
                    _prop("workflow", result.workflow.id),
                    _prop("finding-status", f.status),
                ],
            }
            if not is_oscal_control_id(cid):
                logger.warning(
                    "Finding from %s names non-catalog control %r; kept outside reviewed-controls",
                    result.workflow.id, cid,
                )
                entry["props"].append(_prop("control-mapping", "unmapped"))
            if cid in observation_for:
                entry["related-observations"] = [{"observation-uuid": observation_for[cid]}]
            findings.append(entry)

        if result.outcome.failed:
            logger.warning("Workflow %s failed; recording execution failure", result.workflow.id)
            for cid in _bound_controls(result, plan):
                findings.append({
                    "uuid": _generate_uuid(),
                    "title": f"Workflow execution failed: {result.workflow.id}",
                    "description": result.outcome.output or (
                        f"Workflow {result.workflow.id} reported failure."
                    ),
                    "target": {
                        "type": "objective-id",
                        "target-id": _control_id_to_oscal(cid),
                        "status": {"state": "not-satisfied"},
                    },
                    "props": [
                        _prop("control", cid),
                        _prop("workflow", result.workflow.id),
                        _prop("execution-failure", "true"),
                    ],
                    "related-observations": [{"observation-uuid": observation_for[cid]}],
                })

    selections = []
    for cid in coverage:
        selection = _include_controls([cid])
        selection["props"] = [
            _prop("control", cid),
            _prop("status", statuses[cid]),
            _prop("catalog-status", _catalog_status(cid)),
        ]
        selections.append(selection)

    result_props = []
    if plan is not None:
        for note in plan.degradations:
            result_props.append(_prop("degradation", note))
        for entry in plan.controls:
            if entry.id not in coverage:
                result_props.append(_prop("unvalidated-control", entry.id))

    failed = [r.workflow.id for r in run.results if r.outcome.failed]
    import_href = "#assessment-plan"
    if plan_document and "assessment-plan" in plan_document:
        import_href = f"#{plan_document['assessment-plan']['uuid']}"

    doc = {
        "assessment-results": {
            "uuid": _generate_uuid(),
            "metadata": _build_metadata(title),
            "import-ap": {"href": import_href},
            "results": [
                {
                    "uuid": _generate_uuid(),
                    "title": f"Validation run {run.execution_id}",
                    "description": (
                        f"{len(run.results)} workflow(s) executed against "
                        f"{', '.join(run.target_hosts) or 'no hosts'}."
                    ),
                    "start": run.start_time,
                    "end": run.end_time,
                    "props": [
                        _prop("overall-status", run.overall_status),
                        _prop("execution-id", run.execution_id),
                        _prop("workflows-executed", len(run.results)),
                        _prop("workflows-failed", len(failed)),
                    ] + result_props,
                    "reviewed-controls": {"control-selections": selections},
                    "observations": observations,
                    "findings": findings,
                },
            ],
        },
    }
    validate_document(doc)
    logger.info(
        "Assessment results built: %d findings, %d observations, status %s",
        len(findings), len(observations), run.overall_status,
    )
    return doc


def results_status(doc: Dict) -> str:
    """Overall status recorded in an assessment-results document."""
    for result in doc["assessment-results"]["results"]:
        for p in result.get("props", []):
            if p["name"] == "overall-status":
                return p["value"]
    return "unknown"


# ---------------------------------------------------------------------------
# Asset Inventory
# ---------------------------------------------------------------------------

def build_asset_inventory(
    assets: Iterable[Asset],
    assessments: Iterable[RiskAssessment] = (),
    title: str = "PQC Cryptographic Asset Inventory",
) -> Dict:
    """OSCAL-style inventory of cryptographic assets with their risk scores."""
    by_asset = {a.asset_id: a for a in assessments}
    components = []
    for asset in assets:
        props = [
            _prop("algorithm", asset.algorithm),
            _prop("algorithm-type", asset.algorithm_type or "unknown"),
            _prop("quantum-vulnerability", asset.quantum_vulnerability),
            _prop("vulnerability-level", asset.vulnerability_level),
            _prop("business-criticality", asset.business_criticality or "unknown"),
            _prop("data-sensitivity", asset.data_sensitivity or "unknown"),
            _prop("data-shelf-life-years", asset.data_shelf_life_years),
        ]
        ra = by_asset.get(asset.id)
        if ra is not None:
            props.extend([
                _prop("risk-score", ra.risk_score),
                _prop("risk-level", ra.risk_level),
                _prop("migration-priority", ra.migration_priority),
                _prop("harvest-now-risk", ra.harvest_now_risk),
            ])
        components.append({
            "uuid": asset.id,
            "type": asset.asset_type,
            "title": asset.name,
            "description": f"Cryptographic asset using {asset.algorithm}",
            "props": props,
        })

    doc = {
        "inventory": {
            "uuid": _generate_uuid(),
            "metadata": _build_metadata(title),
            "components": components,
        },
    }
    validate_document(doc)
    return doc


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _walk_uuids(obj, seen, errors, path=""):
    if isinstance(obj, dict):
        for key, value in obj.items():
            current = f"{path}.{key}" if path else key
            if key == "uuid" and isinstance(value, str):
                if not UUID_PATTERN.match(value):
                    errors.append(f"Invalid UUID at '{current}': '{value}'.")
                elif value in seen:
                    errors.append(f"Duplicate UUID at '{current}' (first at '{seen[value]}').")
                else:
                    seen[value] = current
            else:
                _walk_uuids(value, seen, errors, current)
    elif isinstance(obj, list):
        for i, item in enumerate(obj):
            _walk_uuids(item, seen, errors, f"{path}[{i}]")


def _collect(obj, key, found):
    """Collect every string value stored under ``key`` anywhere in obj."""
    if isinstance(obj, dict):
        for k, v in obj.items():
            if k == key and isinstance(v, str):
                found.append(v)
            else:
                _collect(v, key, found)
    elif isinstance(obj, list):
        for item in obj:
            _collect(item, key, found)
    return found


def _validate_plan(doc, errors):
    reviewed = set(_collect(doc.get("reviewed-controls", {}), "control-id", []))
    activities = doc.get("assessment-activities", [])
    covered = set()
    for act in activities:
        for key in ("uuid", "title", "description", "props", "steps"):
            if key not in act:
                errors.append(f"Assessment activity missing '{key}'.")
        covered.update(_collect(act.get("related-controls", {}), "control-id", []))
    for cid in sorted(reviewed - covered):
        errors.append(f"Reviewed control '{cid}' has no assessment activity.")


def _validate_results(doc, errors):
    results = doc.get("results")
    if not isinstance(results, list) or not results:
        errors.append("Assessment Results 'results' array is missing or empty.")
        return
    for result in results:
        reviewed = set(_collect(result.get("reviewed-controls", {}), "control-id", []))
        referenced = {
            f.get("target", {}).get("target-id") for f in result.get("findings", [])
        }
        obs_uuids = set()
        for obs in result.get("observations", []):
            obs_uuids.add(obs.get("uuid"))
            for p in obs.get("props", []):
                if p.get("name") == "control":
                    referenced.add(_control_id_to_oscal(p.get("value")))
        for cid in sorted(reviewed - referenced):
            errors.append(f"Reviewed control '{cid}' has no finding or observation.")
        for ref in _collect(result.get("findings", []), "observation-uuid", []):
            if ref not in obs_uuids:
                errors.append(f"Finding references unknown observation '{ref}'.")


def check_document(doc) -> List[str]:
    """Return the list of integrity problems in a document (empty when valid)."""
    errors = []
    if not isinstance(doc, dict):
        return ["Root must be a JSON object."]

    kind = next((k for k in REQUIRED_KEYS if k in doc), None)
    if kind is None:
        return [
            f"No recognized top-level key found. Expected one of: {list(REQUIRED_KEYS)}"
        ]
    body = doc[kind]
    for key in REQUIRED_KEYS[kind]:
        if key not in body:
            errors.append(f"Missing required key '{kind}.{key}'.")

    metadata = body.get("metadata") or {}
    for field in METADATA_FIELDS:
        if field not in metadata:
            errors.append(f"Missing metadata field: '{field}'.")

    for cid in _collect(doc, "control-id", []):
        if not CONTROL_ID_PATTERN.match(cid):
            errors.append(f"Control ID not in OSCAL form: '{cid}'.")

    _walk_uuids(doc, {}, errors)

    if kind == "assessment-plan":
        _validate_plan(body, errors)
    elif kind == "assessment-results":
        _validate_results(body, errors)
    return errors


def validate_document(doc) -> Dict:
    """Raise IntegrityViolationError unless the document is consistent."""
    errors = check_document(doc)
    if errors:
        logger.error("Document integrity check failed: %s", errors[:5])
        raise IntegrityViolationError(
            f"Document failed integrity check ({len(errors)} problem(s)): {errors[0]}",
            errors=errors,
        )
    return doc


def validate_oscal_file(file_path) -> Dict:
    """Validate a document on disk. Returns {valid, errors}."""
    path = Path(file_path)
    if not path.exists():
        return {"valid": False, "errors": [f"File not found: {file_path}"]}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        return {"valid": False, "errors": [f"Invalid JSON: {e}"]}
    errors = check_document(data)
    return {"valid": not errors, "errors": errors}


def main():
    parser = argparse.ArgumentParser(description="Validate an OSCAL assessment document")
    parser.add_argument("--validate", required=True, help="Path to OSCAL JSON file")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    result = validate_oscal_file(args.validate)
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(f"Valid: {result['valid']}")
        for err in result["errors"]:
            print(f"  - {err}")
    sys.exit(0 if result["valid"] else 1)


if __name__ == "__main__":
    main()
