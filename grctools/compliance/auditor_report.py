#!/usr/bin/env python3
# CUI // SP-CTI
"""Auditor report bundle for a completed validation run.

generate_auditor_report() turns a ValidationRun into:
  - oscalReport: the OSCAL assessment-results document
  - report:      {metadata, executiveSummary, complianceStatus,
                  controlAssessments, findings, recommendations, evidence,
                  appendices}
  - narrative:   Markdown rendered from a Jinja2 template

Compliance is computed per reviewed control: a control passes when no
workflow covering it failed.

Finding severity is a keyword heuristic and a known limitation: a FAIL
whose message contains the literal word "critical" is critical, any other
FAIL is high, WARN is medium, everything else is low. Nothing is ever
bucketed as informational by the heuristic.

Historical trend analysis is not performed; the bundle says so explicitly
rather than reporting a made-up trend.
"""

import logging
import random
import string
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

import yaml
from jinja2 import Template

from grctools.compliance.models import ValidationPlan, ValidationRun
from grctools.compliance.oscal_documents import (
    build_assessment_results,
    control_coverage,
    control_statuses,
)
from grctools.resilience.errors import ConfigurationError

logger = logging.getLogger("grctools.compliance.auditor_report")

BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = BASE_DIR / "args" / "report_config.yaml"

SEVERITIES = ("critical", "high", "medium", "low", "informational")

DEFAULT_CONFIG = {
    "title": "GRC Compliance Assessment Report",
    "framework": "NIST SP 800-53 Rev. 5",
    "assessor": "GRC Toolkit Assessment Pipeline",
    "organization": "Target Organization",
    "scope": "Information System Security Controls",
    "methodology": "Automated validation using workflow playbooks and OSCAL",
    "classification": "Internal Use",
    "version": "1.0.0",
    "high_priority_controls": ["AC-3", "AC-6", "SC-7", "AU-2"],
    "next_assessment_days": {"passed": 90, "failed": 30},
    "configuration_evidence": {
        "AC-3": ["/etc/pam.d/system-auth", "/etc/ssh/sshd_config"],
        "AC-6": ["/etc/sudoers", "/etc/passwd"],
        "AU-2": ["/etc/audit/auditd.conf", "/etc/audit/rules.d/audit.rules"],
        "SC-7": ["/etc/iptables/rules.v4", "/etc/ufw/ufw.conf"],
    },
    "log_evidence": {
        "AC-3": ["/var/log/auth.log", "/var/log/secure"],
        "AC-6": ["/var/log/sudo.log"],
        "AU-2": ["/var/log/audit/audit.log"],
        "SC-7": ["/var/log/iptables.log", "/var/log/ufw.log"],
    },
    "executive_recommendations": [
        "Address failed controls within 30 days",
        "Implement continuous monitoring for critical controls",
        "Establish regular compliance assessment schedule",
        "Document remediation actions for audit trail",
    ],
    "process_recommendations": [
        {
            "priority": "High",
            "title": "Implement Continuous Monitoring",
            "description": "Establish automated monitoring for all critical controls",
            "timeline": "Within 30 days",
            "controls": ["All critical controls"],
        },
        {
            "priority": "Medium",
            "title": "Enhance Documentation",
            "description": "Improve control documentation and evidence collection",
            "timeline": "Within 60 days",
            "controls": ["All controls"],
        },
    ],
}

NARRATIVE_TEMPLATE = """\
# {{ metadata.title }}

**Report ID:** {{ metadata.reportId }}
**Framework:** {{ metadata.framework }}
**Assessment Date:** {{ metadata.assessmentDate }}
**Classification:** {{ metadata.classification }}

## Executive Summary

{{ summary.overview }}

**Overall Risk Level:** {{ summary.riskLevel }}

{% for item in summary.keyFindings -%}
- {{ item }}
{% endfor %}
## Control Assessments

| Control | Title | Status | Priority | Remediation | Next Assessment |
|---|---|---|---|---|---|
{% for c in controls -%}
| {{ c.controlId }} | {{ c.title }} | {{ c.assessmentStatus }} | {{ c.priority }} | {{ "Required" if c.remediationRequired else "-" }} | {{ c.nextAssessment[:10] }} |
{% endfor %}
## Findings

{% for severity in severities -%}
{% if findings[severity] -%}
### {{ severity | title }} ({{ findings[severity] | length }})
{% for f in findings[severity] -%}
- **{{ f.controlId }}** ({{ f.workflow }}): {{ f.finding }}{% if f.evidence %} -- evidence: {{ f.evidence }}{% endif %}
{% endfor %}
{% endif -%}
{% endfor -%}
{% if not total_findings %}No findings were reported.
{% endif %}
## Recommendations

{% for r in recommendations -%}
{{ loop.index }}. **[{{ r.priority }}] {{ r.title }}** ({{ r.timeline }}): {{ r.description }}
{% endfor %}
## Trends

{{ trends.note }}
"""

_CONFIG_CACHE: Dict[str, Dict] = {}


def load_report_config(config_path=None) -> Dict:
    """Report options from args/report_config.yaml layered over defaults."""
    path = Path(config_path) if config_path else CONFIG_PATH
    key = str(path)
    if key in _CONFIG_CACHE:
        return _CONFIG_CACHE[key]
    cfg = dict(DEFAULT_CONFIG)
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid report config: {path}")
        cfg.update(data.get("auditor_report", {}) or {})
    _CONFIG_CACHE[key] = cfg
    return cfg


def generate_report_id() -> str:
    """GRC-<epoch ms>-<9 random base36 chars>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"GRC-{int(time.time() * 1000)}-{suffix}"


def compliance_risk_level(compliance_pct: float) -> str:
    if compliance_pct >= 90:
        return "Low"
    if compliance_pct >= 70:
        return "Medium"
    if compliance_pct >= 50:
        return "High"
    return "Critical"


def finding_severity(finding) -> str:
    """Keyword heuristic; see module docstring."""
    if finding.status == "FAIL" and "critical" in finding.message:
        return "critical"
    if finding.status == "FAIL":
        return "high"
    if finding.status == "WARN":
        return "medium"
    return "low"


def _compliance_pct(statuses: Dict[str, str]) -> int:
    if not statuses:
        return 0
    passed = sum(1 for s in statuses.values() if s == "passed")
    return round(passed / len(statuses) * 100)


def _build_metadata(cfg, options):
    return {
        "reportId": generate_report_id(),
        "title": options.get("title", cfg["title"]),
        "framework": options.get("framework", cfg["framework"]),
        "assessmentDate": datetime.now(timezone.utc).isoformat(),
        "assessor": options.get("assessor", cfg["assessor"]),
        "organization": options.get("organization", cfg["organization"]),
        "scope": options.get("scope", cfg["scope"]),
        "methodology": cfg["methodology"],
        "version": cfg["version"],
        "classification": options.get("classification", cfg["classification"]),
    }


def _executive_summary(statuses, cfg):
    total = len(statuses)
    passed = sum(1 for s in statuses.values() if s == "passed")
    pct = _compliance_pct(statuses)
    return {
        "overview": (
            f"This report presents the results of an automated compliance "
            f"assessment. The assessment evaluated {total} security controls "
            f"across the organization's information systems."
        ),
        "keyFindings": [
            f"Overall compliance rate: {pct}%",
            f"Controls assessed: {total}",
            f"Controls passed: {passed}",
            f"Controls failed: {total - passed}",
            f"Assessment methodology: {cfg['methodology']}",
        ],
        "riskLevel": compliance_risk_level(pct),
        "recommendations": list(cfg["executive_recommendations"]),
    }


def _compliance_status(run, coverage, statuses):
    controls = {}
    for cid, results in coverage.items():
        control_findings = [
            f for r in results for f in r.outcome.findings if f.control == cid
        ]
        controls[cid] = {
            "status": statuses[cid],
            "lastAssessed": results[-1].timestamp,
            "workflows": [r.workflow.id for r in results],
            "findings": len(control_findings),
            "criticalIssues": sum(1 for f in control_findings if f.status == "FAIL"),
        }
    total = len(controls)
    failed = sum(1 for c in controls.values() if c["status"] == "failed")
    return {
        "overall": run.overall_status,
        "controls": controls,
        "trends": {
            "available": False,
            "note": "Historical trend analysis is not performed; only this run is reported.",
        },
        "riskAssessment": {
            "riskScore": round(failed / total * 100) if total else 0,
            "riskLevel": compliance_risk_level(_compliance_pct(statuses)),
            "criticalControls": [cid for cid, c in controls.items() if c["criticalIssues"] > 0],
        },
    }


def _control_assessments(coverage, statuses, plan, cfg):
    entries = {e.id: e for e in plan.controls} if plan is not None else {}
    high = set(cfg["high_priority_controls"])
    days = cfg["next_assessment_days"]
    now = datetime.now(timezone.utc)
    assessments = []
    for cid, results in coverage.items():
        entry = entries.get(cid)
        control_findings = [
            f for r in results for f in r.outcome.findings if f.control == cid
        ]
        status = statuses[cid]
        assessments.append({
            "controlId": cid,
            "title": entry.title if entry else f"{cid} Control",
            "description": entry.description if entry else f"Description for {cid} control",
            "assessmentStatus": status,
            "workflows": [r.workflow.id for r in results],
            "evidence": [f.to_dict() for f in control_findings],
            "remediationRequired": status == "failed" or any(
                f.status == "FAIL" for f in control_findings
            ),
            "priority": "High" if cid in high else "Medium",
            "nextAssessment": (
                now + timedelta(days=int(days["passed" if status == "passed" else "failed"]))
            ).isoformat(),
        })
    return assessments


def _categorize_findings(run):
    buckets = {s: [] for s in SEVERITIES}
    for result in run.results:
        for f in result.outcome.findings:
            severity = finding_severity(f)
            buckets[severity].append({
                "controlId": f.control,
                "workflow": result.workflow.id,
                "finding": f.message,
                "evidence": f.evidence,
                "severity": severity,
                "timestamp": result.timestamp,
            })
    return buckets


def _recommendations(findings, cfg):
    recs = []
    critical = findings["critical"]
    if critical:
        recs.append({
            "priority": "Critical",
            "title": "Address Critical Security Issues",
            "description": "Immediate action required to address critical security findings",
            "timeline": "Within 24 hours",
            "controls": sorted({f["controlId"] for f in critical}),
        })
    recs.extend(dict(r) for r in cfg["process_recommendations"])
    return recs


def _evidence_files(cid, cfg):
    return (
        list(cfg["configuration_evidence"].get(cid, [])),
        list(cfg["log_evidence"].get(cid, [])),
    )


def _collect_evidence(run, coverage, cfg):
    evidence = {
        "automatedTests": [],
        "configurationFiles": [],
        "logFiles": [],
        "screenshots": [],
        "documentation": [],
    }
    for result in run.results:
        evidence["automatedTests"].append({
            "workflow": result.workflow.id,
            "executionTime": result.timestamp,
            "status": result.outcome.status,
            "output": result.outcome.output,
        })
    for cid in coverage:
        config_files, log_files = _evidence_files(cid, cfg)
        for path in config_files:
            if path not in evidence["configurationFiles"]:
                evidence["configurationFiles"].append(path)
        for path in log_files:
            if path not in evidence["logFiles"]:
                evidence["logFiles"].append(path)
    return evidence


def _appendices(run, coverage, statuses, cfg, oscal_report):
    mapping = []
    details = []
    for cid, results in coverage.items():
        mapping.append({
            "controlId": cid,
            "workflows": [r.workflow.id for r in results],
            "status": statuses[cid],
            "findings": sum(
                1 for r in results for f in r.outcome.findings if f.control == cid
            ),
        })
        config_files, log_files = _evidence_files(cid, cfg)
        details.append({
            "controlId": cid,
            "configurationFiles": config_files,
            "logFiles": log_files,
            "automatedTests": [r.workflow.id for r in results],
        })
    return {
        "appendixA": {"title": "Control Mapping", "content": mapping},
        "appendixB": {
            "title": "Workflow Details",
            "content": [
                {
                    "name": r.workflow.id,
                    "path": r.workflow.path,
                    "executionTime": r.timestamp,
                    "status": r.outcome.status,
                    "output": r.outcome.output,
                }
                for r in run.results
            ],
        },
        "appendixC": {"title": "Evidence Collection", "content": details},
        "appendixD": {"title": "OSCAL Assessment Results", "content": oscal_report},
    }


def render_narrative(report: Dict, template: Optional[str] = None) -> str:
    """Render the report bundle as Markdown."""
    findings = report["findings"]
    return Template(template or NARRATIVE_TEMPLATE).render(
        metadata=report["metadata"],
        summary=report["executiveSummary"],
        controls=report["controlAssessments"],
        findings=findings,
        severities=SEVERITIES,
        total_findings=sum(len(findings[s]) for s in SEVERITIES),
        recommendations=report["recommendations"],
        trends=report["complianceStatus"]["trends"],
    )


def generate_auditor_report(
    run: ValidationRun,
    plan: Optional[ValidationPlan] = None,
    options: Optional[Dict] = None,
    results_document: Optional[Dict] = None,
    config_path=None,
) -> Dict:
    """Build the auditor report bundle for a validation run.

    Args:
        run: Outcome of execute_validation().
        plan: The validation plan the run executed (for control titles).
        options: Overrides for title, framework, assessor, organization,
            scope and classification.
        results_document: An already built assessment-results document;
            built from the run when omitted.
        config_path: Explicit report config YAML.

    Returns:
        Dict with oscalReport, report, narrative and metadata.
    """
    cfg = load_report_config(config_path)
    options = options or {}
    oscal_report = results_document or build_assessment_results(run, plan)

    coverage = control_coverage(run, plan)
    statuses = control_statuses(run, plan)
    findings = _categorize_findings(run)

    report = {
        "metadata": _build_metadata(cfg, options),
        "executiveSummary": _executive_summary(statuses, cfg),
        "complianceStatus": _compliance_status(run, coverage, statuses),
        "controlAssessments": _control_assessments(coverage, statuses, plan, cfg),
        "findings": findings,
        "recommendations": _recommendations(findings, cfg),
        "evidence": _collect_evidence(run, coverage, cfg),
        "appendices": _appendices(run, coverage, statuses, cfg, oscal_report),
    }
    narrative = render_narrative(report, options.get("template"))
    logger.info(
        "Auditor report %s: %d controls, risk %s",
        report["metadata"]["reportId"], len(statuses),
        report["executiveSummary"]["riskLevel"],
    )
    return {
        "oscalReport": oscal_report,
        "report": report,
        "narrative": narrative,
        "metadata": report["metadata"],
    }

