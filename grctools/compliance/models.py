#!/usr/bin/env python3
# CUI // SP-CTI
"""Data structures shared by the scenario assessment pipeline.

Registry entries, catalog controls, cryptographic assets, risk assessments,
roadmaps and executor outcomes. Records the pipeline treats as immutable are
frozen dataclasses; re-assessment produces new instances. ``to_dict()``
renders the camelCase shape consumed by downstream tools.
"""

import dataclasses
from typing import Dict, List, Optional, Tuple

# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ScenarioCategory:
    """A scenario category: keywords that imply a set of controls/workflows."""
    id: str
    keywords: Tuple[str, ...]
    controls: Tuple[str, ...]
    workflows: Tuple[str, ...]

    def to_dict(self):
        return {
            "id": self.id,
            "keywords": list(self.keywords),
            "controls": list(self.controls),
            "workflows": list(self.workflows),
        }


@dataclasses.dataclass(frozen=True)
class MatchedKeyword:
    """One keyword occurrence found in a scenario."""
    keyword: str
    category: str
    controls: Tuple[str, ...]
    workflows: Tuple[str, ...]

    def to_dict(self):
        return {
            "keyword": self.keyword,
            "category": self.category,
            "controls": list(self.controls),
            "workflows": list(self.workflows),
        }


@dataclasses.dataclass(frozen=True)
class WorkflowDescriptor:
    """Static registry entry for an automation playbook.

    ``control_source`` records how ``controls`` was obtained: parsed from the
    workflow name ("naming-convention") or declared ("explicit").
    """
    id: str
    path: str
    controls: Tuple[str, ...]
    estimated_minutes: int = 5
    control_source: str = "explicit"

    def to_dict(self):
        return {
            "name": self.id,
            "path": self.path,
            "controls": list(self.controls),
            "estimatedTime": self.estimated_minutes,
            "controlSource": self.control_source,
        }


# ---------------------------------------------------------------------------
# Catalog / validation plan
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class Control:
    """A catalog control, looked up by canonical ID (e.g. "SC-7")."""
    id: str
    title: str
    description: str = ""
    priority: str = "medium"
    workflow: Optional[str] = None
    family: str = ""
    source: str = ""

    def to_dict(self):
        return dataclasses.asdict(self)


@dataclasses.dataclass(frozen=True)
class ControlEntry:
    """A control as it appears in a validation plan.

    catalog_status is "found" or "unavailable" (catalog miss, degraded
    metadata). workflow_binding is "catalog" when the catalog names the
    workflow, "registry" when it was inferred from the workflow registry
    (degraded confidence) and "none" when no workflow validates the control.
    """
    control: Control
    catalog_status: str = "found"
    workflow: Optional[str] = None
    workflow_binding: str = "none"
    pqc_relevance: Optional[str] = None
    fips_standards: Tuple[str, ...] = ()

    @property
    def id(self):
        return self.control.id

    @property
    def title(self):
        return self.control.title

    @property
    def description(self):
        return self.control.description

    @property
    def priority(self):
        return self.control.priority

    @property
    def degraded(self):
        return self.catalog_status != "found" or self.workflow_binding == "registry"

    def to_dict(self):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "workflow": self.workflow,
            "workflowBinding": self.workflow_binding,
            "catalogStatus": self.catalog_status,
        }
        if self.pqc_relevance:
            d["pqcRelevance"] = self.pqc_relevance
            d["fipsStandards"] = list(self.fips_standards)
        return d


@dataclasses.dataclass(frozen=True)
class ValidationPlan:
    """Resolved controls and the workflows that will validate them."""
    controls: Tuple[ControlEntry, ...]
    workflows: Tuple[WorkflowDescriptor, ...]
    estimated_duration: int = 0
    unregistered_workflows: Tuple[str, ...] = ()
    degradations: Tuple[str, ...] = ()

    def control_ids(self) -> List[str]:
        return [c.id for c in self.controls]

    def to_dict(self):
        return {
            "controls": [c.to_dict() for c in self.controls],
            "workflows": [w.to_dict() for w in self.workflows],
            "estimatedDuration": self.estimated_duration,
            "unregisteredWorkflows": list(self.unregistered_workflows),
            "degradations": list(self.degradations),
        }


# ---------------------------------------------------------------------------
# Cryptographic assets and risk
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class Asset:
    """A cryptographic asset found by discovery or scenario extraction."""
    id: str
    name: str
    asset_type: str
    algorithm: str
    quantum_vulnerable: Optional[bool]
    data_sensitivity: Optional[str]
    business_criticality: Optional[str]
    discovered_at: str
    assessed_at: Optional[str] = None
    algorithm_type: Optional[str] = None
    vulnerability_level: str = "unknown"
    data_shelf_life_years: int = 1
    location: str = "unknown"
    system: str = "unknown"

    def reassessed(self, assessed_at: str) -> "Asset":
        """Return a copy stamped with a new assessment time."""
        return dataclasses.replace(self, assessed_at=assessed_at)

    @property
    def quantum_vulnerability(self):
        if self.quantum_vulnerable is None:
            return "unknown"
        return "high" if self.quantum_vulnerable else "low"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.asset_type,
            "algorithm": self.algorithm,
            "algorithmType": self.algorithm_type,
            "quantumVulnerability": self.quantum_vulnerability,
            "vulnerabilityLevel": self.vulnerability_level,
            "dataSensitivity": self.data_sensitivity,
            "businessCriticality": self.business_criticality,
            "dataShelfLife": self.data_shelf_life_years,
            "discoveredDate": self.discovered_at,
            "lastAssessed": self.assessed_at,
            "location": self.location,
            "system": self.system,
        }


@dataclasses.dataclass(frozen=True)
class RiskAssessment:
    """Quantum risk score for one asset in one assessment run."""
    asset_id: str
    risk_score: float
    risk_level: str
    algorithm_risk: int
    data_sensitivity_score: int
    system_criticality_score: int
    harvest_now_decrypt_later: bool
    timeline_to_threat: str
    migration_priority: str
    assessed_at: str

    @property
    def harvest_now_risk(self):
        return "high" if self.harvest_now_decrypt_later else "medium"

    def to_dict(self):
        return {
            "assetId": self.asset_id,
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level,
            "algorithmRisk": self.algorithm_risk,
            "dataSensitivity": self.data_sensitivity_score,
            "systemCriticality": self.system_criticality_score,
            "harvestNowRisk": self.harvest_now_risk,
            "harvestNowDecryptLater": self.harvest_now_decrypt_later,
            "timelineToThreat": self.timeline_to_threat,
            "migrationPriority": self.migration_priority,
            "assessmentDate": self.assessed_at,
        }


@dataclasses.dataclass(frozen=True)
class AggregateRisk:
    """Risk over a set of assets."""
    overall_risk_score: float
    overall_risk_level: str
    assessments: Tuple[RiskAssessment, ...] = ()

    @property
    def critical_assets(self) -> List[RiskAssessment]:
        return [a for a in self.assessments if a.risk_level == "critical"]

    @property
    def high_priority_assets(self) -> List[RiskAssessment]:
        return [a for a in self.assessments if a.migration_priority == "high"]

    def to_dict(self):
        return {
            "overallRiskScore": self.overall_risk_score,
            "overallRiskLevel": self.overall_risk_level,
            "assetAssessments": [a.to_dict() for a in self.assessments],
            "criticalAssets": [a.asset_id for a in self.critical_assets],
            "highPriorityAssets": [a.asset_id for a in self.high_priority_assets],
        }


# ---------------------------------------------------------------------------
# Roadmap
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class Milestone:
    name: str
    target_date: str
    status: str = "pending"
    assets_count: Optional[int] = None

    def to_dict(self):
        d = {"name": self.name, "targetDate": self.target_date, "status": self.status}
        if self.assets_count is not None:
            d["assetsCount"] = self.assets_count
        return d


@dataclasses.dataclass(frozen=True)
class Phase:
    name: str
    description: str
    milestones: Tuple[Milestone, ...]
    status: str = "pending"

    def to_dict(self):
        return {
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "milestones": [m.to_dict() for m in self.milestones],
        }


@dataclasses.dataclass(frozen=True)
class MigrationRoadmap:
    phases: Tuple[Phase, ...]
    generated_at: str

    def milestones(self) -> List[Milestone]:
        return [m for p in self.phases for m in p.milestones]

    def to_dict(self):
        return {
            "generatedAt": self.generated_at,
            "phases": [p.to_dict() for p in self.phases],
        }


# ---------------------------------------------------------------------------
# Workflow execution
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class WorkflowFinding:
    """A single control check reported by the workflow executor."""
    control: str
    status: str
    message: str
    evidence: str = ""

    @classmethod
    def from_dict(cls, data: Dict) -> "WorkflowFinding":
        return cls(
            control=str(data.get("control", "")).strip().upper(),
            status=str(data.get("status", "")).upper(),
            message=str(data.get("message", "")),
            evidence=str(data.get("evidence", "")),
        )

    def to_dict(self):
        return dataclasses.asdict(self)


@dataclasses.dataclass(frozen=True)
class ExecutionOutcome:
    """What the executor returned for one workflow."""
    status: str
    output: str = ""
    findings: Tuple[WorkflowFinding, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict) -> "ExecutionOutcome":
        return cls(
            status=str(data.get("status", "failed")).lower(),
            output=str(data.get("output", "")),
            findings=tuple(
                WorkflowFinding.from_dict(f) for f in data.get("findings", [])
            ),
        )

    @property
    def failed(self):
        return self.status == "failed"

    def to_dict(self):
        return {
            "status": self.status,
            "output": self.output,
            "findings": [f.to_dict() for f in self.findings],
        }


@dataclasses.dataclass(frozen=True)
class WorkflowResult:
    """An executed workflow together with its outcome and timing."""
    workflow: WorkflowDescriptor
    outcome: ExecutionOutcome
    timestamp: str

    def to_dict(self):
        return {
            "workflow": self.workflow.id,
            "status": self.outcome.status,
            "output": self.outcome.output,
            "findings": [f.to_dict() for f in self.outcome.findings],
            "timestamp": self.timestamp,
        }


@dataclasses.dataclass(frozen=True)
class ValidationRun:
    """All workflow results of one execution pass over a validation plan."""
    execution_id: str
    start_time: str
    end_time: str
    target_hosts: Tuple[str, ...]
    results: Tuple[WorkflowResult, ...]

    @property
    def overall_status(self):
        """A single failed workflow fails the run."""
        if any(r.outcome.failed for r in self.results):
            return "failed"
        return "passed"

    def to_dict(self):
        return {
            "executionId": self.execution_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "targetHosts": list(self.target_hosts),
            "workflowResults": [r.to_dict() for r in self.results],
            "overallStatus": self.overall_status,
        }
