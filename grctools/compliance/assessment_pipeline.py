#!/usr/bin/env python3
# CUI // SP-CTI
"""Scenario assessment pipeline.

Drives one assessment run through its stages:

    Idle -> Classifying -> Resolving -> Scoring -> RoadmapBuilding
         -> AwaitingExecution -> DocumentBuilding -> Complete

Degraded data (catalog misses, registry-inferred workflow bindings, zero
keyword matches, failed workflows) never stops a run; it is recorded in the
documents. Malformed input and unreachable collaborators move the run to
Failed, which is terminal: the error is kept on the run and re-raised.

Run state lives on the AssessmentRun object only. Registries, catalogs and
scoring policies are shared read-only.

Usage:
    python -m grctools.compliance.assessment_pipeline --scenario "Assess RSA certificates" --json
    python -m grctools.compliance.assessment_pipeline --scenario "firewall audit" \\
        --execute --hosts web01,web02
"""

import argparse
import asyncio
import dataclasses
import enum
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from grctools.compliance import (
    control_resolver,
    oscal_documents,
    scenario_classifier,
    workflow_executor,
)
from grctools.compliance.auditor_report import generate_auditor_report
from grctools.compliance.domain_profiles import (
    DomainProfile,
    ProfileResult,
    default_profiles,
    select_profile,
)
from grctools.compliance.models import MatchedKeyword, ValidationPlan, ValidationRun
from grctools.compliance.oscal_catalog_adapter import CatalogCollaborator, OscalCatalogAdapter
from grctools.compliance.scenario_registry import ScenarioRegistry, load_registry
from grctools.resilience.correlation import (
    CorrelationLogFilter,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from grctools.resilience.errors import GRCError

logger = logging.getLogger("grctools.compliance.assessment_pipeline")

LOG_FORMAT = "%(asctime)s [%(correlation_id)s] %(name)s %(levelname)s: %(message)s"


class RunState(str, enum.Enum):
    IDLE = "Idle"
    CLASSIFYING = "Classifying"
    RESOLVING = "Resolving"
    SCORING = "Scoring"
    ROADMAP_BUILDING = "RoadmapBuilding"
    AWAITING_EXECUTION = "AwaitingExecution"
    DOCUMENT_BUILDING = "DocumentBuilding"
    COMPLETE = "Complete"
    FAILED = "Failed"


TERMINAL_STATES = (RunState.COMPLETE, RunState.FAILED)

_TRANSITIONS = {
    RunState.IDLE: (RunState.CLASSIFYING,),
    RunState.CLASSIFYING: (RunState.RESOLVING,),
    RunState.RESOLVING: (RunState.SCORING,),
    RunState.SCORING: (RunState.ROADMAP_BUILDING,),
    RunState.ROADMAP_BUILDING: (RunState.AWAITING_EXECUTION,),
    RunState.AWAITING_EXECUTION: (RunState.DOCUMENT_BUILDING,),
    RunState.DOCUMENT_BUILDING: (RunState.COMPLETE,),
    RunState.COMPLETE: (),
    RunState.FAILED: (),
}


class InvalidTransitionError(GRCError):
    """A run was asked to move to a state its current state does not allow."""


@dataclasses.dataclass(frozen=True)
class ScenarioAnalysis:
    """Everything produced before execution."""
    scenario: str
    matches: Tuple[MatchedKeyword, ...]
    categories: Tuple[str, ...]
    resolved: control_resolver.ResolvedControls
    profile: ProfileResult
    plan: ValidationPlan
    plan_document: Dict
    inventory_document: Optional[Dict] = None

    def to_dict(self):
        d = {
            "scenario": self.scenario,
            "matchedKeywords": [m.to_dict() for m in self.matches],
            "categories": list(self.categories),
            "resolved": self.resolved.to_dict(),
            "validationPlan": self.plan.to_dict(),
            "assessmentPlan": self.plan_document,
        }
        d.update(self.profile.to_dict())
        if self.inventory_document is not None:
            d["assetInventory"] = self.inventory_document
        return d


@dataclasses.dataclass(frozen=True)
class AssessmentOutcome:
    """A completed run: analysis plus execution documents, when executed."""
    run_id: str
    analysis: ScenarioAnalysis
    validation: Optional[ValidationRun] = None
    results_document: Optional[Dict] = None
    report: Optional[Dict] = None

    @property
    def overall_status(self):
        return self.validation.overall_status if self.validation else "not-executed"

    def to_dict(self):
        d = {"runId": self.run_id, "overallStatus": self.overall_status}
        d.update(self.analysis.to_dict())
        if self.validation is not None:
            d["validationRun"] = self.validation.to_dict()
            d["assessmentResults"] = self.results_document
            d["auditorReport"] = self.report
        return d


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


class AssessmentRun:
    """One assessment of one scenario. Not reusable once finished."""

    def __init__(
        self,
        catalog: CatalogCollaborator,
        registry: ScenarioRegistry = None,
        executor: workflow_executor.WorkflowExecutor = None,
        profiles: Sequence[DomainProfile] = None,
        run_id: str = None,
        report_options: Dict = None,
    ):
        self.catalog = catalog
        self.registry = registry or load_registry()
        self.executor = executor
        self.profiles = list(profiles) if profiles else default_profiles()
        self.run_id = run_id or generate_correlation_id()
        self.report_options = report_options or {}
        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]
        self.error: Optional[BaseException] = None
        self.analysis: Optional[ScenarioAnalysis] = None

    # -- state machine ------------------------------------------------------

    def _advance(self, new_state: RunState):
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Run {self.run_id}: cannot move from {self.state.value} to {new_state.value}",
                service="pipeline",
            )
        logger.debug("%s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def _fail(self, exc: BaseException):
        logger.error("Run %s failed in %s: %s", self.run_id, self.state.value, exc)
        self.error = exc
        self.state = RunState.FAILED
        self.history.append(RunState.FAILED)

    @property
    def finished(self):
        return self.state in TERMINAL_STATES

    # -- stages -------------------------------------------------------------

    async def analyze(self, scenario: str) -> ScenarioAnalysis:
        """Classify, resolve, score and plan. Leaves the run AwaitingExecution."""
        token = set_correlation_id(self.run_id)
        try:
            return await self._analyze(scenario)
        except InvalidTransitionError:
            raise
        except Exception as exc:
            self._fail(exc)
            raise
        finally:
            reset_correlation_id(token)

    async def _analyze(self, scenario):
        assessed_at = _now_iso()

        self._advance(RunState.CLASSIFYING)
        matches = scenario_classifier.classify(scenario, self.registry)
        categories = scenario_classifier.matched_categories(matches)
        if not matches:
            logger.warning("No scenario category matched; continuing with profile controls only")

        self._advance(RunState.RESOLVING)
        profile = select_profile(scenario, self.profiles)
        resolved = control_resolver.resolve(matches)
        lookups = await control_resolver.lookup_controls(
            set(resolved.controls) | set(profile.candidate_controls()), self.catalog,
        )

        self._advance(RunState.SCORING)
        profile_result = await profile.assess(scenario, assessed_at)
        plan = await control_resolver.build_validation_plan(
            resolved, self.catalog, self.registry,
            control_hints=profile_result.control_hints, lookups=lookups,
        )
        assets = profile_result.assets
        risk = profile_result.risk

        self._advance(RunState.ROADMAP_BUILDING)
        profile_result = profile.plan_migration(profile_result, assessed_at)

        plan_document = oscal_documents.build_assessment_plan(
            plan,
            import_href=getattr(self.catalog, "href", "#catalog"),
            profile_props=profile_result.plan_props,
            scenario=scenario,
        )
        inventory = None
        if risk is not None and assets:
            inventory = oscal_documents.build_asset_inventory(assets, risk.assessments)

        self._advance(RunState.AWAITING_EXECUTION)
        self.analysis = ScenarioAnalysis(
            scenario=scenario,
            matches=tuple(matches),
            categories=tuple(categories),
            resolved=resolved,
            profile=profile_result,
            plan=plan,
            plan_document=plan_document,
            inventory_document=inventory,
        )
        logger.info(
            "Analysis complete: profile=%s, %d controls, %d workflows",
            profile.name, len(plan.controls), len(plan.workflows),
        )
        return self.analysis

    async def execute(self, target_hosts: Sequence[str] = ()) -> AssessmentOutcome:
        """Run the plan's workflows (if an executor is set) and build the documents."""
        if self.state != RunState.AWAITING_EXECUTION:
            raise InvalidTransitionError(
                f"Run {self.run_id} is {self.state.value}, not awaiting execution",
                service="pipeline",
            )
        token = set_correlation_id(self.run_id)
        try:
            return await self._execute(target_hosts)
        except Exception as exc:
            self._fail(exc)
            raise
        finally:
            reset_correlation_id(token)

    async def _execute(self, target_hosts):
        analysis = self.analysis
        if self.executor is None:
            logger.info("No executor configured; finishing with the assessment plan only")
            self._advance(RunState.DOCUMENT_BUILDING)
            self._advance(RunState.COMPLETE)
            return AssessmentOutcome(run_id=self.run_id, analysis=analysis)

        validation = await workflow_executor.execute_validation(
            analysis.plan, target_hosts, self.executor, execution_id=self.run_id,
        )

        self._advance(RunState.DOCUMENT_BUILDING)
        results_document = oscal_documents.build_assessment_results(
            validation, analysis.plan, plan_document=analysis.plan_document,
        )
        report = generate_auditor_report(
            validation, analysis.plan, options=self.report_options,
            results_document=results_document,
        )

        self._advance(RunState.COMPLETE)
        return AssessmentOutcome(
            run_id=self.run_id,
            analysis=analysis,
            validation=validation,
            results_document=results_document,
            report=report,
        )

    async def run(self, scenario: str, target_hosts: Sequence[str] = ()) -> AssessmentOutcome:
        """Analyze and execute in one call."""
        await self.analyze(scenario)
        return await self.execute(target_hosts)


async def assess_scenario(
    scenario: str,
    catalog: CatalogCollaborator = None,
    executor: workflow_executor.WorkflowExecutor = None,
    target_hosts: Sequence[str] = (),
    registry: ScenarioRegistry = None,
) -> AssessmentOutcome:
    """Convenience wrapper: one complete run with default collaborators."""
    run = AssessmentRun(
        catalog=catalog or OscalCatalogAdapter(),
        registry=registry,
        executor=executor,
    )
    return await run.run(scenario, target_hosts)


def configure_logging(level=logging.INFO):
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(CorrelationLogFilter())


def _print_summary(outcome: AssessmentOutcome):
    analysis = outcome.analysis
    print(f"Run:        {outcome.run_id}")
    print(f"Profile:    {analysis.profile.profile}")
    print(f"Categories: {', '.join(analysis.categories) or '-'}")
    print("Controls:")
    for entry in analysis.plan.controls:
        flags = []
        if entry.catalog_status != "found":
            flags.append("catalog metadata unavailable")
        if entry.workflow_binding == "registry":
            flags.append("workflow inferred")
        suffix = f"  [{'; '.join(flags)}]" if flags else ""
        print(f"  {entry.id:<7} {entry.title}  -> {entry.workflow or '-'}{suffix}")
    print(f"Workflows:  {', '.join(w.id for w in analysis.plan.workflows) or '-'} "
          f"(~{analysis.plan.estimated_duration} min)")

    risk = analysis.profile.risk
    if risk is not None:
        print(f"Quantum risk: {risk.overall_risk_score} ({risk.overall_risk_level})")
        for ra in risk.assessments:
            print(f"  {ra.asset_id[:8]}  score={ra.risk_score} level={ra.risk_level} "
                  f"priority={ra.migration_priority} harvest-now={ra.harvest_now_risk}")
    if analysis.profile.roadmap is not None:
        print("Roadmap:")
        for phase in analysis.profile.roadmap.phases:
            dates = ", ".join(f"{m.name} {m.target_date}" for m in phase.milestones)
            print(f"  {phase.name}: {dates}")
    print(f"Status:     {outcome.overall_status}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Assess a free-text compliance scenario")
    parser.add_argument("--scenario", required=True, help="Scenario text")
    parser.add_argument("--catalog", help="Path to control catalog JSON")
    parser.add_argument("--config", help="Path to scenario mappings YAML")
    parser.add_argument("--execute", action="store_true",
                        help="Run workflows with ansible-playbook")
    parser.add_argument("--hosts", default="", help="Comma-separated target hosts")
    parser.add_argument("--json", action="store_true", help="JSON output")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    run = AssessmentRun(
        catalog=OscalCatalogAdapter(catalog_path=args.catalog),
        registry=load_registry(args.config),
        executor=workflow_executor.CommandExecutor() if args.execute else None,
    )
    hosts = [h.strip() for h in args.hosts.split(",") if h.strip()]
    try:
        outcome = asyncio.run(run.run(args.scenario, hosts))
    except GRCError as exc:
        if args.json:
            print(json.dumps({"error": str(exc), "state": run.state.value}, indent=2))
        else:
            print(f"Assessment failed: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2, default=str))
    else:
        _print_summary(outcome)
    return 0


if __name__ == "__main__":
    sys.exit(main())
