#!/usr/bin/env python3
# CUI // SP-CTI
"""Resolve classified scenario keywords into a validation plan.

Two steps:
  1. resolve() -- set union of the controls and workflows implied by every
     matched keyword. Pure and order independent.
  2. build_validation_plan() -- looks each control up in the catalog
     collaborator and binds it to the workflow that validates it.

lookup_controls() performs the catalog round-trips on their own; its result
can be handed to build_validation_plan() so a plan is assembled without
touching the catalog again.

A catalog miss keeps the control with placeholder metadata and priority
"medium", flagged catalog_status="unavailable". When the catalog does not
name a workflow, the workflow registry is searched for one whose bound
controls include the control. Registry bindings are recorded as
workflow_binding="registry" so consumers can tell them apart from
catalog-declared bindings. Every such degradation is listed in the plan.
"""

import dataclasses
import logging
import re
from typing import Dict, FrozenSet, Iterable, List, Optional

from grctools.compliance.models import (
    Control,
    ControlEntry,
    MatchedKeyword,
    ValidationPlan,
)
from grctools.compliance.oscal_catalog_adapter import CatalogCollaborator
from grctools.compliance.scenario_registry import (
    ScenarioRegistry,
    load_registry,
    normalize_control_id,
)
from grctools.resilience.errors import CollaboratorUnavailableError

logger = logging.getLogger("grctools.compliance.control_resolver")

DEFAULT_PRIORITY = "medium"

_CONTROL_SORT_RE = re.compile(r"^([A-Z]+)-(\d+)(.*)$")


@dataclasses.dataclass(frozen=True)
class ResolvedControls:
    controls: FrozenSet[str]
    workflows: FrozenSet[str]

    def to_dict(self):
        return {
            "controls": sorted_control_ids(self.controls),
            "workflows": sorted(self.workflows),
        }


def control_sort_key(control_id: str):
    """Natural ordering: SC-7 before SC-12."""
    m = _CONTROL_SORT_RE.match(control_id)
    if not m:
        return (control_id, 0, "")
    return (m.group(1), int(m.group(2)), m.group(3))


def sorted_control_ids(control_ids: Iterable[str]) -> List[str]:
    return sorted(control_ids, key=control_sort_key)


def resolve(matches: Iterable[MatchedKeyword]) -> ResolvedControls:
    """Union controls and workflows across all matches."""
    controls = set()
    workflows = set()
    for m in matches:
        controls.update(normalize_control_id(c) for c in m.controls)
        workflows.update(m.workflows)
    return ResolvedControls(controls=frozenset(controls), workflows=frozenset(workflows))


async def _lookup(catalog: CatalogCollaborator, control_id: str) -> Optional[Control]:
    try:
        return await catalog.lookup(control_id)
    except CollaboratorUnavailableError:
        raise
    except (ConnectionError, TimeoutError, OSError) as exc:
        raise CollaboratorUnavailableError(
            f"Control catalog unreachable while looking up {control_id}: {exc}",
            service="catalog",
        ) from exc


async def lookup_controls(
    control_ids: Iterable[str], catalog: CatalogCollaborator,
) -> Dict[str, Optional[Control]]:
    """Look up each control once, in natural ID order. None marks a miss.

    Raises:
        CollaboratorUnavailableError: The catalog could not be reached.
    """
    found = {}
    for cid in sorted_control_ids({normalize_control_id(c) for c in control_ids}):
        found[cid] = await _lookup(catalog, cid)
    return found


def _bind_from_registry(control_id, registry, preferred) -> Optional[str]:
    candidates = registry.workflows_for_control(control_id)
    if not candidates:
        return None
    for wf in candidates:
        if wf.id in preferred:
            return wf.id
    return candidates[0].id


async def build_validation_plan(
    resolved: ResolvedControls,
    catalog: CatalogCollaborator,
    registry: ScenarioRegistry = None,
    control_hints: Optional[Dict[str, Dict]] = None,
    lookups: Optional[Dict[str, Optional[Control]]] = None,
) -> ValidationPlan:
    """Attach catalog metadata and workflow bindings to resolved controls.

    Args:
        resolved: Output of resolve().
        catalog: Catalog collaborator; misses degrade, transport errors abort.
        registry: Workflow registry (defaults to the process registry).
        control_hints: Extra controls to include, keyed by control ID, with
            optional title/description/pqc_relevance/fips_standards used when
            the catalog has no entry.
        lookups: Results of an earlier lookup_controls() call. Only
            controls missing from it are looked up.

    Returns:
        ValidationPlan with controls in natural ID order and workflows in
        registration order.

    Raises:
        CollaboratorUnavailableError: The catalog could not be reached.
    """
    registry = registry or load_registry()
    hints = {normalize_control_id(k): v for k, v in (control_hints or {}).items()}
    control_ids = sorted_control_ids(set(resolved.controls) | set(hints))
    found = dict(lookups or {})
    found.update(await lookup_controls(
        [cid for cid in control_ids if cid not in found], catalog,
    ))

    entries = []
    degradations = []
    bound_workflows = set()

    for cid in control_ids:
        hint = hints.get(cid, {})
        control = found[cid]
        if control is None:
            logger.warning("Catalog metadata unavailable for %s", cid)
            degradations.append(f"{cid}: catalog metadata unavailable")
            control = Control(
                id=cid,
                title=hint.get("title") or f"{cid} Control",
                description=hint.get("description") or f"Catalog metadata unavailable for {cid}.",
                priority=DEFAULT_PRIORITY,
                family=cid.split("-")[0],
                source="unavailable",
            )
            catalog_status = "unavailable"
        else:
            catalog_status = "found"

        if control.workflow:
            workflow, binding = control.workflow, "catalog"
        else:
            workflow = _bind_from_registry(cid, registry, resolved.workflows)
            binding = "registry" if workflow else "none"
            if workflow:
                logger.info("%s bound to %s by registry lookup (degraded confidence)", cid, workflow)
                degradations.append(f"{cid}: workflow {workflow} inferred from registry")
        if workflow:
            bound_workflows.add(workflow)

        entries.append(ControlEntry(
            control=control,
            catalog_status=catalog_status,
            workflow=workflow,
            workflow_binding=binding,
            pqc_relevance=hint.get("pqc_relevance"),
            fips_standards=tuple(hint.get("fips_standards") or ()),
        ))

    wanted = set(resolved.workflows) | bound_workflows
    ordered = sorted(wanted, key=lambda w: (registry.registration_index(w), w))
    workflows = []
    unregistered = []
    for wf_id in ordered:
        wf = registry.get_workflow(wf_id)
        if wf is None:
            unregistered.append(wf_id)
            degradations.append(f"{wf_id}: workflow not registered, will not be executed")
            logger.warning("Workflow %s is not registered", wf_id)
            continue
        workflows.append(wf)

    plan = ValidationPlan(
        controls=tuple(entries),
        workflows=tuple(workflows),
        estimated_duration=sum(w.estimated_minutes for w in workflows),
        unregistered_workflows=tuple(unregistered),
        degradations=tuple(degradations),
    )
    logger.info(
        "Validation plan: %d controls, %d workflows, %d degradation(s)",
        len(entries), len(workflows), len(degradations),
    )
    return plan
