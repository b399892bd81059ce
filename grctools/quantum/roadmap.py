#!/usr/bin/env python3
# CUI // SP-CTI
"""PQC migration roadmap synthesis.

Four phases in fixed order, each with fixed milestones whose target dates
are day offsets from the assessment timestamp. Everything starts "pending";
status changes belong to whatever tracks the migration afterwards. The only
assessment data used is the asset count on the inventory milestone.

migration_timeline() reports the NIST IR 8547 deprecation and disallowance
dates for quantum-vulnerable public key algorithms and the days remaining
until each.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Union

from grctools.compliance.models import AggregateRisk, MigrationRoadmap, Milestone, Phase
from grctools.quantum.policy_config import load_quantum_config

logger = logging.getLogger("grctools.quantum.roadmap")

DEPRECATED_DATE = "2030-12-31"
DISALLOWED_DATE = "2035-12-31"

INVENTORY_MILESTONE = "Complete Asset Inventory"

# (phase name, description, ((milestone, offset days), ...))
PHASES = (
    ("Preparation",
     "Stakeholder alignment, team formation, budget planning",
     (("Stakeholder Alignment", 30), ("Team Formation", 45))),
    ("Baseline Understanding",
     "Inventory, prioritization, gap analysis",
     ((INVENTORY_MILESTONE, 90), ("Risk Assessment Complete", 120))),
    ("Planning & Execution",
     "Solution selection, implementation, testing",
     (("PQC Solution Selection", 180), ("Begin Migration", 240))),
    ("Monitoring & Evaluation",
     "Validation, continuous monitoring, performance metrics",
     (("Validation Complete", 365), ("Continuous Monitoring Established", 400))),
)


def _as_date(value: Union[str, datetime, date, None]) -> date:
    if value is None:
        return datetime.now(timezone.utc).date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text).date()


def build_roadmap(aggregate: AggregateRisk, assessed_at=None) -> MigrationRoadmap:
    """Build the four-phase roadmap anchored at ``assessed_at``."""
    base = _as_date(assessed_at)
    asset_count = len(aggregate.assessments)

    phases = []
    for name, description, milestones in PHASES:
        phases.append(Phase(
            name=name,
            description=description,
            milestones=tuple(
                Milestone(
                    name=m_name,
                    target_date=(base + timedelta(days=offset)).isoformat(),
                    assets_count=asset_count if m_name == INVENTORY_MILESTONE else None,
                )
                for m_name, offset in milestones
            ),
        ))

    logger.debug("Roadmap anchored at %s for %d asset(s)", base, asset_count)
    return MigrationRoadmap(phases=tuple(phases), generated_at=base.isoformat())


def migration_timeline(assessed_at=None, config_path=None) -> Dict:
    """Deprecation/disallowance dates and days remaining from ``assessed_at``."""
    cfg = load_quantum_config(config_path).get("deadlines", {}) or {}
    deprecated = str(cfg.get("deprecated", DEPRECATED_DATE))
    disallowed = str(cfg.get("disallowed", DISALLOWED_DATE))
    base = _as_date(assessed_at)
    return {
        "deprecatedDate": deprecated,
        "disallowedDate": disallowed,
        "daysRemaining": (_as_date(deprecated) - base).days,
        "daysUntilDisallowed": (_as_date(disallowed) - base).days,
    }
