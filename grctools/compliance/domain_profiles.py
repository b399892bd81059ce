#!/usr/bin/env python3
# CUI // SP-CTI
"""Domain profiles for the assessment pipeline.

One pipeline handles every scenario. What differs per domain is supplied by
a DomainProfile chosen with select_profile(): the first profile whose
detect() accepts the scenario wins, and GenericProfile accepts everything.

QuantumRiskProfile adds the post-quantum cryptography layer: it extracts
cryptographic assets from the scenario, scores their quantum risk, adds the
core PQC controls (SC-12, SC-13, SC-17, plus SC-28 when aggregate risk is
high or critical), builds the migration roadmap and annotates the assessment
plan with the NIST deprecation deadlines.
"""

import dataclasses
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from grctools.compliance.models import AggregateRisk, Asset, MigrationRoadmap
from grctools.quantum import asset_inventory, risk_model, roadmap
from grctools.quantum.policy_config import load_quantum_config

logger = logging.getLogger("grctools.compliance.domain_profiles")

DEFAULT_DETECTION_KEYWORDS = (
    "post-quantum", "quantum", "pqc", "cryptography", "cryptographic",
    "migration", "fips 203", "fips 204", "fips 205", "ml-kem", "ml-dsa",
    "slh-dsa", "rsa", "ecc", "elliptic curve", "digital signature",
    "key exchange", "harvest now decrypt later", "quantum computing",
)

DEFAULT_PQC_CONTROLS = {
    "SC-12": {
        "title": "Cryptographic Key Establishment and Management",
        "description": "Establishes and manages cryptographic keys using quantum-resistant algorithms",
        "pqc_relevance": "high",
        "fips_standards": ["FIPS-203", "FIPS-204", "FIPS-205"],
    },
    "SC-13": {
        "title": "Cryptographic Protection",
        "description": "Uses quantum-resistant cryptographic mechanisms for data protection",
        "pqc_relevance": "high",
        "fips_standards": ["FIPS-203", "FIPS-204", "FIPS-205"],
    },
    "SC-17": {
        "title": "Public Key Infrastructure Certificates",
        "description": "Uses PQC algorithms for digital signatures in PKI certificates",
        "pqc_relevance": "high",
        "fips_standards": ["FIPS-204", "FIPS-205"],
    },
}

DEFAULT_ELEVATED_CONTROLS = {
    "SC-28": {
        "title": "Protection of Information at Rest",
        "description": "Protects data at rest using quantum-resistant encryption",
        "pqc_relevance": "medium",
        "fips_standards": [],
    },
}

ELEVATED_RISK_LEVELS = ("high", "critical")


@dataclasses.dataclass(frozen=True)
class ProfileResult:
    """Everything a profile contributed to one run."""
    profile: str
    assets: Tuple[Asset, ...] = ()
    risk: Optional[AggregateRisk] = None
    roadmap: Optional[MigrationRoadmap] = None
    timeline: Optional[Dict] = None
    control_hints: Dict[str, Dict] = dataclasses.field(default_factory=dict)
    plan_props: Tuple[Dict, ...] = ()

    def to_dict(self):
        d = {"profile": self.profile}
        if self.risk is not None:
            d["assets"] = [a.to_dict() for a in self.assets]
            d["riskAssessment"] = self.risk.to_dict()
        if self.roadmap is not None:
            d["migrationRoadmap"] = self.roadmap.to_dict()
        if self.timeline is not None:
            d["timeline"] = self.timeline
        return d


class DomainProfile(ABC):
    """Strategy interface. Subclasses override the stages they take part in.

    The pipeline drives a profile in three steps:
      - candidate_controls() during Resolving, so every control the profile
        may add is looked up in the catalog before scoring starts;
      - assess() during Scoring;
      - plan_migration() during RoadmapBuilding.
    """

    name = "base"

    @abstractmethod
    def detect(self, text: str) -> bool:
        """Return True when this profile applies to the scenario text."""

    def candidate_controls(self) -> Tuple[str, ...]:
        return ()

    def extract_assets(self, text: str, assessed_at: str) -> List[Asset]:
        return []

    def score(self, assets: Sequence[Asset], assessed_at: str) -> Optional[AggregateRisk]:
        return None

    def build_roadmap(self, risk: Optional[AggregateRisk], assessed_at: str) -> Optional[MigrationRoadmap]:
        return None

    def timeline(self, assessed_at: str) -> Optional[Dict]:
        return None

    def control_hints(self, risk: Optional[AggregateRisk]) -> Dict[str, Dict]:
        return {}

    def plan_props(self, risk: Optional[AggregateRisk]) -> List[Dict]:
        return []

    async def assess(self, text: str, assessed_at: str) -> ProfileResult:
        """Scoring stage: extract assets, score them, derive hints and plan props."""
        assets = self.extract_assets(text, assessed_at)
        risk = self.score(assets, assessed_at)
        return ProfileResult(
            profile=self.name,
            assets=tuple(assets),
            risk=risk,
            control_hints=self.control_hints(risk),
            plan_props=tuple(self.plan_props(risk)),
        )

    def plan_migration(self, result: ProfileResult, assessed_at: str) -> ProfileResult:
        """Roadmap stage: attach the roadmap and deadline timeline to a scored result."""
        return dataclasses.replace(
            result,
            roadmap=self.build_roadmap(result.risk, assessed_at),
            timeline=self.timeline(assessed_at),
        )


class GenericProfile(DomainProfile):
    """Plain control assessment with no domain extras."""

    name = "generic"

    def detect(self, text: str) -> bool:
        return True


class QuantumRiskProfile(DomainProfile):
    """Post-quantum cryptography migration assessment."""

    name = "quantum-risk"

    def __init__(self, policy: risk_model.ScoringPolicy = None, config_path=None):
        self._config_path = config_path
        self._policy = policy or risk_model.load_scoring_policy(config_path)
        cfg = load_quantum_config(config_path)
        self._keywords = tuple(
            str(k).lower() for k in (cfg.get("detection_keywords") or DEFAULT_DETECTION_KEYWORDS)
        )
        # Whole words only: "rsa" must not fire on "universal".
        self._pattern = re.compile(
            r"\b(?:" + "|".join(re.escape(k) for k in self._keywords) + r")\b"
        )
        self._core_controls = cfg.get("pqc_controls") or DEFAULT_PQC_CONTROLS
        self._elevated_controls = cfg.get("elevated_controls") or DEFAULT_ELEVATED_CONTROLS

    @property
    def policy(self):
        return self._policy

    def detect(self, text: str) -> bool:
        lowered = text.lower()
        if self._pattern.search(lowered):
            return True
        return asset_inventory.detect_algorithm(lowered) is not None

    def extract_assets(self, text: str, assessed_at: str) -> List[Asset]:
        return asset_inventory.extract_assets(text, now=assessed_at, config_path=self._config_path)

    def score(self, assets, assessed_at):
        return risk_model.assess_assets(assets, self._policy, assessed_at)

    def build_roadmap(self, risk, assessed_at):
        return roadmap.build_roadmap(risk or risk_model.aggregate([]), assessed_at)

    def timeline(self, assessed_at):
        return roadmap.migration_timeline(assessed_at, config_path=self._config_path)

    def candidate_controls(self):
        return tuple(self._core_controls) + tuple(
            cid for cid in self._elevated_controls if cid not in self._core_controls
        )

    def control_hints(self, risk):
        hints = {cid: dict(meta) for cid, meta in self._core_controls.items()}
        if risk is not None and risk.overall_risk_level in ELEVATED_RISK_LEVELS:
            hints.update({cid: dict(meta) for cid, meta in self._elevated_controls.items()})
        return hints

    def plan_props(self, risk):
        timeline = roadmap.migration_timeline(config_path=self._config_path)
        props = [
            {"name": "pqc-migration", "value": "true"},
            {"name": "deprecated-date", "value": timeline["deprecatedDate"]},
            {"name": "disallowed-date", "value": timeline["disallowedDate"]},
        ]
        if risk is not None:
            props.append({"name": "quantum-risk-level", "value": risk.overall_risk_level})
        return props


def default_profiles(config_path=None) -> List[DomainProfile]:
    """Profiles in selection order; the generic profile is always last."""
    return [QuantumRiskProfile(config_path=config_path), GenericProfile()]


def select_profile(text: str, profiles: Sequence[DomainProfile] = None) -> DomainProfile:
    """First profile whose detect() accepts the text."""
    for profile in profiles or default_profiles():
        if profile.detect(text):
            logger.info("Selected domain profile: %s", profile.name)
            return profile
    return GenericProfile()
