#!/usr/bin/env python3
# CUI // SP-CTI
"""Quantum risk scoring model for cryptographic assets.

    riskScore = 0.4 * algorithmRisk + 0.3 * dataSensitivity + 0.3 * systemCriticality

Each sub-score comes from a lookup table in the scoring policy
(args/quantum_risk_config.yaml, defaults below). Keys missing from a table
score 5, the midpoint, so an unrecognised input never produces an extreme
score. The composite is rounded half-up to one decimal and kept in [0, 10].

Derived labels, each an independent function of the score:
  - risk level:          >=8 critical, >=6 high, >=4 medium, else low
  - migration priority:  >=8 high, >=6 medium, else low
  - timeline to threat:  >=8 "5-10 years", >=6 "10-15 years", else "15+ years"
    (a display heuristic, not an estimate of quantum computing progress)

Harvest-now-decrypt-later exposure depends only on the algorithm sub-score
(>= 8), not on the composite.
"""

import dataclasses
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from grctools.compliance.models import AggregateRisk, Asset, RiskAssessment
from grctools.quantum.policy_config import load_quantum_config
from grctools.resilience.errors import ConfigurationError

logger = logging.getLogger("grctools.quantum.risk_model")

ALGORITHM_WEIGHT = 0.4
SENSITIVITY_WEIGHT = 0.3
CRITICALITY_WEIGHT = 0.3

UNKNOWN_SCORE = 5
MIN_SCORE = 0.0
MAX_SCORE = 10.0
HARVEST_NOW_THRESHOLD = 8

RISK_LEVEL_THRESHOLDS = ((8.0, "critical"), (6.0, "high"), (4.0, "medium"))
MIGRATION_PRIORITY_THRESHOLDS = ((8.0, "high"), (6.0, "medium"))
TIMELINE_BANDS = ((8.0, "5-10 years"), (6.0, "10-15 years"))

RISK_LEVELS = ("low", "medium", "high", "critical")
PRIORITIES = ("low", "medium", "high")

DEFAULT_ALGORITHM_RISK = {
    "RSA": 10,
    "ECC": 10,
    "DSA": 10,
    "AES-256": 3,
    "SHA-256": 2,
    "ML-KEM": 1,
    "ML-DSA": 1,
    "SLH-DSA": 1,
}

DEFAULT_DATA_SENSITIVITY = {
    "classified": 10,
    "confidential": 8,
    "internal": 5,
    "public": 1,
}

DEFAULT_SYSTEM_CRITICALITY = {
    "critical": 10,
    "high": 7,
    "medium": 4,
    "low": 1,
}


@dataclasses.dataclass(frozen=True)
class ScoringPolicy:
    """Lookup tables for the three sub-scores."""
    algorithm_risk: Mapping[str, int]
    data_sensitivity: Mapping[str, int]
    system_criticality: Mapping[str, int]
    default_score: int = UNKNOWN_SCORE
    version: str = "defaults"

    def algorithm_score(self, algorithm: Optional[str]) -> int:
        return self.algorithm_risk.get((algorithm or "").upper(), self.default_score)

    def sensitivity_score(self, level: Optional[str]) -> int:
        return self.data_sensitivity.get((level or "").lower(), self.default_score)

    def criticality_score(self, level: Optional[str]) -> int:
        return self.system_criticality.get((level or "").lower(), self.default_score)

    def to_dict(self):
        return {
            "version": self.version,
            "algorithmRisk": dict(self.algorithm_risk),
            "dataSensitivity": dict(self.data_sensitivity),
            "systemCriticality": dict(self.system_criticality),
            "defaultScore": self.default_score,
        }


def _table(name, raw, default, upper=False):
    if raw is None:
        raw = default
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Scoring table '{name}' must be a mapping.", config_key=name)
    table = {}
    for key, value in raw.items():
        try:
            score = int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"Scoring table '{name}': '{key}' has non-numeric score {value!r}.",
                config_key=name,
            ) from exc
        if not 1 <= score <= 10:
            raise ConfigurationError(
                f"Scoring table '{name}': '{key}' score {score} outside 1-10.",
                config_key=name,
            )
        k = str(key).strip()
        table[k.upper() if upper else k.lower()] = score
    return MappingProxyType(table)


def load_scoring_policy(config_path=None) -> ScoringPolicy:
    """Build the scoring policy from config, falling back to built-in tables."""
    cfg = load_quantum_config(config_path).get("scoring", {}) or {}
    default_score = int(cfg.get("default_score", UNKNOWN_SCORE))
    if not 1 <= default_score <= 10:
        raise ConfigurationError("default_score outside 1-10.", config_key="default_score")
    return ScoringPolicy(
        algorithm_risk=_table("algorithm_risk", cfg.get("algorithm_risk"),
                              DEFAULT_ALGORITHM_RISK, upper=True),
        data_sensitivity=_table("data_sensitivity", cfg.get("data_sensitivity"),
                                DEFAULT_DATA_SENSITIVITY),
        system_criticality=_table("system_criticality", cfg.get("system_criticality"),
                                  DEFAULT_SYSTEM_CRITICALITY),
        default_score=default_score,
        version=str(cfg.get("version", "defaults")),
    )


def round_score(value: float) -> float:
    """Round half-up to one decimal place."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _band(score, thresholds, fallback):
    for cutoff, label in thresholds:
        if score >= cutoff:
            return label
    return fallback


def risk_level(score: float) -> str:
    return _band(score, RISK_LEVEL_THRESHOLDS, "low")


def migration_priority(score: float) -> str:
    return _band(score, MIGRATION_PRIORITY_THRESHOLDS, "low")


def timeline_to_threat(score: float) -> str:
    return _band(score, TIMELINE_BANDS, "15+ years")


def composite_score(algorithm_risk: float, sensitivity: float, criticality: float) -> float:
    raw = (
        ALGORITHM_WEIGHT * algorithm_risk
        + SENSITIVITY_WEIGHT * sensitivity
        + CRITICALITY_WEIGHT * criticality
    )
    return min(MAX_SCORE, max(MIN_SCORE, round_score(raw)))


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def score(asset: Asset, policy: ScoringPolicy = None, assessed_at: str = None) -> RiskAssessment:
    """Score one asset. Produces a new RiskAssessment; the asset is untouched."""
    policy = policy or load_scoring_policy()
    algo = policy.algorithm_score(asset.algorithm)
    sens = policy.sensitivity_score(asset.data_sensitivity)
    crit = policy.criticality_score(asset.business_criticality)
    value = composite_score(algo, sens, crit)

    return RiskAssessment(
        asset_id=asset.id,
        risk_score=value,
        risk_level=risk_level(value),
        algorithm_risk=algo,
        data_sensitivity_score=sens,
        system_criticality_score=crit,
        harvest_now_decrypt_later=algo >= HARVEST_NOW_THRESHOLD,
        timeline_to_threat=timeline_to_threat(value),
        migration_priority=migration_priority(value),
        assessed_at=assessed_at or _now_iso(),
    )


def aggregate_score(assessments: Iterable[RiskAssessment]) -> float:
    """Mean risk score rounded to one decimal; 0.0 for no assessments."""
    scores = [a.risk_score for a in assessments]
    if not scores:
        return 0.0
    return round_score(sum(scores) / len(scores))


def aggregate(assessments: Iterable[RiskAssessment]) -> AggregateRisk:
    items = tuple(assessments)
    overall = aggregate_score(items)
    return AggregateRisk(
        overall_risk_score=overall,
        overall_risk_level=risk_level(overall),
        assessments=items,
    )


def assess_assets(
    assets: Iterable[Asset],
    policy: ScoringPolicy = None,
    assessed_at: str = None,
) -> AggregateRisk:
    """Score every asset and aggregate the results."""
    policy = policy or load_scoring_policy()
    assessed_at = assessed_at or _now_iso()
    results: List[RiskAssessment] = [score(a, policy, assessed_at) for a in assets]
    agg = aggregate(results)
    logger.info(
        "Scored %d asset(s): overall %.1f (%s), %d critical",
        len(results), agg.overall_risk_score, agg.overall_risk_level,
        len(agg.critical_assets),
    )
    return agg
