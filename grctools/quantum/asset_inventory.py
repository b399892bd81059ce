#!/usr/bin/env python3
# CUI // SP-CTI
"""Cryptographic asset inventory.

Two entry points build Asset records:
  - extract_assets(text) reads a scenario description and creates one asset
    per asset-type keyword it mentions, with the algorithm, data sensitivity,
    criticality and data shelf life inferred from the same text.
  - catalog_asset(raw) enriches an asset reported by an external discovery
    source (scanner, CMDB export) with algorithm metadata.

Algorithm metadata (type, quantum vulnerability, FIPS standard) is read from
args/quantum_risk_config.yaml ``algorithms`` with the defaults below.

Usage:
    python -m grctools.quantum.asset_inventory --text "RSA certificates for classified data" --json
"""

import argparse
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from grctools.compliance.models import Asset
from grctools.quantum.policy_config import load_quantum_config

logger = logging.getLogger("grctools.quantum.asset_inventory")

ASSET_TYPES = (
    "database",
    "api",
    "application",
    "network",
    "storage",
    "key management",
    "certificate",
)
GENERIC_ASSET_TYPE = "cryptographic asset"

DEFAULT_ALGORITHMS = {
    "RSA": {"type": "Public Key", "quantum_vulnerable": True, "vulnerability_level": "critical"},
    "ECC": {"type": "Public Key", "quantum_vulnerable": True, "vulnerability_level": "critical"},
    "DSA": {"type": "Digital Signature", "quantum_vulnerable": True, "vulnerability_level": "critical"},
    "AES-256": {"type": "Symmetric", "quantum_vulnerable": False, "vulnerability_level": "low"},
    "SHA-256": {"type": "Hash", "quantum_vulnerable": False, "vulnerability_level": "low"},
    "ML-KEM": {"type": "Public Key (PQC)", "quantum_vulnerable": False,
               "vulnerability_level": "none", "standard": "FIPS-203"},
    "ML-DSA": {"type": "Digital Signature (PQC)", "quantum_vulnerable": False,
               "vulnerability_level": "none", "standard": "FIPS-204"},
    "SLH-DSA": {"type": "Digital Signature (PQC)", "quantum_vulnerable": False,
                "vulnerability_level": "none", "standard": "FIPS-205"},
}

UNKNOWN_ALGORITHM = "Unknown"

# Checked in order; PQC names first so "ml-dsa" is not read as DSA.
_ALGORITHM_PATTERNS = (
    (re.compile(r"\bml-kem\b"), "ML-KEM"),
    (re.compile(r"\bml-dsa\b"), "ML-DSA"),
    (re.compile(r"\bslh-dsa\b"), "SLH-DSA"),
    (re.compile(r"\brsa\b"), "RSA"),
    (re.compile(r"\becc\b|\belliptic\b"), "ECC"),
    (re.compile(r"\bdsa\b"), "DSA"),
)

# Families named with a key size or version ("aes-128", "sha1", "sha 384").
# A bare family name is read as the default variant.
_SIZED_ALGORITHM_PATTERNS = (
    (re.compile(r"\baes(?:[- ]?(\d{3}))?\b"), "AES", "256"),
    (re.compile(r"\bsha(?:[- ]?(\d{1,3}))?\b"), "SHA", "256"),
)

_SENSITIVITY_LEVELS = ("classified", "confidential", "internal", "public")

_CRITICALITY_RULES = (
    (("critical", "classified"), "critical"),
    (("high", "confidential"), "high"),
    (("medium",), "medium"),
    (("low",), "low"),
)

_SHELF_LIFE_RULES = (
    (("20 year", "long-term"), 20),
    (("10 year",), 10),
    (("5 year",), 5),
)
DEFAULT_SHELF_LIFE = 1


def _has_word(text, word):
    return re.search(r"\b" + re.escape(word) + r"\b", text) is not None


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def load_algorithm_metadata(config_path=None) -> Dict[str, Dict]:
    """Algorithm name -> metadata, config entries layered over defaults."""
    table = {k: dict(v) for k, v in DEFAULT_ALGORITHMS.items()}
    for name, meta in (load_quantum_config(config_path).get("algorithms") or {}).items():
        table.setdefault(str(name).upper(), {}).update(meta or {})
    return table


def detect_algorithm(text: str) -> Optional[str]:
    """First algorithm named in text, or None.

    Sized families keep their size: "AES-128" stays AES-128 and scores as an
    unlisted algorithm unless the policy tables name it.
    """
    lowered = text.lower()
    for pattern, name in _ALGORITHM_PATTERNS:
        if pattern.search(lowered):
            return name
    for pattern, family, default_size in _SIZED_ALGORITHM_PATTERNS:
        m = pattern.search(lowered)
        if m:
            return f"{family}-{m.group(1) or default_size}"
    return None


def detect_sensitivity(text: str) -> Optional[str]:
    lowered = text.lower()
    for level in _SENSITIVITY_LEVELS:
        if _has_word(lowered, level):
            return level
    return None


def infer_criticality(text: str) -> Optional[str]:
    """Business criticality implied by the text; None leaves it to the midpoint score."""
    lowered = text.lower()
    for words, level in _CRITICALITY_RULES:
        if any(_has_word(lowered, w) for w in words):
            return level
    return None


def estimate_shelf_life(text: str) -> int:
    """Years the protected data must stay confidential."""
    lowered = text.lower()
    for phrases, years in _SHELF_LIFE_RULES:
        if any(p in lowered for p in phrases):
            return years
    return DEFAULT_SHELF_LIFE


def _build_asset(name, asset_type, algorithm, sensitivity, criticality,
                 shelf_life, now, metadata, location="unknown", system="unknown"):
    info = metadata.get(algorithm or "", {})
    return Asset(
        id=str(uuid.uuid4()),
        name=name,
        asset_type=asset_type,
        algorithm=algorithm or UNKNOWN_ALGORITHM,
        quantum_vulnerable=info.get("quantum_vulnerable"),
        data_sensitivity=sensitivity,
        business_criticality=criticality,
        discovered_at=now,
        assessed_at=now,
        algorithm_type=info.get("type"),
        vulnerability_level=info.get("vulnerability_level", "unknown"),
        data_shelf_life_years=shelf_life,
        location=location,
        system=system,
    )


def extract_assets(text: str, now: str = None, config_path=None) -> List[Asset]:
    """Create assets for every asset type mentioned in a scenario.

    When no asset type is mentioned but an algorithm is, a single generic
    cryptographic asset is returned. Text with neither yields [].
    """
    now = now or _now_iso()
    lowered = text.lower()
    metadata = load_algorithm_metadata(config_path)

    algorithm = detect_algorithm(lowered)
    sensitivity = detect_sensitivity(lowered)
    criticality = infer_criticality(lowered)
    shelf_life = estimate_shelf_life(lowered)

    types = [t for t in ASSET_TYPES if _has_word(lowered, t) or _has_word(lowered, t + "s")]
    if not types and algorithm:
        types = [GENERIC_ASSET_TYPE]

    assets = [
        _build_asset(
            name=t if t == GENERIC_ASSET_TYPE else f"{t} asset",
            asset_type=t,
            algorithm=algorithm,
            sensitivity=sensitivity,
            criticality=criticality,
            shelf_life=shelf_life,
            now=now,
            metadata=metadata,
        )
        for t in types
    ]
    logger.info("Extracted %d asset(s) from scenario (algorithm=%s)", len(assets), algorithm)
    return assets


def _default_catalog_criticality(raw):
    name = raw.get("name", "")
    if raw.get("type") == "certificate" and "TLS" in name:
        return "critical"
    if raw.get("type") == "key" and "Authentication" in name:
        return "high"
    return "medium"


def catalog_asset(raw: Dict, now: str = None, config_path=None) -> Asset:
    """Turn a discovered asset record into an inventory Asset.

    ``raw`` needs name, type and algorithm; data_sensitivity,
    business_criticality, data_shelf_life, location and system are optional.
    """
    now = now or _now_iso()
    metadata = load_algorithm_metadata(config_path)
    algorithm = str(raw.get("algorithm") or UNKNOWN_ALGORITHM).upper()
    asset_type = raw.get("type", "unknown")
    shelf_life = raw.get("data_shelf_life")
    if shelf_life is None:
        shelf_life = 10 if asset_type in ("certificate", "key") else 5
    return _build_asset(
        name=raw.get("name", f"{asset_type} asset"),
        asset_type=asset_type,
        algorithm=algorithm,
        sensitivity=raw.get("data_sensitivity"),
        criticality=raw.get("business_criticality") or _default_catalog_criticality(raw),
        shelf_life=int(shelf_life),
        now=now,
        metadata=metadata,
        location=raw.get("location", "unknown"),
        system=raw.get("system", "unknown"),
    )


def catalog_assets(raws: Iterable[Dict], now: str = None, config_path=None) -> List[Asset]:
    now = now or _now_iso()
    return [catalog_asset(r, now, config_path) for r in raws]


def filter_by_vulnerability(assets: Iterable[Asset], level: str) -> List[Asset]:
    return [a for a in assets if a.vulnerability_level == level]


def main():
    parser = argparse.ArgumentParser(description="Extract cryptographic assets from a scenario")
    parser.add_argument("--text", help="Scenario text")
    parser.add_argument("--file", help="JSON list of discovered assets to catalog")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    if args.file:
        with open(args.file, "r", encoding="utf-8") as f:
            assets = catalog_assets(json.load(f))
    elif args.text:
        assets = extract_assets(args.text)
    else:
        parser.print_help()
        return

    if args.json:
        print(json.dumps([a.to_dict() for a in assets], indent=2))
        return
    for a in assets:
        print(f"  {a.name}: {a.algorithm} ({a.vulnerability_level}) "
              f"sensitivity={a.data_sensitivity or '-'} criticality={a.business_criticality or '-'}")


if __name__ == "__main__":
    main()
