#!/usr/bin/env python3
# CUI // SP-CTI
"""Classify a free-text scenario into registered scenario categories.

Every keyword of every registered category is searched for as a
case-insensitive substring of the scenario. Each keyword that occurs yields
one MatchedKeyword; the same control may therefore appear under several
categories. Deduplication is the control resolver's job.

Usage:
    python -m grctools.compliance.scenario_classifier --text "firewall audit" --json
"""

import argparse
import json
import logging
from typing import List

from grctools.compliance.models import MatchedKeyword
from grctools.compliance.scenario_registry import ScenarioRegistry, load_registry
from grctools.resilience.errors import InputError

logger = logging.getLogger("grctools.compliance.scenario_classifier")


def normalize_scenario(text) -> str:
    """Validate and lowercase scenario text.

    Raises:
        InputError: text is not a string or is blank.
    """
    if not isinstance(text, str):
        raise InputError(f"Scenario must be text, got {type(text).__name__}.")
    if not text.strip():
        raise InputError("Scenario text is empty.")
    return text.lower()


def classify(text: str, registry: ScenarioRegistry = None) -> List[MatchedKeyword]:
    """Return one MatchedKeyword per registered keyword found in text.

    Order follows category registration order, then keyword order. No match
    returns an empty list.
    """
    registry = registry or load_registry()
    lowered = normalize_scenario(text)

    matches = []
    for category in registry.categories:
        for keyword in category.keywords:
            if keyword in lowered:
                matches.append(MatchedKeyword(
                    keyword=keyword,
                    category=category.id,
                    controls=category.controls,
                    workflows=category.workflows,
                ))

    logger.info(
        "Scenario matched %d keyword(s) across %d categor(ies)",
        len(matches), len(matched_categories(matches)),
    )
    return matches


def matched_categories(matches: List[MatchedKeyword]) -> List[str]:
    """Distinct category IDs in first-seen order."""
    seen = []
    for m in matches:
        if m.category not in seen:
            seen.append(m.category)
    return seen


def main():
    parser = argparse.ArgumentParser(description="Classify a scenario into GRC categories")
    parser.add_argument("--text", required=True, help="Scenario text")
    parser.add_argument("--config", help="Path to scenario mappings YAML")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    matches = classify(args.text, load_registry(args.config))
    if args.json:
        print(json.dumps({
            "keywords": [m.to_dict() for m in matches],
            "categories": matched_categories(matches),
        }, indent=2))
        return
    if not matches:
        print("No scenario categories matched.")
    for m in matches:
        print(f"  [{m.category}] '{m.keyword}' -> {', '.join(m.controls)}")


if __name__ == "__main__":
    main()
