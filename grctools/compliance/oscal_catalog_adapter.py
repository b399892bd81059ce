#!/usr/bin/env python3
# CUI // SP-CTI
"""Control catalog collaborator: reads NIST OSCAL and flat JSON catalogs.

Supports two catalog formats:
  1. Official NIST OSCAL (nested groups/controls/params from usnistgov/oscal-content)
  2. Flat format (context/compliance/nist_800_53_catalog.json)

Both are normalized into Control records so callers don't need to know which
catalog is active. Priority: official OSCAL -> flat fallback.

The assessment pipeline talks to any catalog through the CatalogCollaborator
protocol: ``await catalog.lookup("SC-7")`` returns a Control or None. A miss
is not an error.

Usage (library):
    from grctools.compliance.oscal_catalog_adapter import OscalCatalogAdapter
    adapter = OscalCatalogAdapter()
    ctrl = adapter.get_control("SC-13")
    ctrl = await adapter.lookup("SC-13")

Usage (CLI):
    python -m grctools.compliance.oscal_catalog_adapter --lookup SC-13 --json
    python -m grctools.compliance.oscal_catalog_adapter --list --family SC
    python -m grctools.compliance.oscal_catalog_adapter --stats --json
"""

import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import Optional, Protocol

from grctools.compliance.models import Control

logger = logging.getLogger("grctools.compliance.oscal_catalog_adapter")

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Default catalog sources in priority order
_DEFAULT_SOURCES = [
    BASE_DIR / "context" / "oscal" / "NIST_SP-800-53_rev5_catalog.json",
    BASE_DIR / "context" / "compliance" / "nist_800_53_catalog.json",
]

# Props that bind a control to the workflow which validates it
_WORKFLOW_PROPS = ("workflow", "ansible-playbook")

# Cache parsed catalogs at module level
_CATALOG_CACHE = {}


class CatalogCollaborator(Protocol):
    """Anything that can resolve a control ID to catalog metadata."""

    async def lookup(self, control_id: str) -> Optional[Control]:
        ...


def _normalize_control_id(control_id):
    """Normalize control ID to uppercase with hyphens: ac-2 → AC-2, ac-2.1 → AC-2(1)."""
    if not control_id:
        return ""
    cid = control_id.strip().upper()
    # Convert OSCAL dot notation back to parenthetical: AC-2.1 → AC-2(1)
    cid = re.sub(r"\.(\d+)", r"(\1)", cid)
    return cid


def _is_oscal_format(data):
    """Check if data is official NIST OSCAL catalog format."""
    return isinstance(data, dict) and "catalog" in data


def _is_flat_format(data):
    """Check if data is the flat catalog format."""
    return isinstance(data, dict) and "controls" in data and "metadata" in data


def _prop_value(props, *names):
    for prop in props or []:
        if prop.get("name") in names and prop.get("value"):
            return prop["value"]
    return None


def _parse_oscal_catalog(data):
    """Parse official NIST OSCAL catalog into normalized control dict.

    OSCAL structure: catalog.groups[].controls[].controls[] (enhancements nested)
    """
    controls = {}
    catalog = data.get("catalog", {})

    for group in catalog.get("groups", []):
        family_id = group.get("id", "").upper()
        family_title = group.get("title", "")

        for control in group.get("controls", []):
            ctrl = _extract_oscal_control(control, family_id, family_title)
            if ctrl:
                controls[ctrl["id"]] = ctrl

            for enhancement in control.get("controls", []):
                enh = _extract_oscal_control(enhancement, family_id, family_title)
                if enh:
                    enh["is_enhancement"] = True
                    enh["parent_id"] = _normalize_control_id(control.get("id", ""))
                    controls[enh["id"]] = enh

    return controls


def _extract_oscal_control(control, family_id, family_title):
    """Extract a single OSCAL control into normalized format."""
    raw_id = control.get("id", "")
    if not raw_id:
        return None

    description = ""
    for part in control.get("parts", []):
        if part.get("name") == "statement":
            description = part.get("prose", "")
            break

    props = control.get("props", [])
    withdrawn = _prop_value(props, "status") == "withdrawn"

    return {
        "id": _normalize_control_id(raw_id),
        "family": family_id.split("-")[0] if "-" in family_id else family_id,
        "family_title": family_title,
        "title": control.get("title", ""),
        "description": description,
        "priority": _prop_value(props, "priority"),
        "workflow": _prop_value(props, *_WORKFLOW_PROPS),
        "is_enhancement": False,
        "parent_id": None,
        "withdrawn": withdrawn,
        "source": "nist_oscal",
    }


def _parse_flat_catalog(data):
    """Parse flat catalog into normalized control dict."""
    controls = {}
    for ctrl in data.get("controls", []):
        ctrl_id = _normalize_control_id(ctrl.get("id", ""))
        if not ctrl_id:
            continue
        controls[ctrl_id] = {
            "id": ctrl_id,
            "family": ctrl.get("family", ctrl_id.split("-")[0]),
            "family_title": "",
            "title": ctrl.get("title", ""),
            "description": ctrl.get("description", ""),
            "priority": ctrl.get("priority"),
            "workflow": ctrl.get("workflow"),
            "is_enhancement": "(" in ctrl_id,
            "parent_id": None,
            "withdrawn": bool(ctrl.get("withdrawn", False)),
            "source": "flat",
        }
    return controls


def _to_control(raw) -> Control:
    return Control(
        id=raw["id"],
        title=raw.get("title", ""),
        description=raw.get("description", ""),
        priority=raw.get("priority") or "medium",
        workflow=raw.get("workflow"),
        family=raw.get("family", ""),
        source=raw.get("source", ""),
    )


class OscalCatalogAdapter:
    """Catalog reader supporting both NIST OSCAL and flat formats.

    Priority: official NIST OSCAL catalog → flat catalog (fallback).
    """

    def __init__(self, catalog_path=None, catalog_sources=None):
        """Load catalog from the first available source.

        Args:
            catalog_path: Explicit path to a catalog file. Overrides priority.
            catalog_sources: List of paths to try in order.
        """
        self._controls = {}
        self._source_path = None
        self._source_format = None
        self._metadata = {}

        if catalog_path:
            sources = [Path(catalog_path)]
        elif catalog_sources:
            sources = [Path(s) for s in catalog_sources]
        else:
            sources = list(_DEFAULT_SOURCES)

        for src in sources:
            if src.exists():
                self._load(src)
                if self._controls:
                    break

        if not self._controls:
            logger.warning("No control catalog found. Tried: %s", sources)

    def _load(self, path):
        """Load and parse a catalog file."""
        cache_key = str(path)
        if cache_key in _CATALOG_CACHE:
            cached = _CATALOG_CACHE[cache_key]
            self._controls = cached["controls"]
            self._source_path = cached["source_path"]
            self._source_format = cached["source_format"]
            self._metadata = cached["metadata"]
            return

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load catalog %s: %s", path, exc)
            return

        if _is_oscal_format(data):
            self._controls = _parse_oscal_catalog(data)
            self._source_format = "nist_oscal"
            self._metadata = data.get("catalog", {}).get("metadata", {})
        elif _is_flat_format(data):
            self._controls = _parse_flat_catalog(data)
            self._source_format = "flat"
            self._metadata = data.get("metadata", {})
        else:
            logger.warning("Unrecognized catalog format: %s", path)
            return

        self._source_path = str(path)

        _CATALOG_CACHE[cache_key] = {
            "controls": self._controls,
            "source_path": self._source_path,
            "source_format": self._source_format,
            "metadata": self._metadata,
        }

    def get_control(self, control_id) -> Optional[Control]:
        """Get a single control by ID (case-insensitive), or None."""
        raw = self._controls.get(_normalize_control_id(control_id))
        return _to_control(raw) if raw else None

    async def lookup(self, control_id) -> Optional[Control]:
        """CatalogCollaborator entry point. Withdrawn controls count as misses."""
        raw = self._controls.get(_normalize_control_id(control_id))
        if not raw or raw.get("withdrawn"):
            return None
        return _to_control(raw)

    def list_controls(self, family=None, include_withdrawn=False):
        """List controls sorted by ID, optionally filtered by family."""
        results = []
        family_upper = family.upper() if family else None

        for ctrl in self._controls.values():
            if family_upper and ctrl.get("family", "").upper() != family_upper:
                continue
            if not include_withdrawn and ctrl.get("withdrawn", False):
                continue
            results.append(_to_control(ctrl))

        results.sort(key=lambda c: c.id)
        return results

    def get_catalog_stats(self):
        """Return metadata about the loaded catalog."""
        families = set()
        enhancements = 0
        withdrawn = 0
        bound = 0
        for ctrl in self._controls.values():
            families.add(ctrl.get("family", ""))
            if ctrl.get("is_enhancement"):
                enhancements += 1
            if ctrl.get("withdrawn"):
                withdrawn += 1
            if ctrl.get("workflow"):
                bound += 1

        return {
            "source_path": self._source_path,
            "source_format": self._source_format,
            "total_controls": len(self._controls),
            "base_controls": len(self._controls) - enhancements,
            "enhancements": enhancements,
            "withdrawn": withdrawn,
            "workflow_bound": bound,
            "families": sorted(families),
            "family_count": len(families),
            "metadata": {
                "title": self._metadata.get("title", ""),
                "version": self._metadata.get("version", self._metadata.get("revision", "")),
            },
        }

    @property
    def href(self):
        """Reference used as the import-profile href of assessment plans."""
        return self._source_path or "#catalog-unavailable"

    def is_official_catalog(self):
        """True if using the official NIST OSCAL format catalog."""
        return self._source_format == "nist_oscal"

    def is_loaded(self):
        """True if a catalog was successfully loaded."""
        return len(self._controls) > 0


def main():
    """CLI entry point for catalog operations."""
    parser = argparse.ArgumentParser(description="Query the NIST 800-53 control catalog")
    parser.add_argument("--lookup", help="Look up a control by ID (e.g., SC-13)")
    parser.add_argument("--list", action="store_true", help="List controls")
    parser.add_argument("--family", help="Filter by family code (e.g., AC, SC)")
    parser.add_argument("--stats", action="store_true", help="Show catalog stats")
    parser.add_argument("--catalog", help="Explicit path to catalog file")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()

    adapter = OscalCatalogAdapter(catalog_path=args.catalog)

    if args.stats:
        result = adapter.get_catalog_stats()
        if args.json:
            print(json.dumps(result, indent=2))
        else:
            print(f"Source:   {result['source_path']}")
            print(f"Format:   {result['source_format']}")
            print(f"Controls: {result['total_controls']} total "
                  f"({result['base_controls']} base, {result['enhancements']} enhancements)")
            print(f"Families: {result['family_count']} ({', '.join(result['families'])})")
        sys.exit(0)

    if args.lookup:
        ctrl = adapter.get_control(args.lookup)
        if not ctrl:
            print(json.dumps({"error": f"Control '{args.lookup}' not found"})
                  if args.json else f"Control '{args.lookup}' not found")
            sys.exit(1)
        if args.json:
            print(json.dumps(ctrl.to_dict(), indent=2))
        else:
            print(f"{ctrl.id}: {ctrl.title}")
            print(f"  Family:   {ctrl.family}")
            print(f"  Priority: {ctrl.priority}")
            print(f"  Workflow: {ctrl.workflow or '-'}")
            print(f"  Description: {ctrl.description[:200]}")
        sys.exit(0)

    if args.list:
        controls = adapter.list_controls(family=args.family)
        if args.json:
            print(json.dumps({"controls": [c.to_dict() for c in controls],
                              "count": len(controls)}, indent=2))
        else:
            for ctrl in controls:
                print(f"  {ctrl.id}: {ctrl.title}")
            print(f"\n{len(controls)} controls")
        sys.exit(0)

    parser.print_help()


if __name__ == "__main__":
    main()
