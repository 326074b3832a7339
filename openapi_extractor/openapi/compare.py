"""Drift detection between a freshly built document and the one on disk."""

from __future__ import annotations

from typing import Any

from openapi_extractor.diagnostics import DiagnosticCollection

RULE = "drift"


def _compare_section(
    name: str,
    expected: dict[str, Any],
    actual: dict[str, Any],
    unit: str,
    diagnostics: DiagnosticCollection,
) -> None:
    for key in sorted(expected.keys() | actual.keys()):
        if key not in actual:
            diagnostics.error(unit, f"{name} entry is missing from the document", subject=key, rule=RULE)
        elif key not in expected:
            diagnostics.error(unit, f"{name} entry is no longer produced", subject=key, rule=RULE)
        elif expected[key] != actual[key]:
            diagnostics.error(unit, f"{name} entry is out of date", subject=key, rule=RULE)


def compare_documents(
    expected: dict[str, Any], actual: dict[str, Any] | None, unit: str
) -> DiagnosticCollection:
    """Report every path, schema or top-level section that differs.

    Args:
        expected: Document built from the current sources
        actual: Document read from disk, or None if there is none
        unit: Output path used as the diagnostic location
    """
    diagnostics = DiagnosticCollection()
    if actual is None:
        diagnostics.error(unit, "Document does not exist; run without --check to create it", rule=RULE)
        return diagnostics

    _compare_section("Path", expected.get("paths", {}), actual.get("paths", {}), unit, diagnostics)
    _compare_section(
        "Schema",
        expected.get("components", {}).get("schemas", {}),
        actual.get("components", {}).get("schemas", {}),
        unit,
        diagnostics,
    )

    rest_expected = {k: v for k, v in expected.items() if k != "paths"}
    rest_actual = {k: v for k, v in actual.items() if k != "paths"}
    for section in (rest_expected, rest_actual):
        components = section.get("components")
        if isinstance(components, dict):
            section["components"] = {k: v for k, v in components.items() if k != "schemas"}
    _compare_section("Section", rest_expected, rest_actual, unit, diagnostics)
    return diagnostics
