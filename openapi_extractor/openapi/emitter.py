"""Serializes the document and renders the diagnostic report."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from openapi_extractor.diagnostics import DiagnosticCollection
from openapi_extractor.errors import ExtractorError

logger = logging.getLogger(__name__)


def render_document(document: dict[str, Any]) -> str:
    return json.dumps(document, indent=2) + "\n"


def write_document(document: dict[str, Any], output_path: Path) -> None:
    """Write the document, creating parent directories as needed."""
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as f:
            f.write(render_document(document))
    except OSError as e:
        raise ExtractorError(f"Cannot write document: {e}", str(output_path)) from e
    logger.info("Wrote %s", output_path)


def read_document(output_path: Path) -> dict[str, Any] | None:
    """Load a previously written document, or None if it does not exist.

    Raises:
        ExtractorError: If the file exists but is not a JSON object
    """
    if not output_path.exists():
        return None
    try:
        with output_path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ExtractorError(f"Existing document is not valid JSON: {e}", str(output_path)) from e
    except OSError as e:
        raise ExtractorError(f"Cannot read document: {e}", str(output_path)) from e
    if not isinstance(data, dict):
        raise ExtractorError("Existing document is not a JSON object", str(output_path))
    return data


def format_summary(diagnostics: DiagnosticCollection) -> str:
    errors, warnings = len(diagnostics.errors), len(diagnostics.warnings)
    return f"{errors} error(s), {warnings} warning(s)"


def format_report(diagnostics: DiagnosticCollection) -> str:
    """One line per diagnostic followed by the summary."""
    lines = [str(diagnostic) for diagnostic in diagnostics]
    lines.append(format_summary(diagnostics))
    return "\n".join(lines)
