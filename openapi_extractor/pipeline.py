"""Extraction pipeline: scan, parse, resolve, validate, build, emit.

Every stage appends to one diagnostic collection. The builder only runs
when that collection holds no error; a failed run never touches the output
document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

from openapi_extractor.annotations.parser import ParsedUnit, parse_unit
from openapi_extractor.config import ExtractorConfig
from openapi_extractor.diagnostics import DiagnosticCollection
from openapi_extractor.lib.env import relative_to_root
from openapi_extractor.models import UnitKind
from openapi_extractor.openapi import (
    OpenAPIBuilder,
    compare_documents,
    read_document,
    write_document,
)
from openapi_extractor.resolver import build_registry, merge_capabilities, resolve
from openapi_extractor.scanner import ProjectManifest, scan_project
from openapi_extractor.validation import ValidationContext, Validator

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Outcome of one run."""

    manifest: ProjectManifest
    diagnostics: DiagnosticCollection = field(default_factory=DiagnosticCollection)
    document: dict[str, Any] | None = None
    written: Path | None = None

    @property
    def ok(self) -> bool:
        return not self.diagnostics.has_errors()


def extract(root: Path, config: ExtractorConfig) -> ExtractionResult:
    """Run every stage up to the in-memory document.

    Raises:
        ScanError: If the project tree cannot be read
    """
    manifest = scan_project(root, config)
    result = ExtractionResult(manifest=manifest)
    diagnostics = result.diagnostics
    diagnostics.merge(manifest.diagnostics)

    parsed: list[ParsedUnit] = []
    for unit in manifest.units:
        if unit.kind is UnitKind.OTHER:
            continue
        unit_result = parse_unit(unit, config)
        diagnostics.merge(unit_result.diagnostics)
        parsed.append(unit_result)

    registry = build_registry(
        [d for p in parsed for d in p.definitions],
        diagnostics,
        source=manifest.definitions.relative if manifest.definitions else None,
    )
    capabilities = merge_capabilities([c for p in parsed for c in p.capabilities], diagnostics)
    operations = resolve(parsed, registry, capabilities, diagnostics)

    context = ValidationContext(
        operations=operations, registry=registry, capabilities=capabilities, config=config
    )
    diagnostics.merge(Validator().validate(context))

    if config.strict:
        result.diagnostics = diagnostics = diagnostics.promote_warnings()

    if diagnostics.has_errors():
        logger.info("Not building: %d error diagnostic(s)", len(diagnostics.errors))
        return result

    result.document = OpenAPIBuilder(config, registry, capabilities).build(operations, diagnostics)
    return result


def run(root: Path, config: ExtractorConfig, check: bool = False) -> ExtractionResult:
    """Extract and then write the document, or compare it in check mode.

    Raises:
        ExtractorError: On fatal scan or IO failures
    """
    result = extract(root, config)
    if result.document is None:
        return result

    output_path = config.output_path(root)
    if check:
        actual = read_document(output_path)
        drift = compare_documents(result.document, actual, relative_to_root(output_path, root))
        result.diagnostics.merge(drift)
        logger.info("Drift check found %d difference(s)", len(drift))
        return result

    write_document(result.document, output_path)
    result.written = output_path
    return result
