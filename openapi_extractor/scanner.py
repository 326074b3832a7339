"""Source scanner: discovers and classifies the project's source units.

Classification is a cheap textual check on class statements; the full
syntax tree is only built later by the annotation parser.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import re
import tokenize

from openapi_extractor.config import ExtractorConfig
from openapi_extractor.diagnostics import DiagnosticCollection
from openapi_extractor.errors import ScanError
from openapi_extractor.lib.env import relative_to_root
from openapi_extractor.models import SourceUnit, UnitKind

logger = logging.getLogger(__name__)

CLASS_RE = re.compile(r"^[ \t]*class\s+\w+\s*\(([^)]*)\)\s*:", re.MULTILINE)
CONTROLLER_TAG_RE = re.compile(r"^[ \t]*@controller\b", re.MULTILINE)

# Definitions unit lives in a direct child directory of the root
DEFINITIONS_DEPTH = 2


@dataclass
class ProjectManifest:
    """Read-only listing of a project's source units."""

    root: Path
    units: list[SourceUnit] = field(default_factory=list)
    definitions: SourceUnit | None = None
    diagnostics: DiagnosticCollection = field(default_factory=DiagnosticCollection)

    def of_kind(self, kind: UnitKind) -> list[SourceUnit]:
        return [unit for unit in self.units if unit.kind is kind]


def base_names(text: str) -> set[str]:
    """Return the last dotted segment of every base class in text."""
    names: set[str] = set()
    for match in CLASS_RE.finditer(text):
        for base in match.group(1).split(","):
            base = base.split("[", 1)[0].strip()
            if base and "=" not in base:
                names.add(base.rsplit(".", 1)[-1])
    return names


def classify(text: str, config: ExtractorConfig) -> UnitKind:
    """Classify a non-definitions unit by its class markers."""
    bases = base_names(text)
    if bases & set(config.controller_bases) or CONTROLLER_TAG_RE.search(text):
        return UnitKind.CONTROLLER
    if bases & set(config.capability_bases):
        return UnitKind.CAPABILITIES
    return UnitKind.OTHER


def _is_excluded(relative: Path, exclude: set[str]) -> bool:
    return any(part in exclude or part.startswith(".") for part in relative.parts[:-1])


def iter_source_files(root: Path, config: ExtractorConfig) -> list[Path]:
    """List Python files under root in stable order, skipping excluded dirs."""
    exclude = set(config.exclude)
    try:
        candidates = sorted(root.rglob("*.py"))
    except OSError as e:
        raise ScanError(f"Cannot list project tree: {e}", str(root)) from e
    return [path for path in candidates if not _is_excluded(path.relative_to(root), exclude)]


def _read(path: Path, relative: str, diagnostics: DiagnosticCollection) -> str | None:
    """Decode a source file the way the interpreter would, honoring its coding cookie.

    Returns:
        The text, or None when the file cannot be decoded

    Raises:
        ScanError: If the file cannot be read
    """
    try:
        with tokenize.open(path) as f:
            return f.read()
    except (SyntaxError, UnicodeDecodeError) as e:
        diagnostics.error(relative, f"Cannot decode source file: {e}", rule="syntax")
        return None
    except OSError as e:
        raise ScanError(f"Cannot read source file: {e}", str(path)) from e


def scan_project(root: Path, config: ExtractorConfig) -> ProjectManifest:
    """Walk the project tree and classify every source unit.

    Raises:
        ScanError: If the tree or a file cannot be read; undecodable files are
            reported as diagnostics instead
    """
    if not root.is_dir():
        raise ScanError("Project root is not a directory", str(root))

    manifest = ProjectManifest(root=root)
    candidates: list[str] = []
    units: list[SourceUnit] = []

    for path in iter_source_files(root, config):
        relative = relative_to_root(path, root)
        text = _read(path, relative, manifest.diagnostics)
        if text is None:
            continue

        if path.name == config.definitions_file:
            if len(Path(relative).parts) == DEFINITIONS_DEPTH:
                candidates.append(relative)
                units.append(SourceUnit(path, relative, UnitKind.DEFINITIONS, text))
                continue
            manifest.diagnostics.warning(
                relative,
                f"'{config.definitions_file}' is only read one directory below the project root; "
                "this file is ignored",
                rule="definitions-unit",
            )

        units.append(SourceUnit(path, relative, classify(text, config), text))

    if len(candidates) > 1:
        manifest.diagnostics.error(
            candidates[0],
            "Ambiguous definitions source: " + ", ".join(candidates),
            rule="definitions-unit",
        )
        # None of the candidates is trusted
        units = [
            SourceUnit(u.path, u.relative, classify(u.text, config), u.text)
            if u.kind is UnitKind.DEFINITIONS
            else u
            for u in units
        ]
    elif candidates:
        manifest.definitions = next(u for u in units if u.kind is UnitKind.DEFINITIONS)

    manifest.units = units
    logger.info(
        "Scanned %d units: %d controllers, %d capabilities, definitions=%s",
        len(units),
        len(manifest.of_kind(UnitKind.CONTROLLER)),
        len(manifest.of_kind(UnitKind.CAPABILITIES)),
        manifest.definitions.relative if manifest.definitions else None,
    )
    return manifest
