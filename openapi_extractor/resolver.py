"""Type resolver: binds named references to the definitions registry.

References are linked in place (``RefType.target``) rather than inlined, so
every shared shape keeps a single owner.
"""

from __future__ import annotations

import logging

from openapi_extractor.annotations.parser import ParsedUnit
from openapi_extractor.annotations.types import RecordField, RecordType, iter_refs
from openapi_extractor.diagnostics import DiagnosticCollection
from openapi_extractor.models import (
    CapabilityDeclaration,
    CapabilitySet,
    DefinitionsRegistry,
    Operation,
    TypeDefinition,
)

logger = logging.getLogger(__name__)


def build_registry(
    definitions: list[TypeDefinition],
    diagnostics: DiagnosticCollection,
    source: str | None = None,
) -> DefinitionsRegistry:
    """Populate and freeze the registry.

    A name declared twice keeps the second declaration, with a warning.
    """
    registry = DefinitionsRegistry(source)
    for definition in definitions:
        previous = registry.declare(definition)
        if previous is not None:
            diagnostics.warning(
                definition.unit,
                f"Duplicate type name; the declaration on line {previous.line} is replaced",
                subject=definition.name,
                line=definition.line,
                rule="duplicate-type",
            )
    registry.freeze()
    logger.debug("Registry frozen with %d definitions", len(registry))
    return registry


def merge_capabilities(
    declarations: list[CapabilityDeclaration],
    diagnostics: DiagnosticCollection,
) -> CapabilitySet | None:
    """Merge every capabilities record into one shape; later units win on key clashes."""
    if not declarations:
        return None

    fields: dict[str, RecordField] = {}
    owners: dict[str, str] = {}
    sources: list[str] = []
    for declaration in declarations:
        sources.append(declaration.unit)
        for key, field in declaration.shape.fields.items():
            if key in fields:
                diagnostics.warning(
                    declaration.unit,
                    f"Capability key is also declared in {owners[key]}; this declaration wins",
                    subject=key,
                    line=declaration.line,
                    rule="duplicate-capability",
                )
            fields[key] = field
            owners[key] = declaration.unit
    return CapabilitySet(shape=RecordType(fields=fields), sources=sources)


class TypeResolver:
    """Binds references against a frozen registry, reporting what it cannot bind."""

    def __init__(self, registry: DefinitionsRegistry, diagnostics: DiagnosticCollection) -> None:
        self.registry = registry
        self.diagnostics = diagnostics
        self._reported: set[tuple[str, str | None, str]] = set()

    def _bind(self, spec, unit: str, *, operation: str | None = None, line: int | None = None) -> bool:
        """Bind every reference in spec. Returns False if any stays undefined."""
        ok = True
        for ref in iter_refs(spec):
            definition = self.registry.get(ref.name)
            if definition is not None:
                ref.target = definition
                continue
            ok = False
            key = (unit, operation, ref.name)
            if key in self._reported:
                continue
            self._reported.add(key)
            self.diagnostics.error(
                unit,
                f"undefined type reference '{ref.name}'",
                operation=operation,
                subject=ref.name,
                line=line,
                rule="undefined-reference",
            )
        return ok

    def resolve_definitions(self) -> None:
        for definition in self.registry:
            self._bind(definition.shape, definition.unit, line=definition.line)

    def resolve_capabilities(self, capabilities: CapabilitySet | None) -> None:
        if capabilities is not None:
            unit = capabilities.sources[-1] if capabilities.sources else "capabilities"
            self._bind(capabilities.shape, unit)

    def resolve_operation(self, operation: Operation) -> bool:
        ok = True
        for parameter in operation.parameters:
            ok &= self._bind(
                parameter.type, operation.unit, operation=operation.operation_id, line=parameter.line
            )
        for response in operation.responses:
            ok &= self._bind(
                response, operation.unit, operation=operation.operation_id,
                line=operation.return_line or operation.line,
            )
        return ok

    def check_imports(self, parsed: ParsedUnit) -> None:
        """Imports must name registry types; registry types must be imported."""
        unit = parsed.unit.relative
        for name, line in parsed.imports.items():
            if name not in self.registry:
                self.diagnostics.error(
                    unit,
                    "@import names a type the definitions unit does not declare",
                    subject=name,
                    line=line,
                    rule="unknown-import",
                )

        used: dict[str, int | None] = {}
        for operation in parsed.operations:
            for spec in operation.iter_type_specs():
                for ref in iter_refs(spec):
                    used.setdefault(ref.name, operation.line)
        for declaration in parsed.capabilities:
            for ref in iter_refs(declaration.shape):
                used.setdefault(ref.name, declaration.line)

        for name, line in used.items():
            if name in self.registry and name not in parsed.imports:
                self.diagnostics.warning(
                    unit,
                    "Type is used without an @import",
                    subject=name,
                    line=line,
                    rule="missing-import",
                )


def resolve(
    units: list[ParsedUnit],
    registry: DefinitionsRegistry,
    capabilities: CapabilitySet | None,
    diagnostics: DiagnosticCollection,
) -> list[Operation]:
    """Resolve every operation in every unit; one failure never stops the rest.

    Returns:
        All operations, in unit order
    """
    resolver = TypeResolver(registry, diagnostics)
    resolver.resolve_definitions()
    resolver.resolve_capabilities(capabilities)

    operations: list[Operation] = []
    unresolved = 0
    for parsed in units:
        resolver.check_imports(parsed)
        for operation in parsed.operations:
            if not resolver.resolve_operation(operation):
                unresolved += 1
            operations.append(operation)

    logger.info("Resolved %d operations (%d with undefined references)", len(operations), unresolved)
    return operations
