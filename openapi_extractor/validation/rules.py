"""Authoring rules checked against the resolved operation graph.

Each rule is a small object with a ``name`` and a ``check`` method that
yields diagnostics. Rules only read the graph.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Protocol

from openapi_extractor.annotations.types import is_list_shaped, is_object_shaped
from openapi_extractor.config import ExtractorConfig
from openapi_extractor.diagnostics import Diagnostic, Severity
from openapi_extractor.models import CapabilitySet, DefinitionsRegistry, Operation


@dataclass
class ValidationContext:
    """Everything the rules may look at."""

    operations: list[Operation]
    registry: DefinitionsRegistry
    capabilities: CapabilitySet | None
    config: ExtractorConfig


class Rule(Protocol):
    name: str

    def check(self, context: ValidationContext) -> Iterable[Diagnostic]: ...


def _diagnostic(
    rule: Rule,
    severity: Severity,
    operation: Operation,
    message: str,
    subject: str | None = None,
    line: int | None = None,
) -> Diagnostic:
    return Diagnostic(
        severity,
        operation.unit,
        message,
        operation=operation.operation_id,
        subject=subject,
        line=line or operation.line,
        rule=rule.name,
    )


class ParameterDescriptionRule:
    """Every handler argument needs @param text; every @param needs an argument."""

    name = "parameter-description"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        for op in context.operations:
            for parameter in op.parameters:
                if not parameter.description:
                    yield _diagnostic(
                        self, Severity.ERROR, op, "Missing parameter description",
                        subject=parameter.name, line=parameter.line,
                    )
            for name, line in op.undeclared_params.items():
                yield _diagnostic(
                    self, Severity.WARNING, op, "@param documents an argument the handler does not take",
                    subject=name, line=line,
                )


class StatusDescriptionRule:
    """Every declared status code needs a '<code>: <text>' line."""

    name = "status-description"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        error_statuses = context.config.error_statuses
        for op in context.operations:
            declared = op.statuses
            for status in declared:
                if not op.status_descriptions.get(status):
                    yield _diagnostic(
                        self, Severity.ERROR, op, "Missing status code description",
                        subject=str(status), line=op.status_lines.get(status),
                    )

            implied = {error_statuses[e.kind] for e in op.errors if e.kind in error_statuses}
            for status, line in op.status_lines.items():
                if status not in declared and status not in implied:
                    yield _diagnostic(
                        self, Severity.WARNING, op, "Description for a status code that is never returned",
                        subject=str(status), line=line,
                    )


class ThrownErrorDescriptionRule:
    name = "thrown-error-description"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        for op in context.operations:
            for error in op.errors:
                if not error.description:
                    yield _diagnostic(
                        self, Severity.ERROR, op, "Missing error description",
                        subject=error.kind, line=error.line,
                    )


class MissingReturnRule:
    name = "missing-return"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        for op in context.operations:
            if not op.responses:
                yield _diagnostic(self, Severity.ERROR, op, "Operation has no @return annotation")


class TypePrefixRule:
    """Shared type names carry the project prefix."""

    name = "type-prefix"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        prefix = context.config.prefix
        for definition in context.registry:
            if not definition.name.startswith(prefix):
                yield Diagnostic(
                    Severity.ERROR,
                    definition.unit,
                    f"Type name must start with the project prefix '{prefix}'",
                    subject=definition.name,
                    line=definition.line,
                    rule=self.name,
                )


class EmptyCollectionShapeRule:
    """An empty list literal serialises as '[]', never as the declared '{}'."""

    name = "empty-collection-shape"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        for op in context.operations:
            for call in op.response_calls:
                if not call.empty_list:
                    continue
                status = call.effective_status
                declared = op.responses_for(status) if status is not None else op.responses
                bodies = [response.body for response in declared]
                if any(is_object_shaped(b) for b in bodies) and not any(
                    is_list_shaped(b) for b in bodies
                ):
                    yield _diagnostic(
                        self, Severity.WARNING, op,
                        "Empty list returned where an object is declared; use an empty dict",
                        subject=str(status) if status is not None else None, line=call.line,
                    )


class SideChannelHeaderRule:
    name = "side-channel-header"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        for op in context.operations:
            for line in op.side_channel_headers:
                yield _diagnostic(
                    self, Severity.WARNING, op,
                    "Header set outside the returned response; declare it in the response headers",
                    line=line,
                )


class ExceptionSignalingRule:
    """Errors that escape a handler should be returned as responses rather than raised."""

    name = "exception-signaling"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        error_statuses = context.config.error_statuses
        for op in context.operations:
            documented = {error.kind for error in op.errors}
            for kind, line in op.raise_lines.items():
                if kind in error_statuses:
                    message = (
                        f"Raising for error signalling; return a {error_statuses[kind]} "
                        "response instead"
                    )
                elif kind not in documented:
                    message = "Raised error kind escapes the handler without a @throws entry"
                else:
                    continue
                yield _diagnostic(self, Severity.WARNING, op, message, subject=kind, line=line)


class DuplicateOperationRule:
    """Two handlers may not share a route or an operation id."""

    name = "duplicate-operation"

    def check(self, context: ValidationContext) -> Iterator[Diagnostic]:
        prefix = context.config.path_prefix
        routes: dict[tuple[str, str], Operation] = {}
        ids: dict[str, Operation] = {}
        for op in context.operations:
            route = (op.verb, prefix + op.url)
            first = routes.setdefault(route, op)
            if first is not op:
                yield _diagnostic(
                    self, Severity.ERROR, op,
                    f"Route {op.verb} {prefix + op.url} is already handled by {first.operation_id}",
                )
            first = ids.setdefault(op.operation_id, op)
            if first is not op:
                yield _diagnostic(
                    self, Severity.ERROR, op,
                    f"Operation id is also used at {first.unit}:{first.line}",
                    subject=op.operation_id,
                )


DEFAULT_RULES: tuple[Rule, ...] = (
    ParameterDescriptionRule(),
    StatusDescriptionRule(),
    ThrownErrorDescriptionRule(),
    MissingReturnRule(),
    TypePrefixRule(),
    EmptyCollectionShapeRule(),
    SideChannelHeaderRule(),
    ExceptionSignalingRule(),
    DuplicateOperationRule(),
)
