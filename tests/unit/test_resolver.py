"""Tests for registry population and reference binding."""

from __future__ import annotations

from pathlib import Path

from openapi_extractor.annotations.parser import ParsedUnit
from openapi_extractor.annotations.types import (
    ListType,
    PrimitiveType,
    RecordField,
    RecordType,
    RefType,
    ResponseType,
)
from openapi_extractor.diagnostics import DiagnosticCollection
from openapi_extractor.models import (
    CapabilityDeclaration,
    Operation,
    Parameter,
    SourceUnit,
    TypeDefinition,
    UnitKind,
)
from openapi_extractor.resolver import build_registry, merge_capabilities, resolve

INT = PrimitiveType(type="int")


def _definition(name: str, shape, line: int = 1) -> TypeDefinition:
    return TypeDefinition(name, shape, "lib/response_definitions.py", line)


def _operation(body, operation_id: str = "todo_api-show") -> Operation:
    return Operation(
        operation_id=operation_id,
        controller="TodoApiController",
        unit="lib/c.py",
        verb="GET",
        url="/x",
        line=3,
        responses=[ResponseType(wrapper="DataResponse", status=200, body=body)],
        return_line=9,
    )


def _parsed(*operations: Operation, imports: dict[str, int] | None = None) -> ParsedUnit:
    unit = SourceUnit(Path("lib/c.py"), "lib/c.py", UnitKind.CONTROLLER, "")
    return ParsedUnit(unit=unit, operations=list(operations), imports=imports or {})


class TestBuildRegistry:
    def test_second_declaration_wins(self) -> None:
        diagnostics = DiagnosticCollection()
        first = _definition("TodoFoo", RecordType(fields={"a": RecordField(type=INT)}), line=3)
        second = _definition("TodoFoo", RecordType(fields={"b": RecordField(type=INT)}), line=4)

        registry = build_registry([first, second], diagnostics)

        assert registry.frozen
        assert registry.get("TodoFoo") is second
        (warning,) = diagnostics.warnings
        assert warning.subject == "TodoFoo"
        assert warning.line == 4
        assert warning.rule == "duplicate-type"
        assert not diagnostics.has_errors()


class TestResolve:
    def test_binds_references_in_place(self) -> None:
        diagnostics = DiagnosticCollection()
        registry = build_registry([_definition("TodoItem", RecordType())], diagnostics)
        ref = RefType(name="TodoItem")
        op = _operation(ListType(of=ref))

        operations = resolve([_parsed(op, imports={"TodoItem": 1})], registry, None, diagnostics)

        assert operations == [op]
        assert ref.target is registry.get("TodoItem")
        assert not diagnostics.items

    def test_undefined_reference_reported_once_per_operation(self) -> None:
        diagnostics = DiagnosticCollection()
        registry = build_registry([], diagnostics)
        body = RecordType(
            fields={
                "a": RecordField(type=RefType(name="TodoItem")),
                "b": RecordField(type=RefType(name="TodoItem")),
            }
        )
        first = _operation(body)
        second = _operation(RefType(name="TodoItem"), operation_id="todo_api-index")

        operations = resolve([_parsed(first, second)], registry, None, diagnostics)

        assert len(operations) == 2
        assert [(d.operation, d.message) for d in diagnostics.errors] == [
            ("todo_api-show", "undefined type reference 'TodoItem'"),
            ("todo_api-index", "undefined type reference 'TodoItem'"),
        ]
        assert diagnostics.errors[0].line == 9

    def test_parameter_reference_reported_at_param_line(self) -> None:
        diagnostics = DiagnosticCollection()
        registry = build_registry([], diagnostics)
        op = _operation(RecordType())
        op.parameters.append(
            Parameter("filter", RefType(name="TodoFilter"), False, "Filter", line=5)
        )

        resolve([_parsed(op)], registry, None, diagnostics)

        (error,) = diagnostics.errors
        assert (error.subject, error.line) == ("TodoFilter", 5)

    def test_definitions_reference_each_other(self) -> None:
        diagnostics = DiagnosticCollection()
        node = RefType(name="TodoNode")
        missing = RefType(name="TodoMissing")
        registry = build_registry(
            [
                _definition("TodoNode", RecordType(fields={"children": RecordField(type=ListType(of=node))})),
                _definition("TodoBroken", missing, line=2),
            ],
            diagnostics,
        )

        resolve([], registry, None, diagnostics)

        assert node.target is registry.get("TodoNode")
        (error,) = diagnostics.errors
        assert error.subject == "TodoMissing"
        assert error.unit == "lib/response_definitions.py"

    def test_unknown_import(self) -> None:
        diagnostics = DiagnosticCollection()
        registry = build_registry([], diagnostics)

        resolve([_parsed(imports={"TodoGhost": 2})], registry, None, diagnostics)

        (error,) = diagnostics.errors
        assert error.subject == "TodoGhost"
        assert error.rule == "unknown-import"

    def test_missing_import(self) -> None:
        diagnostics = DiagnosticCollection()
        registry = build_registry([_definition("TodoItem", RecordType())], diagnostics)

        resolve([_parsed(_operation(RefType(name="TodoItem")))], registry, None, diagnostics)

        (warning,) = diagnostics.warnings
        assert warning.subject == "TodoItem"
        assert warning.rule == "missing-import"
        assert not diagnostics.has_errors()


class TestMergeCapabilities:
    def test_none_declared(self) -> None:
        assert merge_capabilities([], DiagnosticCollection()) is None

    def test_later_unit_wins(self) -> None:
        diagnostics = DiagnosticCollection()
        first = CapabilityDeclaration(
            RecordType(fields={"todo": RecordField(type=INT), "a": RecordField(type=INT)}), "lib/a.py", 3
        )
        second = CapabilityDeclaration(
            RecordType(fields={"todo": RecordField(type=PrimitiveType(type="bool"))}), "lib/b.py", 5
        )

        merged = merge_capabilities([first, second], diagnostics)

        assert merged is not None
        assert merged.sources == ["lib/a.py", "lib/b.py"]
        assert list(merged.shape.fields) == ["todo", "a"]
        assert merged.shape.fields["todo"].type == PrimitiveType(type="bool")
        (warning,) = diagnostics.warnings
        assert warning.unit == "lib/b.py"
        assert warning.subject == "todo"
