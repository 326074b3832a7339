"""Annotation parser: turns one source unit into structured records.

Sources are read with :mod:`ast` and never imported. Decorators mark
handlers; docstrings carry the type and description metadata. Parsing is a
pure function of the unit's text; malformed annotations become diagnostics
and drop only the operation or definition they belong to.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
import logging
import re

from openapi_extractor.annotations.docblock import DocBlock, parse_docblock
from openapi_extractor.annotations.grammar import (
    RESPONSE_WRAPPERS,
    TypeSyntaxError,
    UnknownStatusError,
    parse_leading_type,
    parse_return,
    parse_status_token,
    parse_type,
)
from openapi_extractor.annotations.types import (
    NullableType,
    PrimitiveType,
    RecordType,
    TypeSpec,
    format_type,
    is_simple_parameter_type,
)
from openapi_extractor.config import ExtractorConfig
from openapi_extractor.diagnostics import DiagnosticCollection
from openapi_extractor.models import (
    CapabilityDeclaration,
    Operation,
    Parameter,
    ResponseCall,
    SourceUnit,
    ThrownError,
    TypeDefinition,
    UnitKind,
)

logger = logging.getLogger(__name__)

# Valid HTTP methods
VALID_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})

# Verbs whose non-path parameters travel in the query string
QUERY_VERBS = frozenset({"GET", "DELETE", "HEAD", "OPTIONS"})

HEADER_METHODS = frozenset({"add_header", "set_header"})

# Handlers that catch every error kind raised in their try body
CATCH_ALL = "*"
CATCH_ALL_KINDS = frozenset({"Exception", "BaseException"})

PYTHON_TYPES = {"str": "string", "int": "int", "float": "float", "bool": "bool"}

TYPE_DECL_RE = re.compile(r"^([A-Za-z_]\w*)\s*=\s*(.+)$", re.DOTALL)
PARAM_NAME_RE = re.compile(r"^([A-Za-z_]\w*)\b\s*(.*)$", re.DOTALL)
THROWS_RE = re.compile(r"^([A-Za-z_][\w.]*)\b\s*(.*)$", re.DOTALL)
PATH_PARAM_RE = re.compile(r"\{(\w+)\}")


@dataclass
class ParsedUnit:
    """Everything one source unit contributes to the run."""

    unit: SourceUnit
    operations: list[Operation] = field(default_factory=list)
    definitions: list[TypeDefinition] = field(default_factory=list)
    capabilities: list[CapabilityDeclaration] = field(default_factory=list)
    imports: dict[str, int] = field(default_factory=dict)  # name -> line
    diagnostics: DiagnosticCollection = field(default_factory=DiagnosticCollection)


def _tail(node: ast.AST | None) -> str:
    """Last segment of a dotted name or call target."""
    if isinstance(node, ast.Call):
        node = node.func
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return ""


def _dotted(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return f"{_dotted(node.value)}.{node.attr}"
    if isinstance(node, ast.Constant):
        return str(node.value)
    return ""


def _docstring(node: ast.AST) -> DocBlock:
    body = getattr(node, "body", [])
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        return parse_docblock(body[0].value.value, body[0].value.lineno)
    return DocBlock()


def controller_slug(class_name: str) -> str:
    """TodoApiController -> todo_api, OCSShareController -> ocs_share."""
    name = class_name.removesuffix("Controller") or class_name
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    return name.lower()


def _is_self_attribute(node: ast.AST) -> bool:
    while isinstance(node, ast.Attribute):
        node = node.value
    return isinstance(node, ast.Name) and node.id == "self"


class _BodyFacts(ast.NodeVisitor):
    """Static facts about a handler body used by the discouraged-construct rules."""

    def __init__(self) -> None:
        self.raises: dict[str, int] = {}
        self.side_channel_headers: list[int] = []
        self.response_calls: list[ResponseCall] = []
        self._caught: list[frozenset[str]] = []

    @classmethod
    def collect(cls, func: ast.FunctionDef | ast.AsyncFunctionDef) -> _BodyFacts:
        facts = cls()
        for statement in func.body:
            facts.visit(statement)
        return facts

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        # Nested functions are not part of the handler's control flow
        return

    visit_AsyncFunctionDef = visit_FunctionDef  # noqa: N815
    visit_Lambda = visit_FunctionDef  # noqa: N815

    def visit_Try(self, node: ast.Try) -> None:
        self._caught.append(_caught_kinds(node.handlers))
        for statement in node.body:
            self.visit(statement)
        self._caught.pop()
        # Raises in handlers, else and finally escape this try
        for statement in [*node.handlers, *node.orelse, *node.finalbody]:
            self.visit(statement)

    visit_TryStar = visit_Try  # noqa: N815

    def _is_caught(self, kind: str) -> bool:
        return any(kind in caught or CATCH_ALL in caught for caught in self._caught)

    def visit_Raise(self, node: ast.Raise) -> None:
        name = _tail(node.exc)
        if name and not self._is_caught(name):
            self.raises.setdefault(name, node.lineno)
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        if isinstance(func, ast.Attribute) and func.attr in HEADER_METHODS:
            if _is_self_attribute(func.value):
                self.side_channel_headers.append(node.lineno)
        elif isinstance(func, ast.Name) and func.id == "header":
            self.side_channel_headers.append(node.lineno)

        if _tail(func) in RESPONSE_WRAPPERS:
            self.response_calls.append(_response_call(node))
        self.generic_visit(node)


def _caught_kinds(handlers: list[ast.ExceptHandler]) -> frozenset[str]:
    """Error kinds the except clauses of one try statement catch."""
    kinds: set[str] = set()
    for handler in handlers:
        if handler.type is None:
            kinds.add(CATCH_ALL)
            continue
        types = handler.type.elts if isinstance(handler.type, ast.Tuple) else [handler.type]
        for node in types:
            name = _tail(node)
            kinds.add(CATCH_ALL if name in CATCH_ALL_KINDS else name)
    return frozenset(kinds)


def _call_argument(node: ast.Call, position: int, keyword: str) -> ast.expr | None:
    if len(node.args) > position:
        return node.args[position]
    for kw in node.keywords:
        if kw.arg == keyword:
            return kw.value
    return None


def _response_call(node: ast.Call) -> ResponseCall:
    call = ResponseCall(line=node.lineno)
    data = _call_argument(node, 0, "data")
    if isinstance(data, ast.List) and not data.elts:
        call.empty_list = True
    elif isinstance(data, ast.Dict) and not data.keys:
        call.empty_dict = True
    elif isinstance(data, ast.Call) and not data.args and not data.keywords:
        call.empty_list = _tail(data.func) == "list"
        call.empty_dict = _tail(data.func) == "dict"

    status = _call_argument(node, 1, "status")
    if status is not None:
        call.status_given = True
        try:
            call.status = parse_status_token(_dotted(status))
        except UnknownStatusError:
            call.status = None
    return call


def _annotation_type(node: ast.expr | None) -> TypeSpec:
    """Best-effort type for a parameter without an @param entry."""
    if isinstance(node, ast.Name) and node.id in PYTHON_TYPES:
        return PrimitiveType(type=PYTHON_TYPES[node.id])  # type: ignore[arg-type]
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        sides = [node.left, node.right]
        others = [s for s in sides if not (isinstance(s, ast.Constant) and s.value is None)]
        if len(others) == 1:
            inner = _annotation_type(others[0])
            if isinstance(inner, PrimitiveType) and inner.type != "mixed":
                return NullableType(of=inner)
    if isinstance(node, ast.Subscript) and _tail(node.value) == "Optional":
        inner = _annotation_type(node.slice)
        if isinstance(inner, PrimitiveType) and inner.type != "mixed":
            return NullableType(of=inner)
    return PrimitiveType(type="mixed")


def _signature(
    func: ast.FunctionDef | ast.AsyncFunctionDef,
) -> list[tuple[str, bool, ast.expr | None, int]]:
    """Handler arguments as (name, has_default, annotation, line), without self."""
    args = func.args
    positional = [*args.posonlyargs, *args.args]
    first_default = len(positional) - len(args.defaults)

    result = []
    for index, arg in enumerate(positional):
        if index == 0 and arg.arg in ("self", "cls"):
            continue
        result.append((arg.arg, index >= first_default, arg.annotation, arg.lineno))
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        result.append((arg.arg, default is not None, arg.annotation, arg.lineno))
    return result


def _route_arguments(decorator: ast.expr) -> tuple[str, str]:
    """Extract (verb, url) from an @api_route decorator.

    Raises:
        ValueError: If the decorator is not a call with literal verb and url
    """
    if not isinstance(decorator, ast.Call):
        msg = "@api_route must be called with a verb and a url"
        raise ValueError(msg)

    values: dict[str, ast.expr] = dict(zip(("verb", "url"), decorator.args))
    for kw in decorator.keywords:
        if kw.arg in ("verb", "url"):
            values[kw.arg] = kw.value

    literals: dict[str, str] = {}
    for name in ("verb", "url"):
        node = values.get(name)
        if node is None:
            msg = f"@api_route is missing the '{name}' argument"
            raise ValueError(msg)
        if not (isinstance(node, ast.Constant) and isinstance(node.value, str)):
            msg = f"@api_route '{name}' must be a string literal"
            raise ValueError(msg)
        literals[name] = node.value

    verb = literals["verb"].upper()
    if verb not in VALID_METHODS:
        msg = f"Invalid HTTP method '{literals['verb']}'"
        raise ValueError(msg)
    url = literals["url"]
    if not url.startswith("/"):
        msg = f"Route url '{url}' must start with '/'"
        raise ValueError(msg)
    return verb, url


def _collect_imports(doc: DocBlock, result: ParsedUnit) -> None:
    for tag in doc.tagged("import"):
        text = tag.text.split(" from ", 1)[0]
        names = [name for name in re.split(r"[\s,]+", text) if name]
        if not names:
            result.diagnostics.error(
                result.unit.relative, "@import needs at least one type name", line=tag.line
            )
        for name in names:
            result.imports.setdefault(name, tag.line)


class _OperationParser:
    """Builds one Operation from a decorated handler."""

    def __init__(
        self,
        func: ast.FunctionDef | ast.AsyncFunctionDef,
        operation: Operation,
        diagnostics: DiagnosticCollection,
    ) -> None:
        self.func = func
        self.operation = operation
        self.diagnostics = diagnostics
        self.ok = True

    def error(self, message: str, *, line: int | None, subject: str | None = None) -> None:
        self.ok = False
        self.diagnostics.error(
            self.operation.unit,
            message,
            operation=self.operation.operation_id,
            subject=subject,
            line=line,
            rule="syntax",
        )

    def parse(self, doc: DocBlock) -> Operation | None:
        op = self.operation
        op.summary = doc.summary
        op.description = doc.description

        self._parse_parameters(doc)
        self._parse_responses(doc)
        self._parse_errors(doc)
        return op if self.ok else None

    def _parse_parameters(self, doc: DocBlock) -> None:
        op = self.operation
        signature = _signature(self.func)
        signature_names = {name for name, _, _, _ in signature}

        documented: dict[str, tuple[TypeSpec, str, int]] = {}
        for tag in doc.tagged("param"):
            try:
                spec, rest = parse_leading_type(tag.text)
            except TypeSyntaxError as e:
                self.error(f"Invalid @param type: {e}", line=tag.line)
                continue

            match = PARAM_NAME_RE.match(rest)
            if match is None:
                # '@param title Some text' names the parameter where the type belongs
                hint = format_type(spec)
                if hint in signature_names:
                    self.error("@param is missing a type", line=tag.line, subject=hint)
                else:
                    self.error("@param is missing a parameter name", line=tag.line)
                continue

            name, description = match.group(1), match.group(2).strip()
            if name not in signature_names and format_type(spec) in signature_names:
                self.error("@param is missing a type", line=tag.line, subject=format_type(spec))
                continue
            if not is_simple_parameter_type(spec):
                self.error(
                    f"Unsupported parameter type '{format_type(spec)}'; use a primitive, "
                    "a nullable primitive or a named type",
                    line=tag.line,
                    subject=name,
                )
                continue
            documented[name] = (spec, description, tag.line)

        path_params = PATH_PARAM_RE.findall(op.url)
        for name in path_params:
            if name not in signature_names:
                self.error(
                    "Route parameter has no matching handler argument",
                    line=op.line,
                    subject=name,
                )

        for name, has_default, annotation, line in signature:
            if name in path_params:
                location = "path"
            elif op.verb in QUERY_VERBS:
                location = "query"
            else:
                location = "body"

            if name in documented:
                spec, description, line = documented[name]
            else:
                spec, description = _annotation_type(annotation), ""
            op.parameters.append(
                Parameter(
                    name=name,
                    type=spec,
                    has_default=has_default,
                    description=description,
                    location=location,
                    line=line,
                )
            )

        op.undeclared_params = {
            name: line for name, (_, _, line) in documented.items() if name not in signature_names
        }

    def _parse_responses(self, doc: DocBlock) -> None:
        op = self.operation
        for tag in doc.tagged("return"):
            if op.return_line is None:
                op.return_line = tag.line
            try:
                op.responses.extend(parse_return(tag.text))
            except TypeSyntaxError as e:
                self.error(f"Invalid @return type: {e}", line=tag.line)

        for status_line in doc.status_lines:
            try:
                status = parse_status_token(status_line.token)
            except UnknownStatusError as e:
                self.error(str(e), line=status_line.line, subject=status_line.token)
                continue
            op.status_descriptions[status] = status_line.text
            op.status_lines[status] = status_line.line

    def _parse_errors(self, doc: DocBlock) -> None:
        op = self.operation
        for tag in doc.tagged("throws"):
            match = THROWS_RE.match(tag.text)
            if match is None:
                self.error("@throws needs an error kind", line=tag.line)
                continue
            kind = match.group(1).rsplit(".", 1)[-1]
            op.errors.append(ThrownError(kind, match.group(2).strip(), tag.line))

        facts = _BodyFacts.collect(self.func)
        op.side_channel_headers = facts.side_channel_headers
        op.response_calls = facts.response_calls
        op.raise_lines = facts.raises


def _parse_operation(
    func: ast.FunctionDef | ast.AsyncFunctionDef,
    class_name: str,
    is_ocs: bool,
    result: ParsedUnit,
) -> Operation | None:
    decorators = {_tail(d): d for d in func.decorator_list}
    if "ignore_openapi" in decorators:
        logger.debug("Skipping %s.%s: ignored", class_name, func.name)
        return None
    route = decorators.get("api_route")
    if route is None:
        return None

    slug = controller_slug(class_name)
    operation_id = f"{slug}-{func.name}"
    unit = result.unit.relative
    try:
        verb, url = _route_arguments(route)
    except ValueError as e:
        result.diagnostics.error(
            unit, str(e), operation=operation_id, line=route.lineno, rule="syntax"
        )
        return None

    public = "public_page" in decorators
    operation = Operation(
        operation_id=operation_id,
        controller=class_name,
        unit=unit,
        verb=verb,
        url=url,
        line=func.lineno,
        is_ocs=is_ocs,
        public=public,
        admin_required=not (public or "no_admin_required" in decorators),
        tag=slug,
    )
    return _OperationParser(func, operation, result.diagnostics).parse(_docstring(func))


def _parse_controllers(tree: ast.Module, result: ParsedUnit, config: ExtractorConfig) -> None:
    _collect_imports(_docstring(tree), result)

    for node in tree.body:
        if not isinstance(node, ast.ClassDef):
            continue
        bases = {_tail(base) for base in node.bases}
        class_doc = _docstring(node)
        decorators = {_tail(d) for d in node.decorator_list}
        if not (
            bases & set(config.controller_bases)
            or class_doc.has_tag("controller")
            or "controller" in decorators
        ):
            continue

        _collect_imports(class_doc, result)
        is_ocs = bool(bases & set(config.ocs_bases))
        for item in node.body:
            if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                operation = _parse_operation(item, node.name, is_ocs, result)
                if operation is not None:
                    result.operations.append(operation)


def _parse_definitions(tree: ast.Module, result: ParsedUnit) -> None:
    unit = result.unit.relative
    holders: list[ast.AST] = [tree]
    holders.extend(node for node in tree.body if isinstance(node, ast.ClassDef))

    for holder in holders:
        for tag in _docstring(holder).tagged("type"):
            match = TYPE_DECL_RE.match(tag.text)
            if match is None:
                result.diagnostics.error(
                    unit,
                    "Malformed @type declaration; expected '@type Name = <type>'",
                    line=tag.line,
                    rule="syntax",
                )
                continue

            name, expression = match.group(1), match.group(2)
            try:
                shape = parse_type(expression)
            except TypeSyntaxError as e:
                result.diagnostics.error(
                    unit, f"Invalid type: {e}", subject=name, line=tag.line, rule="syntax"
                )
                continue
            result.definitions.append(TypeDefinition(name, shape, unit, tag.line))


def _parse_capabilities(tree: ast.Module, result: ParsedUnit, config: ExtractorConfig) -> None:
    unit = result.unit.relative
    _collect_imports(_docstring(tree), result)

    for node in tree.body:
        if not isinstance(node, ast.ClassDef):
            continue
        if not {_tail(base) for base in node.bases} & set(config.capability_bases):
            continue
        _collect_imports(_docstring(node), result)

        method = next(
            (
                item
                for item in node.body
                if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef))
                and item.name == "get_capabilities"
            ),
            None,
        )
        if method is None:
            result.diagnostics.error(
                unit, "Capabilities class has no get_capabilities method",
                subject=node.name, line=node.lineno, rule="syntax",
            )
            continue

        returns = _docstring(method).tagged("return")
        if not returns:
            result.diagnostics.error(
                unit, "get_capabilities is missing a @return annotation",
                subject=node.name, line=method.lineno, rule="missing-return",
            )
            continue
        try:
            shape = parse_type(returns[0].text)
        except TypeSyntaxError as e:
            result.diagnostics.error(
                unit, f"Invalid @return type: {e}", subject=node.name,
                line=returns[0].line, rule="syntax",
            )
            continue
        if not isinstance(shape, RecordType):
            result.diagnostics.error(
                unit, "Capabilities must be declared as a record type",
                subject=node.name, line=returns[0].line, rule="syntax",
            )
            continue
        result.capabilities.append(CapabilityDeclaration(shape, unit, returns[0].line))


def parse_unit(unit: SourceUnit, config: ExtractorConfig) -> ParsedUnit:
    """Parse one classified source unit.

    Returns:
        ParsedUnit with operations, definitions, capabilities, imports and
        the structural diagnostics found while parsing
    """
    result = ParsedUnit(unit=unit)
    if unit.kind is UnitKind.OTHER:
        return result

    try:
        tree = ast.parse(unit.text, filename=unit.relative)
    except SyntaxError as e:
        result.diagnostics.error(
            unit.relative, f"Invalid Python syntax: {e.msg}", line=e.lineno, rule="syntax"
        )
        return result

    if unit.kind is UnitKind.DEFINITIONS:
        _parse_definitions(tree, result)
    elif unit.kind is UnitKind.CONTROLLER:
        _parse_controllers(tree, result, config)
    elif unit.kind is UnitKind.CAPABILITIES:
        _parse_capabilities(tree, result, config)

    logger.debug(
        "Parsed %s: %d operations, %d definitions, %d capabilities",
        unit.relative,
        len(result.operations),
        len(result.definitions),
        len(result.capabilities),
    )
    return result
