"""Parser for the annotation type-expression micro-grammar.

    union    := item ('|' item)*
    item     := '?' item | primary
    primary  := IDENT ['<' args '>'] | '{' [field (',' field)* [',']] '}'
    field    := (IDENT | QUOTED) ['?'] ':' union
    args     := arg (',' arg)*

Response wrappers (``DataResponse<STATUS, BODY, HEADERS>``) are only
accepted by :func:`parse_return`.
"""

from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus
import re

from openapi_extractor.annotations.types import (
    KEYWORD_ALIASES,
    KEYWORDS,
    ListType,
    MapType,
    NullableType,
    PrimitiveType,
    RecordField,
    RecordType,
    RefType,
    ResponseType,
    TypeSpec,
    UnionType,
)

RESPONSE_WRAPPERS = frozenset({"DataResponse", "JSONResponse"})

# Namespaces accepted in front of symbolic status codes (Http.NOT_FOUND)
STATUS_NAMESPACES = frozenset({"Http", "HTTPStatus"})

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<int>\d+)
  | (?P<ident>[A-Za-z_][\w-]*(?:\.[A-Za-z_]\w*)*)
  | (?P<quoted>'[^']*'|"[^"]*")
  | (?P<punct>[<>{},:|?])
    """,
    re.VERBOSE,
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")


class TypeSyntaxError(ValueError):
    """Raised for malformed type expressions."""

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        super().__init__(message)


class UnterminatedTypeError(TypeSyntaxError):
    """Raised when input ends inside '<...>' or '{...}'."""


class UnknownStatusError(TypeSyntaxError):
    """Raised for status-code tokens that are not HTTP statuses."""


@dataclass(frozen=True)
class Token:
    kind: str  # int | ident | quoted | punct | eof
    value: str
    start: int
    end: int


def _scan(text: str, pos: int) -> Token:
    """Return the token starting at or after pos."""
    while True:
        if pos >= len(text):
            return Token("eof", "", len(text), len(text))
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            msg = f"Unexpected character '{text[pos]}'"
            raise TypeSyntaxError(msg, pos)
        kind = match.lastgroup or ""
        if kind != "ws":
            return Token(kind, match.group(), match.start(), match.end())
        pos = match.end()


def parse_status_token(token: str) -> int:
    """Convert '404', 'Http.NOT_FOUND' or 'Http.STATUS_NOT_FOUND' to a code.

    Raises:
        UnknownStatusError: If the token names no HTTP status
    """
    if token.isdigit():
        try:
            return HTTPStatus(int(token)).value
        except ValueError:
            raise UnknownStatusError(f"Unknown status code '{token}'") from None

    namespace, _, name = token.rpartition(".")
    if namespace in STATUS_NAMESPACES:
        name = name.removeprefix("STATUS_")
        try:
            return HTTPStatus[name].value
        except KeyError:
            pass
    raise UnknownStatusError(f"Unknown status code '{token}'")


class _TypeParser:
    """Recursive-descent parser that lexes lazily.

    Text after the expression (an '@param' name and description) is never
    tokenized, so it may contain any characters.
    """

    def __init__(self, text: str, allow_responses: bool = False) -> None:
        self.text = text
        self.allow_responses = allow_responses
        self.depth = 0
        self._current = _scan(text, 0)

    @property
    def current(self) -> Token:
        return self._current

    def advance(self) -> Token:
        token = self._current
        if token.kind != "eof":
            self._current = _scan(self.text, token.end)
        return token

    def at(self, value: str) -> bool:
        return self.current.kind == "punct" and self.current.value == value

    def expect(self, value: str, context: str) -> Token:
        if self.at(value):
            return self.advance()
        if self.current.kind == "eof":
            msg = f"Unterminated {context}: expected '{value}'"
            raise UnterminatedTypeError(msg, self.current.start)
        msg = f"Expected '{value}' in {context}, found '{self.current.value}'"
        raise TypeSyntaxError(msg, self.current.start)

    def parse_union(self):
        items = [self.parse_item()]
        while self.at("|"):
            self.advance()
            items.append(self.parse_item())
        return _combine(items)

    def parse_item(self):
        if self.at("?"):
            self.advance()
            inner = self.parse_item()
            if isinstance(inner, ResponseType):
                msg = "Response types cannot be nullable"
                raise TypeSyntaxError(msg, self.current.start)
            if isinstance(inner, NullableType):
                return inner
            return NullableType(of=inner)
        return self.parse_primary()

    def parse_primary(self):
        token = self.current
        if self.at("{"):
            return self.parse_record()
        if token.kind == "eof":
            msg = "Unterminated type expression: expected a type"
            raise UnterminatedTypeError(msg, token.start)
        if token.kind != "ident":
            msg = f"Expected a type, found '{token.value}'"
            raise TypeSyntaxError(msg, token.start)
        self.advance()

        if token.value in RESPONSE_WRAPPERS:
            return self.parse_response(token)

        name = KEYWORD_ALIASES.get(token.value, token.value)
        if name in KEYWORDS:
            return self.parse_keyword(token, name)

        if not _IDENTIFIER_RE.match(token.value):
            msg = f"Invalid type name '{token.value}'"
            raise TypeSyntaxError(msg, token.start)
        if self.at("<"):
            msg = f"Unknown generic type '{token.value}'"
            raise TypeSyntaxError(msg, token.start)
        return RefType(name=token.value)

    def parse_keyword(self, token: Token, name: str):
        args = self.parse_args(token.value) if self.at("<") else []

        if name in ("list", "dict"):
            if token.value == "array" and len(args) == 1:
                return ListType(of=args[0])
            if name == "list":
                if len(args) > 1:
                    msg = "list<...> takes exactly one type argument"
                    raise TypeSyntaxError(msg, token.start)
                return ListType(of=args[0] if args else PrimitiveType(type="mixed"))
            if not args:
                return MapType(key=PrimitiveType(type="string"), value=PrimitiveType(type="mixed"))
            if len(args) != 2:  # noqa: PLR2004
                msg = f"{token.value}<...> takes a key and a value type"
                raise TypeSyntaxError(msg, token.start)
            key, value = args
            if not (isinstance(key, PrimitiveType) and key.type in ("string", "int")):
                msg = f"Map key must be 'string' or 'int' in {token.value}<...>"
                raise TypeSyntaxError(msg, token.start)
            return MapType(key=key, value=value)

        if args:
            msg = f"Primitive type '{token.value}' takes no type arguments"
            raise TypeSyntaxError(msg, token.start)
        return PrimitiveType(type=name)  # type: ignore[arg-type]

    def parse_nested(self):
        """Parse a union below the top level, where responses are invalid."""
        self.depth += 1
        try:
            return self.parse_union()
        finally:
            self.depth -= 1

    def parse_args(self, owner: str) -> list:
        self.expect("<", f"{owner}<...>")
        args = [self.parse_nested()]
        while self.at(","):
            self.advance()
            args.append(self.parse_nested())
        self.expect(">", f"{owner}<...>")
        return args

    def parse_record(self) -> RecordType:
        self.expect("{", "record")
        fields: dict[str, RecordField] = {}
        while not self.at("}"):
            token = self.current
            if token.kind == "eof":
                msg = "Unterminated record: expected '}'"
                raise UnterminatedTypeError(msg, token.start)
            if token.kind == "ident" and "." not in token.value:
                name = token.value
            elif token.kind == "quoted":
                name = token.value[1:-1]
            else:
                msg = f"Expected a field name, found '{token.value}'"
                raise TypeSyntaxError(msg, token.start)
            self.advance()

            optional = False
            if self.at("?"):
                self.advance()
                optional = True
            self.expect(":", f"record field '{name}'")
            if name in fields:
                msg = f"Duplicate record field '{name}'"
                raise TypeSyntaxError(msg, token.start)
            fields[name] = RecordField(type=self.parse_nested(), optional=optional)

            if not self.at(","):
                break
            self.advance()
        self.expect("}", "record")
        return RecordType(fields=fields)

    def parse_response(self, wrapper: Token) -> ResponseType:
        if not self.allow_responses or self.depth:
            msg = f"{wrapper.value} is only allowed at the top of @return annotations"
            raise TypeSyntaxError(msg, wrapper.start)
        context = f"{wrapper.value}<...>"
        self.expect("<", context)

        status_token = self.advance()
        if status_token.kind == "eof":
            msg = f"Unterminated {context}: expected a status code"
            raise UnterminatedTypeError(msg, status_token.start)
        if status_token.kind not in ("int", "ident"):
            msg = f"Expected a status code in {context}, found '{status_token.value}'"
            raise TypeSyntaxError(msg, status_token.start)
        status = parse_status_token(status_token.value)

        self.expect(",", context)
        body = self.parse_nested()
        headers = RecordType()
        if self.at(","):
            self.advance()
            header_token = self.current
            parsed = self.parse_nested()
            if not isinstance(parsed, RecordType):
                msg = f"Headers of {context} must be a record"
                raise TypeSyntaxError(msg, header_token.start)
            headers = parsed
        self.expect(">", context)
        return ResponseType(wrapper=wrapper.value, status=status, body=body, headers=headers)


def _combine(items: list):
    """Fold union branches, turning 'T|null' into a nullable type."""
    if len(items) == 1:
        return items[0]

    responses = [item for item in items if isinstance(item, ResponseType)]
    if responses:
        if len(responses) != len(items):
            msg = "A return union cannot mix response and plain types"
            raise TypeSyntaxError(msg)
        return responses

    has_null = any(isinstance(i, PrimitiveType) and i.type == "null" for i in items)
    options = []
    for item in items:
        if isinstance(item, PrimitiveType) and item.type == "null":
            continue
        if isinstance(item, NullableType):
            has_null = True
            item = item.of
        if item not in options:
            options.append(item)

    if not options:
        return PrimitiveType(type="null")
    combined = options[0] if len(options) == 1 else UnionType(options=options)
    return NullableType(of=combined) if has_null else combined


def _finish(parser: _TypeParser):
    if parser.current.kind != "eof":
        token = parser.current
        msg = f"Unexpected '{token.value}' after type expression"
        raise TypeSyntaxError(msg, token.start)


def parse_type(text: str) -> TypeSpec:
    """Parse a complete type expression.

    Raises:
        TypeSyntaxError: If text is not exactly one type expression
    """
    parser = _TypeParser(text)
    result = parser.parse_union()
    _finish(parser)
    return result


def parse_leading_type(text: str) -> tuple[TypeSpec, str]:
    """Parse a type expression at the start of text.

    Returns:
        The type and the remaining text (e.g. '@param' name and description)
    """
    parser = _TypeParser(text)
    result = parser.parse_union()
    return result, text[parser.current.start :].strip()


def parse_return(text: str) -> list[ResponseType]:
    """Parse an ordered union of response wrappers.

    Raises:
        TypeSyntaxError: If any branch is not a response wrapper
    """
    parser = _TypeParser(text, allow_responses=True)
    result = parser.parse_union()
    _finish(parser)
    if isinstance(result, ResponseType):
        return [result]
    if isinstance(result, list):
        return result
    msg = "Expected a response type such as DataResponse<200, BODY, HEADERS>"
    raise TypeSyntaxError(msg, 0)
