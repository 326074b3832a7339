"""Type system for annotation type expressions.

Defines the shapes an annotation can describe:
- Primitives: string, int, float, bool, null, mixed
- Complex: nullable, list, dict (keyed map), record, union
- Named references into the definitions registry
- Response entries, only valid in return position
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

PRIMITIVE_TYPES = Literal["string", "int", "float", "bool", "null", "mixed"]

# Reserved at build time; any other identifier is a named reference
KEYWORDS = frozenset({"string", "int", "float", "bool", "null", "mixed", "list", "dict"})
KEYWORD_ALIASES = {
    "str": "string",
    "integer": "int",
    "boolean": "bool",
    "number": "float",
    "array": "dict",
}
RESERVED_WORDS = KEYWORDS | frozenset(KEYWORD_ALIASES)

SCHEMA_REF_PREFIX = "#/components/schemas/"


class PrimitiveType(BaseModel):
    """A primitive type like int, string, bool, etc."""

    kind: Literal["primitive"] = "primitive"
    type: PRIMITIVE_TYPES


class NullableType(BaseModel):
    """A nullable type wrapping another type."""

    kind: Literal["nullable"] = "nullable"
    of: "TypeSpec"  # noqa: UP037 - Forward reference needed for recursion


class ListType(BaseModel):
    """An ordered collection with inner element type."""

    kind: Literal["list"] = "list"
    of: "TypeSpec"  # noqa: UP037


class MapType(BaseModel):
    """A keyed collection; serialises as a JSON object."""

    kind: Literal["map"] = "map"
    key: PrimitiveType
    value: "TypeSpec"  # noqa: UP037

    @field_validator("key")
    @classmethod
    def validate_key_type(cls, v: PrimitiveType) -> PrimitiveType:
        """Ensure map keys are strings or integers."""
        if v.type not in ("string", "int"):
            msg = "Map key must be 'string' or 'int'"
            raise ValueError(msg)
        return v


class RecordField(BaseModel):
    """A named field of a record."""

    type: "TypeSpec"  # noqa: UP037
    optional: bool = False


class RecordType(BaseModel):
    """An inline anonymous record; {} is the empty object."""

    kind: Literal["record"] = "record"
    fields: dict[str, RecordField] = Field(default_factory=dict)


class UnionType(BaseModel):
    """A union of two or more non-null types."""

    kind: Literal["union"] = "union"
    options: list["TypeSpec"]  # noqa: UP037

    @field_validator("options")
    @classmethod
    def validate_options(cls, v: list) -> list:
        if len(v) < 2:  # noqa: PLR2004 - a union needs two branches
            msg = "Union must have at least 2 options"
            raise ValueError(msg)
        return v


class RefType(BaseModel):
    """A reference to a named shared type.

    The resolver binds ``target`` to the TypeDefinition in place; the
    structural shape itself is never copied.
    """

    kind: Literal["ref"] = "ref"
    name: str
    target: Any = Field(default=None, exclude=True, repr=False)

    @property
    def is_bound(self) -> bool:
        return self.target is not None

    def __eq__(self, other: object) -> bool:
        # Definitions may be recursive; compare by name only
        return isinstance(other, RefType) and other.name == self.name


class ResponseType(BaseModel):
    """One branch of a return union: status code, body and headers."""

    kind: Literal["response"] = "response"
    wrapper: str
    status: int
    body: "TypeSpec"  # noqa: UP037
    headers: RecordType = Field(default_factory=RecordType)

    @property
    def has_content(self) -> bool:
        return not (isinstance(self.body, PrimitiveType) and self.body.type == "null")


# TypeSpec is a discriminated union of all type variants
TypeSpec = Annotated[
    PrimitiveType | NullableType | ListType | MapType | RecordType | UnionType | RefType,
    Field(discriminator="kind"),
]

# Rebuild models to resolve forward references
NullableType.model_rebuild()
ListType.model_rebuild()
MapType.model_rebuild()
RecordField.model_rebuild()
RecordType.model_rebuild()
UnionType.model_rebuild()
ResponseType.model_rebuild()


def iter_types(spec: Any) -> Iterator[Any]:
    """Yield spec and every type nested in it, depth first.

    Named references are not followed into their targets.
    """
    yield spec
    if isinstance(spec, (NullableType, ListType)):
        yield from iter_types(spec.of)
    elif isinstance(spec, MapType):
        yield from iter_types(spec.value)
    elif isinstance(spec, RecordType):
        for field in spec.fields.values():
            yield from iter_types(field.type)
    elif isinstance(spec, UnionType):
        for option in spec.options:
            yield from iter_types(option)
    elif isinstance(spec, ResponseType):
        yield from iter_types(spec.body)
        yield from iter_types(spec.headers)


def iter_refs(spec: Any) -> Iterator[RefType]:
    """Yield every named reference nested in spec."""
    for node in iter_types(spec):
        if isinstance(node, RefType):
            yield node


def unwrap(spec: Any) -> Any:
    """Strip nullability and follow bound references to the structural shape."""
    seen: set[int] = set()
    while True:
        if isinstance(spec, NullableType):
            spec = spec.of
        elif isinstance(spec, RefType) and spec.is_bound and id(spec) not in seen:
            seen.add(id(spec))
            spec = spec.target.shape
        else:
            return spec


def is_object_shaped(spec: Any) -> bool:
    """Check if a type serialises as a JSON object (record or keyed map)."""
    return isinstance(unwrap(spec), (RecordType, MapType))


def is_list_shaped(spec: Any) -> bool:
    """Check if a type serialises as a JSON array."""
    return isinstance(unwrap(spec), ListType)


def is_simple_parameter_type(spec: Any) -> bool:
    """Parameters may be primitives, nullable primitives or named references."""
    if isinstance(spec, NullableType):
        spec = spec.of
    return isinstance(spec, (PrimitiveType, RefType))


def format_type(spec: Any) -> str:
    """Render a type back into annotation syntax for messages."""
    if isinstance(spec, PrimitiveType):
        return spec.type
    if isinstance(spec, NullableType):
        return f"?{format_type(spec.of)}"
    if isinstance(spec, ListType):
        return f"list<{format_type(spec.of)}>"
    if isinstance(spec, MapType):
        return f"dict<{spec.key.type}, {format_type(spec.value)}>"
    if isinstance(spec, RecordType):
        fields = ", ".join(
            f"{name}{'?' if field.optional else ''}: {format_type(field.type)}"
            for name, field in spec.fields.items()
        )
        return "{" + fields + "}"
    if isinstance(spec, UnionType):
        return "|".join(format_type(option) for option in spec.options)
    if isinstance(spec, RefType):
        return spec.name
    if isinstance(spec, ResponseType):
        return (
            f"{spec.wrapper}<{spec.status}, {format_type(spec.body)}, "
            f"{format_type(spec.headers)}>"
        )

    msg = f"Unknown type spec: {spec}"
    raise ValueError(msg)


def type_spec_to_json_schema(spec: Any) -> dict[str, Any]:
    """Convert TypeSpec to an OpenAPI 3.0 schema."""
    if isinstance(spec, PrimitiveType):
        mapping: dict[str, dict[str, Any]] = {
            "string": {"type": "string"},
            "int": {"type": "integer", "format": "int64"},
            "float": {"type": "number", "format": "double"},
            "bool": {"type": "boolean"},
            "null": {"nullable": True},
            "mixed": {},
        }
        return dict(mapping[spec.type])

    if isinstance(spec, NullableType):
        inner = type_spec_to_json_schema(spec.of)
        if "$ref" in inner:
            # Siblings of $ref are ignored in OpenAPI 3.0
            return {"nullable": True, "allOf": [inner]}
        return {**inner, "nullable": True}

    if isinstance(spec, ListType):
        return {"type": "array", "items": type_spec_to_json_schema(spec.of)}

    if isinstance(spec, MapType):
        return {
            "type": "object",
            "additionalProperties": type_spec_to_json_schema(spec.value),
        }

    if isinstance(spec, RecordType):
        schema: dict[str, Any] = {"type": "object"}
        required = [name for name, field in spec.fields.items() if not field.optional]
        if required:
            schema["required"] = required
        if spec.fields:
            schema["properties"] = {
                name: type_spec_to_json_schema(field.type) for name, field in spec.fields.items()
            }
        return schema

    if isinstance(spec, UnionType):
        return {"anyOf": [type_spec_to_json_schema(option) for option in spec.options]}

    if isinstance(spec, RefType):
        return {"$ref": f"{SCHEMA_REF_PREFIX}{spec.name}"}

    msg = f"Unknown type spec: {spec}"
    raise ValueError(msg)
