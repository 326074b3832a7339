"""Data model shared by the extraction stages.

Parsed records are plain dataclasses; the type expressions they carry are
the pydantic models from :mod:`openapi_extractor.annotations.types`.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from openapi_extractor.annotations.types import RecordType, ResponseType, TypeSpec


class UnitKind(str, Enum):
    """Classification of a source unit."""

    CONTROLLER = "controller"
    DEFINITIONS = "definitions"
    CAPABILITIES = "capabilities"
    OTHER = "other"


@dataclass(frozen=True)
class SourceUnit:
    """One source file discovered by the scanner."""

    path: Path
    relative: str  # POSIX path relative to the project root
    kind: UnitKind
    text: str = field(repr=False, compare=False)


@dataclass
class Parameter:
    """A handler parameter."""

    name: str
    type: TypeSpec
    has_default: bool
    description: str
    location: str = "query"  # path | query | body
    line: int | None = None

    @property
    def required(self) -> bool:
        return self.location == "path" or not self.has_default


@dataclass
class ThrownError:
    """An error kind the handler can raise."""

    kind: str
    description: str
    line: int | None = None


@dataclass
class ResponseCall:
    """A literal response construction found in a handler body."""

    line: int
    status: int | None = None
    status_given: bool = False
    empty_list: bool = False
    empty_dict: bool = False

    @property
    def effective_status(self) -> int | None:
        if self.status_given:
            return self.status
        return 200


@dataclass
class Operation:
    """One exposed endpoint."""

    operation_id: str
    controller: str
    unit: str
    verb: str
    url: str
    line: int | None = None
    return_line: int | None = None
    is_ocs: bool = False
    admin_required: bool = True
    public: bool = False
    tag: str = ""
    summary: str = ""
    description: str = ""
    parameters: list[Parameter] = field(default_factory=list)
    responses: list[ResponseType] = field(default_factory=list)
    status_descriptions: dict[int, str] = field(default_factory=dict)
    status_lines: dict[int, int] = field(default_factory=dict)
    errors: list[ThrownError] = field(default_factory=list)
    undeclared_params: dict[str, int] = field(default_factory=dict)
    side_channel_headers: list[int] = field(default_factory=list)
    raise_lines: dict[str, int] = field(default_factory=dict)
    response_calls: list[ResponseCall] = field(default_factory=list)

    @property
    def statuses(self) -> list[int]:
        """Declared status codes in declaration order, without repeats."""
        return list(dict.fromkeys(response.status for response in self.responses))

    def responses_for(self, status: int) -> list[ResponseType]:
        return [response for response in self.responses if response.status == status]

    def iter_type_specs(self) -> Iterator[Any]:
        for parameter in self.parameters:
            yield parameter.type
        yield from self.responses


@dataclass
class TypeDefinition:
    """A named, reusable structural shape owned by the registry."""

    name: str
    shape: TypeSpec = field(repr=False)
    unit: str
    line: int | None = None


@dataclass
class CapabilityDeclaration:
    """The record returned by one capabilities class."""

    shape: RecordType
    unit: str
    line: int | None = None


@dataclass
class CapabilitySet:
    """Merged capabilities of the whole project."""

    shape: RecordType
    sources: list[str] = field(default_factory=list)


class DefinitionsRegistry:
    """Table of named types for one extraction run.

    Created empty at run start, populated from the definitions unit, then
    frozen before resolution begins.
    """

    def __init__(self, source: str | None = None) -> None:
        self.source = source
        self._definitions: dict[str, TypeDefinition] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def declare(self, definition: TypeDefinition) -> TypeDefinition | None:
        """Add a definition, returning the one it replaced (if any)."""
        if self._frozen:
            msg = f"Cannot declare '{definition.name}': registry is frozen"
            raise RuntimeError(msg)
        previous = self._definitions.get(definition.name)
        self._definitions[definition.name] = definition
        return previous

    def freeze(self) -> None:
        self._frozen = True

    def get(self, name: str) -> TypeDefinition | None:
        return self._definitions.get(name)

    def names(self) -> list[str]:
        return sorted(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[TypeDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)
