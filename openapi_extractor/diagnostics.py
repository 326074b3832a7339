"""Diagnostics collected across an extraction run.

Every stage appends to one shared collection instead of stopping at the
first defect, so a single run reports everything that is wrong.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import Enum


class Severity(str, Enum):
    """How serious a diagnostic is."""

    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Diagnostic:
    """A single annotation defect with enough location to fix it."""

    severity: Severity
    unit: str
    message: str
    operation: str | None = None
    subject: str | None = None  # parameter, status code, error kind or type name
    line: int | None = None
    rule: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        location = self.unit
        if self.line:
            location += f":{self.line}"
        parts = [location, self.severity.value]
        if self.operation:
            parts.append(f"[{self.operation}]")
        text = f"{self.subject}: {self.message}" if self.subject else self.message
        parts.append(text)
        if self.rule:
            parts.append(f"({self.rule})")
        return " ".join(parts)


@dataclass
class DiagnosticCollection:
    """Aggregates diagnostics from every pipeline stage."""

    items: list[Diagnostic] = field(default_factory=list)

    def add(self, diagnostic: Diagnostic) -> None:
        self.items.append(diagnostic)

    def error(self, unit: str, message: str, **location) -> None:
        self.add(Diagnostic(Severity.ERROR, unit, message, **location))

    def warning(self, unit: str, message: str, **location) -> None:
        self.add(Diagnostic(Severity.WARNING, unit, message, **location))

    def merge(self, other: DiagnosticCollection) -> None:
        self.items.extend(other.items)

    def has_errors(self) -> bool:
        return any(d.is_error for d in self.items)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.items if d.is_error]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.items if not d.is_error]

    def promote_warnings(self) -> DiagnosticCollection:
        """Return a copy in which every warning is an error (strict mode)."""
        return DiagnosticCollection(
            items=[replace(d, severity=Severity.ERROR) for d in self.items]
        )

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)
