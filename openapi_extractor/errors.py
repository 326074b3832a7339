"""Exceptions that abort an extraction run.

Annotation defects are never raised; they are collected as diagnostics.
Only conditions that make the run impossible end up here.
"""

from __future__ import annotations


class ExtractorError(Exception):
    """Base class for fatal extractor errors."""

    def __init__(self, message: str, file_path: str | None = None) -> None:
        self.file_path = file_path
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.file_path:
            return f"{self.file_path}: {self.message}"
        return self.message


class ConfigError(ExtractorError):
    """Raised when the project configuration is missing or invalid."""


class ScanError(ExtractorError):
    """Raised when the project tree cannot be listed or read."""


class BuildError(ExtractorError):
    """Raised when the builder is asked to run on invalid metadata."""
