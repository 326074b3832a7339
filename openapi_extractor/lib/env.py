"""Environment helpers for the extractor tooling."""

from __future__ import annotations

from pathlib import Path

from openapi_extractor.settings import get_settings


def get_project_root() -> Path:
    """Return the project root, honoring OPENAPI_EXTRACTOR_ROOT overrides."""

    override = get_settings().root
    if override:
        return Path(override).resolve()
    return Path.cwd().resolve()


def relative_to_root(path: Path, root: Path) -> str:
    """Convert a path to a POSIX string relative to the project root."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
