"""Project configuration loaded from openapi-extractor.yaml.

The file is optional; every field has a default derived from the project
root. Invalid YAML or unknown keys abort the run with a ConfigError.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from openapi_extractor.errors import ConfigError

CONFIG_FILE_NAME = "openapi-extractor.yaml"

APP_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

# Error kinds whose status code is known without looking at the handler
DEFAULT_ERROR_STATUSES = {
    "BadRequestError": 400,
    "UnauthorizedError": 401,
    "ForbiddenError": 403,
    "NotFoundError": 404,
    "ConflictError": 409,
    "PreconditionFailedError": 412,
    "TooManyRequestsError": 429,
}


class ExtractorConfig(BaseModel):
    """Settings for one project's extraction run."""

    app_id: str
    type_prefix: str | None = None
    title: str | None = None
    version: str = "0.0.1"
    description: str = ""
    output: str = "openapi.json"
    definitions_file: str = "response_definitions.py"
    controller_bases: list[str] = Field(
        default_factory=lambda: ["Controller", "ApiController", "OCSController"]
    )
    ocs_bases: list[str] = Field(default_factory=lambda: ["OCSController"])
    capability_bases: list[str] = Field(
        default_factory=lambda: ["ICapability", "IPublicCapability"]
    )
    exclude: list[str] = Field(
        default_factory=lambda: [
            "tests",
            "vendor",
            "node_modules",
            "__pycache__",
            "venv",
            "build",
            "dist",
        ]
    )
    error_statuses: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_ERROR_STATUSES))
    path_prefix: str = ""
    strict: bool = False

    model_config = {"extra": "forbid"}

    @field_validator("app_id")
    @classmethod
    def validate_app_id(cls, v: str) -> str:
        """Ensure the app id is a lowercase identifier."""
        if not APP_ID_PATTERN.match(v):
            msg = f"App id '{v}' must be lowercase letters, digits and underscores"
            raise ValueError(msg)
        return v

    @field_validator("path_prefix")
    @classmethod
    def normalize_path_prefix(cls, v: str) -> str:
        """Strip the trailing slash so prefix + url never doubles it."""
        v = v.rstrip("/")
        if v and not v.startswith("/"):
            v = "/" + v
        return v

    @property
    def prefix(self) -> str:
        """Prefix every named type must start with."""
        if self.type_prefix:
            return self.type_prefix
        return "".join(part.capitalize() for part in self.app_id.split("_"))

    @property
    def api_title(self) -> str:
        return self.title or self.app_id

    def output_path(self, root: Path) -> Path:
        return root / self.output


def default_app_id(root: Path) -> str:
    """Derive an app id from the project directory name."""
    return re.sub(r"[^a-z0-9_]", "_", root.name.lower()).strip("_")


def format_pydantic_error(error: ValidationError, context: str = "") -> str:
    """Format Pydantic validation error for human readability."""
    messages = []
    for err in error.errors():
        loc = ".".join(str(x) for x in err["loc"])
        msg = err["msg"]
        if context:
            messages.append(f"{context}.{loc}: {msg}")
        else:
            messages.append(f"{loc}: {msg}")
    return "\n".join(messages)


def load_yaml_file(file_path: Path) -> dict[str, Any]:
    """Load and parse a YAML mapping."""
    try:
        with file_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}", str(file_path)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read file: {e}", str(file_path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping", str(file_path))
    return data


def load_config(root: Path, overrides: dict[str, Any] | None = None) -> ExtractorConfig:
    """Load the project configuration, falling back to defaults.

    Args:
        root: Project root directory
        overrides: Values that take precedence over the file (CLI flags)

    Raises:
        ConfigError: If the file is unreadable or fails validation
    """
    config_file = root / CONFIG_FILE_NAME
    data = load_yaml_file(config_file) if config_file.exists() else {}
    data.setdefault("app_id", default_app_id(root))
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return ExtractorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(format_pydantic_error(e, "config"), str(config_file)) from e
