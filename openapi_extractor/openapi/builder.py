"""OpenAPI 3.0 document builder.

Assembles the document from resolved, validated operations:
- definitions registry -> components/schemas (each named type once)
- operations -> paths, grouped by url and keyed by lowercase verb
- capabilities -> the ``Capabilities`` schema
"""

from __future__ import annotations

import logging
from typing import Any

from openapi_extractor.annotations.types import (
    SCHEMA_REF_PREFIX,
    RecordField,
    ResponseType,
    type_spec_to_json_schema,
)
from openapi_extractor.config import ExtractorConfig
from openapi_extractor.diagnostics import DiagnosticCollection
from openapi_extractor.errors import BuildError
from openapi_extractor.models import CapabilitySet, DefinitionsRegistry, Operation, Parameter

logger = logging.getLogger(__name__)

OPENAPI_VERSION = "3.0.3"
JSON_MEDIA_TYPE = "application/json"

CAPABILITIES_SCHEMA = "Capabilities"
OCS_META_SCHEMA = "OCSMeta"

SECURITY_SCHEMES = {
    "basic_auth": {"type": "http", "scheme": "basic"},
    "bearer_auth": {"type": "http", "scheme": "bearer"},
}
AUTHENTICATED = [{"bearer_auth": []}, {"basic_auth": []}]


def ocs_meta_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "required": ["status", "statuscode"],
        "properties": {
            "status": {"type": "string"},
            "statuscode": {"type": "integer"},
            "message": {"type": "string"},
            "totalitems": {"type": "string"},
            "itemsperpage": {"type": "string"},
        },
    }


def ocs_envelope(data: dict[str, Any]) -> dict[str, Any]:
    """Wrap a body schema in the {ocs: {meta, data}} envelope."""
    return {
        "type": "object",
        "required": ["ocs"],
        "properties": {
            "ocs": {
                "type": "object",
                "required": ["meta", "data"],
                "properties": {
                    "meta": {"$ref": f"{SCHEMA_REF_PREFIX}{OCS_META_SCHEMA}"},
                    "data": data,
                },
            },
        },
    }


class OpenAPIBuilder:
    """Generate an OpenAPI 3.0 document from validated operations."""

    def __init__(
        self,
        config: ExtractorConfig,
        registry: DefinitionsRegistry,
        capabilities: CapabilitySet | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.capabilities = capabilities

    def build(
        self, operations: list[Operation], diagnostics: DiagnosticCollection
    ) -> dict[str, Any]:
        """Generate the complete document.

        Raises:
            BuildError: If the run has any error diagnostic
        """
        if diagnostics.has_errors():
            msg = f"Refusing to build with {len(diagnostics.errors)} error diagnostic(s)"
            raise BuildError(msg)

        info: dict[str, Any] = {"title": self.config.api_title, "version": self.config.version}
        if self.config.description:
            info["description"] = self.config.description

        document = {
            "openapi": OPENAPI_VERSION,
            "info": info,
            "paths": self._generate_paths(operations),
            "components": {
                "securitySchemes": SECURITY_SCHEMES,
                "schemas": self._generate_schemas(any(op.is_ocs for op in operations)),
            },
        }
        logger.info(
            "Built document with %d paths and %d schemas",
            len(document["paths"]),
            len(document["components"]["schemas"]),
        )
        return document

    def _generate_schemas(self, has_ocs: bool) -> dict[str, Any]:
        schemas: dict[str, Any] = {
            definition.name: type_spec_to_json_schema(definition.shape)
            for definition in self.registry
        }
        if self.capabilities is not None:
            schemas[CAPABILITIES_SCHEMA] = type_spec_to_json_schema(self.capabilities.shape)
        if has_ocs:
            schemas[OCS_META_SCHEMA] = ocs_meta_schema()
        return dict(sorted(schemas.items()))

    def _generate_paths(self, operations: list[Operation]) -> dict[str, Any]:
        paths: dict[str, dict[str, Any]] = {}
        for op in operations:
            path = f"{self.config.path_prefix}{op.url}"
            paths.setdefault(path, {})[op.verb.lower()] = self._operation_to_openapi(op)
        return {path: dict(sorted(verbs.items())) for path, verbs in sorted(paths.items())}

    def _operation_to_openapi(self, op: Operation) -> dict[str, Any]:
        openapi_op: dict[str, Any] = {
            "operationId": op.operation_id,
            "summary": op.summary,
            "tags": [op.tag],
        }
        if op.description:
            openapi_op["description"] = op.description
        openapi_op["security"] = [] if op.public else AUTHENTICATED

        parameters = [
            self._parameter_to_openapi(p) for p in op.parameters if p.location != "body"
        ]
        if parameters:
            openapi_op["parameters"] = parameters

        body = [p for p in op.parameters if p.location == "body"]
        if body:
            openapi_op["requestBody"] = self._request_body(body)

        openapi_op["responses"] = self._responses(op)

        errors = self._errors(op)
        if errors:
            openapi_op["x-errors"] = errors
        openapi_op["x-admin-required"] = op.admin_required
        return openapi_op

    @staticmethod
    def _parameter_to_openapi(parameter: Parameter) -> dict[str, Any]:
        return {
            "name": parameter.name,
            "in": parameter.location,
            "description": parameter.description,
            "required": parameter.required,
            "schema": type_spec_to_json_schema(parameter.type),
        }

    @staticmethod
    def _request_body(parameters: list[Parameter]) -> dict[str, Any]:
        properties = {}
        for parameter in parameters:
            schema = type_spec_to_json_schema(parameter.type)
            if "$ref" not in schema:
                schema["description"] = parameter.description
            properties[parameter.name] = schema

        schema: dict[str, Any] = {"type": "object"}
        required = [p.name for p in parameters if p.required]
        if required:
            schema["required"] = required
        schema["properties"] = properties
        return {
            "required": bool(required),
            "content": {JSON_MEDIA_TYPE: {"schema": schema}},
        }

    def _response_schema(self, op: Operation, responses: list[ResponseType]) -> dict | None:
        schemas: list[dict[str, Any]] = []
        for response in responses:
            if not response.has_content and not op.is_ocs:
                continue
            schema = type_spec_to_json_schema(response.body)
            if schema not in schemas:
                schemas.append(schema)
        if not schemas:
            return None
        schema = schemas[0] if len(schemas) == 1 else {"anyOf": schemas}
        return ocs_envelope(schema) if op.is_ocs else schema

    def _responses(self, op: Operation) -> dict[str, Any]:
        responses: dict[str, Any] = {}
        for status in op.statuses:
            declared = op.responses_for(status)
            response: dict[str, Any] = {"description": op.status_descriptions.get(status, "")}

            headers: dict[str, RecordField] = {}
            for entry in declared:
                headers.update(entry.headers.fields)
            if headers:
                response["headers"] = {
                    name: {
                        "required": not field.optional,
                        "schema": type_spec_to_json_schema(field.type),
                    }
                    for name, field in sorted(headers.items())
                }

            schema = self._response_schema(op, declared)
            if schema is not None:
                response["content"] = {JSON_MEDIA_TYPE: {"schema": schema}}
            responses[str(status)] = response

        for error in op.errors:
            status = self.config.error_statuses.get(error.kind)
            if status is not None and str(status) not in responses:
                responses[str(status)] = {
                    "description": op.status_descriptions.get(status) or error.description
                }
        return dict(sorted(responses.items()))

    def _errors(self, op: Operation) -> dict[str, Any]:
        errors: dict[str, Any] = {}
        for error in op.errors:
            entry: dict[str, Any] = {"description": error.description}
            status = self.config.error_statuses.get(error.kind)
            if status is not None:
                entry["status"] = status
            errors[error.kind] = entry
        return errors
