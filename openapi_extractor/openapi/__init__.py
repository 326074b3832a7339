"""OpenAPI document assembly and output."""

from openapi_extractor.openapi.builder import OpenAPIBuilder
from openapi_extractor.openapi.compare import compare_documents
from openapi_extractor.openapi.emitter import (
    format_report,
    read_document,
    render_document,
    write_document,
)

__all__ = [
    "OpenAPIBuilder",
    "compare_documents",
    "format_report",
    "read_document",
    "render_document",
    "write_document",
]
