"""Static OpenAPI extractor for annotated controllers."""

__version__ = "0.1.0"
