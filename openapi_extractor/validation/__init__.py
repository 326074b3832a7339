"""Annotation authoring rules."""

from openapi_extractor.validation.rules import DEFAULT_RULES, Rule, ValidationContext
from openapi_extractor.validation.validator import Validator

__all__ = ["DEFAULT_RULES", "Rule", "ValidationContext", "Validator"]
