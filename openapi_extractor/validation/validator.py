"""Runs the authoring rules over a resolved project."""

from __future__ import annotations

from collections.abc import Sequence
import logging

from openapi_extractor.diagnostics import DiagnosticCollection
from openapi_extractor.validation.rules import DEFAULT_RULES, Rule, ValidationContext

logger = logging.getLogger(__name__)


class Validator:
    """Classifies defects; never mutates the operation graph."""

    def __init__(self, rules: Sequence[Rule] | None = None) -> None:
        self.rules = tuple(rules) if rules is not None else DEFAULT_RULES

    def validate(self, context: ValidationContext) -> DiagnosticCollection:
        result = DiagnosticCollection()
        for rule in self.rules:
            before = len(result)
            for diagnostic in rule.check(context):
                result.add(diagnostic)
            logger.debug("Rule %s: %d findings", rule.name, len(result) - before)
        return result
