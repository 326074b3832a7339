"""Shared helpers for the extractor tooling."""
