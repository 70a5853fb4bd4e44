"""Exceptions raised while generating tag processor maps."""
from __future__ import annotations


class TagGenerationError(Exception):
    """Base exception for tag generation failures."""


class ConfigurationError(TagGenerationError):
    """Raised when workbook configuration text is malformed."""


class DuplicateColumnError(ConfigurationError):
    """Raised when two column definitions claim the same column index."""

    def __init__(self, column: int, message: str | None = None) -> None:
        self.column = column
        super().__init__(message or f"Invalid column definitions - duplicate columns present: {column}")


class TemplateValidationError(TagGenerationError):
    """Raised when templates are well-formed but structurally inconsistent."""


class ConsistencyError(TagGenerationError):
    """Raised when an internal lookup returns a result validation should have excluded."""


class GenerationFailedError(TagGenerationError):
    """Raised by generate() with the processing phase that was running."""

    def __init__(self, message: str, *, phase: str) -> None:
        self.phase = phase
        self.reason = message
        super().__init__(f"{message}\n\nOccurred while: {phase}")
