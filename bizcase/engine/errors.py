"""Exception taxonomy for the projection engine.

Structural problems (bad paths, unusable growth specs, unparseable documents)
are raised to the caller immediately. Numeric edge cases are recovered inside
the engine and never escape a public entry point.
"""

from __future__ import annotations

from typing import Optional


class EngineError(ValueError):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class PathError(EngineError):
    """A path string is malformed or cannot be written to."""


class PatternError(EngineError):
    """A growth specification cannot be evaluated."""


class DocumentError(EngineError):
    """The assumption document does not parse into the typed model."""


class NumericError(EngineError):
    """A numeric routine found no usable answer (e.g. no IRR bracket)."""
