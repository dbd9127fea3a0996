from typing import Optional


class DegOraError(Exception):
    """Base class for errors raised by the enrichment report pipeline."""


class ConfigError(DegOraError):
    """Raised when the run configuration is missing or invalid."""


class InputTableError(DegOraError, ValueError):
    """Raised when an input CSV lacks a required column or cannot be read."""


class GProfilerError(DegOraError, RuntimeError):
    """Raised when the g:Profiler request fails or returns an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
