"""
errors.py — exception taxonomy for the VisualClimate pipeline.

  SourceUnavailable   network / HTTP failure or missing local file
  ParseError          malformed payload or CSV (never retried)
  NoDataAvailable     every adapter in a fallback chain came back empty
  PersistenceError    a write against the store failed
  ConfigurationError  required credentials missing; aborts before any work

Source errors are recovered by the fallback chain and turned into
provenance ("NONE"); only ConfigurationError and an empty country
reference table stop a run.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class SourceError(PipelineError):
    """Raised by a source adapter. Recoverable through fallback."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class SourceUnavailable(SourceError):
    """Upstream could not be reached or answered with an HTTP error."""


class ParseError(SourceError):
    """Upstream answered, but the payload could not be understood."""


class NoDataAvailable(PipelineError):
    """No adapter produced a single record."""


class PersistenceError(PipelineError):
    """A read or write against the canonical store failed."""


class ConfigurationError(PipelineError):
    """Required runtime configuration is missing."""
