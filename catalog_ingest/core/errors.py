"""
Error Taxonomy
==============

Exceptions raised by the ingestion pipeline and the admin services.

- ValidationError: malformed job payload, scheduler config, seed record or
  override field path. Raised before anything is written.
- NotFoundError: unknown entity, canonical row or reference slug.
- ConflictError: a uniqueness rule would be broken (duplicate override).
- TransientFetchError: timeout, network failure or non-2xx response. Jobs
  failing with it are retried with backoff.
- TerminalJobError: the job can never succeed (unknown kind, exhausted
  attempts). Jobs failing with it are not retried.
"""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(CatalogError):
    """Input rejected before any mutation."""


class NotFoundError(CatalogError):
    """A referenced row does not exist."""


class ConflictError(CatalogError):
    """The requested change collides with an existing row."""


class TransientFetchError(CatalogError):
    """A fetch failed in a way that may succeed on retry."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TerminalJobError(CatalogError):
    """A job failed in a way retries cannot fix."""
