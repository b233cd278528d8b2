# factory_management/database/errors.py
"""
Domain error taxonomy shared by repositories and engines.

- NotFound / ValidationError are raised before anything is written.
- ConcurrencyConflict means a compare-and-swap saw a stale value; callers
  re-read and re-apply.
- PersistenceFailure wraps sqlite3 errors raised inside a unit of work; the
  unit has already been rolled back when it surfaces.
"""
from __future__ import annotations


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the UI."""
    pass


class NotFound(DomainError):
    pass


class ValidationError(DomainError):
    pass


class ConcurrencyConflict(DomainError):
    pass


class PersistenceFailure(DomainError):
    pass


__all__ = [
    "DomainError",
    "NotFound",
    "ValidationError",
    "ConcurrencyConflict",
    "PersistenceFailure",
]
