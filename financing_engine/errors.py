"""
Error Taxonomy for the Financing Engine

Internal code raises these; every public contract catches them and converts
them to an OperationResult (see models.py) with the matching error_kind.
"""


class EngineError(Exception):
    """Base class for all engine errors."""

    kind = "error"


class ValidationError(EngineError, ValueError):
    """Malformed or out-of-range input. Never retried automatically."""

    kind = "validation"


class StateError(EngineError):
    """The request is well-formed but the current state forbids it."""

    kind = "state"


class ConflictError(EngineError):
    """A versioned write carried a stale version token. Safe to retry."""

    kind = "conflict"


class DependencyError(EngineError):
    """The record store failed or is unavailable."""

    kind = "dependency"


class StoreTimeout(DependencyError):
    """A store call did not complete within its deadline."""
