"""
Domain errors.

Every error carries a `kind` so the API layer (and the analysis
pipeline) can report a structured failure instead of a bare crash.
"""

from __future__ import annotations

from pricing_council.models.enums import ErrorKind


class PricingCouncilError(Exception):
    """Base class for all domain errors."""

    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class NotFoundError(PricingCouncilError):
    """Referenced organization, entity, snapshot or decision does not exist."""

    kind = ErrorKind.NOT_FOUND


class InvalidInputError(PricingCouncilError):
    """Missing or malformed input; raised before any write happens."""

    kind = ErrorKind.INVALID_INPUT


class PersistenceError(PricingCouncilError):
    """The primary write failed."""

    kind = ErrorKind.PERSISTENCE_FAILURE
