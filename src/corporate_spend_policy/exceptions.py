"""Error types raised at the edges of the policy engine."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class PolicyConfigurationError(ValueError):
    """Raised when an organization policy cannot be loaded."""


class InvalidRequestError(ValueError):
    """Raised when a request is malformed before any policy is evaluated.

    A malformed request is not an outcome; callers surface it separately from
    a ``Blocked`` decision.
    """

    kind = "InvalidRequest"

    def __init__(self, message: str, errors: Sequence[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors: list[dict[str, Any]] = list(errors or [])

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": str(self), "detail": self.errors}
