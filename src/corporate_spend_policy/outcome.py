"""Reduce policy reasons to a single outcome."""

from __future__ import annotations

from collections.abc import Iterable

from .models import Outcome, PolicyReason, ReasonSeverity

_SEVERITY_OUTCOMES: tuple[tuple[ReasonSeverity, Outcome], ...] = (
    (ReasonSeverity.CRITICAL, Outcome.BLOCKED),
    (ReasonSeverity.WARNING, Outcome.APPROVAL_REQUIRED),
)

_RESTRICTIVENESS = {
    Outcome.ALLOWED: 0,
    Outcome.APPROVAL_REQUIRED: 1,
    Outcome.BLOCKED: 2,
}


def aggregate(reasons: Iterable[PolicyReason]) -> Outcome:
    """Highest severity wins; Info reasons never change the outcome."""

    severities = {reason.severity for reason in reasons}
    for severity, outcome in _SEVERITY_OUTCOMES:
        if severity in severities:
            return outcome
    return Outcome.ALLOWED


def restrictiveness(outcome: Outcome) -> int:
    return _RESTRICTIVENESS[outcome]
