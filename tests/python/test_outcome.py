"""Tests for severity aggregation."""

from __future__ import annotations

import itertools

import pytest

from corporate_spend_policy.models import Outcome, PolicyReason, ReasonSeverity
from corporate_spend_policy.outcome import aggregate, restrictiveness


def _reason(severity: ReasonSeverity, code: str = "TEST") -> PolicyReason:
    return PolicyReason(code=code, title=code.title(), detail="detail", severity=severity)


@pytest.mark.parametrize(
    ("severities", "expected"),
    [
        ([], Outcome.ALLOWED),
        ([ReasonSeverity.INFO], Outcome.ALLOWED),
        ([ReasonSeverity.INFO, ReasonSeverity.WARNING], Outcome.APPROVAL_REQUIRED),
        ([ReasonSeverity.WARNING, ReasonSeverity.CRITICAL], Outcome.BLOCKED),
        ([ReasonSeverity.CRITICAL], Outcome.BLOCKED),
    ],
)
def test_highest_severity_wins(severities: list[ReasonSeverity], expected: Outcome) -> None:
    assert aggregate(_reason(severity) for severity in severities) == expected


def test_aggregation_ignores_order() -> None:
    reasons = [
        _reason(ReasonSeverity.INFO, "A"),
        _reason(ReasonSeverity.WARNING, "B"),
        _reason(ReasonSeverity.CRITICAL, "C"),
    ]

    outcomes = {aggregate(order) for order in itertools.permutations(reasons)}

    assert outcomes == {Outcome.BLOCKED}


def test_adding_a_reason_never_relaxes_outcome() -> None:
    base = [_reason(ReasonSeverity.WARNING)]
    for severity in ReasonSeverity:
        extended = base + [_reason(severity, "EXTRA")]
        assert restrictiveness(aggregate(extended)) >= restrictiveness(aggregate(base))
