"""Tests for corporate program availability resolution."""

from __future__ import annotations

from datetime import timedelta

import pytest

from corporate_spend_policy.models import (
    Outcome,
    PaymentMethod,
    ProgramAvailability,
    ProgramStatus,
)
from corporate_spend_policy.program import (
    context_grace_active,
    grace_end_for,
    is_grace_active,
    program_blocks_corporate_pay,
    resolve_availability,
)


def test_grace_active_only_for_delinquency_with_future_end(now) -> None:
    future = now + timedelta(hours=1)
    past = now - timedelta(seconds=1)

    assert is_grace_active(ProgramStatus.BILLING_DELINQUENCY, True, future, now) is True
    assert is_grace_active(ProgramStatus.BILLING_DELINQUENCY, True, past, now) is False
    assert is_grace_active(ProgramStatus.BILLING_DELINQUENCY, True, now, now) is False
    assert is_grace_active(ProgramStatus.BILLING_DELINQUENCY, False, future, now) is False
    assert is_grace_active(ProgramStatus.BILLING_DELINQUENCY, True, None, now) is False
    assert is_grace_active(ProgramStatus.ELIGIBLE, True, future, now) is False


def test_grace_end_falls_back_to_policy_window(context_factory, policy, now) -> None:
    context = context_factory(
        program_status=ProgramStatus.BILLING_DELINQUENCY,
        grace_enabled=True,
        delinquent_since=now - timedelta(hours=10),
    )

    assert grace_end_for(context, policy) == now + timedelta(hours=62)
    assert context_grace_active(context, policy) is True


def test_explicit_grace_end_wins(context_factory, policy, now) -> None:
    context = context_factory(
        program_status=ProgramStatus.BILLING_DELINQUENCY,
        grace_enabled=True,
        grace_end_at=now - timedelta(minutes=1),
        delinquent_since=now - timedelta(hours=1),
    )

    assert context_grace_active(context, policy) is False


@pytest.mark.parametrize(
    "status",
    [
        ProgramStatus.NOT_LINKED,
        ProgramStatus.NOT_ELIGIBLE,
        ProgramStatus.DEPOSIT_DEPLETED,
        ProgramStatus.CREDIT_LIMIT_EXCEEDED,
    ],
)
def test_hard_stops_make_corporate_pay_unavailable(status: ProgramStatus) -> None:
    assert program_blocks_corporate_pay(status, grace_active=True) is True
    availability = resolve_availability(
        PaymentMethod.CORPORATE_PAY, status, grace_active=False, outcome=Outcome.ALLOWED
    )
    assert availability == ProgramAvailability.NOT_AVAILABLE


def test_delinquency_depends_on_grace() -> None:
    without_grace = resolve_availability(
        PaymentMethod.CORPORATE_PAY,
        ProgramStatus.BILLING_DELINQUENCY,
        grace_active=False,
        outcome=Outcome.APPROVAL_REQUIRED,
    )
    with_grace = resolve_availability(
        PaymentMethod.CORPORATE_PAY,
        ProgramStatus.BILLING_DELINQUENCY,
        grace_active=True,
        outcome=Outcome.APPROVAL_REQUIRED,
    )

    assert without_grace == ProgramAvailability.NOT_AVAILABLE
    assert with_grace == ProgramAvailability.REQUIRES_APPROVAL


@pytest.mark.parametrize(
    ("outcome", "expected"),
    [
        (Outcome.ALLOWED, ProgramAvailability.AVAILABLE),
        (Outcome.APPROVAL_REQUIRED, ProgramAvailability.REQUIRES_APPROVAL),
        (Outcome.BLOCKED, ProgramAvailability.NOT_AVAILABLE),
    ],
)
def test_eligible_availability_follows_outcome(
    outcome: Outcome, expected: ProgramAvailability
) -> None:
    availability = resolve_availability(
        PaymentMethod.CORPORATE_PAY, ProgramStatus.ELIGIBLE, False, outcome
    )

    assert availability == expected


def test_personal_payment_is_always_available() -> None:
    availability = resolve_availability(
        PaymentMethod.PERSONAL_WALLET,
        ProgramStatus.DEPOSIT_DEPLETED,
        grace_active=False,
        outcome=Outcome.BLOCKED,
    )

    assert availability == ProgramAvailability.AVAILABLE
