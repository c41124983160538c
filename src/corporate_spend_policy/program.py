"""Corporate program availability resolution.

Availability answers a different question than the rule outcome: whether the
corporate payment option should be selectable at all. Account-level hard stops
make it unavailable regardless of what is being bought.
"""

from __future__ import annotations

from datetime import datetime

from .config import OrganizationPolicy
from .models import (
    Outcome,
    PaymentMethod,
    ProgramAvailability,
    ProgramStatus,
    TransactionContext,
)

HARD_STOP_STATUSES = frozenset(
    {
        ProgramStatus.NOT_LINKED,
        ProgramStatus.NOT_ELIGIBLE,
        ProgramStatus.DEPOSIT_DEPLETED,
        ProgramStatus.CREDIT_LIMIT_EXCEEDED,
    }
)


def is_grace_active(
    program_status: ProgramStatus,
    grace_enabled: bool,
    grace_end_at: datetime | None,
    now: datetime,
) -> bool:
    """Return True while a billing-delinquency grace window is open."""

    if program_status != ProgramStatus.BILLING_DELINQUENCY or not grace_enabled:
        return False
    if grace_end_at is None:
        return False
    return grace_end_at > now


def grace_end_for(context: TransactionContext, policy: OrganizationPolicy) -> datetime | None:
    """Explicit grace end, or delinquency start plus the policy grace window."""

    if context.grace_end_at is not None:
        return context.grace_end_at
    if context.delinquent_since is not None:
        return context.delinquent_since + policy.grace_window
    return None


def context_grace_active(context: TransactionContext, policy: OrganizationPolicy) -> bool:
    return is_grace_active(
        context.program_status,
        context.grace_enabled,
        grace_end_for(context, policy),
        context.now,
    )


def program_blocks_corporate_pay(program_status: ProgramStatus, grace_active: bool) -> bool:
    """True when the account itself cannot use CorporatePay."""

    if program_status in HARD_STOP_STATUSES:
        return True
    return program_status == ProgramStatus.BILLING_DELINQUENCY and not grace_active


def resolve_availability(
    payment_method: PaymentMethod,
    program_status: ProgramStatus,
    grace_active: bool,
    outcome: Outcome,
) -> ProgramAvailability:
    if not payment_method.is_corporate:
        return ProgramAvailability.AVAILABLE
    if program_blocks_corporate_pay(program_status, grace_active):
        return ProgramAvailability.NOT_AVAILABLE
    if outcome == Outcome.BLOCKED:
        return ProgramAvailability.NOT_AVAILABLE
    if outcome == Outcome.APPROVAL_REQUIRED:
        return ProgramAvailability.REQUIRES_APPROVAL
    return ProgramAvailability.AVAILABLE
