"""Build the "why this result" audit trail for an evaluation."""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from .config import OrganizationPolicy
from .models import (
    AuditEntry,
    AuditTrail,
    Outcome,
    PolicyPathStep,
    PolicyReason,
    ReasonSeverity,
    TransactionContext,
)
from .policy_versioning import PolicyVersion
from .rules import (
    STAGE_ADVISORY,
    STAGE_ALLOCATION,
    STAGE_CONTEXT,
    STAGE_ELIGIBILITY,
    STAGE_RESTRICTIONS,
    STAGE_THRESHOLDS,
    stage_for,
)

_PATH_STAGES: tuple[tuple[str, str, str], ...] = (
    (
        "Eligibility",
        STAGE_ELIGIBILITY,
        "Program status and policy configuration checked; no issues.",
    ),
    (
        "Allocation",
        STAGE_ALLOCATION,
        "Required allocation fields and attachments are present.",
    ),
    (
        "Restrictions",
        STAGE_RESTRICTIONS,
        "No restricted categories, denylisted or over-limit unapproved vendors.",
    ),
    (
        "Thresholds",
        STAGE_THRESHOLDS,
        "Amounts are within the approval and hard-limit thresholds.",
    ),
    (
        "Context",
        STAGE_CONTEXT,
        "Time, location and site rules pass.",
    ),
)

_SEVERITY_COUNT_ORDER = (
    ReasonSeverity.CRITICAL,
    ReasonSeverity.WARNING,
    ReasonSeverity.INFO,
)


def new_correlation_id() -> str:
    return f"corr_{uuid.uuid4().hex}"


def _summary(context: TransactionContext, reasons: Sequence[PolicyReason], outcome: Outcome) -> str:
    if not context.is_corporate:
        return (
            f"{context.payment_method.value} selected; corporate policy checks were skipped."
        )
    if outcome == Outcome.BLOCKED:
        first = next(r for r in reasons if r.severity == ReasonSeverity.CRITICAL)
        return f"CorporatePay is blocked: {first.title}."
    if outcome == Outcome.APPROVAL_REQUIRED:
        first = next(r for r in reasons if r.severity == ReasonSeverity.WARNING)
        return f"Approval is required before CorporatePay can be used: {first.title}."
    return "CorporatePay is allowed within policy."


def _triggers(
    context: TransactionContext, policy: OrganizationPolicy, grace_active: bool
) -> tuple[AuditEntry, ...]:
    program = context.program_status.value
    if grace_active:
        program = f"{program} (grace active)"
    entries = [
        AuditEntry(label="Module", value=context.module),
        AuditEntry(label="Payment method", value=context.payment_method.value),
        AuditEntry(label="Program status", value=program),
    ]

    vendors = [
        f"{policy.vendor_name(vendor_id)} ({policy.vendor_status(vendor_id).value})"
        for vendor_id in context.vendor_subtotals()
    ]
    if vendors:
        entries.append(AuditEntry(label="Vendors", value=", ".join(vendors)))

    entries.append(AuditEntry(label="Amount", value=policy.format_amount(context.total_amount)))
    if context.items:
        entries.append(AuditEntry(label="Items", value=str(len(context.items))))

    if context.split_allocation:
        cost_center = "Split across items"
    else:
        cost_center = context.cost_center or "Not set"
    entries.append(AuditEntry(label="Cost center", value=cost_center))
    if context.purpose:
        entries.append(AuditEntry(label="Purpose", value=context.purpose))
    return tuple(entries)


def _step_detail(reasons: Sequence[PolicyReason], default: str) -> str:
    if not reasons:
        return default
    return "; ".join(f"{reason.title} ({reason.severity.value})" for reason in reasons)


def _decision_detail(reasons: Sequence[PolicyReason], outcome: Outcome) -> str:
    counts = [
        f"{sum(1 for r in reasons if r.severity == severity)} {severity.value.lower()}"
        for severity in _SEVERITY_COUNT_ORDER
    ]
    advisories = [r.title for r in reasons if stage_for(r) == STAGE_ADVISORY]
    detail = f"Outcome {outcome.value} from {', '.join(counts)} reason(s)."
    if advisories:
        detail += f" Advisory: {', '.join(advisories)}."
    return detail


def _policy_path(
    context: TransactionContext, reasons: Sequence[PolicyReason], outcome: Outcome
) -> tuple[PolicyPathStep, ...]:
    if not context.is_corporate:
        return (
            PolicyPathStep(
                step="Payment",
                detail=f"{context.payment_method.value} is a personal payment method.",
            ),
            PolicyPathStep(
                step="Decision",
                detail=f"Outcome {outcome.value}; corporate rules do not apply.",
            ),
        )

    steps = []
    for step, stage, default in _PATH_STAGES:
        stage_reasons = [reason for reason in reasons if stage_for(reason) == stage]
        steps.append(PolicyPathStep(step=step, detail=_step_detail(stage_reasons, default)))
    steps.append(PolicyPathStep(step="Decision", detail=_decision_detail(reasons, outcome)))
    return tuple(steps)


def build_audit_trail(
    context: TransactionContext,
    policy: OrganizationPolicy,
    reasons: Sequence[PolicyReason],
    outcome: Outcome,
    *,
    correlation_id: str | None = None,
    grace_active: bool = False,
    snapshot_id: str | None = None,
) -> AuditTrail:
    """Assemble the immutable audit trail for one evaluation call."""

    correlation = correlation_id or new_correlation_id()
    snapshot = snapshot_id or PolicyVersion.from_policy(policy).snapshot_id
    return AuditTrail(
        correlation_id=correlation,
        summary=_summary(context, reasons, outcome),
        triggers=_triggers(context, policy, grace_active),
        policy_path=_policy_path(context, reasons, outcome),
        audit_meta=(
            AuditEntry(label="Correlation id", value=correlation),
            AuditEntry(label="Policy snapshot", value=snapshot),
            AuditEntry(label="Timestamp", value=context.now.isoformat()),
        ),
    )
