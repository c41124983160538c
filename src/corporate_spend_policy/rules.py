"""Policy rules for corporate spend evaluation.

Rules are declared as a table of ``PolicyRule`` entries that run in order
against a transaction context and an organization policy. Each rule is a pure
function returning zero or more ``PolicyReason`` objects. Rule order only
affects the order of reasons in the output, never the resulting outcome.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from .config import ModulePolicy, OrganizationPolicy, VendorStatus
from .models import PolicyReason, ProgramStatus, ReasonSeverity, TransactionContext
from .program import HARD_STOP_STATUSES, context_grace_active, grace_end_for

logger = logging.getLogger(__name__)

RuleCheck = Callable[[TransactionContext, OrganizationPolicy], list[PolicyReason]]

STAGE_PAYMENT = "payment"
STAGE_ELIGIBILITY = "eligibility"
STAGE_ALLOCATION = "allocation"
STAGE_RESTRICTIONS = "restrictions"
STAGE_THRESHOLDS = "thresholds"
STAGE_CONTEXT = "context"
STAGE_ADVISORY = "advisory"
STAGE_DECISION = "decision"


@dataclass(frozen=True)
class PolicyRule:
    """One entry of the rule table."""

    rule_id: str
    stage: str
    check: RuleCheck
    short_circuit: bool = False

    def evaluate(
        self, context: TransactionContext, policy: OrganizationPolicy
    ) -> list[PolicyReason]:
        return [
            reason if reason.rule_id else reason.model_copy(update={"rule_id": self.rule_id})
            for reason in self.check(context, policy)
        ]


def _reason(
    code: str,
    title: str,
    detail: str,
    severity: ReasonSeverity,
    subject: str | None = None,
) -> PolicyReason:
    return PolicyReason(
        code=code, title=title, detail=detail, severity=severity, subject=subject
    )


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _misconfiguration(detail: str, subject: str | None = None) -> PolicyReason:
    return _reason("CONFIG", "Policy misconfiguration", detail, ReasonSeverity.CRITICAL, subject)


def _module(context: TransactionContext, policy: OrganizationPolicy) -> ModulePolicy | None:
    return policy.module_policy(context.module)


def _check_payment_bypass(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    if context.is_corporate:
        return []
    return [
        _reason(
            "PAYMENT",
            "Personal payment selected",
            "Corporate policy checks do not block personal payments.",
            ReasonSeverity.INFO,
        )
    ]


_PROGRAM_HARD_STOP_REASONS = {
    ProgramStatus.NOT_LINKED: (
        "Not linked to an organization",
        "CorporatePay is only available when you are linked to an organization.",
    ),
    ProgramStatus.NOT_ELIGIBLE: (
        "Not eligible under policy",
        "Your role or group is not eligible for CorporatePay in this module.",
    ),
    ProgramStatus.DEPOSIT_DEPLETED: (
        "Deposit depleted",
        "Prepaid deposit is depleted. CorporatePay is a hard stop until your admin tops up.",
    ),
    ProgramStatus.CREDIT_LIMIT_EXCEEDED: (
        "Credit limit exceeded",
        "Corporate credit limit is exceeded. CorporatePay is paused until repayment or adjustment.",
    ),
}


def _check_program(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    status = context.program_status
    if status in HARD_STOP_STATUSES:
        title, detail = _PROGRAM_HARD_STOP_REASONS[status]
        return [_reason("PROGRAM", title, detail, ReasonSeverity.CRITICAL, status.value)]
    if status != ProgramStatus.BILLING_DELINQUENCY:
        return []
    if context_grace_active(context, policy):
        grace_end = grace_end_for(context, policy)
        ends = f" until {grace_end.isoformat()}" if grace_end is not None else ""
        return [
            _reason(
                "PROGRAM",
                "Grace window active",
                f"Billing is past due, but the grace window is active{ends}. CorporatePay may proceed.",
                ReasonSeverity.WARNING,
                status.value,
            )
        ]
    return [
        _reason(
            "PROGRAM",
            "Billing delinquency",
            "CorporatePay is suspended due to billing delinquency. Ask your admin to resolve invoices.",
            ReasonSeverity.CRITICAL,
            status.value,
        )
    ]


def _check_configuration(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    module = _module(context, policy)
    if module is None:
        return [
            _misconfiguration(
                f"No policy is configured for module '{context.module}'.", context.module
            )
        ]

    problems: list[str] = []
    if module.approval_threshold is None:
        problems.append("approval threshold is undefined")
    if module.block_threshold is None:
        problems.append("hard-block threshold is undefined")
    if (
        module.approval_threshold is not None
        and module.block_threshold is not None
        and module.block_threshold < module.approval_threshold
    ):
        problems.append("hard-block threshold is lower than the approval threshold")
    for channel in module.channel_thresholds:
        if channel.approval_threshold is None or channel.block_threshold is None:
            problems.append(f"thresholds for channel '{channel.channel}' are incomplete")
    return [
        _misconfiguration(f"Module '{context.module}': {problem}.", context.module)
        for problem in problems
    ]


@dataclass(frozen=True)
class _AllocationField:
    attribute: str
    label: str
    requirement_flag: str


_ALLOCATION_FIELDS = (
    _AllocationField("cost_center", "Cost center", "require_cost_center"),
    _AllocationField("project_tag", "Project tag", "require_project_tag"),
    _AllocationField("purpose", "Purpose", "require_purpose"),
)


def _check_allocation(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    module = _module(context, policy)
    if module is None:
        return []

    reasons: list[PolicyReason] = []
    if context.split_allocation and not module.split_allocation_allowed:
        reasons.append(
            _reason(
                "ALLOCATION",
                "Split allocation not allowed",
                "Your organization policy does not allow multi-cost-center transactions.",
                ReasonSeverity.CRITICAL,
                "split_allocation",
            )
        )

    if context.split_allocation:
        missing = [line for line in context.effective_lines() if _blank(line.cost_center)]
        if missing:
            reasons.append(
                _reason(
                    "ALLOCATION",
                    "Missing cost center on some items",
                    f"Assign cost centers to {len(missing)} item(s) before continuing.",
                    ReasonSeverity.CRITICAL,
                    "cost_center",
                )
            )

    for field in _ALLOCATION_FIELDS:
        if not getattr(module, field.requirement_flag):
            continue
        if field.attribute == "cost_center" and context.split_allocation:
            continue
        if _blank(getattr(context, field.attribute)):
            reasons.append(
                _reason(
                    "ALLOCATION",
                    f"{field.label} required",
                    f"{field.label} is required for corporate {context.module} spend.",
                    ReasonSeverity.CRITICAL,
                    field.attribute,
                )
            )

    if module.required_attachments and context.attachment_count == 0:
        reasons.append(
            _reason(
                "ATTACHMENT",
                "Attachment required",
                f"Upload: {', '.join(module.required_attachments)}.",
                ReasonSeverity.CRITICAL,
                "attachments",
            )
        )

    if module.attestation_required and not context.attested:
        reasons.append(
            _reason(
                "ATTEST",
                "Attestation required",
                "Confirm business use or compliance acknowledgment to proceed.",
                ReasonSeverity.CRITICAL,
                "attested",
            )
        )
    return reasons


def _check_restrictions(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    module = _module(context, policy)
    restricted = set(module.restricted_categories) if module is not None else set()
    lines = context.effective_lines()

    reasons: list[PolicyReason] = []
    for line in lines:
        if line.category is not None and line.category in restricted:
            reasons.append(
                _reason(
                    "CATEGORY",
                    "Restricted category",
                    f"{line.category} is not allowed for CorporatePay purchases ({line.label}).",
                    ReasonSeverity.CRITICAL,
                    line.item_id,
                )
            )
    for line in lines:
        if line.vendor_id is None:
            continue
        if policy.vendor_status(line.vendor_id) == VendorStatus.DENYLISTED:
            reasons.append(
                _reason(
                    "VENDOR",
                    "Vendor blocked",
                    f"{policy.vendor_name(line.vendor_id)} is denylisted for corporate purchases.",
                    ReasonSeverity.CRITICAL,
                    line.item_id,
                )
            )
    return reasons


def _check_vendor_trust(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    module = _module(context, policy)
    if module is None:
        return []

    approval = module.unapproved_vendor_approval_threshold
    block = module.unapproved_vendor_block_threshold
    reasons: list[PolicyReason] = []
    for vendor_id, subtotal in context.vendor_subtotals().items():
        if policy.vendor_status(vendor_id) != VendorStatus.UNAPPROVED:
            continue
        name = policy.vendor_name(vendor_id)
        if approval is None or block is None:
            reasons.append(
                _misconfiguration(
                    f"{name} is unapproved but module '{context.module}' has no complete "
                    "unapproved-vendor thresholds.",
                    vendor_id,
                )
            )
            continue
        if subtotal > block:
            reasons.append(
                _reason(
                    "VENDOR",
                    "High-value from unapproved vendor",
                    f"{name} is unapproved and the vendor subtotal {policy.format_amount(subtotal)} "
                    f"exceeds {policy.format_amount(block)}.",
                    ReasonSeverity.CRITICAL,
                    vendor_id,
                )
            )
        elif subtotal > approval:
            reasons.append(
                _reason(
                    "VENDOR",
                    "Approval required for unapproved vendor",
                    f"{name} is unapproved and the vendor subtotal {policy.format_amount(subtotal)} "
                    f"exceeds {policy.format_amount(approval)}.",
                    ReasonSeverity.WARNING,
                    vendor_id,
                )
            )
    return reasons


def _threshold_reason(
    *,
    code: str,
    label: str,
    amount: int,
    approval: int | None,
    block: int | None,
    policy: OrganizationPolicy,
    subject: str | None = None,
) -> PolicyReason | None:
    if block is not None and amount > block:
        return _reason(
            code,
            f"{label} over hard limit",
            f"{label} {policy.format_amount(amount)} exceeds the hard limit ({policy.format_amount(block)}).",
            ReasonSeverity.CRITICAL,
            subject,
        )
    if approval is not None and amount > approval:
        return _reason(
            code,
            f"{label} requires approval",
            f"{label} {policy.format_amount(amount)} exceeds the approval threshold "
            f"({policy.format_amount(approval)}).",
            ReasonSeverity.WARNING,
            subject,
        )
    return None


def _check_amount_thresholds(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    module = _module(context, policy)
    if module is None:
        return []

    reasons: list[PolicyReason] = []
    basket = _threshold_reason(
        code="BASKET",
        label="Total",
        amount=context.total_amount,
        approval=module.approval_threshold,
        block=module.block_threshold,
        policy=policy,
    )
    if basket is not None:
        reasons.append(basket)

    channel_totals = context.channel_subtotals()
    for channel in module.channel_thresholds:
        subtotal = channel_totals.get(channel.channel, 0)
        if subtotal <= 0:
            continue
        reason = _threshold_reason(
            code="CHANNEL",
            label=f"{channel.channel} subtotal",
            amount=subtotal,
            approval=channel.approval_threshold,
            block=channel.block_threshold,
            policy=policy,
            subject=channel.channel,
        )
        if reason is not None:
            reasons.append(reason)
    return reasons


def _check_context_gates(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    module = _module(context, policy)
    if module is None:
        return []

    reasons: list[PolicyReason] = []
    if module.allowed_time_windows:
        windows = ", ".join(window.describe() for window in module.allowed_time_windows)
        if context.local_time is None:
            reasons.append(
                _reason(
                    "TIME",
                    "Time of spend unknown",
                    f"Local time is required to check allowed hours ({windows}).",
                    ReasonSeverity.CRITICAL,
                    "local_time",
                )
            )
        elif not any(window.contains(context.local_time) for window in module.allowed_time_windows):
            reasons.append(
                _reason(
                    "TIME",
                    "Outside allowed hours",
                    f"Corporate {context.module} spend is allowed during {windows}.",
                    ReasonSeverity.CRITICAL,
                    "local_time",
                )
            )

    if module.allowed_regions:
        allowed = {region.casefold() for region in module.allowed_regions}
        regions = ", ".join(module.allowed_regions)
        if _blank(context.region):
            reasons.append(
                _reason(
                    "GEO",
                    "Region unknown",
                    f"Region is required to check allowed zones ({regions}).",
                    ReasonSeverity.CRITICAL,
                    "region",
                )
            )
        elif context.region is not None and context.region.casefold() not in allowed:
            reasons.append(
                _reason(
                    "GEO",
                    "Outside allowed zone",
                    f"Corporate {context.module} spend is limited to approved regions ({regions}).",
                    ReasonSeverity.CRITICAL,
                    "region",
                )
            )

    if module.allowed_sites:
        if _blank(context.site_id):
            reasons.append(
                _reason(
                    "SITE",
                    "Site unknown",
                    "A site is required because this module only allows approved sites.",
                    ReasonSeverity.CRITICAL,
                    "site_id",
                )
            )
        elif context.site_id not in module.allowed_sites:
            reasons.append(
                _reason(
                    "SITE",
                    "Site not allowed",
                    f"Site {context.site_id} is not permitted under corporate policy.",
                    ReasonSeverity.CRITICAL,
                    "site_id",
                )
            )

    if (
        not _blank(context.connector)
        and context.site_connectors
        and context.connector not in context.site_connectors
    ):
        reasons.append(
            _reason(
                "CONNECTOR",
                "Connector mismatch",
                f"Connector {context.connector} is not offered at this site "
                f"({', '.join(context.site_connectors)}). Please confirm.",
                ReasonSeverity.WARNING,
                "connector",
            )
        )
    return reasons


def _high_value_allocation(context: TransactionContext, cost_center: str | None) -> str | None:
    return cost_center if context.split_allocation else context.cost_center


def _check_advisory(
    context: TransactionContext, policy: OrganizationPolicy
) -> list[PolicyReason]:
    module = _module(context, policy)
    if module is None:
        return []

    reasons: list[PolicyReason] = []
    total = context.total_amount

    if (
        module.attachments_recommended_above is not None
        and total > module.attachments_recommended_above
        and context.attachment_count == 0
    ):
        reasons.append(
            _reason(
                "ATTACHMENT",
                "Attachment recommended",
                "Supporting documents speed up approvals and are kept in the audit trail.",
                ReasonSeverity.INFO,
                "attachments",
            )
        )

    if module.notes_recommended and _blank(context.notes):
        over_approval = (
            module.approval_threshold is not None and total > module.approval_threshold
        )
        unvetted_vendor = any(
            not policy.vendor_status(vendor_id).is_approved
            for vendor_id in context.vendor_subtotals()
        )
        if over_approval or unvetted_vendor:
            reasons.append(
                _reason(
                    "NOTE",
                    "Add a note",
                    "Add context to speed up approvals and reduce rework.",
                    ReasonSeverity.INFO,
                    "notes",
                )
            )

    high_value_lines = [
        line
        for line in context.effective_lines()
        if line.category is not None and line.category in module.high_value_categories
    ]
    if high_value_lines:
        subtotal = sum(line.line_amount for line in high_value_lines)
        threshold = module.high_value_quote_threshold
        severity = (
            ReasonSeverity.WARNING
            if threshold is not None and subtotal > threshold
            else ReasonSeverity.INFO
        )
        categories = ", ".join(sorted({line.category or "" for line in high_value_lines}))
        reasons.append(
            _reason(
                "RFQ",
                "High-value asset detected",
                f"{categories} items are best handled through the quote workflow "
                f"(subtotal {policy.format_amount(subtotal)}).",
                severity,
            )
        )

        if module.high_value_cost_centers:
            mismatched = []
            for line in high_value_lines:
                allocated = _high_value_allocation(context, line.cost_center)
                if allocated and allocated not in module.high_value_cost_centers:
                    mismatched.append(line)
            if mismatched:
                reasons.append(
                    _reason(
                        "ALLOCATION",
                        "High-value allocation mismatch",
                        "High-value items should use "
                        f"{' or '.join(module.high_value_cost_centers)} cost centers.",
                        ReasonSeverity.WARNING,
                        "cost_center",
                    )
                )
    return reasons


DEFAULT_RULES: tuple[PolicyRule, ...] = (
    PolicyRule("payment_bypass", STAGE_PAYMENT, _check_payment_bypass, short_circuit=True),
    PolicyRule("program_eligibility", STAGE_ELIGIBILITY, _check_program),
    PolicyRule("policy_configuration", STAGE_ELIGIBILITY, _check_configuration),
    PolicyRule("allocation", STAGE_ALLOCATION, _check_allocation),
    PolicyRule("restrictions", STAGE_RESTRICTIONS, _check_restrictions),
    PolicyRule("vendor_trust", STAGE_RESTRICTIONS, _check_vendor_trust),
    PolicyRule("amount_thresholds", STAGE_THRESHOLDS, _check_amount_thresholds),
    PolicyRule("context_gating", STAGE_CONTEXT, _check_context_gates),
    PolicyRule("advisory", STAGE_ADVISORY, _check_advisory),
)

WITHIN_POLICY_RULE_ID = "within_policy"

_RULE_STAGES = {rule.rule_id: rule.stage for rule in DEFAULT_RULES}


def stage_for(reason: PolicyReason) -> str:
    """Stage of the rule that produced a reason."""

    if reason.rule_id is None:
        return STAGE_DECISION
    return _RULE_STAGES.get(reason.rule_id, STAGE_DECISION)


def within_policy_reason() -> PolicyReason:
    return PolicyReason(
        code="OK",
        title="Within policy",
        detail="The transaction is within program, allocation, vendor and amount rules.",
        severity=ReasonSeverity.INFO,
        rule_id=WITHIN_POLICY_RULE_ID,
    )


def evaluation_error_reason(rule: PolicyRule) -> PolicyReason:
    return PolicyReason(
        code="EVALUATION_ERROR",
        title="Policy evaluation error",
        detail=f"Rule '{rule.rule_id}' could not be evaluated; the spend is held until it is resolved.",
        severity=ReasonSeverity.CRITICAL,
        rule_id=rule.rule_id,
    )


def evaluate_rules(
    context: TransactionContext,
    policy: OrganizationPolicy,
    *,
    rules: Sequence[PolicyRule] = DEFAULT_RULES,
    correlation_id: str | None = None,
) -> list[PolicyReason]:
    """Run the rule table and return the reasons; the list is never empty."""

    reasons: list[PolicyReason] = []
    for rule in rules:
        try:
            produced = rule.evaluate(context, policy)
        except Exception:
            logger.exception(
                "Policy rule %s failed (correlation_id=%s)", rule.rule_id, correlation_id
            )
            reasons.append(evaluation_error_reason(rule))
            if rule.short_circuit:
                break
            continue
        reasons.extend(produced)
        if rule.short_circuit and produced:
            break

    if not reasons:
        reasons.append(within_policy_reason())
    return reasons


def rule_ids(rules: Iterable[PolicyRule] = DEFAULT_RULES) -> list[str]:
    return [rule.rule_id for rule in rules]
