"""Remediation alternatives for a policy decision.

Each qualifying reason maps to zero or more proposed ``ContextPatch`` values.
Expected outcomes are estimated per reason; callers that need accurate
outcomes pass ``verify_with`` to re-evaluate every patched context.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from .config import OrganizationPolicy, VendorEntry, VendorStatus
from .models import (
    Alternative,
    ContextPatch,
    LineItem,
    Outcome,
    PaymentMethod,
    PolicyReason,
    ReasonSeverity,
    TransactionContext,
    VendorReplacement,
)

MAX_ALTERNATIVES = 8

Verifier = Callable[[TransactionContext], Outcome]
ReasonHandler = Callable[
    [TransactionContext, PolicyReason, OrganizationPolicy], list[Alternative]
]

_PATCHABLE_FIELDS = (
    "split_allocation",
    "cost_center",
    "project_tag",
    "purpose",
    "region",
    "local_time",
    "site_id",
    "attested",
)

_ALLOCATION_DEFAULTS = {
    "cost_center": ("default_cost_center", "cost center"),
    "project_tag": ("default_project_tag", "project tag"),
    "purpose": ("default_purpose", "purpose"),
}


def choose_best_vendor(
    policy: OrganizationPolicy,
    category: str | None,
    exclude: Iterable[str] = (),
) -> VendorEntry | None:
    """Return the best approved vendor supplying ``category``.

    Preferred vendors win over allowlisted ones; within a tier the directory
    order decides.
    """

    if category is None:
        return None
    excluded = set(exclude)
    for status in (VendorStatus.PREFERRED, VendorStatus.ALLOWLISTED):
        for entry in policy.vendors:
            if entry.status != status or entry.vendor_id in excluded:
                continue
            if category in entry.categories:
                return entry
    return None


def apply_patch(context: TransactionContext, patch: ContextPatch) -> TransactionContext:
    """Return a new context with ``patch`` applied; the input is untouched."""

    updates: dict[str, object] = {}
    if patch.payment_method is not None:
        updates["payment_method"] = patch.payment_method

    items = context.items
    if patch.remove_item_id is not None:
        if items:
            items = tuple(item for item in items if item.item_id != patch.remove_item_id)
        else:
            updates.update(amount=None, vendor_id=None, category=None)

    if patch.replace_vendor is not None:
        replacement = patch.replace_vendor
        if items:
            items = tuple(
                item.model_copy(update={"vendor_id": replacement.vendor_id})
                if item.item_id == replacement.item_id
                else item
                for item in items
            )
        else:
            updates["vendor_id"] = replacement.vendor_id

    if items != context.items:
        updates["items"] = items

    for name in _PATCHABLE_FIELDS:
        value = getattr(patch, name)
        if value is not None:
            updates[name] = value
    return context.model_copy(update=updates)


def _find_line(context: TransactionContext, item_id: str | None) -> LineItem | None:
    for line in context.effective_lines():
        if line.item_id == item_id:
            return line
    return None


def _pay_personally(policy: OrganizationPolicy) -> Alternative:
    return Alternative(
        id="pay_personally",
        title="Pay personally",
        description="Switch to a personal payment method. Corporate policy checks do not apply.",
        expected_outcome=Outcome.ALLOWED,
        patch=ContextPatch(payment_method=policy.personal_payment_method),
    )


def _contact_admin() -> Alternative:
    return Alternative(
        id="contact_admin",
        title="Contact organization admin",
        description="Ask your organization admin to resolve the account or policy issue.",
        expected_outcome=Outcome.APPROVAL_REQUIRED,
    )


def _use_corporate_pay() -> Alternative:
    return Alternative(
        id="use_corporate_pay",
        title="Use CorporatePay instead",
        description="Bill the organization; policy checks and approvals may apply.",
        expected_outcome=Outcome.APPROVAL_REQUIRED,
        patch=ContextPatch(payment_method=PaymentMethod.CORPORATE_PAY),
    )


def _remove_item(context: TransactionContext, item_id: str | None) -> list[Alternative]:
    if not context.items:
        return []
    line = _find_line(context, item_id)
    if line is None:
        return []
    return [
        Alternative(
            id=f"remove_item:{line.item_id}",
            title=f"Remove {line.label}",
            description=f"Remove {line.label} from the transaction.",
            expected_outcome=Outcome.APPROVAL_REQUIRED,
            patch=ContextPatch(remove_item_id=line.item_id),
        )
    ]


def _switch_vendor(
    line: LineItem, policy: OrganizationPolicy
) -> list[Alternative]:
    exclude = [line.vendor_id] if line.vendor_id else []
    vendor = choose_best_vendor(policy, line.category, exclude)
    if vendor is None:
        return []
    return [
        Alternative(
            id=f"switch_vendor:{line.item_id}:{vendor.vendor_id}",
            title=f"Switch vendor for {line.label}",
            description=f"Buy from {vendor.name} ({vendor.status.value}) instead.",
            expected_outcome=Outcome.ALLOWED,
            patch=ContextPatch(
                replace_vendor=VendorReplacement(
                    item_id=line.item_id, vendor_id=vendor.vendor_id
                )
            ),
        )
    ]


def _for_program(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    if reason.severity != ReasonSeverity.CRITICAL:
        return []
    return [_pay_personally(policy), _contact_admin()]


def _for_admin_issue(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    return [_contact_admin()]


def _for_category(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    return _remove_item(context, reason.subject)


def _for_vendor(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    if reason.rule_id == "vendor_trust":
        lines = context.lines_for_vendor(reason.subject or "")
    else:
        line = _find_line(context, reason.subject)
        lines = [line] if line is not None else []

    alternatives: list[Alternative] = []
    if reason.rule_id != "vendor_trust":
        alternatives.extend(_remove_item(context, reason.subject))
    for line in lines:
        alternatives.extend(_switch_vendor(line, policy))
    return alternatives


def _for_allocation(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    module = policy.module_policy(context.module)
    if module is None:
        return []

    if reason.rule_id == "advisory":
        if not module.high_value_cost_centers:
            return []
        target = module.high_value_cost_centers[0]
        return [
            Alternative(
                id=f"set_cost_center:{target}",
                title=f"Use {target} cost center",
                description=f"Allocate high-value items to the {target} cost center.",
                expected_outcome=Outcome.ALLOWED,
                patch=ContextPatch(split_allocation=False, cost_center=target)
                if context.split_allocation
                else ContextPatch(cost_center=target),
            )
        ]

    if reason.subject == "split_allocation" or (
        reason.subject == "cost_center" and context.split_allocation
    ):
        cost_center = context.cost_center or module.default_cost_center
        if cost_center is None and module.require_cost_center:
            return []
        return [
            Alternative(
                id="single_cost_center",
                title="Use single cost center",
                description="Allocate the whole transaction to one cost center.",
                expected_outcome=Outcome.ALLOWED,
                patch=ContextPatch(split_allocation=False, cost_center=cost_center),
            )
        ]

    if reason.subject not in _ALLOCATION_DEFAULTS:
        return []
    default_attribute, label = _ALLOCATION_DEFAULTS[reason.subject]
    default_value = getattr(module, default_attribute)
    if not default_value:
        return []
    return [
        Alternative(
            id=f"set_{reason.subject}",
            title=f"Use default {label}",
            description=f"Set the {label} to {default_value}.",
            expected_outcome=Outcome.ALLOWED,
            patch=ContextPatch(**{reason.subject: default_value}),
        )
    ]


def _for_attachment(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    if reason.severity != ReasonSeverity.CRITICAL:
        return []
    return [
        Alternative(
            id="upload_attachments",
            title="Upload required documents",
            description=reason.detail,
            expected_outcome=Outcome.ALLOWED,
        )
    ]


def _for_attestation(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    return [
        Alternative(
            id="confirm_attestation",
            title="Confirm attestation",
            description="Confirm that this spend is for business use and complies with policy.",
            expected_outcome=Outcome.ALLOWED,
            patch=ContextPatch(attested=True),
        )
    ]


def _for_amount(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    return [
        Alternative(
            id="reduce_basket",
            title="Reduce basket size",
            description="Lower the total or split the purchase to stay within thresholds.",
            expected_outcome=Outcome.ALLOWED,
        )
    ]


def _for_quote(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    if reason.severity != ReasonSeverity.WARNING:
        return []
    return [
        Alternative(
            id="request_quote",
            title="Request a quote",
            description="Move high-value items to the quote workflow for competitive bids.",
            expected_outcome=Outcome.ALLOWED,
        )
    ]


def _for_time(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    module = policy.module_policy(context.module)
    if module is None or not module.allowed_time_windows:
        return []
    window = module.allowed_time_windows[0]
    return [
        Alternative(
            id="schedule_within_hours",
            title="Schedule within allowed hours",
            description=f"Move the spend into the allowed window {window.describe()}.",
            expected_outcome=Outcome.ALLOWED,
            patch=ContextPatch(local_time=window.start),
        )
    ]


def _for_region(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    module = policy.module_policy(context.module)
    if module is None or not module.allowed_regions:
        return []
    region = module.allowed_regions[0]
    return [
        Alternative(
            id=f"use_region:{region}",
            title="Stay within allowed zone",
            description=f"Use a location in {region}.",
            expected_outcome=Outcome.ALLOWED,
            patch=ContextPatch(region=region),
        )
    ]


def _for_site(
    context: TransactionContext, reason: PolicyReason, policy: OrganizationPolicy
) -> list[Alternative]:
    module = policy.module_policy(context.module)
    if module is None or not module.allowed_sites:
        return []
    site = module.allowed_sites[0]
    return [
        Alternative(
            id=f"use_site:{site}",
            title="Choose an approved site",
            description=f"Switch to approved site {site}.",
            expected_outcome=Outcome.ALLOWED,
            patch=ContextPatch(site_id=site),
        )
    ]


_HANDLERS: dict[str, ReasonHandler] = {
    "PROGRAM": _for_program,
    "CONFIG": _for_admin_issue,
    "EVALUATION_ERROR": _for_admin_issue,
    "CATEGORY": _for_category,
    "VENDOR": _for_vendor,
    "ALLOCATION": _for_allocation,
    "ATTACHMENT": _for_attachment,
    "ATTEST": _for_attestation,
    "BASKET": _for_amount,
    "CHANNEL": _for_amount,
    "RFQ": _for_quote,
    "TIME": _for_time,
    "GEO": _for_region,
    "SITE": _for_site,
}


def _dedupe(alternatives: Iterable[Alternative]) -> list[Alternative]:
    seen: set[tuple[str, str]] = set()
    unique: list[Alternative] = []
    for alternative in alternatives:
        key = alternative.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(alternative)
    return unique


def _verify(
    alternative: Alternative, context: TransactionContext, verify_with: Verifier
) -> Alternative:
    if alternative.patch.is_empty:
        return alternative
    outcome = verify_with(apply_patch(context, alternative.patch))
    return alternative.model_copy(update={"expected_outcome": outcome, "verified": True})


def synthesize_alternatives(
    context: TransactionContext,
    reasons: Sequence[PolicyReason],
    policy: OrganizationPolicy,
    *,
    verify_with: Verifier | None = None,
) -> list[Alternative]:
    """Propose at most ``MAX_ALTERNATIVES`` de-duplicated remediations."""

    if not context.is_corporate:
        candidates = [_use_corporate_pay()]
    else:
        specific: list[Alternative] = []
        for reason in reasons:
            handler = _HANDLERS.get(reason.code)
            if handler is not None:
                specific.extend(handler(context, reason, policy))
        fallback = _pay_personally(policy)
        unique = [
            alternative
            for alternative in _dedupe(specific)
            if alternative.dedupe_key() != fallback.dedupe_key()
        ]
        candidates = unique[: MAX_ALTERNATIVES - 1] + [fallback]

    if verify_with is not None:
        candidates = [_verify(alternative, context, verify_with) for alternative in candidates]
    return candidates
