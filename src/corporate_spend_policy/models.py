"""Core value models for corporate spend policy evaluation."""

from __future__ import annotations

import json
from datetime import UTC, datetime, time
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PaymentMethod(str, Enum):
    """Payment methods a checkout flow can offer."""

    CORPORATE_PAY = "CorporatePay"
    PERSONAL_WALLET = "PersonalWallet"
    CARD = "Card"
    MOBILE_MONEY = "MobileMoney"

    @property
    def is_corporate(self) -> bool:
        return self is PaymentMethod.CORPORATE_PAY


class ProgramStatus(str, Enum):
    """Status of the organization's corporate payment program for a user."""

    ELIGIBLE = "Eligible"
    NOT_LINKED = "NotLinked"
    NOT_ELIGIBLE = "NotEligible"
    DEPOSIT_DEPLETED = "DepositDepleted"
    CREDIT_LIMIT_EXCEEDED = "CreditLimitExceeded"
    BILLING_DELINQUENCY = "BillingDelinquency"


class ReasonSeverity(str, Enum):
    """Severity of a policy reason."""

    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"


class Outcome(str, Enum):
    """Decision produced for one evaluation."""

    ALLOWED = "Allowed"
    APPROVAL_REQUIRED = "ApprovalRequired"
    BLOCKED = "Blocked"


class ProgramAvailability(str, Enum):
    """Whether the corporate payment option should be selectable."""

    AVAILABLE = "Available"
    REQUIRES_APPROVAL = "RequiresApproval"
    NOT_AVAILABLE = "NotAvailable"


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class LineItem(BaseModel):
    """A single priced line of a transaction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: str = Field(..., min_length=1, description="Stable line identifier")
    name: str | None = Field(default=None, description="Display name of the item")
    category: str | None = Field(default=None, description="Spend category")
    vendor_id: str | None = Field(default=None, description="Vendor supplying the item")
    unit_amount: Annotated[int, Field(ge=0)] = Field(
        ..., description="Unit price in minor currency units"
    )
    quantity: Annotated[int, Field(ge=1)] = Field(default=1, description="Units ordered")
    channel: str | None = Field(
        default=None, description="Sub-channel such as a marketplace"
    )
    cost_center: str | None = Field(
        default=None, description="Per-item allocation used with split allocation"
    )

    @property
    def line_amount(self) -> int:
        return self.unit_amount * self.quantity

    @property
    def label(self) -> str:
        return self.name or self.item_id


class TransactionContext(BaseModel):
    """Immutable description of one attempted spend.

    A context is built fresh for every evaluation call. The evaluation clock is
    an explicit input (``now``) so that grace windows and time gates never read
    ambient state.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str = Field(..., min_length=1, description="Policy module key, e.g. rides")
    payment_method: PaymentMethod = Field(..., description="Selected payment method")
    program_status: ProgramStatus = Field(
        default=ProgramStatus.ELIGIBLE, description="Corporate program status"
    )
    grace_enabled: bool = Field(
        default=False, description="Whether a billing grace window was granted"
    )
    grace_end_at: datetime | None = Field(
        default=None, description="When the billing grace window ends"
    )
    delinquent_since: datetime | None = Field(
        default=None,
        description="Start of billing delinquency; used with the policy grace window",
    )
    now: datetime = Field(..., description="Evaluation clock, read once per call")
    items: tuple[LineItem, ...] = Field(default=(), description="Priced line items")
    amount: Annotated[int, Field(ge=0)] | None = Field(
        default=None,
        description="Transaction total in minor units when not itemized",
    )
    category: str | None = Field(
        default=None, description="Category of a non-itemized transaction"
    )
    vendor_id: str | None = Field(
        default=None, description="Vendor of a non-itemized transaction"
    )
    cost_center: str | None = Field(default=None, description="Allocation cost center")
    project_tag: str | None = Field(default=None, description="Allocation project tag")
    purpose: str | None = Field(default=None, description="Business purpose")
    split_allocation: bool = Field(
        default=False, description="Whether each item carries its own cost center"
    )
    attachment_count: Annotated[int, Field(ge=0)] = Field(
        default=0, description="Number of supporting documents attached"
    )
    attested: bool = Field(
        default=False, description="Business-use attestation was confirmed"
    )
    notes: str | None = Field(default=None, description="Free-text note for approvers")
    local_time: time | None = Field(
        default=None, description="Local time of the spend for time-window gates"
    )
    region: str | None = Field(default=None, description="Region of the spend")
    site_id: str | None = Field(default=None, description="Site or station identifier")
    connector: str | None = Field(default=None, description="Requested connector type")
    site_connectors: tuple[str, ...] = Field(
        default=(), description="Connector types offered by the site"
    )

    @field_validator("grace_end_at", "delinquent_since", "now", mode="after")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_unique_items(self) -> TransactionContext:
        seen: set[str] = set()
        for item in self.items:
            if item.item_id in seen:
                raise ValueError(f"Duplicate line item id: {item.item_id}")
            seen.add(item.item_id)
        return self

    @model_validator(mode="after")
    def _check_amount_matches_items(self) -> TransactionContext:
        if self.items and self.amount is not None and self.amount != self.items_subtotal:
            raise ValueError(
                f"Amount {self.amount} does not match the item subtotal {self.items_subtotal}"
            )
        return self

    @property
    def is_corporate(self) -> bool:
        return self.payment_method.is_corporate

    @property
    def items_subtotal(self) -> int:
        return sum(item.line_amount for item in self.items)

    @property
    def total_amount(self) -> int:
        """Item subtotal for itemized spend, otherwise the explicit amount."""

        if self.items or self.amount is None:
            return self.items_subtotal
        return self.amount

    def effective_lines(self) -> tuple[LineItem, ...]:
        """Return the items, or one synthetic line for a non-itemized spend."""

        if self.items:
            return self.items
        if self.amount is None and self.vendor_id is None and self.category is None:
            return ()
        return (
            LineItem(
                item_id="transaction",
                category=self.category,
                vendor_id=self.vendor_id,
                unit_amount=self.amount or 0,
                quantity=1,
            ),
        )

    def vendor_subtotals(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for line in self.effective_lines():
            if line.vendor_id is None:
                continue
            totals[line.vendor_id] = totals.get(line.vendor_id, 0) + line.line_amount
        return totals

    def channel_subtotals(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for line in self.effective_lines():
            if line.channel is None:
                continue
            totals[line.channel] = totals.get(line.channel, 0) + line.line_amount
        return totals

    def lines_for_vendor(self, vendor_id: str) -> list[LineItem]:
        return [line for line in self.effective_lines() if line.vendor_id == vendor_id]


class PolicyReason(BaseModel):
    """A single typed reason produced by one rule check."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Stable reason code, e.g. VENDOR")
    title: str = Field(..., description="Short human-readable title")
    detail: str = Field(..., description="Explanation including thresholds")
    severity: ReasonSeverity = Field(..., description="Severity of the reason")
    rule_id: str | None = Field(default=None, description="Rule that produced it")
    subject: str | None = Field(
        default=None, description="Item, vendor or field the reason is about"
    )


class VendorReplacement(BaseModel):
    """Swap the vendor of one line item."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    vendor_id: str


class ContextPatch(BaseModel):
    """Proposed, non-committing change to a transaction context.

    Unset fields mean "leave as is"; an empty patch is an informational nudge.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    payment_method: PaymentMethod | None = None
    remove_item_id: str | None = None
    replace_vendor: VendorReplacement | None = None
    split_allocation: bool | None = None
    cost_center: str | None = None
    project_tag: str | None = None
    purpose: str | None = None
    region: str | None = None
    local_time: time | None = None
    site_id: str | None = None
    attested: bool | None = None

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    def signature(self) -> str:
        """Canonical JSON form used for de-duplication."""

        return json.dumps(
            self.model_dump(mode="json", exclude_none=True),
            sort_keys=True,
            separators=(",", ":"),
        )


class Alternative(BaseModel):
    """A suggested remediation and the outcome it is expected to produce."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable alternative identifier")
    title: str = Field(..., description="Short action title")
    description: str = Field(..., description="What the user should do")
    expected_outcome: Outcome = Field(
        ..., description="Outcome expected after applying the patch"
    )
    patch: ContextPatch = Field(
        default_factory=ContextPatch, description="Context change to apply"
    )
    verified: bool = Field(
        default=False,
        description="True when expected_outcome came from re-evaluating the patch",
    )

    def dedupe_key(self) -> tuple[str, str]:
        return (self.title, self.patch.signature())


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: str


class PolicyPathStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: str
    detail: str


class AuditTrail(BaseModel):
    """Structured explanation of how an outcome was reached."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str = Field(..., description="Unique id of the evaluation call")
    summary: str = Field(..., description="Human-readable summary")
    triggers: tuple[AuditEntry, ...] = Field(
        default=(), description="Context fields that drove the decision"
    )
    policy_path: tuple[PolicyPathStep, ...] = Field(
        default=(), description="Ordered narrative of evaluation stages"
    )
    audit_meta: tuple[AuditEntry, ...] = Field(
        default=(), description="Correlation, policy snapshot and timestamp"
    )


class EvaluationResult(BaseModel):
    """Everything produced by one engine evaluation."""

    model_config = ConfigDict(frozen=True)

    outcome: Outcome
    availability: ProgramAvailability
    grace_active: bool = False
    reasons: tuple[PolicyReason, ...]
    alternatives: tuple[Alternative, ...] = ()
    audit: AuditTrail

    @property
    def correlation_id(self) -> str:
        return self.audit.correlation_id

    def reasons_with(self, severity: ReasonSeverity) -> list[PolicyReason]:
        return [reason for reason in self.reasons if reason.severity == severity]
