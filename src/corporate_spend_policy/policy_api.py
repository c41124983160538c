"""Stable request/response surface for checkout integrations.

Requests and responses use camelCase JSON so that web and mobile checkout
flows can call the engine directly.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime, time, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .config import OrganizationPolicy
from .engine import SpendPolicyEngine
from .exceptions import InvalidRequestError, PolicyConfigurationError
from .models import (
    Alternative,
    EvaluationResult,
    LineItem,
    PaymentMethod,
    ProgramStatus,
    TransactionContext,
)

__all__ = [
    "LineItemRequest",
    "EvaluationRequest",
    "ReasonPayload",
    "AlternativePayload",
    "AuditPayload",
    "EvaluationResponse",
    "evaluate_request",
]

_REQUEST_CONFIG = ConfigDict(
    extra="forbid", populate_by_name=True, alias_generator=to_camel
)
_RESPONSE_CONFIG = ConfigDict(populate_by_name=True, alias_generator=to_camel)


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
# Last millisecond representable by ``datetime``.
MAX_EPOCH_MS = 253402300799999


def _from_epoch_ms(value: int | None) -> datetime | None:
    if value is None:
        return None
    return _EPOCH + timedelta(milliseconds=value)


def _camel_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {to_camel(key): _camel_keys(item) for key, item in value.items()}
    return value


class LineItemRequest(BaseModel):
    """Line item as sent by a checkout flow."""

    model_config = _REQUEST_CONFIG

    id: str = Field(..., min_length=1, description="Line identifier")
    name: str | None = Field(default=None, description="Display name")
    category: str | None = Field(default=None, description="Spend category")
    vendor_id: str | None = Field(default=None, description="Vendor identifier")
    unit_amount: int = Field(..., ge=0, description="Unit price in minor units")
    qty: int = Field(default=1, ge=1, description="Quantity")
    channel: str | None = Field(default=None, description="Sub-channel")
    allocation: str | None = Field(
        default=None, description="Per-item cost center for split allocation"
    )

    def to_line_item(self) -> LineItem:
        return LineItem(
            item_id=self.id,
            name=self.name,
            category=self.category,
            vendor_id=self.vendor_id,
            unit_amount=self.unit_amount,
            quantity=self.qty,
            channel=self.channel,
            cost_center=self.allocation,
        )


class EvaluationRequest(BaseModel):
    """Evaluation request payload."""

    model_config = _REQUEST_CONFIG

    payment_method: PaymentMethod
    program_status: ProgramStatus = ProgramStatus.ELIGIBLE
    grace_enabled: bool = False
    grace_end_at_epoch_ms: int | None = Field(default=None, ge=0, le=MAX_EPOCH_MS)
    delinquent_since_epoch_ms: int | None = Field(default=None, ge=0, le=MAX_EPOCH_MS)
    now_epoch_ms: int | None = Field(
        default=None,
        ge=0,
        le=MAX_EPOCH_MS,
        description="Evaluation clock; defaults to the request time",
    )
    module: str = Field(..., min_length=1)
    items: list[LineItemRequest] = Field(default_factory=list)
    amount: int | None = Field(default=None, ge=0)
    category: str | None = None
    vendor_id: str | None = None
    cost_center: str | None = None
    project_tag: str | None = None
    purpose: str | None = None
    split_allocation: bool = False
    attachments_count: int = Field(default=0, ge=0)
    attested: bool = False
    notes: str | None = None
    local_time: time | None = None
    region: str | None = None
    site_id: str | None = None
    connector: str | None = None
    site_connectors: list[str] = Field(default_factory=list)
    policy_config: dict[str, Any] | None = Field(
        default=None, description="Inline organization policy overriding the default"
    )

    def to_context(self) -> TransactionContext:
        now = _from_epoch_ms(self.now_epoch_ms) or datetime.now(UTC)
        return TransactionContext(
            module=self.module,
            payment_method=self.payment_method,
            program_status=self.program_status,
            grace_enabled=self.grace_enabled,
            grace_end_at=_from_epoch_ms(self.grace_end_at_epoch_ms),
            delinquent_since=_from_epoch_ms(self.delinquent_since_epoch_ms),
            now=now,
            items=tuple(item.to_line_item() for item in self.items),
            amount=self.amount,
            category=self.category,
            vendor_id=self.vendor_id,
            cost_center=self.cost_center,
            project_tag=self.project_tag,
            purpose=self.purpose,
            split_allocation=self.split_allocation,
            attachment_count=self.attachments_count,
            attested=self.attested,
            notes=self.notes,
            local_time=self.local_time,
            region=self.region,
            site_id=self.site_id,
            connector=self.connector,
            site_connectors=tuple(self.site_connectors),
        )


class ReasonPayload(BaseModel):
    model_config = _RESPONSE_CONFIG

    code: str
    title: str
    detail: str
    severity: str


class AlternativePayload(BaseModel):
    model_config = _RESPONSE_CONFIG

    id: str
    title: str
    description: str
    expected_outcome: str
    patch: dict[str, Any] = Field(default_factory=dict)
    verified: bool = False

    @classmethod
    def from_alternative(cls, alternative: Alternative) -> AlternativePayload:
        return cls(
            id=alternative.id,
            title=alternative.title,
            description=alternative.description,
            expected_outcome=alternative.expected_outcome.value,
            patch=_camel_keys(alternative.patch.model_dump(mode="json", exclude_none=True)),
            verified=alternative.verified,
        )


class AuditPayload(BaseModel):
    model_config = _RESPONSE_CONFIG

    summary: str
    triggers: list[dict[str, str]]
    policy_path: list[dict[str, str]]
    audit_meta: list[dict[str, str]]


class EvaluationResponse(BaseModel):
    """Evaluation response payload."""

    model_config = _RESPONSE_CONFIG

    outcome: str
    availability: str
    grace_active: bool
    correlation_id: str
    reasons: list[ReasonPayload]
    alternatives: list[AlternativePayload]
    audit: AuditPayload

    @classmethod
    def from_result(cls, result: EvaluationResult) -> EvaluationResponse:
        return cls(
            outcome=result.outcome.value,
            availability=result.availability.value,
            grace_active=result.grace_active,
            correlation_id=result.correlation_id,
            reasons=[
                ReasonPayload(
                    code=reason.code,
                    title=reason.title,
                    detail=reason.detail,
                    severity=reason.severity.value,
                )
                for reason in result.reasons
            ],
            alternatives=[
                AlternativePayload.from_alternative(alternative)
                for alternative in result.alternatives
            ],
            audit=AuditPayload(
                summary=result.audit.summary,
                triggers=[entry.model_dump() for entry in result.audit.triggers],
                policy_path=[step.model_dump() for step in result.audit.policy_path],
                audit_meta=[entry.model_dump() for entry in result.audit.audit_meta],
            ),
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _engine_for(
    request: EvaluationRequest, engine: SpendPolicyEngine | None
) -> SpendPolicyEngine:
    if request.policy_config is not None:
        try:
            return SpendPolicyEngine(OrganizationPolicy.from_mapping(request.policy_config))
        except PolicyConfigurationError as exc:
            raise InvalidRequestError(str(exc)) from exc
    if engine is not None:
        return engine
    return SpendPolicyEngine.from_file()


def evaluate_request(
    payload: Mapping[str, Any],
    engine: SpendPolicyEngine | None = None,
    *,
    correlation_id: str | None = None,
    verify_alternatives: bool = False,
) -> dict[str, Any]:
    """Validate a camelCase request, evaluate it and return the response JSON.

    Raises ``InvalidRequestError`` for malformed payloads; every policy outcome,
    including ``Blocked``, is a normal response.
    """

    try:
        request = EvaluationRequest.model_validate(dict(payload))
        context = request.to_context()
    except ValidationError as exc:
        errors = json.loads(exc.json(include_url=False))
        raise InvalidRequestError("Invalid evaluation request", errors) from exc

    result = _engine_for(request, engine).evaluate(
        context,
        correlation_id=correlation_id,
        verify_alternatives=verify_alternatives,
    )
    return EvaluationResponse.from_result(result).to_payload()
