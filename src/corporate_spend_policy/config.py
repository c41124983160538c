"""Organization policy configuration consumed by the engine.

Policies are owned by the organization and injected into the engine as
read-only values. The loaders here accept YAML from a string, a file or an
environment variable; where the configuration is stored is up to the caller.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import time, timedelta
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import PolicyConfigurationError
from .models import PaymentMethod

Amount = Annotated[int, Field(ge=0)]


class VendorStatus(str, Enum):
    """Trust tier of a vendor in the organization directory."""

    PREFERRED = "Preferred"
    ALLOWLISTED = "Allowlisted"
    UNAPPROVED = "Unapproved"
    DENYLISTED = "Denylisted"

    @property
    def is_approved(self) -> bool:
        return self in (VendorStatus.PREFERRED, VendorStatus.ALLOWLISTED)


class VendorEntry(BaseModel):
    """Vendor directory record."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    vendor_id: str = Field(..., min_length=1, description="Vendor identifier")
    name: str = Field(..., description="Display name")
    status: VendorStatus = Field(..., description="Trust tier")
    categories: tuple[str, ...] = Field(
        default=(), description="Categories the vendor supplies"
    )


class TimeWindow(BaseModel):
    """Inclusive local-time window; ``start > end`` wraps past midnight."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    start: time
    end: time

    def contains(self, moment: time) -> bool:
        if self.start <= self.end:
            return self.start <= moment <= self.end
        return moment >= self.start or moment <= self.end

    def describe(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


class ChannelThreshold(BaseModel):
    """Narrower amount thresholds applied to one sub-channel's subtotal."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    channel: str = Field(..., min_length=1, description="Sub-channel name")
    approval_threshold: Amount | None = Field(
        default=None, description="Subtotal above which approval is required"
    )
    block_threshold: Amount | None = Field(
        default=None, description="Subtotal above which the spend is blocked"
    )


class ModulePolicy(BaseModel):
    """Policy settings for one checkout module (rides, e-commerce, ...).

    Thresholds are optional in the schema so that a missing value can be
    reported as a misconfiguration at evaluation time instead of failing the
    whole configuration load.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    approval_threshold: Amount | None = Field(
        default=None, description="Total above which approval is required"
    )
    block_threshold: Amount | None = Field(
        default=None, description="Total above which the spend is blocked"
    )
    unapproved_vendor_approval_threshold: Amount | None = Field(
        default=None,
        description="Per-vendor subtotal for unapproved vendors requiring approval",
    )
    unapproved_vendor_block_threshold: Amount | None = Field(
        default=None,
        description="Per-vendor subtotal for unapproved vendors that blocks",
    )
    channel_thresholds: tuple[ChannelThreshold, ...] = Field(default=())

    require_cost_center: bool = Field(default=True)
    require_project_tag: bool = Field(default=False)
    require_purpose: bool = Field(default=False)
    split_allocation_allowed: bool = Field(default=False)
    required_attachments: tuple[str, ...] = Field(
        default=(), description="Document types that must be attached"
    )
    attestation_required: bool = Field(
        default=False, description="Business-use attestation must be confirmed"
    )

    restricted_categories: tuple[str, ...] = Field(default=())

    allowed_time_windows: tuple[TimeWindow, ...] = Field(
        default=(), description="Empty means no time restriction"
    )
    allowed_regions: tuple[str, ...] = Field(
        default=(), description="Empty means no region restriction"
    )
    allowed_sites: tuple[str, ...] = Field(
        default=(), description="Empty means no site restriction"
    )

    attachments_recommended_above: Amount | None = Field(default=None)
    notes_recommended: bool = Field(default=False)
    high_value_categories: tuple[str, ...] = Field(
        default=(), description="Categories that belong in a quote workflow"
    )
    high_value_quote_threshold: Amount | None = Field(default=None)
    high_value_cost_centers: tuple[str, ...] = Field(default=())

    default_cost_center: str | None = Field(default=None)
    default_project_tag: str | None = Field(default=None)
    default_purpose: str | None = Field(default=None)


class OrganizationPolicy(BaseModel):
    """Complete spend policy of one organization."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    organization_id: str = Field(..., min_length=1)
    version: str = Field(default="0.1.0", description="Semantic policy version")
    currency: str = Field(default="UGX")
    currency_exponent: Annotated[int, Field(ge=0, le=4)] = Field(
        default=0, description="Number of minor-unit digits"
    )
    grace_window: timedelta = Field(
        default=timedelta(hours=72),
        description="Grace duration granted after billing delinquency starts",
    )
    personal_payment_method: PaymentMethod = Field(
        default=PaymentMethod.PERSONAL_WALLET,
        description="Payment method proposed by the pay-personally fallback",
    )
    modules: dict[str, ModulePolicy] = Field(default_factory=dict)
    vendors: tuple[VendorEntry, ...] = Field(default=())

    @field_validator("personal_payment_method")
    @classmethod
    def _personal_method(cls, value: PaymentMethod) -> PaymentMethod:
        if value.is_corporate:
            raise ValueError("personal_payment_method cannot be CorporatePay")
        return value

    @field_validator("vendors")
    @classmethod
    def _unique_vendors(cls, value: tuple[VendorEntry, ...]) -> tuple[VendorEntry, ...]:
        ids = [vendor.vendor_id for vendor in value]
        duplicates = sorted({vendor_id for vendor_id in ids if ids.count(vendor_id) > 1})
        if duplicates:
            raise ValueError(f"Duplicate vendor ids: {', '.join(duplicates)}")
        return value

    def module_policy(self, module: str) -> ModulePolicy | None:
        return self.modules.get(module)

    def vendor(self, vendor_id: str) -> VendorEntry | None:
        for entry in self.vendors:
            if entry.vendor_id == vendor_id:
                return entry
        return None

    def vendor_status(self, vendor_id: str) -> VendorStatus:
        """Directory status; vendors missing from the directory are unapproved."""

        entry = self.vendor(vendor_id)
        return entry.status if entry is not None else VendorStatus.UNAPPROVED

    def vendor_name(self, vendor_id: str) -> str:
        entry = self.vendor(vendor_id)
        return entry.name if entry is not None else vendor_id

    def format_amount(self, amount: int) -> str:
        if self.currency_exponent == 0:
            return f"{self.currency} {amount:,}"
        major, minor = divmod(amount, 10**self.currency_exponent)
        return f"{self.currency} {major:,}.{minor:0{self.currency_exponent}d}"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> OrganizationPolicy:
        if not data.get("modules"):
            raise PolicyConfigurationError(
                "Policy configuration must include a 'modules' mapping"
            )
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise PolicyConfigurationError(f"Invalid policy configuration: {exc}") from exc

    @classmethod
    def from_yaml(cls, content: str) -> OrganizationPolicy:
        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as exc:
            raise PolicyConfigurationError("Policy configuration is not valid YAML") from exc
        if not isinstance(data, dict):
            raise PolicyConfigurationError("Policy configuration must be a mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> OrganizationPolicy:
        target_path = Path(path) if path is not None else _default_policy_path()
        if target_path is None:
            raise FileNotFoundError("No spend_policy.yaml configuration file found")
        return cls.from_yaml(target_path.read_text(encoding="utf-8"))

    @classmethod
    def from_environment(cls, env_var: str = "SPEND_POLICY_CONFIG") -> OrganizationPolicy:
        content = os.getenv(env_var)
        if not content:
            raise ValueError(f"Environment variable '{env_var}' is not set or empty")
        return cls.from_yaml(content)


def _default_policy_path() -> Path | None:
    for parent in Path(__file__).resolve().parents:
        candidate = parent / "config" / "spend_policy.yaml"
        if candidate.exists():
            return candidate
    return None
