"""Tests for organization policy configuration loading."""

from __future__ import annotations

from datetime import time, timedelta

import pytest

from corporate_spend_policy.config import OrganizationPolicy, TimeWindow, VendorStatus
from corporate_spend_policy.exceptions import PolicyConfigurationError


def test_load_policy_from_default_file() -> None:
    policy = OrganizationPolicy.from_file()

    assert policy.organization_id == "acme-logistics"
    assert set(policy.modules) >= {"ecommerce", "rides", "charging", "service_booking"}
    assert policy.grace_window == timedelta(hours=72)


def test_load_policy_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(
        "SPEND_POLICY_CONFIG",
        """
organization_id: env-org
modules:
  rides:
    approval_threshold: 10
    block_threshold: 20
""",
    )

    policy = OrganizationPolicy.from_environment()

    assert policy.organization_id == "env-org"
    assert policy.module_policy("rides").approval_threshold == 10


def test_from_environment_requires_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SPEND_POLICY_CONFIG", raising=False)

    with pytest.raises(ValueError, match="SPEND_POLICY_CONFIG"):
        OrganizationPolicy.from_environment()


def test_from_file_missing_path_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        OrganizationPolicy.from_file(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "organization_id: acme\n",
        "- just\n- a list\n",
        "organization_id: [unclosed\n",
        "organization_id: acme\nmodules:\n  rides:\n    approval_threshold: -5\n",
        "organization_id: acme\nmodules:\n  rides: {}\npersonal_payment_method: CorporatePay\n",
    ],
)
def test_invalid_configuration_raises(content: str) -> None:
    with pytest.raises(PolicyConfigurationError):
        OrganizationPolicy.from_yaml(content)


def test_duplicate_vendor_ids_rejected() -> None:
    content = """
organization_id: acme
modules:
  rides: {}
vendors:
  - {vendor_id: v1, name: One, status: Preferred}
  - {vendor_id: v1, name: Again, status: Allowlisted}
"""
    with pytest.raises(PolicyConfigurationError, match="Duplicate vendor ids"):
        OrganizationPolicy.from_yaml(content)


def test_unknown_vendor_is_unapproved(policy: OrganizationPolicy) -> None:
    assert policy.vendor_status("v_pref_office") == VendorStatus.PREFERRED
    assert policy.vendor_status("v_nobody") == VendorStatus.UNAPPROVED
    assert policy.vendor_name("v_nobody") == "v_nobody"


def test_format_amount_respects_exponent(policy: OrganizationPolicy) -> None:
    assert policy.format_amount(1250000) == "UGX 1,250,000"

    cents = policy.model_copy(update={"currency": "USD", "currency_exponent": 2})
    assert cents.format_amount(123456) == "USD 1,234.56"


@pytest.mark.parametrize(
    ("start", "end", "moment", "expected"),
    [
        (time(6), time(22), time(12), True),
        (time(6), time(22), time(22), True),
        (time(6), time(22), time(23), False),
        (time(22), time(6), time(23, 30), True),
        (time(22), time(6), time(5, 59), True),
        (time(22), time(6), time(12), False),
    ],
)
def test_time_window_contains(start: time, end: time, moment: time, expected: bool) -> None:
    assert TimeWindow(start=start, end=end).contains(moment) is expected


def test_time_windows_load_from_quoted_yaml(policy: OrganizationPolicy) -> None:
    window = policy.module_policy("rides").allowed_time_windows[0]

    assert window.start == time(6, 0)
    assert window.describe() == "06:00-22:00"
