"""Test configuration for adding src to the import path."""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from corporate_spend_policy import (
    LineItem,
    OrganizationPolicy,
    PaymentMethod,
    SpendPolicyEngine,
    TransactionContext,
)

NOW = datetime(2025, 3, 14, 9, 30, tzinfo=UTC)

POLICY_PATH = ROOT / "config" / "spend_policy.yaml"


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def policy() -> OrganizationPolicy:
    return OrganizationPolicy.from_file(POLICY_PATH)


@pytest.fixture()
def engine(policy: OrganizationPolicy) -> SpendPolicyEngine:
    return SpendPolicyEngine(policy)


@pytest.fixture()
def item_factory() -> Callable[..., LineItem]:
    def _factory(**overrides: object) -> LineItem:
        data = {
            "item_id": "item-1",
            "name": "Printer paper",
            "category": "Office supplies",
            "vendor_id": "v_pref_office",
            "unit_amount": 25000,
            "quantity": 2,
        }
        data.update(overrides)
        return LineItem(**data)

    return _factory


@pytest.fixture()
def context_factory(
    item_factory: Callable[..., LineItem],
) -> Callable[..., TransactionContext]:
    def _factory(**overrides: object) -> TransactionContext:
        data = {
            "module": "ecommerce",
            "payment_method": PaymentMethod.CORPORATE_PAY,
            "now": NOW,
            "items": (item_factory(),),
            "cost_center": "OPS-001",
            "purpose": "Office restock",
        }
        data.update(overrides)
        return TransactionContext(**data)

    return _factory
