"""Tests for the camelCase request/response surface."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from corporate_spend_policy.exceptions import InvalidRequestError
from corporate_spend_policy.models import PaymentMethod
from corporate_spend_policy.policy_api import EvaluationRequest, evaluate_request

NOW_MS = 1741944600000


@pytest.fixture()
def payload_factory() -> Callable[..., dict[str, Any]]:
    def _factory(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "paymentMethod": "CorporatePay",
            "programStatus": "Eligible",
            "nowEpochMs": NOW_MS,
            "module": "ecommerce",
            "items": [
                {
                    "id": "paper",
                    "category": "Office supplies",
                    "vendorId": "v_pref_office",
                    "unitAmount": 25000,
                    "qty": 2,
                }
            ],
            "costCenter": "OPS-001",
            "purpose": "Office restock",
            "attachmentsCount": 0,
        }
        data.update(overrides)
        return data

    return _factory


def test_request_maps_to_context(payload_factory) -> None:
    request = EvaluationRequest.model_validate(
        payload_factory(
            splitAllocation=True,
            items=[
                {
                    "id": "a",
                    "category": "Office supplies",
                    "vendorId": "v_pref_office",
                    "unitAmount": 100,
                    "qty": 3,
                    "channel": "MyLiveDealz",
                    "allocation": "OPS-002",
                }
            ],
            localTime="21:45",
            siteConnectors=["CCS2"],
            attested=True,
        )
    )

    context = request.to_context()

    assert context.payment_method == PaymentMethod.CORPORATE_PAY
    assert context.now.timestamp() * 1000 == NOW_MS
    assert context.items[0].quantity == 3
    assert context.items[0].cost_center == "OPS-002"
    assert context.items[0].channel == "MyLiveDealz"
    assert context.split_allocation is True
    assert context.local_time.hour == 21
    assert context.site_connectors == ("CCS2",)
    assert context.attested is True


def test_request_accepts_field_names(payload_factory) -> None:
    payload = payload_factory()
    payload.pop("paymentMethod")
    payload["payment_method"] = "Card"

    request = EvaluationRequest.model_validate(payload)

    assert request.payment_method == PaymentMethod.CARD


def test_response_is_camel_case(payload_factory, engine) -> None:
    response = evaluate_request(payload_factory(costCenter=None), engine)

    assert response["outcome"] == "Blocked"
    assert response["availability"] == "NotAvailable"
    assert response["correlationId"].startswith("corr_")
    assert {"code", "title", "detail", "severity"} == set(response["reasons"][0])
    default = next(a for a in response["alternatives"] if a["id"] == "set_cost_center")
    assert default["expectedOutcome"] == "Allowed"
    assert default["patch"] == {"costCenter": "OPS-001"}
    assert set(response["audit"]) == {"summary", "triggers", "policyPath", "auditMeta"}
    assert response["audit"]["policyPath"][0]["step"] == "Eligibility"


def test_vendor_switch_patch_is_nested_camel_case(payload_factory, engine) -> None:
    payload = payload_factory(
        items=[
            {
                "id": "tablet",
                "category": "Electronics",
                "vendorId": "v_unapproved_tech",
                "unitAmount": 400000,
                "qty": 1,
            }
        ]
    )

    response = evaluate_request(payload, engine)

    switch = next(a for a in response["alternatives"] if a["id"].startswith("switch_vendor"))
    assert switch["patch"] == {
        "replaceVendor": {"itemId": "tablet", "vendorId": "v_pref_office"}
    }


def test_basket_total_comes_from_items_not_amount(payload_factory, engine) -> None:
    items = [
        {
            "id": "laptops",
            "category": "Office supplies",
            "vendorId": "v_pref_office",
            "unitAmount": 900000,
            "qty": 3,
        }
    ]

    response = evaluate_request(payload_factory(items=items, amount=2700000), engine)

    assert response["outcome"] == "Blocked"
    assert "BASKET" in [reason["code"] for reason in response["reasons"]]
    with pytest.raises(InvalidRequestError):
        evaluate_request(payload_factory(items=items, amount=1), engine)


def test_epoch_upper_bound_is_accepted(payload_factory) -> None:
    request = EvaluationRequest.model_validate(
        payload_factory(graceEndAtEpochMs=253402300799999)
    )

    assert request.to_context().grace_end_at.year == 9999


def test_blocked_is_a_normal_response(payload_factory, engine) -> None:
    response = evaluate_request(payload_factory(programStatus="DepositDepleted"), engine)

    assert response["outcome"] == "Blocked"
    assert response["availability"] == "NotAvailable"


@pytest.mark.parametrize(
    "overrides",
    [
        {"paymentMethod": "Cheque"},
        {"amount": -100},
        {"items": [{"id": "x", "unitAmount": 10, "qty": 0}]},
        {"items": [{"id": "x", "unitAmount": 10}, {"id": "x", "unitAmount": 20}]},
        {"unexpected": True},
        {"module": ""},
        {"amount": 1},
        {"nowEpochMs": 10**18},
        {"graceEndAtEpochMs": -(10**18)},
        {"delinquentSinceEpochMs": 10**18},
    ],
)
def test_malformed_requests_raise_invalid_request(
    payload_factory, engine, overrides: dict[str, Any]
) -> None:
    with pytest.raises(InvalidRequestError) as excinfo:
        evaluate_request(payload_factory(**overrides), engine)

    assert excinfo.value.to_dict()["error"] == "InvalidRequest"
    assert excinfo.value.errors


def test_inline_policy_config_overrides_engine(payload_factory, engine) -> None:
    payload = payload_factory(
        policyConfig={
            "organization_id": "inline-org",
            "vendors": [
                {"vendor_id": "v_pref_office", "name": "Office", "status": "Preferred"}
            ],
            "modules": {
                "ecommerce": {"approval_threshold": 10, "block_threshold": 1000000}
            },
        }
    )

    response = evaluate_request(payload, engine)

    assert response["outcome"] == "ApprovalRequired"
    snapshot = next(
        entry["value"] for entry in response["audit"]["auditMeta"] if entry["label"] == "Policy snapshot"
    )
    assert snapshot.startswith("inline-org.policy.")


def test_invalid_inline_policy_is_invalid_request(payload_factory, engine) -> None:
    with pytest.raises(InvalidRequestError, match="modules"):
        evaluate_request(payload_factory(policyConfig={"organization_id": "x"}), engine)


def test_verified_alternatives_in_response(payload_factory, engine) -> None:
    response = evaluate_request(
        payload_factory(costCenter=None), engine, verify_alternatives=True
    )

    pay = next(a for a in response["alternatives"] if a["id"] == "pay_personally")
    assert pay["verified"] is True
    assert pay["patch"] == {"paymentMethod": "PersonalWallet"}
