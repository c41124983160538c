"""Tests for package root public API imports."""

from __future__ import annotations

import tomllib
from pathlib import Path

import corporate_spend_policy as csp
from corporate_spend_policy import (
    SpendPolicyEngine,
    TransactionContext,
    __version__,
    evaluate_request,
    resolve_availability,
    synthesize_alternatives,
)


def test_public_api_exports() -> None:
    """Core API symbols should be importable from the package root."""
    required_exports = {
        "SpendPolicyEngine",
        "TransactionContext",
        "evaluate_request",
        "evaluate_rules",
        "aggregate",
        "resolve_availability",
        "synthesize_alternatives",
        "build_audit_trail",
    }

    assert required_exports.issubset(set(csp.__all__))
    assert all(hasattr(csp, name) for name in csp.__all__)
    assert callable(evaluate_request)
    assert callable(resolve_availability)
    assert callable(synthesize_alternatives)
    assert SpendPolicyEngine is not None
    assert TransactionContext is not None


def test_version_matches_pyproject() -> None:
    """Package __version__ should align with pyproject.toml."""
    pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    pyproject_data = tomllib.loads(pyproject_path.read_text(encoding="utf-8"))
    assert __version__ == pyproject_data["project"]["version"]
