"""Spend policy engine combining rules, outcome, alternatives and audit."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path

from .alternatives import synthesize_alternatives
from .audit import build_audit_trail, new_correlation_id
from .config import OrganizationPolicy
from .models import EvaluationResult, Outcome, TransactionContext
from .outcome import aggregate
from .policy_versioning import PolicyVersion
from .program import context_grace_active, resolve_availability
from .rules import DEFAULT_RULES, PolicyRule, evaluate_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpendPolicyEngine:
    """Evaluate transaction contexts against one organization policy.

    Engines are immutable; reloading a policy means building a new engine.
    """

    policy: OrganizationPolicy
    rules: Sequence[PolicyRule] = field(default=DEFAULT_RULES)

    @classmethod
    def from_yaml(cls, content: str) -> SpendPolicyEngine:
        """Build an engine from YAML policy content."""

        return cls(OrganizationPolicy.from_yaml(content))

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> SpendPolicyEngine:
        """Build an engine from a YAML policy file."""

        return cls(OrganizationPolicy.from_file(path))

    @classmethod
    def from_environment(cls, env_var: str = "SPEND_POLICY_CONFIG") -> SpendPolicyEngine:
        """Build an engine from an environment variable containing YAML."""

        return cls(OrganizationPolicy.from_environment(env_var))

    @cached_property
    def version(self) -> PolicyVersion:
        return PolicyVersion.from_policy(self.policy)

    def decide(self, context: TransactionContext) -> Outcome:
        """Return only the outcome for ``context``."""

        return aggregate(evaluate_rules(context, self.policy, rules=self.rules))

    def evaluate(
        self,
        context: TransactionContext,
        *,
        correlation_id: str | None = None,
        verify_alternatives: bool = False,
    ) -> EvaluationResult:
        """Evaluate ``context`` and explain the decision."""

        correlation = correlation_id or new_correlation_id()
        reasons = evaluate_rules(
            context, self.policy, rules=self.rules, correlation_id=correlation
        )
        outcome = aggregate(reasons)
        grace_active = context_grace_active(context, self.policy)
        availability = resolve_availability(
            context.payment_method, context.program_status, grace_active, outcome
        )
        alternatives = synthesize_alternatives(
            context,
            reasons,
            self.policy,
            verify_with=self.decide if verify_alternatives else None,
        )
        audit = build_audit_trail(
            context,
            self.policy,
            reasons,
            outcome,
            correlation_id=correlation,
            grace_active=grace_active,
            snapshot_id=self.version.snapshot_id,
        )
        logger.info(
            "Evaluated %s spend: outcome=%s availability=%s reasons=%d correlation_id=%s",
            context.module,
            outcome.value,
            availability.value,
            len(reasons),
            correlation,
        )
        return EvaluationResult(
            outcome=outcome,
            availability=availability,
            grace_active=grace_active,
            reasons=tuple(reasons),
            alternatives=tuple(alternatives),
            audit=audit,
        )
