"""Versioning helpers for organization spend policies.

The helpers in this module cover policy-as-code lifecycle concerns:

* Semantic version tracking with deterministic configuration hashes
* Snapshot identifiers recorded in audit trails
* Replaying contexts against a proposed policy before hot-reloading it
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from hashlib import sha256
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - import cycles avoided at runtime
    from .config import OrganizationPolicy
    from .engine import SpendPolicyEngine
    from .models import Outcome, TransactionContext


def _stable_hash(config: dict[str, Any]) -> str:
    """Return a deterministic hash for a policy configuration."""

    normalized = json.dumps(config, sort_keys=True, separators=(",", ":"), default=str).encode(
        "utf-8"
    )
    return sha256(normalized).hexdigest()


def _parse_version(version: str | None) -> tuple[int, int, int]:
    if not version:
        return (0, 1, 0)

    parts = str(version).split(".")
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) > 1 else 0
        patch = int(parts[2]) if len(parts) > 2 else 0
    except ValueError:
        return (0, 1, 0)

    return (major, minor, patch)


@dataclass(frozen=True)
class PolicyVersion:
    """Semantic policy version paired with a configuration hash."""

    organization_id: str
    major: int
    minor: int
    patch: int
    config_hash: str

    @classmethod
    def from_config(
        cls, organization_id: str, version: str | None, config: dict[str, Any]
    ) -> PolicyVersion:
        major, minor, patch = _parse_version(version)
        return cls(
            organization_id=organization_id,
            major=major,
            minor=minor,
            patch=patch,
            config_hash=_stable_hash(config),
        )

    @classmethod
    def from_policy(cls, policy: OrganizationPolicy) -> PolicyVersion:
        config = policy.model_dump(mode="json", exclude={"version"})
        return cls.from_config(policy.organization_id, policy.version, config)

    @property
    def label(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @property
    def snapshot_id(self) -> str:
        """Identifier of the exact configuration, suitable for audit records."""

        return f"{self.organization_id}.policy.v{self.label}+{self.config_hash[:12]}"


@dataclass(frozen=True)
class PolicyChangeSimulationResult:
    context: TransactionContext
    current_outcome: Outcome
    proposed_outcome: Outcome

    @property
    def changed(self) -> bool:
        return self.current_outcome != self.proposed_outcome


def simulate_policy_change(
    current_engine: SpendPolicyEngine,
    proposed_engine: SpendPolicyEngine,
    historical_contexts: Iterable[TransactionContext],
) -> list[PolicyChangeSimulationResult]:
    """Replay contexts to see which decisions a policy change would flip."""

    simulations: list[PolicyChangeSimulationResult] = []
    for context in historical_contexts:
        simulations.append(
            PolicyChangeSimulationResult(
                context=context,
                current_outcome=current_engine.decide(context),
                proposed_outcome=proposed_engine.decide(context),
            )
        )
    return simulations
