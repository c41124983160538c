"""Corporate Spend Policy - decision engine for corporate payments at checkout."""

from .alternatives import MAX_ALTERNATIVES, apply_patch, choose_best_vendor, synthesize_alternatives
from .audit import build_audit_trail, new_correlation_id
from .config import (
    ChannelThreshold,
    ModulePolicy,
    OrganizationPolicy,
    TimeWindow,
    VendorEntry,
    VendorStatus,
)
from .engine import SpendPolicyEngine
from .exceptions import InvalidRequestError, PolicyConfigurationError
from .models import (
    Alternative,
    AuditEntry,
    AuditTrail,
    ContextPatch,
    EvaluationResult,
    LineItem,
    Outcome,
    PaymentMethod,
    PolicyPathStep,
    PolicyReason,
    ProgramAvailability,
    ProgramStatus,
    ReasonSeverity,
    TransactionContext,
    VendorReplacement,
)
from .outcome import aggregate
from .policy_api import EvaluationRequest, EvaluationResponse, evaluate_request
from .policy_versioning import PolicyVersion, simulate_policy_change
from .program import is_grace_active, resolve_availability
from .rules import DEFAULT_RULES, PolicyRule, evaluate_rules

__all__ = [
    "Alternative",
    "AuditEntry",
    "AuditTrail",
    "ChannelThreshold",
    "ContextPatch",
    "DEFAULT_RULES",
    "EvaluationRequest",
    "EvaluationResponse",
    "EvaluationResult",
    "InvalidRequestError",
    "LineItem",
    "MAX_ALTERNATIVES",
    "ModulePolicy",
    "OrganizationPolicy",
    "Outcome",
    "PaymentMethod",
    "PolicyConfigurationError",
    "PolicyPathStep",
    "PolicyReason",
    "PolicyRule",
    "PolicyVersion",
    "ProgramAvailability",
    "ProgramStatus",
    "ReasonSeverity",
    "SpendPolicyEngine",
    "TimeWindow",
    "TransactionContext",
    "VendorEntry",
    "VendorReplacement",
    "VendorStatus",
    "aggregate",
    "apply_patch",
    "build_audit_trail",
    "choose_best_vendor",
    "evaluate_request",
    "evaluate_rules",
    "is_grace_active",
    "new_correlation_id",
    "resolve_availability",
    "simulate_policy_change",
    "synthesize_alternatives",
]

__version__ = "0.1.0"
