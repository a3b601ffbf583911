"""
Gate validator.

Decides whether a routing decision permits document generation. Gates run
in a fixed order and the first failing gate is returned. Pure functions, no
I/O, never raise for a well-formed decision.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from casegate.core.config import settings
from casegate.services.routing.types import RoutingDecision, RoutingStatus

DECISION_MISSING = "DECISION_MISSING"
PREREQUISITE_UNMET = "PREREQUISITE_UNMET"
TIME_LIMIT_EXPIRED = "TIME_LIMIT_EXPIRED"
NEEDS_CLARIFICATION = "NEEDS_CLARIFICATION"
LOW_CONFIDENCE = "LOW_CONFIDENCE"
ROUTE_BLOCKED = "ROUTE_BLOCKED"
DECISION_PENDING = "DECISION_PENDING"
NO_ALLOWED_DOCUMENTS = "NO_ALLOWED_DOCUMENTS"
DOCUMENT_NOT_ALLOWED = "DOCUMENT_NOT_ALLOWED"
DOCUMENT_BLOCKED = "DOCUMENT_BLOCKED"
ALL_GATES_PASSED = "ALL_GATES_PASSED"


@dataclass(frozen=True)
class GateResult:
    allowed: bool
    gate_name: str
    error: Optional[str] = None
    user_message: Optional[str] = None
    next_action: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "gateName": self.gate_name,
            "error": self.error,
            "userMessage": self.user_message,
            "nextAction": self.next_action,
        }


def _prerequisite_gate(decision: RoutingDecision, unmet) -> GateResult:
    names = ", ".join(p.description for p in unmet)
    return GateResult(
        allowed=False,
        gate_name=PREREQUISITE_UNMET,
        error=f"Missing prerequisites: {names}",
        user_message=f"Before we can prepare your documents you need to: {names}",
        next_action=next((p.instruction for p in unmet if p.instruction), "Complete the required steps"),
    )


def _time_limit_gate(decision: RoutingDecision) -> GateResult:
    limit = decision.time_limit
    return GateResult(
        allowed=False,
        gate_name=TIME_LIMIT_EXPIRED,
        error=f"Time limit expired on {limit.deadline.isoformat()}: {limit.description}",
        user_message=f"Your case is out of time for this route. {limit.description}.",
        next_action="Consider the alternative routes",
    )


def validate(decision: Optional[RoutingDecision], min_confidence: Optional[float] = None) -> GateResult:
    if decision is None:
        return GateResult(
            allowed=False,
            gate_name=DECISION_MISSING,
            error="No routing decision exists",
            user_message="We're still working out the right legal route for your case.",
            next_action="Run the routing engine",
        )

    if decision.status != RoutingStatus.APPROVED:
        unmet = decision.unmet_prerequisites
        if unmet:
            return _prerequisite_gate(decision, unmet)

        if decision.time_limit_expired:
            return _time_limit_gate(decision)

        if (decision.status == RoutingStatus.REQUIRES_CLARIFICATION
                or decision.unassessed_prerequisites):
            return GateResult(
                allowed=False,
                gate_name=NEEDS_CLARIFICATION,
                error=decision.reason or "Routing needs clarification",
                user_message="We need more information to decide the correct legal route.",
                next_action="Answer the clarification questions",
            )

        if decision.status == RoutingStatus.BLOCKED:
            return GateResult(
                allowed=False,
                gate_name=ROUTE_BLOCKED,
                error=decision.reason,
                user_message=decision.user_message or f"Document generation blocked: {decision.reason}",
                next_action="Review the alternative routes",
            )

        return GateResult(
            allowed=False,
            gate_name=DECISION_PENDING,
            error="Routing decision still pending",
            user_message="We're still classifying your case.",
            next_action="Wait for routing to finish",
        )

    # APPROVED, but still distrust fields that contradict it.
    if not decision.prerequisites_met:
        unmet = [p for p in decision.prerequisites if not p.met]
        return _prerequisite_gate(decision, unmet)

    if decision.time_limit_expired:
        return _time_limit_gate(decision)

    threshold = settings.ROUTING_MIN_CONFIDENCE if min_confidence is None else min_confidence
    if decision.confidence < threshold:
        return GateResult(
            allowed=False,
            gate_name=LOW_CONFIDENCE,
            error=f"Routing confidence {decision.confidence:.2f} is below {threshold:.2f}",
            user_message="We're not confident enough about the legal route to prepare documents yet.",
            next_action="Add more detail about your case",
        )

    if not decision.allowed_docs:
        return GateResult(
            allowed=False,
            gate_name=NO_ALLOWED_DOCUMENTS,
            error="No valid documents for this route",
            user_message="We couldn't work out which documents suit your case.",
            next_action="Review the classification",
        )

    return GateResult(
        allowed=True,
        gate_name=ALL_GATES_PASSED,
        user_message="Routing validated. Document generation approved.",
    )


def validate_document(document_type: str, decision: Optional[RoutingDecision]) -> GateResult:
    """Decision-level gates, then whether this particular document may be produced."""
    result = validate(decision)
    if not result.allowed:
        return result

    if document_type in decision.blocked_docs:
        return GateResult(
            allowed=False,
            gate_name=DOCUMENT_BLOCKED,
            error=f"Document {document_type} is blocked for forum {decision.forum}",
            user_message="This document cannot be used for your type of case.",
            next_action=decision.reason,
        )

    if document_type not in decision.allowed_docs:
        return GateResult(
            allowed=False,
            gate_name=DOCUMENT_NOT_ALLOWED,
            error=f"Document {document_type} is not allowed for forum {decision.forum}",
            user_message="This document type is not appropriate for your case.",
            next_action=f"Allowed documents: {', '.join(decision.allowed_docs)}",
        )

    return result
