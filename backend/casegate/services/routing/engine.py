"""
Routing engine.

Turns a fact snapshot into a ``RoutingDecision``: where the dispute belongs,
which documents may be produced for it and whether anything stands in the
way (an unmet pre-action step, an expired time limit, missing information).
Deterministic keyword rules only; no model calls.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Sequence

from casegate.core.config import Settings, settings as default_settings
from casegate.core.logger import logger
from casegate.services.fact_snapshot import FactSnapshot
from casegate.services.routing import classifier, forums
from casegate.services.routing.classifier import Signal
from casegate.services.routing.types import (
    BlockType,
    Prerequisite,
    RoutingDecision,
    RoutingStatus,
    TimeLimit,
)
from casegate.utils.exceptions import ClassificationError

_BASE_CONFIDENCE = 0.4

DOMAIN_QUESTIONS = [
    "What kind of dispute is this (for example employment, consumer, housing or benefits)?",
    "Who is the other party and what is your relationship with them?",
]


@dataclass(frozen=True)
class ForumRoute:
    """One row of the default domain -> forum mapping."""
    domains: tuple[str, ...]
    forum: str
    reason: str
    relationships: tuple[str, ...] = ()
    needs_money: Optional[bool] = None

    def matches(self, domain: str, relationship: str, money: bool) -> bool:
        if domain not in self.domains:
            return False
        if self.relationships and relationship not in self.relationships:
            return False
        if self.needs_money is not None and self.needs_money != money:
            return False
        return True


# First match wins.
FORUM_ROUTES: list[ForumRoute] = [
    ForumRoute(
        domains=("employment",),
        relationships=("employee", "worker"),
        forum=forums.EMPLOYMENT_TRIBUNAL,
        reason="Employees and workers bring employment claims in the Employment Tribunal",
    ),
    ForumRoute(
        domains=("employment",),
        relationships=("self_employed",),
        forum=forums.COUNTY_COURT_SMALL_CLAIMS,
        reason="Self-employed people cannot use the Employment Tribunal; unpaid work is a contract claim",
    ),
    ForumRoute(
        domains=("consumer", "contract", "debt", "flight_delay"),
        needs_money=True,
        forum=forums.COUNTY_COURT_SMALL_CLAIMS,
        reason="A money claim arising from a contract belongs in the County Court small claims track",
    ),
    ForumRoute(
        domains=("consumer", "contract", "debt", "flight_delay"),
        needs_money=False,
        forum=forums.INFORMAL_RESOLUTION,
        reason="No sum of money is claimed; start with a formal complaint",
    ),
    ForumRoute(
        domains=("housing",),
        needs_money=True,
        forum=forums.COUNTY_COURT_SMALL_CLAIMS,
        reason="Deposit and other money claims against a landlord go to the County Court",
    ),
    ForumRoute(
        domains=("housing",),
        needs_money=False,
        forum=forums.PROPERTY_TRIBUNAL,
        reason="Repairs, rent and service charge disputes go to the Property Chamber",
    ),
    ForumRoute(
        domains=("social_security",),
        forum=forums.SSCS_TRIBUNAL,
        reason="Benefit decisions are appealed to the Social Security and Child Support tribunal",
    ),
    ForumRoute(
        domains=("immigration",),
        forum=forums.HOME_OFFICE_ADMIN_REVIEW,
        reason="Refusals without a right of appeal are challenged by administrative review",
    ),
    ForumRoute(
        domains=("traffic_offence",),
        forum=forums.MAGISTRATES_COURT,
        reason="Traffic offences are dealt with by the Magistrates' Court",
    ),
    ForumRoute(
        domains=("parking",),
        forum=forums.POPLA,
        reason="Private parking charges are appealed to POPLA",
    ),
    ForumRoute(
        domains=("financial_services",),
        forum=forums.FINANCIAL_OMBUDSMAN,
        reason="Complaints about banks and insurers go to the Financial Ombudsman",
    ),
]


class RoutingEngine:
    """Classifies a case and produces its routing decision."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.config = config or default_settings
        self._today = today or date.today

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def classify(
        self,
        case_id: str,
        facts: FactSnapshot,
        domain_hint: Optional[str],
        evidence_summary: Sequence[str],
        user_chosen_forum: Optional[str] = None,
    ) -> RoutingDecision:
        """
        Route ``facts`` to a forum.

        Raises ClassificationError when no forum can be mapped: an unknown
        domain, a domain with no matching route, or an unknown chosen forum.
        """
        text = facts.text
        domain = classifier.determine_domain(facts, domain_hint)
        if domain.value == classifier.UNKNOWN_DOMAIN:
            raise ClassificationError(
                "Could not work out what kind of dispute this is",
                questions=DOMAIN_QUESTIONS,
            )
        relationship = classifier.determine_relationship(facts, domain.value)

        forum, forum_reasoning, forum_source = self._select_forum(
            domain.value, relationship.value, classifier.seeks_money(facts), user_chosen_forum
        )

        prerequisites = [self._assess(rule, facts) for rule in forum.prerequisites]
        time_limit = self._time_limit(forum, facts)
        confidence = self._confidence(domain, relationship, forum_source, len(facts.key_facts))

        decision = self._decide(
            case_id=case_id,
            forum=forum,
            forum_reasoning=forum_reasoning,
            prerequisites=prerequisites,
            time_limit=time_limit,
            confidence=confidence,
            jurisdiction=classifier.determine_jurisdiction(text),
            relationship=relationship.value,
            counterparty=classifier.determine_counterparty(text),
            domain=domain.value,
        )
        logger.info(
            "Routed case %s: forum=%s status=%s confidence=%.2f evidence=%d",
            case_id,
            decision.forum,
            decision.status.value,
            decision.confidence,
            len(evidence_summary),
        )
        return decision

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _select_forum(
        self,
        domain: str,
        relationship: str,
        money: bool,
        user_chosen_forum: Optional[str],
    ) -> tuple[forums.Forum, str, str]:
        if user_chosen_forum and user_chosen_forum.strip():
            forum = forums.get_forum(user_chosen_forum)
            if forum is None:
                raise ClassificationError(
                    f"Unknown forum '{user_chosen_forum}'",
                    questions=["Which court, tribunal or body do you want to use?"],
                )
            return forum, f"You chose to use the {forum.name}", classifier.EXPLICIT

        for route in FORUM_ROUTES:
            if route.matches(domain, relationship, money):
                return forums.FORUMS[route.forum], route.reason, classifier.DEFAULT

        raise ClassificationError(
            f"No forum handles {domain.replace('_', ' ')} disputes for a {relationship.replace('_', ' ')}",
            questions=DOMAIN_QUESTIONS,
        )

    @staticmethod
    def _assess(rule: forums.PrerequisiteRule, facts: FactSnapshot) -> Prerequisite:
        value = facts.pre_action_steps.get(rule.id)
        if value is None:
            return Prerequisite(
                id=rule.id,
                description=rule.description,
                met=False,
                assessed=False,
                instruction=rule.question,
            )
        return Prerequisite(
            id=rule.id,
            description=rule.description,
            met=bool(value),
            instruction=None if value else rule.instruction,
        )

    def _time_limit(self, forum: forums.Forum, facts: FactSnapshot) -> Optional[TimeLimit]:
        # No triggering date means there is nothing to measure against.
        if forum.time_limit is None or facts.incident_date is None:
            return None
        deadline = forum.time_limit.deadline_from(facts.incident_date)
        days_remaining = (deadline - self._today()).days
        return TimeLimit(
            trigger_date=facts.incident_date,
            deadline=deadline,
            days_remaining=days_remaining,
            met=days_remaining >= 0,
            description=forum.time_limit.description,
        )

    @staticmethod
    def _confidence(domain: Signal, relationship: Signal, forum_source: str, fact_count: int) -> float:
        score = _BASE_CONFIDENCE
        score += 0.25 if domain.explicit else 0.1
        score += 0.05 if relationship.source == classifier.DEFAULT else 0.15
        score += 0.2 if forum_source == classifier.EXPLICIT else 0.1
        if fact_count >= 5:
            score += 0.1
        return round(min(score, 1.0), 2)

    def _decide(
        self,
        case_id: str,
        forum: forums.Forum,
        forum_reasoning: str,
        prerequisites: list[Prerequisite],
        time_limit: Optional[TimeLimit],
        confidence: float,
        **classification: str,
    ) -> RoutingDecision:
        unmet = [p for p in prerequisites if p.assessed and not p.met]
        unassessed = [p for p in prerequisites if not p.assessed]
        expired = time_limit is not None and not time_limit.met

        status = RoutingStatus.APPROVED
        block_type: Optional[BlockType] = None
        questions: list[str] = []
        reason = forum_reasoning
        user_message = f"Your case will go to the {forum.name}."

        if unmet:
            status = RoutingStatus.BLOCKED
            block_type = BlockType.missing_prerequisite
            reason = f"Required step not completed: {unmet[0].description}"
            user_message = unmet[0].instruction or reason
        elif expired:
            status = RoutingStatus.BLOCKED
            block_type = BlockType.out_of_time
            reason = f"Time limit expired on {time_limit.deadline.isoformat()}: {time_limit.description}"
            user_message = (
                f"The deadline to bring this claim passed on {time_limit.deadline.strftime('%d %B %Y')}. "
                "Consider the alternative routes or take legal advice."
            )
        elif unassessed:
            status = RoutingStatus.REQUIRES_CLARIFICATION
            block_type = BlockType.insufficient_information
            questions = [p.instruction for p in unassessed if p.instruction]
            reason = "Need to confirm: " + "; ".join(p.description for p in unassessed)
            user_message = "Before we can prepare your documents, please answer a few questions."
        elif confidence < self.config.ROUTING_MIN_CONFIDENCE:
            status = RoutingStatus.REQUIRES_CLARIFICATION
            block_type = BlockType.insufficient_information
            questions = list(DOMAIN_QUESTIONS)
            reason = f"Routing confidence {confidence:.2f} is below {self.config.ROUTING_MIN_CONFIDENCE:.2f}"
            user_message = "We need a little more detail to be sure where your case belongs."

        blocked = list(forum.blocked_docs)
        allowed = [d for d in forum.allowed_docs if d not in blocked]

        return RoutingDecision(
            case_id=case_id,
            status=status,
            confidence=confidence,
            forum=forum.id,
            forum_reasoning=forum_reasoning,
            allowed_docs=allowed,
            blocked_docs=blocked,
            prerequisites=prerequisites,
            time_limit=time_limit,
            alternative_routes=list(forum.alternatives) if status != RoutingStatus.APPROVED else [],
            reason=reason,
            user_message=user_message,
            block_type=block_type,
            clarification_questions=questions,
            **classification,
        )


routing_engine = RoutingEngine()
