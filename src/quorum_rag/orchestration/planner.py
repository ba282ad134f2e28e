"""
Execution Planner - turns a routing decision into an execution plan.
"""

from typing import List, Optional, Sequence, Tuple

from ..agents.decision import AgentType, RoutingDecision
from ..core.logging import logger
from .models import ExecutionPlan

# (keyword family, agent suggested as secondary when any term occurs in the question)
# Terms match as substrings so plurals and inflections ("titles", "dates", "listed") count.
SECONDARY_HINTS: List[Tuple[Tuple[str, ...], AgentType]] = [
    (("title", "sender", "date", "category", "type"), AgentType.METADATA),
    (
        (
            "compare",
            "analyze",
            "analyse",
            "difference",
            "similar",
            "relationship",
            "find",
            "search",
            "look for",
            "show",
            "list",
        ),
        AgentType.CONTENT,
    ),
]


class ExecutionPlanner:
    """Derives the primary agent and candidate secondaries for a question.

    The secondary heuristic is deterministic in the question text and primary
    agent, and only ever names supported agent types.
    """

    def __init__(self, secondary_hints: Sequence[Tuple[Sequence[str], AgentType]] = tuple(SECONDARY_HINTS)):
        self.secondary_hints = list(secondary_hints)

    def plan(
        self,
        decision: RoutingDecision,
        question: str,
        active_keys: Optional[Sequence[str]] = None,
    ) -> ExecutionPlan:
        """Build the plan for a routed question.

        Args:
            decision: Routing decision from the classifier
            question: Question text used for the secondary heuristic
            active_keys: Keys currently active in the registry; when given,
                inactive agents are never planned

        Returns:
            Plan whose secondaries exclude the primary and contain no duplicates
        """
        primary = AgentType.normalize(decision.requested_primary).value
        if active_keys is not None and primary not in active_keys:
            primary = AgentType.CONTENT.value

        text = (question or "").lower()
        secondary: List[str] = []
        for terms, agent_type in self.secondary_hints:
            key = agent_type.value
            if key == primary or key in secondary:
                continue
            if active_keys is not None and key not in active_keys:
                continue
            if any(term in text for term in terms):
                secondary.append(key)

        plan = ExecutionPlan(primary=primary, secondary=secondary, mode="sequential")
        logger.debug(f"Planned primary={plan.primary} secondary={plan.secondary}")
        return plan
