"""
Critic Refiner - one bounded retry of the primary agent against a narrowed document set.
"""

import time
from typing import List, Optional, Sequence

from ..agents.base import ConversationTurn, Document
from ..agents.decision import RoutingDecision
from ..core.config import ExecutionBudget, settings
from ..core.logging import audit_logger, logger
from .executor import BudgetedExecutor
from .models import ExecutionPlan, SynthesizedResult


def filter_by_keywords(documents: Sequence[Document], keywords: Sequence[str]) -> List[Document]:
    """Documents whose type or content mentions any keyword; all of them if no keywords."""
    keywords = [keyword for keyword in keywords if keyword]
    if not keywords:
        return list(documents)

    matched = []
    for doc in documents:
        doc_type = (doc.document_type or "").lower()
        content = (doc.content or "").lower()
        if any(keyword in doc_type or keyword in content for keyword in keywords):
            matched.append(doc)
    return matched


class CriticRefiner:
    """Re-runs the primary agent once when the synthesized answer is weak."""

    def __init__(self, executor: BudgetedExecutor, enabled: Optional[bool] = None):
        self.executor = executor
        self.enabled = settings.orchestration.enable_critic_refinement if enabled is None else enabled

    def needs_refinement(self, result: SynthesizedResult, budget: ExecutionBudget) -> bool:
        if not self.enabled:
            return False
        return result.confidence < budget.min_primary_confidence or not result.citations

    async def refine(
        self,
        result: SynthesizedResult,
        decision: RoutingDecision,
        documents: Sequence[Document],
        question: str,
        plan: ExecutionPlan,
        conversation: Sequence[ConversationTurn] = (),
        budget: Optional[ExecutionBudget] = None,
    ) -> SynthesizedResult:
        """Try to improve a weak result; never raises.

        The retry replaces the result only if it strictly raises confidence or
        strictly increases the number of citations.
        """
        budget = budget or settings.orchestration.to_budget()
        if not self.needs_refinement(result, budget) or not documents:
            return result

        remaining_ms = budget.overall_timeout_ms - result.total_duration_ms
        if remaining_ms < budget.min_secondary_timeout_ms:
            logger.info(f"Refinement skipped: only {remaining_ms:.0f}ms of the question budget left")
            return result

        start_time = time.time()
        try:
            keywords = decision.keywords()
            narrowed = filter_by_keywords(documents, keywords)
            if not narrowed or len(narrowed) > len(documents):
                logger.debug(f"Refinement skipped: keyword filter {keywords} matched no documents")
                return result

            logger.info(
                f"Refining {plan.primary} answer on {len(narrowed)}/{len(documents)} documents "
                f"(keywords: {keywords})"
            )
            retry, entry = await self.executor.invoke(
                plan.primary,
                question,
                narrowed,
                conversation,
                min(budget.per_agent_timeout_ms, remaining_ms),
                "refinement",
                budget_remaining_ms=remaining_ms,
            )

            improved = (
                retry is not None
                and entry.success
                and (
                    retry.confidence > result.confidence
                    or len(retry.citations) > len(result.citations)
                )
            )
            audit_logger.log_event(
                event_type="refinement",
                action=f"refine:{plan.primary}",
                outcome="success" if improved else "degraded",
                duration_ms=(time.time() - start_time) * 1000,
                metadata={
                    "documents": len(narrowed),
                    "keywords": keywords,
                    "original_confidence": result.confidence,
                    "retry_confidence": retry.confidence if retry else None,
                    "agent": entry.agent,
                    "timed_out": entry.timed_out,
                    "error": entry.error,
                },
            )

            if not improved:
                logger.info(f"Refinement by {entry.agent} did not improve the answer, keeping the original")
                return result

            return result.model_copy(
                update={
                    "answer": retry.answer,
                    "confidence": retry.confidence,
                    "citations": list(retry.citations),
                    "agent_type": entry.agent,
                    "agent_insights": [],
                    "consensus_result": None,
                    "execution_trace": list(result.execution_trace) + [entry],
                    "total_duration_ms": result.total_duration_ms + entry.duration_ms,
                    "refined": True,
                }
            )
        except Exception as e:
            logger.warning(f"Critic refinement failed: {e}")
            return result
