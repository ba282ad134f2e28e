"""
Budgeted Executor - runs an execution plan under per-agent and overall time budgets.
"""

import asyncio
import time
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple

from ..agents.base import AgentResult, ConversationTurn, Document
from ..agents.registry import AgentRegistry
from ..core.config import ExecutionBudget, settings
from ..core.logging import audit_logger, logger
from .models import (
    AgentOutcome,
    ExecutionPlan,
    ExecutionResult,
    ExecutionTraceEntry,
    ParallelExecutionResult,
)

TIMEOUT_ANSWER = "Timed out answering. Please try again."
TIMEOUT_CONFIDENCE = 0.1
ERROR_CONFIDENCE = 0.1


def _consume_abandoned(task: asyncio.Task) -> None:
    # Retrieve the outcome of an abandoned invocation so it is never reported as unhandled
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Abandoned agent invocation failed late: {task.exception()}")


async def run_with_timeout(awaitable: Awaitable[Any], timeout_ms: float) -> Tuple[Any, bool]:
    """Race an awaitable against a deadline.

    The loser is abandoned, not cancelled: a late result is discarded.

    Returns:
        ``(result, False)`` on completion, ``(None, True)`` on timeout

    Raises:
        Exception: Whatever the awaitable raised before the deadline
    """
    task = asyncio.ensure_future(awaitable)
    done, _ = await asyncio.wait({task}, timeout=max(timeout_ms, 0) / 1000)
    if task in done:
        return task.result(), False

    task.add_done_callback(_consume_abandoned)
    return None, True


def timeout_result() -> AgentResult:
    return AgentResult(answer=TIMEOUT_ANSWER, confidence=TIMEOUT_CONFIDENCE, citations=[])


def error_result(agent_name: str) -> AgentResult:
    return AgentResult(
        answer=(
            f"I encountered an error while processing your question with the {agent_name}. "
            "Please try rephrasing your question."
        ),
        confidence=ERROR_CONFIDENCE,
        citations=[],
    )


class BudgetedExecutor:
    """Executes the primary agent and, when warranted, a bounded set of secondaries.

    Secondaries run sequentially in plan order so each one can be given an
    exact slice of the remaining budget.
    """

    def __init__(self, registry: AgentRegistry):
        self.registry = registry

    async def invoke(
        self,
        agent_key: str,
        question: str,
        documents: Sequence[Document],
        conversation: Sequence[ConversationTurn],
        timeout_ms: float,
        invocation_type: str,
        budget_remaining_ms: Optional[float] = None,
    ) -> Tuple[Optional[AgentResult], ExecutionTraceEntry]:
        """Invoke one agent under a timeout; never raises.

        Returns:
            The result (a placeholder on timeout, None on error) and its trace entry
        """
        agent = self.registry.resolve(agent_key)
        start_time = time.monotonic()
        result: Optional[AgentResult] = None
        error: Optional[str] = None
        timed_out = False

        try:
            result, timed_out = await run_with_timeout(
                agent.process(question, documents, conversation), timeout_ms
            )
            if timed_out:
                logger.warning(f"{invocation_type} agent {agent.key} timed out after {timeout_ms:.0f}ms")
                result = timeout_result()
                error = "timeout"
        except Exception as e:
            logger.warning(f"{invocation_type} agent {agent.key} failed: {e}")
            error = str(e) or type(e).__name__

        duration_ms = (time.monotonic() - start_time) * 1000
        entry = ExecutionTraceEntry(
            agent=agent.key,
            type=invocation_type,
            duration_ms=duration_ms,
            success=error is None,
            error=error,
            timed_out=timed_out,
            budget_remaining_ms=budget_remaining_ms,
        )
        audit_logger.log_agent_execution(
            agent=agent.key,
            invocation_type=invocation_type,
            duration_ms=duration_ms,
            success=entry.success,
            error_message=error,
            timed_out=timed_out,
        )
        return result, entry

    async def execute(
        self,
        plan: ExecutionPlan,
        question: str,
        documents: Sequence[Document],
        conversation: Sequence[ConversationTurn] = (),
        budget: Optional[ExecutionBudget] = None,
    ) -> ExecutionResult:
        """Run a plan within a budget.

        Args:
            plan: Primary and candidate secondary agents
            question: Question text handed to every agent
            documents: Candidate documents
            conversation: Conversation turns
            budget: Time and fan-out limits; defaults to configured settings

        Returns:
            Primary result, secondary results by key and the execution trace
        """
        budget = budget or settings.orchestration.to_budget()
        start_time = time.monotonic()
        trace: List[ExecutionTraceEntry] = []

        def elapsed_ms() -> float:
            return (time.monotonic() - start_time) * 1000

        def finish(primary: AgentResult, secondary: Dict[str, AgentResult], failed: bool = False):
            return ExecutionResult(
                primary_agent=self.registry.resolve(plan.primary).key,
                primary=primary,
                secondary=secondary,
                execution_trace=trace,
                total_duration_ms=elapsed_ms(),
                primary_failed=failed,
            )

        primary_timeout = min(budget.per_agent_timeout_ms, budget.overall_timeout_ms)
        primary, entry = await self.invoke(
            plan.primary,
            question,
            documents,
            conversation,
            primary_timeout,
            "primary",
            budget_remaining_ms=float(budget.overall_timeout_ms),
        )
        trace.append(entry)

        if primary is None:
            return finish(error_result(self.registry.resolve(plan.primary).name), {}, failed=True)

        if primary.confidence >= budget.min_primary_confidence:
            logger.debug(f"Primary confidence {primary.confidence:.2f} meets threshold, skipping secondaries")
            return finish(primary, {})

        if elapsed_ms() >= budget.overall_timeout_ms:
            logger.info("Overall budget exhausted after primary agent")
            return finish(primary, {})

        skip_reason = self.secondary_skip_reason(primary, plan, budget)
        if skip_reason is not None:
            logger.debug(f"Skipping secondary agents: {skip_reason}")
            return finish(primary, {})

        secondary: Dict[str, AgentResult] = {}
        for agent_key in plan.secondary[: budget.secondary_max]:
            remaining = budget.overall_timeout_ms - elapsed_ms()
            if remaining <= 0:
                logger.info("Overall budget exhausted, stopping secondary execution")
                break
            if remaining < budget.min_secondary_timeout_ms:
                logger.info(
                    f"Only {remaining:.0f}ms left, below the {budget.min_secondary_timeout_ms}ms "
                    "secondary minimum; stopping secondary execution"
                )
                break

            timeout = min(budget.per_agent_timeout_ms, remaining)
            result, entry = await self.invoke(
                agent_key,
                question,
                documents,
                conversation,
                timeout,
                "secondary",
                budget_remaining_ms=remaining,
            )
            trace.append(entry)
            if result is not None and entry.success:
                secondary[entry.agent] = result

        return finish(primary, secondary)

    @staticmethod
    def secondary_skip_reason(
        primary: AgentResult,
        plan: ExecutionPlan,
        budget: ExecutionBudget,
    ) -> Optional[str]:
        """Decide whether secondaries are skipped, checking in a fixed order.

        1. secondaries disabled (flag or ``secondary_max == 0``)
        2. no secondary candidates in the plan
        3. the primary already cited a document (when configured)
        4. the primary confidence is within the margin of the threshold
        """
        if budget.disable_secondaries or budget.secondary_max == 0:
            return "disabled"
        if not plan.secondary:
            return "no_candidates"
        if budget.secondary_only_if_no_citations and primary.has_citations:
            return "primary_has_citations"
        if budget.min_primary_confidence - primary.confidence <= budget.near_threshold_margin:
            return "near_threshold"
        return None

    async def execute_parallel(
        self,
        agent_keys: Sequence[str],
        question: str,
        documents: Sequence[Document],
        conversation: Sequence[ConversationTurn] = (),
        timeout_ms: Optional[float] = None,
    ) -> ParallelExecutionResult:
        """Run several agents concurrently and wait for all of them to settle.

        Timeouts and errors land in ``failed``; partial results are expected.
        """
        budget = settings.orchestration.to_budget()
        timeout = budget.per_agent_timeout_ms if timeout_ms is None else timeout_ms
        start_time = time.monotonic()

        settled = await asyncio.gather(
            *(
                self.invoke(key, question, documents, conversation, timeout, "parallel")
                for key in agent_keys
            )
        )

        successful: List[AgentOutcome] = []
        failed: List[AgentOutcome] = []
        trace: List[ExecutionTraceEntry] = []
        for result, entry in settled:
            trace.append(entry)
            if entry.success and result is not None:
                successful.append(AgentOutcome(agent=entry.agent, result=result))
            else:
                failed.append(AgentOutcome(agent=entry.agent, error=entry.error))

        logger.info(f"Parallel execution: {len(successful)} succeeded, {len(failed)} failed")
        return ParallelExecutionResult(
            successful=successful,
            failed=failed,
            execution_trace=trace,
            total_duration_ms=(time.monotonic() - start_time) * 1000,
        )
