import asyncio

import pytest

from conftest import FakeAgent, cite, make_registry, make_store

from quorum_rag.agents.base import AgentResult
from quorum_rag.core.config import ExecutionBudget
from quorum_rag.core.exceptions import AgentExecutionError
from quorum_rag.orchestration.executor import (
    TIMEOUT_ANSWER,
    BudgetedExecutor,
    run_with_timeout,
)
from quorum_rag.orchestration.models import ExecutionPlan


async def build_executor(**agents) -> BudgetedExecutor:
    registry = make_registry(agents)
    await registry.ensure_loaded(make_store())
    return BudgetedExecutor(registry)


@pytest.mark.asyncio
async def test_run_with_timeout_returns_result() -> None:
    async def work():
        return "done"

    assert await run_with_timeout(work(), 1000) == ("done", False)


@pytest.mark.asyncio
async def test_run_with_timeout_abandons_slow_work() -> None:
    finished = asyncio.Event()

    async def slow():
        await asyncio.sleep(0.2)
        finished.set()
        return "late"

    result, timed_out = await run_with_timeout(slow(), 50)

    assert (result, timed_out) == (None, True)
    # the loser is not cancelled; it still runs to completion
    await asyncio.wait_for(finished.wait(), timeout=1)


@pytest.mark.asyncio
async def test_run_with_timeout_propagates_errors() -> None:
    async def broken():
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await run_with_timeout(broken(), 1000)


@pytest.mark.asyncio
async def test_confident_primary_exits_early() -> None:
    metadata = FakeAgent("metadata", AgentResult(answer="Sent by Acme", confidence=0.85, citations=[cite("d1")]))
    content = FakeAgent("content")
    executor = await build_executor(metadata=metadata, content=content)

    result = await executor.execute(
        ExecutionPlan(primary="metadata", secondary=["content"]), "who sent it?", []
    )

    assert len(result.execution_trace) == 1
    assert result.execution_trace[0].type == "primary"
    assert result.secondary == {}
    assert content.calls == []


@pytest.mark.asyncio
async def test_uncited_weak_primary_runs_secondaries() -> None:
    metadata = FakeAgent("metadata", AgentResult(answer="Not sure", confidence=0.4))
    content = FakeAgent("content", AgentResult(answer="X", confidence=0.6, citations=[cite("d2")]))
    executor = await build_executor(metadata=metadata, content=content)

    result = await executor.execute(
        ExecutionPlan(primary="metadata", secondary=["content"]), "compare", []
    )

    assert [entry.agent for entry in result.execution_trace] == ["metadata", "content"]
    assert [entry.type for entry in result.execution_trace] == ["primary", "secondary"]
    assert result.secondary["content"].answer == "X"


@pytest.mark.parametrize(
    "primary, budget, reason",
    [
        (AgentResult(answer="a", confidence=0.3), ExecutionBudget(disable_secondaries=True), "disabled"),
        (AgentResult(answer="a", confidence=0.3), ExecutionBudget(secondary_max=0), "disabled"),
        (
            AgentResult(answer="a", confidence=0.3, citations=[cite("d1")]),
            ExecutionBudget(disable_secondaries=True),
            "disabled",
        ),
        (AgentResult(answer="a", confidence=0.3, citations=[cite("d1")]), ExecutionBudget(), "primary_has_citations"),
        (
            AgentResult(answer="a", confidence=0.66, citations=[cite("d1")]),
            ExecutionBudget(),
            "primary_has_citations",
        ),
        (AgentResult(answer="a", confidence=0.66), ExecutionBudget(), "near_threshold"),
        (AgentResult(answer="a", confidence=0.65), ExecutionBudget(), "near_threshold"),
        (AgentResult(answer="a", confidence=0.6), ExecutionBudget(), None),
        (
            AgentResult(answer="a", confidence=0.3, citations=[cite("d1")]),
            ExecutionBudget(secondary_only_if_no_citations=False),
            None,
        ),
    ],
)
def test_secondary_gating_precedence(primary, budget, reason) -> None:
    plan = ExecutionPlan(primary="metadata", secondary=["content"])
    assert BudgetedExecutor.secondary_skip_reason(primary, plan, budget) == reason


def test_secondary_gating_without_candidates() -> None:
    plan = ExecutionPlan(primary="content")
    primary = AgentResult(answer="a", confidence=0.2)
    assert BudgetedExecutor.secondary_skip_reason(primary, plan, ExecutionBudget()) == "no_candidates"


@pytest.mark.asyncio
async def test_secondary_max_limits_fan_out() -> None:
    content = FakeAgent("content", AgentResult(answer="weak", confidence=0.2))
    metadata = FakeAgent("metadata", AgentResult(answer="m", confidence=0.6, citations=[cite("d1")]))
    casual = FakeAgent("casual")
    executor = await build_executor(content=content, metadata=metadata, casual=casual)

    result = await executor.execute(
        ExecutionPlan(primary="content", secondary=["metadata", "casual"]),
        "question",
        [],
        budget=ExecutionBudget(secondary_max=1),
    )

    assert [entry.agent for entry in result.execution_trace] == ["content", "metadata"]
    assert casual.calls == []


@pytest.mark.asyncio
async def test_secondary_error_does_not_abort_loop() -> None:
    content = FakeAgent("content", AgentResult(answer="weak", confidence=0.2))
    metadata = FakeAgent("metadata", error=AgentExecutionError("model down", "metadata"))
    casual = FakeAgent("casual", AgentResult(answer="c", confidence=0.5, citations=[cite("d3")]))
    executor = await build_executor(content=content, metadata=metadata, casual=casual)

    result = await executor.execute(
        ExecutionPlan(primary="content", secondary=["metadata", "casual"]),
        "question",
        [],
        budget=ExecutionBudget(secondary_max=2),
    )

    trace = result.execution_trace
    assert [entry.agent for entry in trace] == ["content", "metadata", "casual"]
    assert trace[1].success is False and "model down" in trace[1].error
    assert trace[2].success is True
    assert list(result.secondary) == ["casual"]
    assert result.primary_failed is False


@pytest.mark.asyncio
async def test_primary_timeout_yields_placeholder_and_stops() -> None:
    metadata = FakeAgent("metadata", delay=0.5)
    content = FakeAgent("content")
    executor = await build_executor(metadata=metadata, content=content)

    result = await executor.execute(
        ExecutionPlan(primary="metadata", secondary=["content"]),
        "question",
        [],
        budget=ExecutionBudget(overall_timeout_ms=100),
    )

    assert result.primary.answer == TIMEOUT_ANSWER
    assert result.primary.confidence == pytest.approx(0.1)
    assert result.primary.citations == []
    assert len(result.execution_trace) == 1
    assert result.execution_trace[0].timed_out is True
    assert result.execution_trace[0].success is False
    assert content.calls == []


@pytest.mark.asyncio
async def test_primary_error_is_converted() -> None:
    executor = await build_executor(content=FakeAgent("content", error=RuntimeError("crash")))

    result = await executor.execute(ExecutionPlan(primary="content"), "question", [])

    assert result.primary_failed is True
    assert result.primary.confidence == pytest.approx(0.1)
    assert result.primary.citations == []
    assert result.execution_trace[0].error == "crash"


@pytest.mark.asyncio
async def test_secondary_timeouts_stay_within_remaining_budget() -> None:
    content = FakeAgent("content", AgentResult(answer="weak", confidence=0.2), delay=0.2)
    metadata = FakeAgent("metadata", delay=2.0)
    executor = await build_executor(content=content, metadata=metadata)

    result = await executor.execute(
        ExecutionPlan(primary="content", secondary=["metadata"]),
        "question",
        [],
        budget=ExecutionBudget(overall_timeout_ms=1000),
    )

    primary_entry, secondary_entry = result.execution_trace
    assert secondary_entry.timed_out is True
    assert secondary_entry.budget_remaining_ms <= 1000 - primary_entry.duration_ms + 1
    assert secondary_entry.duration_ms <= secondary_entry.budget_remaining_ms + 50
    assert result.total_duration_ms < 1200


@pytest.mark.asyncio
async def test_no_secondary_started_below_minimum_slot() -> None:
    content = FakeAgent("content", AgentResult(answer="weak", confidence=0.2), delay=0.3)
    metadata = FakeAgent("metadata")
    executor = await build_executor(content=content, metadata=metadata)

    result = await executor.execute(
        ExecutionPlan(primary="content", secondary=["metadata"]),
        "question",
        [],
        budget=ExecutionBudget(overall_timeout_ms=600, min_secondary_timeout_ms=500),
    )

    assert len(result.execution_trace) == 1
    assert metadata.calls == []


@pytest.mark.asyncio
async def test_execute_parallel_settles_all() -> None:
    executor = await build_executor(
        content=FakeAgent("content", AgentResult(answer="c", confidence=0.7)),
        metadata=FakeAgent("metadata", error=AgentExecutionError("nope", "metadata")),
        casual=FakeAgent("casual", delay=0.5),
    )

    result = await executor.execute_parallel(["content", "metadata", "casual"], "question", [], timeout_ms=100)

    assert [outcome.agent for outcome in result.successful] == ["content"]
    assert {outcome.agent for outcome in result.failed} == {"metadata", "casual"}
    assert len(result.execution_trace) == 3
