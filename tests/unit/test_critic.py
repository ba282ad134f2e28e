import time
from typing import List

import pytest

from conftest import FakeAgent, cite, make_registry, make_store

from quorum_rag.agents.base import AgentResult, Document
from quorum_rag.agents.decision import Entity, ExpandedQuery, RoutingDecision
from quorum_rag.core.config import ExecutionBudget
from quorum_rag.orchestration.critic import CriticRefiner, filter_by_keywords
from quorum_rag.orchestration.executor import BudgetedExecutor
from quorum_rag.orchestration.models import ExecutionPlan, SynthesizedResult

INSPECTION_DECISION = RoutingDecision(
    entities=[Entity(type="document_type", value="inspection", confidence=0.7)]
)


def corpus() -> List[Document]:
    documents = [
        Document(id=f"i{n}", document_type="inspection", content=f"Inspection visit {n}")
        for n in range(3)
    ]
    documents += [
        Document(id=f"n{n}", document_type="invoice", content=f"Invoice number {n}")
        for n in range(7)
    ]
    return documents


def weak_result(**overrides) -> SynthesizedResult:
    values = {"answer": "I could not find it", "confidence": 0.3, "agent_type": "content"}
    values.update(overrides)
    return SynthesizedResult(**values)


async def build_refiner(agent: FakeAgent, enabled: bool = True) -> CriticRefiner:
    registry = make_registry({"content": agent})
    await registry.ensure_loaded(make_store())
    return CriticRefiner(BudgetedExecutor(registry), enabled=enabled)


class BrokenExecutor(BudgetedExecutor):
    async def invoke(self, *args, **kwargs):
        raise RuntimeError("executor exploded")


def test_keyword_filter_matches_type_or_content() -> None:
    documents = corpus() + [Document(id="x", content="Follow-up on the inspection report")]

    matched = filter_by_keywords(documents, ["inspection"])

    assert [doc.id for doc in matched] == ["i0", "i1", "i2", "x"]
    assert filter_by_keywords(documents, []) == documents


@pytest.mark.asyncio
async def test_refinement_replaces_weaker_result() -> None:
    content = FakeAgent(
        "content", AgentResult(answer="The inspection found damage", confidence=0.5, citations=[cite("i1")])
    )
    refiner = await build_refiner(content)

    refined = await refiner.refine(
        weak_result(), INSPECTION_DECISION, corpus(), "What did the inspection find?", ExecutionPlan(primary="content")
    )

    assert refined.refined is True
    assert refined.answer == "The inspection found damage"
    assert refined.confidence == pytest.approx(0.5)
    assert [c.doc_id for c in refined.citations] == ["i1"]
    assert [doc.id for doc in content.calls[0]["documents"]] == ["i0", "i1", "i2"]
    assert refined.execution_trace[-1].type == "refinement"


@pytest.mark.asyncio
async def test_refinement_without_improvement_keeps_original() -> None:
    content = FakeAgent("content", AgentResult(answer="Still unsure", confidence=0.2))
    refiner = await build_refiner(content)
    original = weak_result()

    refined = await refiner.refine(
        original, INSPECTION_DECISION, corpus(), "question", ExecutionPlan(primary="content")
    )

    assert refined is original
    assert refined.execution_trace == []
    assert len(content.calls) == 1


@pytest.mark.asyncio
async def test_more_citations_alone_counts_as_improvement() -> None:
    content = FakeAgent("content", AgentResult(answer="Found it", confidence=0.3, citations=[cite("i0")]))
    refiner = await build_refiner(content)

    refined = await refiner.refine(
        weak_result(), INSPECTION_DECISION, corpus(), "question", ExecutionPlan(primary="content")
    )

    assert refined.refined is True
    assert refined.answer == "Found it"


@pytest.mark.asyncio
async def test_disabled_refiner_does_nothing() -> None:
    content = FakeAgent("content", AgentResult(answer="better", confidence=0.9, citations=[cite("i0")]))
    refiner = await build_refiner(content, enabled=False)
    original = weak_result()

    refined = await refiner.refine(
        original, INSPECTION_DECISION, corpus(), "question", ExecutionPlan(primary="content")
    )

    assert refined is original
    assert content.calls == []


@pytest.mark.asyncio
async def test_strong_cited_result_is_not_refined() -> None:
    content = FakeAgent("content")
    refiner = await build_refiner(content)
    original = weak_result(confidence=0.8, citations=[cite("i0")])

    refined = await refiner.refine(
        original, INSPECTION_DECISION, corpus(), "question", ExecutionPlan(primary="content")
    )

    assert refined is original
    assert content.calls == []


@pytest.mark.asyncio
async def test_confident_but_uncited_result_is_refined() -> None:
    content = FakeAgent("content", AgentResult(answer="cited", confidence=0.6, citations=[cite("i2")]))
    refiner = await build_refiner(content)

    refined = await refiner.refine(
        weak_result(confidence=0.9),
        INSPECTION_DECISION,
        corpus(),
        "question",
        ExecutionPlan(primary="content"),
        budget=ExecutionBudget(),
    )

    assert refined.refined is True
    assert refined.confidence == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_no_keywords_reruns_on_all_documents() -> None:
    content = FakeAgent("content", AgentResult(answer="better", confidence=0.6, citations=[cite("n0")]))
    refiner = await build_refiner(content)

    await refiner.refine(weak_result(), RoutingDecision(), corpus(), "question", ExecutionPlan(primary="content"))

    assert len(content.calls[0]["documents"]) == 10


@pytest.mark.asyncio
async def test_expanded_terms_contribute_keywords() -> None:
    content = FakeAgent("content", AgentResult(answer="better", confidence=0.6, citations=[cite("n0")]))
    refiner = await build_refiner(content)
    decision = RoutingDecision(expanded_query=ExpandedQuery(terms=["invoices", "billing"]))

    await refiner.refine(weak_result(), decision, corpus(), "question", ExecutionPlan(primary="content"))

    assert {doc.document_type for doc in content.calls[0]["documents"]} == {"invoice"}


@pytest.mark.asyncio
async def test_empty_filter_skips_rerun() -> None:
    content = FakeAgent("content")
    refiner = await build_refiner(content)
    decision = RoutingDecision(entities=[Entity(type="document_type", value="resume")])
    original = weak_result()

    refined = await refiner.refine(original, decision, corpus(), "question", ExecutionPlan(primary="content"))

    assert refined is original
    assert content.calls == []


@pytest.mark.asyncio
async def test_refinement_errors_are_swallowed() -> None:
    registry = make_registry({})
    await registry.ensure_loaded(make_store())
    refiner = CriticRefiner(BrokenExecutor(registry), enabled=True)
    original = weak_result()

    refined = await refiner.refine(
        original, INSPECTION_DECISION, corpus(), "question", ExecutionPlan(primary="content")
    )

    assert refined is original


@pytest.mark.asyncio
async def test_failed_rerun_keeps_original() -> None:
    content = FakeAgent("content", error=RuntimeError("model down"))
    refiner = await build_refiner(content)
    original = weak_result()

    refined = await refiner.refine(
        original, INSPECTION_DECISION, corpus(), "question", ExecutionPlan(primary="content")
    )

    assert refined is original
    assert refined.refined is False
    assert len(content.calls) == 1


@pytest.mark.asyncio
async def test_exhausted_budget_skips_rerun() -> None:
    content = FakeAgent("content", AgentResult(answer="better", confidence=0.9, citations=[cite("i0")]))
    refiner = await build_refiner(content)
    original = weak_result(total_duration_ms=14700)

    refined = await refiner.refine(
        original,
        INSPECTION_DECISION,
        corpus(),
        "question",
        ExecutionPlan(primary="content"),
        budget=ExecutionBudget(overall_timeout_ms=15000),
    )

    assert refined is original
    assert content.calls == []


@pytest.mark.asyncio
async def test_rerun_timeout_is_capped_by_remaining_budget() -> None:
    content = FakeAgent(
        "content", AgentResult(answer="late", confidence=0.9, citations=[cite("i0")]), delay=0.5
    )
    refiner = await build_refiner(content)
    original = weak_result(total_duration_ms=800)
    budget = ExecutionBudget(
        per_agent_timeout_ms=8000, overall_timeout_ms=1000, min_secondary_timeout_ms=100
    )

    start = time.perf_counter()
    refined = await refiner.refine(
        original, INSPECTION_DECISION, corpus(), "question", ExecutionPlan(primary="content"), budget=budget
    )
    elapsed = time.perf_counter() - start

    assert refined is original
    assert len(content.calls) == 1
    assert elapsed < 0.45
