import pytest

from conftest import cite

from quorum_rag.agents.base import AgentResult
from quorum_rag.orchestration.consensus import (
    ConsensusSynthesizer,
    SimilarityStrategy,
    TokenOverlapSimilarity,
    merge_citations,
)
from quorum_rag.orchestration.models import ExecutionResult


def execution(primary: AgentResult, **secondary: AgentResult) -> ExecutionResult:
    return ExecutionResult(primary_agent="metadata", primary=primary, secondary=secondary)


def test_primary_only_passes_through() -> None:
    primary = AgentResult(answer="Sent by Acme", confidence=0.85, citations=[cite("d1")])

    result = ConsensusSynthesizer().synthesize(execution(primary))

    assert result.answer == "Sent by Acme"
    assert result.confidence == pytest.approx(0.85)
    assert [c.doc_id for c in result.citations] == ["d1"]
    assert result.agent_type == "metadata"
    assert result.consensus_result is None


def test_single_insight_blends_confidence() -> None:
    primary = AgentResult(answer="Not sure", confidence=0.4)
    secondary = AgentResult(answer="X", confidence=0.6, citations=[cite("d2")])

    result = ConsensusSynthesizer().synthesize(execution(primary, content=secondary))

    assert result.confidence == pytest.approx(0.46)
    assert [c.doc_id for c in result.citations] == ["d2"]
    assert result.consensus_result is None
    assert result.answer.startswith("Not sure\n\nAdditional insights from other analysis:\n")
    assert "\n1. From content analysis: X" in result.answer


def test_similar_insights_reach_consensus() -> None:
    primary = AgentResult(answer="Unclear", confidence=0.3, citations=[cite("d9")])
    first = AgentResult(
        answer="The roof flashing has minor damage", confidence=0.5, citations=[cite("d1")]
    )
    second = AgentResult(
        answer="The roof flashing has minor damage.", confidence=0.6, citations=[cite("d2")]
    )

    result = ConsensusSynthesizer().synthesize(execution(primary, content=first, metadata=second))

    assert result.consensus_result is not None
    assert result.consensus_result.group_size == 2
    assert result.confidence == pytest.approx(0.825)
    assert result.answer == "The roof flashing has minor damage."
    assert [c.doc_id for c in result.citations] == ["d9", "d1", "d2"]


def test_insights_need_confidence_and_citations() -> None:
    synthesizer = ConsensusSynthesizer()
    insights = synthesizer.collect_insights(
        {
            "uncited": AgentResult(answer="a", confidence=0.9),
            "weak": AgentResult(answer="b", confidence=0.4, citations=[cite("d1")]),
            "good": AgentResult(answer="c", confidence=0.41, citations=[cite("d2")]),
        }
    )
    assert [insight.agent for insight in insights] == ["good"]


def test_no_qualifying_insight_returns_primary() -> None:
    primary = AgentResult(answer="Only answer", confidence=0.5)
    result = ConsensusSynthesizer().synthesize(
        execution(primary, content=AgentResult(answer="uncited", confidence=0.9))
    )
    assert result.answer == "Only answer"
    assert result.confidence == pytest.approx(0.5)
    assert result.agent_insights == []


def test_long_insights_are_truncated() -> None:
    primary = AgentResult(answer="Primary", confidence=0.3)
    long_answer = "word " * 100
    combined = ConsensusSynthesizer.combine_insights(
        primary,
        ConsensusSynthesizer.collect_insights(
            {"content": AgentResult(answer=long_answer, confidence=0.8, citations=[cite("d1")])}
        ),
    )
    assert combined.endswith(long_answer[:200] + "...")


def test_grouping_compares_against_first_member() -> None:
    synthesizer = ConsensusSynthesizer()
    insights = synthesizer.collect_insights(
        {
            "a": AgentResult(answer="alpha beta", confidence=0.5, citations=[cite("d1")]),
            "b": AgentResult(answer="alpha beta gamma", confidence=0.5, citations=[cite("d2")]),
            "c": AgentResult(answer="gamma delta", confidence=0.5, citations=[cite("d3")]),
        }
    )

    groups = synthesizer.group_insights(insights)

    assert [[insight.agent for insight in group] for group in groups] == [["a", "b"], ["c"]]


@pytest.mark.parametrize(
    "first, second, expected",
    [
        ("The invoice is due", "the invoice is due in May", True),
        ("total due 1200 usd", "due 1200 usd total", True),
        ("roof damage", "budget meeting notes", False),
        ("", "anything", True),
    ],
)
def test_token_overlap_similarity(first, second, expected) -> None:
    assert TokenOverlapSimilarity().similar(first, second) is expected


def test_citation_merge_is_idempotent() -> None:
    citations = [cite("d1"), cite("d2"), cite("d1", "other snippet")]

    once = merge_citations([citations, citations])
    twice = merge_citations([once, once])

    assert [c.doc_id for c in once] == ["d1", "d2"]
    assert once == twice
    assert once[0].snippet == "snippet"


def test_similarity_strategy_is_pluggable() -> None:
    class AlwaysSimilar(SimilarityStrategy):
        def similar(self, first: str, second: str) -> bool:
            return True

    primary = AgentResult(answer="p", confidence=0.2)
    result = ConsensusSynthesizer(AlwaysSimilar()).synthesize(
        execution(
            primary,
            content=AgentResult(answer="apples", confidence=0.6, citations=[cite("d1")]),
            metadata=AgentResult(answer="oranges", confidence=0.5, citations=[cite("d2")]),
        )
    )
    assert result.consensus_result is not None
    assert result.answer == "apples"


def test_similar_stronger_insight_never_lowers_confidence() -> None:
    synthesizer = ConsensusSynthesizer()
    primary = AgentResult(answer="unsure", confidence=0.6)
    first = AgentResult(answer="The contract ends in May", confidence=0.45, citations=[cite("d1")])
    second = AgentResult(answer="The contract ends in May.", confidence=0.7, citations=[cite("d2")])

    alone = synthesizer.synthesize(execution(primary, content=first))
    together = synthesizer.synthesize(execution(primary, content=first, metadata=second))

    assert together.confidence >= alone.confidence
