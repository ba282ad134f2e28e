"""
Consensus Synthesizer - merges primary and secondary agent outputs into one answer.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from ..agents.base import AgentResult, Citation
from ..core.logging import logger
from .models import AgentInsight, ConsensusResult, ExecutionResult, SynthesizedResult

INSIGHT_MIN_CONFIDENCE = 0.4
TOKEN_OVERLAP_THRESHOLD = 0.3
CONSENSUS_BOOST = 1.5
PRIMARY_WEIGHT = 0.7
INSIGHT_SNIPPET_LENGTH = 200


class SimilarityStrategy:
    """Base class for answer similarity strategies."""

    def similar(self, first: str, second: str) -> bool:
        """Whether two answers say the same thing."""
        raise NotImplementedError


class TokenOverlapSimilarity(SimilarityStrategy):
    """Containment or whitespace-token overlap relative to the longer answer."""

    def __init__(self, threshold: float = TOKEN_OVERLAP_THRESHOLD):
        self.threshold = threshold

    def similar(self, first: str, second: str) -> bool:
        a1 = (first or "").lower().strip()
        a2 = (second or "").lower().strip()

        if a1 in a2 or a2 in a1:
            return True

        words1 = a1.split()
        words2 = a2.split()
        if not words1 or not words2:
            return False

        vocabulary = set(words2)
        common = [word for word in words1 if word in vocabulary]
        return len(common) / max(len(words1), len(words2)) > self.threshold


def merge_citations(citation_lists: Iterable[Sequence[Citation]]) -> List[Citation]:
    """Union citation lists by document id, first seen wins."""
    merged: Dict[str, Citation] = {}
    for citations in citation_lists:
        for citation in citations:
            if citation.doc_id not in merged:
                merged[citation.doc_id] = citation
    return list(merged.values())


class ConsensusSynthesizer:
    """Groups secondary insights by similarity and folds them into the primary answer.

    Grouping is greedy and order dependent: each insight is compared only with
    the first member of each existing group.
    """

    def __init__(self, similarity: Optional[SimilarityStrategy] = None):
        self.similarity = similarity or TokenOverlapSimilarity()

    def synthesize(self, execution: ExecutionResult, question: str = "") -> SynthesizedResult:
        """Combine an execution result into one answer.

        Args:
            execution: Output of the budgeted executor
            question: The question being answered

        Returns:
            The primary result unchanged when there are no usable insights,
            otherwise the consensus answer or the primary answer with insights
            appended
        """
        primary = execution.primary
        base = SynthesizedResult.from_agent_result(
            primary,
            agent_type=execution.primary_agent,
            execution_trace=execution.execution_trace,
            total_duration_ms=execution.total_duration_ms,
        )

        if not execution.secondary:
            return base

        insights = self.collect_insights(execution.secondary)
        if not insights:
            logger.debug("No secondary result qualified as an insight")
            return base

        consensus = self.find_consensus(insights)
        if consensus is not None:
            answer = consensus.answer
            confidence = consensus.confidence
            contributing = [insight for insight in insights if insight.agent in consensus.agents]
            logger.info(f"Consensus among {consensus.agents} (confidence {confidence:.2f})")
        else:
            answer = self.combine_insights(primary, insights)
            confidence = self.combined_confidence(primary, insights)
            contributing = insights

        citations = merge_citations(
            [primary.citations] + [insight.citations for insight in contributing]
        )
        return base.model_copy(
            update={
                "answer": answer,
                "confidence": confidence,
                "citations": citations,
                "agent_insights": insights,
                "consensus_result": consensus,
            }
        )

    @staticmethod
    def collect_insights(secondary: Dict[str, AgentResult]) -> List[AgentInsight]:
        """Keep secondary results that are confident enough and cite something."""
        return [
            AgentInsight(
                agent=agent,
                answer=result.answer,
                confidence=result.confidence,
                citations=list(result.citations),
            )
            for agent, result in secondary.items()
            if result.confidence > INSIGHT_MIN_CONFIDENCE and result.has_citations
        ]

    def group_insights(self, insights: Sequence[AgentInsight]) -> List[List[AgentInsight]]:
        groups: List[List[AgentInsight]] = []
        for insight in insights:
            for group in groups:
                if self.similarity.similar(insight.answer, group[0].answer):
                    group.append(insight)
                    break
            else:
                groups.append([insight])
        return groups

    def find_consensus(self, insights: Sequence[AgentInsight]) -> Optional[ConsensusResult]:
        """Adopt the highest-confidence group if at least two insights agree."""
        if not insights:
            return None

        best_group: List[AgentInsight] = []
        best_total = 0.0
        for group in self.group_insights(insights):
            total = sum(insight.confidence for insight in group)
            if total > best_total:
                best_total = total
                best_group = group

        if len(best_group) < 2:
            return None

        representative = max(best_group, key=lambda insight: insight.confidence)
        return ConsensusResult(
            answer=representative.answer,
            confidence=min(1.0, best_total / len(insights) * CONSENSUS_BOOST),
            agents=[insight.agent for insight in best_group],
            group_size=len(best_group),
        )

    @staticmethod
    def combine_insights(primary: AgentResult, insights: Sequence[AgentInsight]) -> str:
        combined = primary.answer + "\n\nAdditional insights from other analysis:\n"
        for index, insight in enumerate(insights, start=1):
            snippet = insight.answer[:INSIGHT_SNIPPET_LENGTH]
            if len(insight.answer) > INSIGHT_SNIPPET_LENGTH:
                snippet += "..."
            combined += f"\n{index}. From {insight.agent} analysis: {snippet}"
        return combined

    @staticmethod
    def combined_confidence(primary: AgentResult, insights: Sequence[AgentInsight]) -> float:
        """Primary weighted 0.7, the remaining 0.3 split evenly across insights."""
        secondary_weight = (1.0 - PRIMARY_WEIGHT) / len(insights)
        total = primary.confidence * PRIMARY_WEIGHT
        total += sum(insight.confidence * secondary_weight for insight in insights)
        return min(1.0, total)
