"""
Question Classifier - Turns a question plus conversation context into a routing decision.
Uses the structured prompt service for semantic classification, with a deterministic
keyword classifier as fallback.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from ..core.config import settings
from ..core.logging import audit_logger, logger
from ..llm.prompts import ENTITY_EXTRACTION, QUERY_EXPANSION, ROUTING_CLASSIFIER
from ..llm.service import StructuredPromptService, get_prompt_service
from .base import ConversationTurn
from .decision import Entity, ExpandedQuery, Memory, RoutingDecision, RoutingTarget
from .fallback import (
    determine_target,
    fallback_classification,
    fallback_entity_extraction,
    fallback_query_expansion,
)


class ClassificationStrategy:
    """Base class for classification strategies."""

    async def classify(
        self,
        question: str,
        history: Sequence[ConversationTurn],
        memory: Memory,
    ) -> RoutingDecision:
        """Classify a question into a routing decision."""
        raise NotImplementedError


class KeywordClassificationStrategy(ClassificationStrategy):
    """Classify based on ordered keyword categories."""

    async def classify(
        self,
        question: str,
        history: Sequence[ConversationTurn],
        memory: Memory,
    ) -> RoutingDecision:
        decision = fallback_classification(question)
        return decision.model_copy(
            update={
                "entities": fallback_entity_extraction(question),
                "expanded_query": fallback_query_expansion(question),
            }
        )


class LLMClassificationStrategy(ClassificationStrategy):
    """Semantic classification through the routing classifier prompt.

    The decision is enriched with query expansion and entity extraction, each of
    which falls back to its deterministic counterpart independently.
    """

    def __init__(self, prompt_service: StructuredPromptService):
        """Initialize LLM classification strategy.

        Args:
            prompt_service: Service used to invoke the routing and enrichment prompts
        """
        self.prompt_service = prompt_service

    async def classify(
        self,
        question: str,
        history: Sequence[ConversationTurn],
        memory: Memory,
    ) -> RoutingDecision:
        """Classify via the prompt service.

        Raises:
            PromptServiceError: If the routing prompt fails; enrichment failures
                are absorbed
        """
        payload = {
            "question": question,
            "history": [turn.model_dump() for turn in history],
            "memory": memory.model_dump(),
        }
        output = await self.prompt_service.invoke(ROUTING_CLASSIFIER, payload)
        decision = self._to_decision(output, question)

        if decision.needs_clarification:
            expanded = ExpandedQuery(original=question, expanded=question, terms=[question])
            return decision.model_copy(update={"expanded_query": expanded})

        expanded_query, entities = await asyncio.gather(
            self._expand_query(question),
            self._extract_entities(question),
        )
        return decision.model_copy(update={"expanded_query": expanded_query, "entities": entities})

    def _to_decision(self, output: Dict[str, Any], question: str) -> RoutingDecision:
        """Map validated prompt output onto a routing decision."""
        target_data = output.get("target") or {}
        prefer = target_data.get("prefer")
        if prefer in ("focus", "list"):
            ordinal = target_data.get("ordinal")
            target = RoutingTarget(
                prefer=prefer,
                ordinal=ordinal if isinstance(ordinal, int) and ordinal >= 1 else None,
                want_preview=bool(target_data.get("want_preview")),
            )
        else:
            target = determine_target(question)

        answer_type = output.get("answer_type")
        if answer_type not in ("content", "metadata", "mixed"):
            answer_type = "content"

        return RoutingDecision(
            agent_type=output.get("agent_type"),
            confidence=output.get("confidence", 0.5),
            reasoning=output.get("reasoning") or "",
            intent=output.get("intent"),
            filters=output.get("filters") or {},
            answer_type=answer_type,
            required_fields=output.get("required_fields") or [],
            primary_agent=output.get("primary_agent"),
            secondary_emitters=output.get("secondary_emitters") or [],
            target=target,
            needs_clarification=bool(output.get("needs_clarification")),
            clarification_question=output.get("clarification_question"),
            source="llm",
        )

    async def _expand_query(self, question: str) -> ExpandedQuery:
        try:
            output = await self.prompt_service.invoke(QUERY_EXPANSION, {"question": question})
            return ExpandedQuery(
                original=output.get("original") or question,
                expanded=output.get("expanded") or question,
                terms=output.get("terms") or [],
                related_concepts=output.get("related_concepts") or [],
            )
        except Exception as e:
            logger.warning(f"Query expansion failed, using synonym fallback: {e}")
            return fallback_query_expansion(question)

    async def _extract_entities(self, question: str) -> List[Entity]:
        try:
            output = await self.prompt_service.invoke(ENTITY_EXTRACTION, {"question": question})
            return [Entity(**entity) for entity in output.get("entities") or []]
        except Exception as e:
            logger.warning(f"Entity extraction failed, using regex fallback: {e}")
            return fallback_entity_extraction(question)


class QuestionClassifier:
    """Classifies questions using a configurable strategy.

    LLM classification is used by default; any failure falls back to the keyword
    strategy, so ``classify`` never raises.
    """

    def __init__(
        self,
        prompt_service: Optional[StructuredPromptService] = None,
        strategy: Optional[ClassificationStrategy] = None,
        use_llm_routing: bool = True,
        history_window: Optional[int] = None,
    ):
        """Initialize the question classifier.

        Args:
            prompt_service: Prompt service for the LLM strategy
            strategy: Optional custom classification strategy
            use_llm_routing: Whether to build an LLM strategy when none is given
            history_window: Number of recent turns sent to the classifier
        """
        self.fallback_strategy = KeywordClassificationStrategy()
        self.history_window = settings.history_window if history_window is None else history_window

        if strategy is not None:
            self.strategy = strategy
        elif use_llm_routing:
            try:
                self.strategy = LLMClassificationStrategy(prompt_service or get_prompt_service())
                logger.info("Initialized classifier with LLM semantic routing")
            except Exception as e:
                logger.warning(f"Failed to initialize LLM routing, falling back to keywords: {e}")
                self.strategy = self.fallback_strategy
        else:
            self.strategy = self.fallback_strategy

    def trim_history(self, history: Sequence[Any]) -> List[ConversationTurn]:
        """Keep the most recent turns, coercing dicts to conversation turns."""
        turns = [
            turn if isinstance(turn, ConversationTurn) else ConversationTurn.model_validate(turn)
            for turn in history or []
        ]
        if self.history_window <= 0:
            return []
        return turns[-self.history_window:]

    async def classify(
        self,
        question: str,
        history: Optional[Sequence[Any]] = None,
        memory: Optional[Memory] = None,
    ) -> RoutingDecision:
        """Classify a question.

        Args:
            question: The user's question
            history: Conversation turns, oldest first
            memory: Memory snapshot carried across turns

        Returns:
            Routing decision whose agent type is always a supported agent
        """
        question = question or ""
        memory = memory or Memory()

        try:
            turns = self.trim_history(history or [])
        except Exception as e:
            logger.warning(f"Ignoring malformed conversation history: {e}")
            turns = []

        try:
            decision = await self.strategy.classify(question, turns, memory)
        except Exception as e:
            logger.warning(f"Classification failed, using keyword fallback: {e}")
            decision = await self.fallback_strategy.classify(question, turns, memory)

        audit_logger.log_routing_decision(
            intent=decision.intent.value,
            agent_type=decision.agent_type.value,
            confidence=decision.confidence,
            source=decision.source,
            needs_clarification=decision.needs_clarification,
        )
        logger.info(
            f"Routed question '{question[:100]}' to {decision.agent_type.value} "
            f"({decision.intent.value}, confidence {decision.confidence:.2f}, {decision.source})"
        )
        return decision
