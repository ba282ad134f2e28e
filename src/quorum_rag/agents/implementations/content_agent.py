"""
Content Agent - answers questions that require reading document text.
"""

import time
from typing import List, Optional, Sequence

from ...core.config import settings
from ...core.exceptions import AgentExecutionError, PromptServiceError
from ...core.logging import logger
from ...llm.prompts import AGENT_ANSWER
from ...llm.service import StructuredPromptService, get_prompt_service
from ..base import AgentDefinition, AgentResult, BaseAgent, Citation, ConversationTurn, Document


class ContentAgent(BaseAgent):
    """Agent that answers from document content through the ``agent_answer`` prompt.

    Subclasses narrow the documents handed to the model by overriding
    ``filter_relevant_documents``.
    """

    default_confidence = 0.8
    empty_confidence = 0.3

    def __init__(
        self,
        definition: Optional[AgentDefinition] = None,
        prompt_service: Optional[StructuredPromptService] = None,
        history_window: Optional[int] = None,
    ):
        if definition is None:
            definition = AgentDefinition(
                key="content",
                name="Content Agent",
                description="Answers questions that require reading document text",
            )
        super().__init__(definition)

        self._prompt_service = prompt_service
        self.history_window = settings.history_window if history_window is None else history_window

    @property
    def prompt_service(self) -> StructuredPromptService:
        """Prompt service, created from settings on first use."""
        if self._prompt_service is None:
            try:
                self._prompt_service = get_prompt_service()
            except Exception as e:
                raise AgentExecutionError(
                    f"No prompt service available for {self.key} agent: {e}", self.key
                ) from e
        return self._prompt_service

    async def process(
        self,
        question: str,
        documents: Sequence[Document],
        conversation: Sequence[ConversationTurn] = (),
    ) -> AgentResult:
        """Answer a question from the relevant documents.

        Raises:
            AgentExecutionError: If the prompt service fails
        """
        self.invocation_count += 1
        start_time = time.time()

        relevant_docs = await self.filter_relevant_documents(documents)
        if not relevant_docs:
            logger.debug(f"{self.key} agent found no relevant documents")
            return AgentResult(
                answer=self.fallback_message(),
                confidence=self.empty_confidence,
                citations=[],
                metadata={"agent": self.key, "documents_used": 0},
            )

        recent_turns = list(conversation)[-self.history_window:] if self.history_window > 0 else []
        payload = {
            "agent_key": self.key,
            "question": question,
            "documents": [doc.model_dump() for doc in relevant_docs],
            "conversation": [turn.model_dump() for turn in recent_turns],
        }

        try:
            output = await self.prompt_service.invoke(AGENT_ANSWER, payload)
        except PromptServiceError as e:
            raise AgentExecutionError(
                f"{self.name} could not answer: {e.message}", self.key, e.details
            ) from e

        answer = (output.get("answer") or "").strip()
        if not answer:
            answer = self.generate_default_answer(relevant_docs, question)

        citations = self._parse_citations(output.get("citations"), relevant_docs)
        confidence = output.get("confidence")

        logger.debug(f"{self.key} agent answered in {time.time() - start_time:.2f}s")
        return AgentResult(
            answer=answer,
            confidence=self.default_confidence if confidence is None else confidence,
            citations=citations,
            metadata={"agent": self.key, "documents_used": len(relevant_docs)},
        )

    def _parse_citations(
        self,
        raw_citations: Optional[List[dict]],
        documents: Sequence[Document],
    ) -> List[Citation]:
        # Model omitted citations: cite the documents it was shown
        if raw_citations is None:
            return self.generate_citations(documents)
        return [Citation(**citation) for citation in raw_citations]
