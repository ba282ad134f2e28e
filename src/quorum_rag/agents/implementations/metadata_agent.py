"""
Metadata Agent - answers questions about document properties.
"""

from typing import List, Optional, Sequence

from ...llm.service import StructuredPromptService
from ..base import AgentDefinition, Document
from .content_agent import ContentAgent


class MetadataAgent(ContentAgent):
    """Answers from dates, senders, receivers, types and categories.

    Only documents that carry at least one metadata field are shown to the model.
    """

    def __init__(
        self,
        definition: Optional[AgentDefinition] = None,
        prompt_service: Optional[StructuredPromptService] = None,
        history_window: Optional[int] = None,
    ):
        if definition is None:
            definition = AgentDefinition(
                key="metadata",
                name="Metadata Agent",
                description="Answers questions about document properties",
            )
        super().__init__(definition, prompt_service, history_window)

    async def filter_relevant_documents(self, documents: Sequence[Document]) -> List[Document]:
        return [doc for doc in documents if doc.has_metadata()]

    def fallback_message(self) -> str:
        return (
            "I couldn't find documents with metadata matching your question. "
            "Try filtering by sender, date range or document type."
        )
