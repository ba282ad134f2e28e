"""
Base agent classes and result models for the multi-agent answering system.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.logging import logger


class AgentDefinition(BaseModel):
    """Agent configuration row owned by the configuration store."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    description: str = ""
    is_active: bool = True


class Document(BaseModel):
    """Candidate document handed over by the retrieval collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: Optional[str] = None
    name: str = ""
    content: Optional[str] = None
    document_type: Optional[str] = None
    document_date: Optional[str] = None
    sender: Optional[str] = None
    receiver: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.title or self.name or "Untitled Document"

    def has_metadata(self) -> bool:
        return bool(
            self.document_date
            or self.sender
            or self.receiver
            or self.document_type
            or self.category
            or self.tags
        )


class ConversationTurn(BaseModel):
    """One message of the conversation history."""

    model_config = ConfigDict(frozen=True)

    role: str = "user"
    content: str = ""


class Citation(BaseModel):
    """Reference from an answer to a source document."""

    model_config = ConfigDict(frozen=True)

    doc_id: str
    doc_name: str = ""
    snippet: str = ""


class AgentResult(BaseModel):
    """Output of exactly one agent invocation."""

    model_config = ConfigDict(frozen=True)

    answer: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    citations: List[Citation] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return 0.0

    @property
    def has_citations(self) -> bool:
        return len(self.citations) > 0


class BaseAgent(ABC):
    """Base class for all answering agents."""

    def __init__(self, definition: AgentDefinition):
        self.definition = definition
        self.created_at = datetime.now()
        self.invocation_count = 0

        logger.debug(f"Initialized agent {definition.key} ({definition.name})")

    @property
    def key(self) -> str:
        """Get agent key."""
        return self.definition.key

    @property
    def name(self) -> str:
        """Get agent display name."""
        return self.definition.name

    @abstractmethod
    async def process(
        self,
        question: str,
        documents: Sequence[Document],
        conversation: Sequence[ConversationTurn] = (),
    ) -> AgentResult:
        """Answer a question from the given documents."""
        pass

    async def filter_relevant_documents(self, documents: Sequence[Document]) -> List[Document]:
        """Filter documents relevant to this agent's specialty.

        Override in subclasses for agent-specific filtering.
        """
        return list(documents)

    def fallback_message(self) -> str:
        """Answer used when no relevant documents were found."""
        return f"I couldn't find relevant {self.key} information in your documents to answer this question."

    def generate_citations(self, documents: Sequence[Document], limit: int = 10) -> List[Citation]:
        """Cite the first documents that were handed to the model."""
        citations = []
        for doc in documents[:limit]:
            snippet = f"{doc.content[:200]}..." if doc.content else "Document content"
            citations.append(Citation(doc_id=doc.id, doc_name=doc.display_name, snippet=snippet))
        return citations

    def generate_default_answer(self, documents: Sequence[Document], question: str) -> str:
        """Summarize which documents were found when the model returned no text."""
        if not documents:
            return "I couldn't find any relevant documents to answer your question."

        q = (question or "").lower()
        if any(word in q for word in ("compare", "difference")):
            verb = "compared"
        elif any(word in q for word in ("what", "how", "why", "explain")):
            verb = "analyzed"
        else:
            verb = "found"

        count = len(documents)
        listing = "\n".join(
            f"{index}. {doc.display_name}" for index, doc in enumerate(documents[:10], start=1)
        )
        suffix = f"\n... and {count - 10} more" if count > 10 else ""
        plural = "s" if count != 1 else ""
        return f"I {verb} {count} relevant document{plural} based on your query:\n\n{listing}{suffix}"

    def get_info(self) -> Dict[str, Any]:
        """Get agent information."""
        return {
            "key": self.key,
            "name": self.name,
            "description": self.definition.description,
            "created_at": self.created_at.isoformat(),
            "invocation_count": self.invocation_count,
        }
