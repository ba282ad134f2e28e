"""
Routing decision model produced by the question classifier.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentType(str, Enum):
    """Agents the pipeline supports structurally, independent of the registry."""

    METADATA = "metadata"
    CONTENT = "content"
    CASUAL = "casual"

    @classmethod
    def normalize(cls, value: Any) -> "AgentType":
        """Map any value onto the enumeration; unknown values become CONTENT."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.CONTENT

    @classmethod
    def keys(cls) -> List[str]:
        return [member.value for member in cls]


class Intent(str, Enum):
    """Intent categories recognised by the classifier."""

    CASUAL = "Casual"
    FIND_FILES = "FindFiles"
    METADATA = "Metadata"
    CONTENT_QA = "ContentQA"
    LINKED = "Linked"
    DIFF = "Diff"
    ANALYTICS = "Analytics"
    TIMELINE = "Timeline"
    EXTRACT = "Extract"
    CLARIFY = "Clarify"


class RoutingTarget(BaseModel):
    """Which previously surfaced documents the question refers to."""

    model_config = ConfigDict(frozen=True)

    prefer: Literal["focus", "list", "none"] = "none"
    ordinal: Optional[int] = Field(default=None, ge=1)
    want_preview: bool = False


class Entity(BaseModel):
    """Named entity pulled from the question text."""

    model_config = ConfigDict(frozen=True)

    type: str
    value: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ExpandedQuery(BaseModel):
    """Question rewritten with synonyms and related terms."""

    model_config = ConfigDict(frozen=True)

    original: str = ""
    expanded: str = ""
    terms: List[str] = Field(default_factory=list)
    related_concepts: List[str] = Field(default_factory=list)


class Memory(BaseModel):
    """Conversation memory carried forward by the caller between turns."""

    model_config = ConfigDict(frozen=True)

    focus_doc_ids: List[str] = Field(default_factory=list)
    last_cited_doc_ids: List[str] = Field(default_factory=list)
    last_list_doc_ids: List[str] = Field(default_factory=list)
    filters: Dict[str, Any] = Field(default_factory=dict)


class RoutingDecision(BaseModel):
    """Classifier output, consumed read-only by the rest of the pipeline."""

    model_config = ConfigDict(frozen=True)

    agent_type: AgentType = AgentType.CONTENT
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""
    intent: Intent = Intent.CONTENT_QA
    filters: Dict[str, Any] = Field(default_factory=dict)
    answer_type: Literal["content", "metadata", "mixed"] = "content"
    required_fields: List[str] = Field(default_factory=list)
    primary_agent: Optional[str] = None
    secondary_emitters: List[str] = Field(default_factory=list)
    target: RoutingTarget = Field(default_factory=RoutingTarget)
    needs_clarification: bool = False
    clarification_question: Optional[str] = None
    entities: List[Entity] = Field(default_factory=list)
    expanded_query: Optional[ExpandedQuery] = None
    source: Literal["llm", "fallback", "override"] = "llm"

    @field_validator("agent_type", mode="before")
    @classmethod
    def _normalize_agent_type(cls, value: Any) -> AgentType:
        return AgentType.normalize(value)

    @field_validator("intent", mode="before")
    @classmethod
    def _normalize_intent(cls, value: Any) -> Intent:
        if isinstance(value, Intent):
            return value
        try:
            return Intent(str(value))
        except ValueError:
            return Intent.CONTENT_QA

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return 0.5

    @property
    def requested_primary(self) -> str:
        """Primary agent key as requested, before normalization."""
        return self.primary_agent or self.agent_type.value

    def keywords(self) -> List[str]:
        """Refinement keywords: document-type/topic entities plus expanded terms
        that name a document type."""
        words: List[str] = []
        for entity in self.entities:
            if entity.type in ("document_type", "topic") and entity.value.strip():
                words.append(entity.value.strip().lower())
        if self.expanded_query is not None:
            for term in self.expanded_query.terms:
                lowered = term.lower()
                for stem in DOCUMENT_TYPE_STEMS:
                    if stem in lowered:
                        words.append(stem)
        return list(dict.fromkeys(words))


# Expanded-query terms containing one of these narrow refinement by document type
DOCUMENT_TYPE_STEMS = (
    "inspect",
    "invoice",
    "contract",
    "report",
    "letter",
    "resume",
    "notice",
    "receipt",
)
