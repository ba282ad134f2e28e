"""
Prompt contracts: fixed input/output schemas plus the template rendered for each.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class HistoryTurn(BaseModel):
    role: str = "user"
    content: str = ""


class MemoryInput(BaseModel):
    focus_doc_ids: List[str] = Field(default_factory=list)
    last_cited_doc_ids: List[str] = Field(default_factory=list)
    last_list_doc_ids: List[str] = Field(default_factory=list)
    filters: Dict[str, Any] = Field(default_factory=dict)


class RoutingClassifierInput(BaseModel):
    question: str
    history: List[HistoryTurn] = Field(default_factory=list)
    memory: MemoryInput = Field(default_factory=MemoryInput)


class RoutingTargetOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prefer: str = "none"
    ordinal: Optional[int] = None
    want_preview: bool = Field(
        default=False, validation_alias=AliasChoices("want_preview", "wantPreview")
    )


class RoutingClassifierOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    intent: str
    agent_type: str = Field(validation_alias=AliasChoices("agent_type", "agentType"))
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    filters: Dict[str, Any] = Field(default_factory=dict)
    answer_type: str = Field(
        default="content", validation_alias=AliasChoices("answer_type", "answerType")
    )
    required_fields: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("required_fields", "requiredFields")
    )
    primary_agent: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("primary_agent", "primaryAgent")
    )
    secondary_emitters: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("secondary_emitters", "secondaryEmitters")
    )
    target: RoutingTargetOutput = Field(default_factory=RoutingTargetOutput)
    needs_clarification: bool = Field(
        default=False, validation_alias=AliasChoices("needs_clarification", "needsClarification")
    )
    clarification_question: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("clarification_question", "clarificationQuestion"),
    )


class DocumentInput(BaseModel):
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


class AgentAnswerInput(BaseModel):
    agent_key: str
    question: str
    documents: List[DocumentInput] = Field(default_factory=list)
    conversation: List[HistoryTurn] = Field(default_factory=list)


class CitationOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doc_id: str = Field(validation_alias=AliasChoices("doc_id", "docId"))
    doc_name: str = Field(default="", validation_alias=AliasChoices("doc_name", "docName"))
    snippet: str = ""


class AgentAnswerOutput(BaseModel):
    answer: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    citations: Optional[List[CitationOutput]] = None


class QueryExpansionInput(BaseModel):
    question: str


class QueryExpansionOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original: str = ""
    expanded: str = ""
    terms: List[str] = Field(default_factory=list)
    related_concepts: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("related_concepts", "relatedConcepts")
    )


class EntityExtractionInput(BaseModel):
    question: str


class EntityOutput(BaseModel):
    type: str
    value: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class EntityExtractionOutput(BaseModel):
    entities: List[EntityOutput] = Field(default_factory=list)


class PromptContract(BaseModel):
    """Named prompt with its input/output schema."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    input_model: Type[BaseModel]
    output_model: Type[BaseModel]
    template: str
    renderer: Callable[[BaseModel], Dict[str, str]]
    temperature: Optional[float] = None

    def render(self, payload: BaseModel) -> str:
        return self.template.format(**self.renderer(payload))


def _render_history(turns: List[HistoryTurn]) -> str:
    if not turns:
        return "(none)"
    return "\n".join(f"{turn.role}: {turn.content}" for turn in turns)


def _render_routing(payload: RoutingClassifierInput) -> Dict[str, str]:
    return {
        "question": payload.question,
        "history": _render_history(payload.history),
        "memory": json.dumps(payload.memory.model_dump(), ensure_ascii=False),
    }


def _render_documents(documents: List[DocumentInput]) -> str:
    if not documents:
        return "(no documents)"
    blocks = []
    for index, doc in enumerate(documents):
        blocks.append(
            f"Document {index} (id={doc.id}):\n"
            f"Title: {doc.title or doc.name}\n"
            f"Date: {doc.document_date or ''}\n"
            f"Sender: {doc.sender or ''}\n"
            f"Receiver: {doc.receiver or ''}\n"
            f"Type: {doc.document_type or ''}\n"
            f"Category: {doc.category or ''}\n"
            f"Content: {doc.content or ''}"
        )
    return "\n\n".join(blocks)


def _render_agent_answer(payload: AgentAnswerInput) -> Dict[str, str]:
    return {
        "agent_key": payload.agent_key,
        "question": payload.question,
        "documents": _render_documents(payload.documents),
        "conversation": _render_history(payload.conversation),
    }


def _render_question(payload: BaseModel) -> Dict[str, str]:
    return {"question": getattr(payload, "question", "")}


ROUTING_CLASSIFIER_TEMPLATE = """You are a context-aware router for a document assistant.

Available agents:
- metadata: document properties (dates, senders, receivers, types, categories, filenames)
- content: questions that require reading document text
- casual: greetings, small talk, questions not about documents

Intents: FindFiles, Metadata, ContentQA, Linked, Diff, Analytics, Timeline, Extract, Casual.

Use the history and memory to resolve pronouns ("it", "that one") and ordinals
("the second one"), but do not output document ids. Set target.prefer to "focus"
for follow-ups about the last discussed document, "list" for ordinals over a
previous list (with target.ordinal), otherwise "none". If the question is
ambiguous set needs_clarification to true with a lower confidence.

Question: {question}

Conversation History:
{history}

Memory:
{memory}

Respond ONLY with valid JSON in this exact format:
{{
  "intent": "<intent>",
  "agent_type": "metadata|content|casual",
  "confidence": <number between 0 and 1>,
  "reasoning": "<short reason>",
  "filters": {{}},
  "answer_type": "content|metadata|mixed",
  "required_fields": [],
  "primary_agent": "<agent>",
  "secondary_emitters": [],
  "target": {{"prefer": "focus|list|none", "ordinal": null, "want_preview": false}},
  "needs_clarification": false
}}"""


AGENT_ANSWER_TEMPLATE = """You are the {agent_key} agent of a document assistant.

Question: {question}

Relevant Documents:
{documents}

Conversation History:
{conversation}

Answer strictly from the documents above, in GitHub-Flavored Markdown.
Do not fabricate facts. If the documents do not support an answer, say so and
suggest a precise follow-up (for example a filter or a date range).

Respond ONLY with valid JSON in this exact format:
{{
  "answer": "<markdown answer>",
  "confidence": <number between 0 and 1>,
  "citations": [{{"doc_id": "<id>", "doc_name": "<title>", "snippet": "<supporting text>"}}]
}}"""


QUERY_EXPANSION_TEMPLATE = """Expand the following query with synonyms, related terms and broader
concepts that would help document retrieval.

Original query: "{question}"

Respond ONLY with valid JSON in this exact format:
{{
  "original": "<original query>",
  "expanded": "<expanded query>",
  "terms": ["<term>"],
  "related_concepts": ["<concept>"]
}}"""


ENTITY_EXTRACTION_TEMPLATE = """Extract document-related named entities from the text: titles (quoted
text), dates, organizations, people, document types (contract, invoice, report)
and topics.

Text: "{question}"

Respond ONLY with valid JSON in this exact format:
{{
  "entities": [{{"type": "<entity type>", "value": "<value>", "confidence": <number between 0 and 1>}}]
}}"""


ROUTING_CLASSIFIER = "routing_classifier"
AGENT_ANSWER = "agent_answer"
QUERY_EXPANSION = "query_expansion"
ENTITY_EXTRACTION = "entity_extraction"


DEFAULT_CONTRACTS: Dict[str, PromptContract] = {
    ROUTING_CLASSIFIER: PromptContract(
        name=ROUTING_CLASSIFIER,
        input_model=RoutingClassifierInput,
        output_model=RoutingClassifierOutput,
        template=ROUTING_CLASSIFIER_TEMPLATE,
        renderer=_render_routing,
        temperature=0.2,
    ),
    AGENT_ANSWER: PromptContract(
        name=AGENT_ANSWER,
        input_model=AgentAnswerInput,
        output_model=AgentAnswerOutput,
        template=AGENT_ANSWER_TEMPLATE,
        renderer=_render_agent_answer,
    ),
    QUERY_EXPANSION: PromptContract(
        name=QUERY_EXPANSION,
        input_model=QueryExpansionInput,
        output_model=QueryExpansionOutput,
        template=QUERY_EXPANSION_TEMPLATE,
        renderer=_render_question,
        temperature=0.2,
    ),
    ENTITY_EXTRACTION: PromptContract(
        name=ENTITY_EXTRACTION,
        input_model=EntityExtractionInput,
        output_model=EntityExtractionOutput,
        template=ENTITY_EXTRACTION_TEMPLATE,
        renderer=_render_question,
        temperature=0.0,
    ),
}
