"""
Deterministic rule-based routing used whenever the prompt service is unavailable.

Everything in this module is total: it never raises and always returns a value.
"""

import re
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from ..core.logging import logger
from .decision import (
    AgentType,
    Entity,
    ExpandedQuery,
    Intent,
    RoutingDecision,
    RoutingTarget,
)


class KeywordCategory:
    """One ordered category of the keyword classifier."""

    def __init__(
        self,
        name: str,
        intent: Intent,
        agent_type: AgentType,
        confidence: float,
        patterns: Sequence[str],
        answer_type: str = "content",
    ):
        self.name = name
        self.intent = intent
        self.agent_type = agent_type
        self.confidence = confidence
        self.answer_type = answer_type
        self.patterns: List[Pattern] = [re.compile(p, re.IGNORECASE) for p in patterns]

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


# Evaluated in order; the first matching category wins.
KEYWORD_CATEGORIES: List[KeywordCategory] = [
    KeywordCategory(
        "casual",
        Intent.CASUAL,
        AgentType.CASUAL,
        0.7,
        [
            r"\b(hi|hello|hey|what's up|whats up|howdy|how are you|how're you|how do you do|how's it going)\b",
            r"\b(thank you|thanks|thx|thankyou|bye|goodbye|see you|farewell)\b",
            r"\b(good morning|good afternoon|good evening)\b",
        ],
    ),
    KeywordCategory(
        "find_files",
        Intent.FIND_FILES,
        AgentType.METADATA,
        0.7,
        [
            r"\b(list|show|find|search|locate|retrieve)\b.*\b(documents?|files?|records?|papers?|items?)\b",
            r"\b(all|every|any)\b.*\b(bills?|invoices?|contracts?|reports?|letters?|emails?|notices?)\b",
            r"\b(metadata|properties|characteristics)\b.*\b(of|for|about)\b",
        ],
        answer_type="metadata",
    ),
    KeywordCategory(
        "metadata",
        Intent.METADATA,
        AgentType.METADATA,
        0.65,
        [
            r"\b(what.*title|what.*subject|who.*sender|who.*receiver|who sent|when.*dated?|what.*category|what.*type)\b",
            r"\b(title|subject|sender|receiver|date|category|filename)\b",
        ],
        answer_type="metadata",
    ),
    KeywordCategory(
        "content_qa",
        Intent.CONTENT_QA,
        AgentType.CONTENT,
        0.6,
        [
            r"\b(what.*say|what.*state|what.*mention|what.*discuss|explain|describe|summari[sz]e)\b",
            r"\b(content|information|details|facts)\b.*\b(in|about|regarding)\b",
            r"\b(can you tell me|could you explain|help me understand)\b",
        ],
    ),
    KeywordCategory(
        "linked",
        Intent.LINKED,
        AgentType.CONTENT,
        0.55,
        [
            r"\b(linked|related|connected|associated|versions?)\b",
            r"\b(relations?|connections?|references?)\b",
            r"\b(see also|related to|connected to)\b",
        ],
    ),
    KeywordCategory(
        "diff",
        Intent.DIFF,
        AgentType.CONTENT,
        0.55,
        [
            r"\b(diff|difference|differences|differ|compare|comparison|contrast|versus|vs\.?)\b",
            r"\b(changed|changes) between\b",
        ],
        answer_type="mixed",
    ),
    KeywordCategory(
        "analytics",
        Intent.ANALYTICS,
        AgentType.CONTENT,
        0.55,
        [
            r"\b(analy[sz]e|analysis|analytics|statistics|stats|trends?|patterns?|insights?)\b",
            r"\b(how many|count|total|average|sum of|breakdown)\b",
        ],
        answer_type="mixed",
    ),
    KeywordCategory(
        "timeline",
        Intent.TIMELINE,
        AgentType.CONTENT,
        0.55,
        [
            r"\b(timeline|chronological|chronology|history)\b",
            r"\b(when.*happen|sequence of events|order.*occurred|over time|time line)\b",
        ],
    ),
    KeywordCategory(
        "extract",
        Intent.EXTRACT,
        AgentType.CONTENT,
        0.55,
        [
            r"\b(extract|pull|gather|collect)\b.*\b(fields?|data|information|values?|numbers?|amounts?)\b",
            r"\b(table|spreadsheet|csv|json|structured)\b",
            r"\b(export|download)\b.*\b(data|information)\b",
        ],
    ),
]

DEFAULT_CONFIDENCE = 0.5

CLARIFICATION_PROMPT = (
    "Could you tell me a bit more? For example, which document, sender or date range you mean."
)

ORDINAL_PATTERN = re.compile(
    r"\b(first|second|third|fourth|fifth|1st|2nd|3rd|4th|5th)\b|#(\d+)", re.IGNORECASE
)
FOCUS_PATTERN = re.compile(r"\b(it|this|that|the .*one|previous|last)\b", re.IGNORECASE)

ORDINAL_WORDS: Dict[str, int] = {
    "first": 1,
    "1st": 1,
    "second": 2,
    "2nd": 2,
    "third": 3,
    "3rd": 3,
    "fourth": 4,
    "4th": 4,
    "fifth": 5,
    "5th": 5,
}


def match_category(question: str) -> Optional[KeywordCategory]:
    """Return the first category whose patterns match, or None."""
    text = (question or "").lower().strip()
    for category in KEYWORD_CATEGORIES:
        if category.matches(text):
            return category
    return None


def determine_target(question: str) -> RoutingTarget:
    """Work out whether a question points at a listed or focused document.

    Ordinals ("the second one", "#3") prefer the previous list; pronouns and
    "previous"/"last" prefer the focused document.
    """
    q = (question or "").lower()

    ordinal_match = ORDINAL_PATTERN.search(q)
    if ordinal_match:
        if ordinal_match.group(2):
            ordinal = int(ordinal_match.group(2))
        else:
            ordinal = ORDINAL_WORDS[ordinal_match.group(1)]
        return RoutingTarget(prefer="list", ordinal=max(1, ordinal))

    if FOCUS_PATTERN.search(q):
        return RoutingTarget(prefer="focus")

    return RoutingTarget()


def needs_clarification(question: str, category: Optional[KeywordCategory]) -> bool:
    """Very short questions that are not small talk need more detail."""
    if category is not None and category.intent == Intent.CASUAL:
        return False
    return len((question or "").split()) < 2


def fallback_classification(question: str) -> RoutingDecision:
    """Classify a question by ordered keyword categories.

    Args:
        question: The user's question

    Returns:
        A decision with confidence between 0.5 and 0.7
    """
    category = match_category(question)
    target = determine_target(question)
    clarify = needs_clarification(question, category)

    if category is None:
        logger.debug("Keyword classifier found no category, defaulting to ContentQA")
        decision_fields = {
            "agent_type": AgentType.CONTENT,
            "intent": Intent.CONTENT_QA,
            "confidence": DEFAULT_CONFIDENCE,
            "reasoning": "No keyword category matched; defaulting to content QA",
        }
    else:
        logger.debug(f"Keyword classifier matched category '{category.name}'")
        decision_fields = {
            "agent_type": category.agent_type,
            "intent": category.intent,
            "confidence": category.confidence,
            "answer_type": category.answer_type,
            "reasoning": f"Matched '{category.name}' keywords",
        }

    if clarify:
        decision_fields["confidence"] = DEFAULT_CONFIDENCE

    return RoutingDecision(
        **decision_fields,
        primary_agent=decision_fields["agent_type"].value,
        target=target,
        needs_clarification=clarify,
        clarification_question=CLARIFICATION_PROMPT if clarify else None,
        source="fallback",
    )


DATE_PATTERNS: List[Pattern] = [
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
    re.compile(r"\b\d{1,2}-\d{1,2}-\d{4}\b"),
    re.compile(
        r"\b(January|February|March|April|May|June|July|August|September|October|November|December)"
        r"\s+\d{1,2},?\s+\d{4}\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b\d{1,2}\s+(January|February|March|April|May|June|July|August|September|October|November|December)"
        r"\s+\d{4}\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(last month|this month|last week|this week|yesterday|today|tomorrow)\b", re.IGNORECASE),
]

DOCUMENT_TYPE_PATTERNS: List[Tuple[str, Pattern]] = [
    ("invoice", re.compile(r"\b(invoices?|bills?|receipts?|payments?)\b", re.IGNORECASE)),
    ("contract", re.compile(r"\b(contracts?|agreements?)\b", re.IGNORECASE)),
    ("report", re.compile(r"\b(reports?|studies|study|reviews?)\b", re.IGNORECASE)),
    ("inspection", re.compile(r"\b(inspections?|inspect)\b", re.IGNORECASE)),
    ("letter", re.compile(r"\b(letters?|correspondence|emails?|memos?)\b", re.IGNORECASE)),
    ("resume", re.compile(r"\b(resumes?|cv|curriculum vitae)\b", re.IGNORECASE)),
    ("notice", re.compile(r"\b(notices?)\b", re.IGNORECASE)),
]

QUOTED_PATTERN = re.compile(r"[\"']([^\"'\n]+)[\"']")

ORGANIZATION_PATTERN = re.compile(
    r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+"
    r"(?:Company|Corporation|Corp|Inc|Ltd|LLC|Organization|University|College|Institute))\b"
)


def fallback_entity_extraction(question: str) -> List[Entity]:
    """Regex entity extraction: quoted titles, dates, document types, organizations."""
    text = (question or "").strip()
    entities: List[Entity] = []

    for match in QUOTED_PATTERN.finditer(text):
        entities.append(Entity(type="title", value=match.group(1), confidence=0.9))

    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            entities.append(Entity(type="date", value=match.group(0), confidence=0.8))

    for doc_type, pattern in DOCUMENT_TYPE_PATTERNS:
        if pattern.search(text):
            entities.append(Entity(type="document_type", value=doc_type, confidence=0.7))

    for match in ORGANIZATION_PATTERN.finditer(text):
        entities.append(Entity(type="organization", value=match.group(1), confidence=0.7))

    return entities


SYNONYMS: Dict[str, List[str]] = {
    "bill": ["invoice", "receipt", "payment"],
    "contract": ["agreement", "terms", "conditions"],
    "invoice": ["bill", "receipt", "payment"],
    "report": ["analysis", "study", "review"],
    "letter": ["correspondence", "email", "memo"],
    "resume": ["cv", "curriculum vitae"],
    "inspection": ["inspection report", "survey", "assessment"],
    "find": ["search", "locate", "retrieve"],
    "show": ["display", "view", "list"],
    "document": ["file", "paper", "record"],
}


def fallback_query_expansion(question: str) -> ExpandedQuery:
    """Expand a question with a fixed synonym table."""
    text = (question or "").strip()
    terms = [term for term in text.split() if len(term) > 1]
    expanded_terms = list(terms)

    for term in terms:
        key = term.lower().strip("?.,!;:")
        expanded_terms.extend(SYNONYMS.get(key, []))

    unique_terms = list(dict.fromkeys(expanded_terms))
    return ExpandedQuery(
        original=text,
        expanded=" ".join(unique_terms),
        terms=unique_terms,
        related_concepts=[],
    )
