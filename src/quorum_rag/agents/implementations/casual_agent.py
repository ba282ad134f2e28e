"""
Casual Agent - greetings and small talk, answered without documents or model calls.
"""

import re
from typing import List, Optional, Sequence

from ..base import AgentDefinition, AgentResult, BaseAgent, ConversationTurn, Document


GREETING_REPLY = (
    "Hello there! I'm your document assistant. I can help you find, analyze, and "
    "understand your documents. What would you like to know about your documents?"
)

CAPABILITIES_REPLY = (
    "I'm a document assistant designed to help you work with your documents. I can:\n\n"
    "- Find specific documents by title, sender, date, or content\n"
    "- Answer questions about document contents\n"
    "- Extract key information from documents\n"
    "- Compare similar documents\n\n"
    "What would you like to do with your documents?"
)

DEFAULT_REPLY = (
    "I'm here to help you with your documents. You can ask me questions like:\n\n"
    '- "Find documents from last month"\n'
    '- "What\'s in the contract with Microsoft?"\n'
    '- "Compare the Q1 and Q2 reports"\n\n'
    "What would you like to know about your documents?"
)

# First matching pattern wins
CASUAL_REPLIES = [
    (re.compile(r"\b(how are you|how're you|how do you do|how's it going)\b"),
     "I'm doing great, thank you for asking! I'm ready to help with your document "
     "questions. What can I assist you with today?"),
    (re.compile(r"\b(hi|hello|hey|what's up|whats up|howdy|good morning|good afternoon|good evening)\b"),
     GREETING_REPLY),
    (re.compile(r"\b(thank you|thanks|thx|thankyou)\b"),
     "You're welcome! Is there anything else about your documents you'd like to explore?"),
    (re.compile(r"\b(bye|goodbye|see you|farewell)\b"),
     "Goodbye! Feel free to come back anytime if you have more document questions."),
    (re.compile(r"\b(what can you do|what are you for|what is this)\b"),
     CAPABILITIES_REPLY),
]


class CasualAgent(BaseAgent):
    """Conversational replies for questions that are not about documents."""

    reply_confidence = 0.9

    def __init__(self, definition: Optional[AgentDefinition] = None, **kwargs):
        # kwargs such as prompt_service are accepted for a uniform constructor
        if definition is None:
            definition = AgentDefinition(
                key="casual",
                name="Casual Agent",
                description="Handles greetings and small talk",
            )
        super().__init__(definition)

    async def process(
        self,
        question: str,
        documents: Sequence[Document],
        conversation: Sequence[ConversationTurn] = (),
    ) -> AgentResult:
        self.invocation_count += 1
        return AgentResult(
            answer=self.generate_reply(question),
            confidence=self.reply_confidence,
            citations=[],
            metadata={"agent": self.key},
        )

    def generate_reply(self, question: str) -> str:
        q = (question or "").lower().strip()
        for pattern, reply in CASUAL_REPLIES:
            if pattern.search(q):
                return reply
        return DEFAULT_REPLY

    async def filter_relevant_documents(self, documents: Sequence[Document]) -> List[Document]:
        return []

    def fallback_message(self) -> str:
        return "I'm here to help you with your documents. Feel free to ask me questions about your files!"
