"""
Agents, routing and the agent registry.

This package provides the question classifier, the closed set of answering
agents and the registry that maps configured agent keys onto them.
"""

from .base import (
    AgentDefinition,
    AgentResult,
    BaseAgent,
    Citation,
    ConversationTurn,
    Document,
)
from .config_store import (
    AgentConfigStore,
    InMemoryAgentConfigStore,
    SQLAgentConfigStore,
)
from .decision import (
    AgentType,
    Entity,
    ExpandedQuery,
    Intent,
    Memory,
    RoutingDecision,
    RoutingTarget,
)
from .implementations import AGENT_VARIANTS, CasualAgent, ContentAgent, MetadataAgent, create_agent
from .registry import AgentRegistry
from .router import (
    ClassificationStrategy,
    KeywordClassificationStrategy,
    LLMClassificationStrategy,
    QuestionClassifier,
)

__all__ = [
    # Base classes
    "AgentDefinition",
    "AgentResult",
    "BaseAgent",
    "Citation",
    "ConversationTurn",
    "Document",

    # Routing
    "AgentType",
    "Entity",
    "ExpandedQuery",
    "Intent",
    "Memory",
    "RoutingDecision",
    "RoutingTarget",
    "ClassificationStrategy",
    "KeywordClassificationStrategy",
    "LLMClassificationStrategy",
    "QuestionClassifier",

    # Agents
    "AGENT_VARIANTS",
    "CasualAgent",
    "ContentAgent",
    "MetadataAgent",
    "create_agent",

    # Configuration
    "AgentConfigStore",
    "InMemoryAgentConfigStore",
    "SQLAgentConfigStore",
    "AgentRegistry",
]
