"""
Agent variants. The set is closed: every configured key maps onto one of these.
"""

from typing import Dict, Optional, Type

from ...llm.service import StructuredPromptService
from ..base import AgentDefinition, BaseAgent
from .casual_agent import CasualAgent
from .content_agent import ContentAgent
from .metadata_agent import MetadataAgent

AGENT_VARIANTS: Dict[str, Type[BaseAgent]] = {
    "metadata": MetadataAgent,
    "content": ContentAgent,
    "casual": CasualAgent,
}

DEFAULT_AGENT_KEY = "content"


def create_agent(
    definition: AgentDefinition,
    prompt_service: Optional[StructuredPromptService] = None,
) -> BaseAgent:
    """Instantiate the variant registered for a definition's key.

    Unknown keys get the content variant.
    """
    agent_class = AGENT_VARIANTS.get(definition.key, AGENT_VARIANTS[DEFAULT_AGENT_KEY])
    return agent_class(definition, prompt_service=prompt_service)


__all__ = [
    "AGENT_VARIANTS",
    "DEFAULT_AGENT_KEY",
    "CasualAgent",
    "ContentAgent",
    "MetadataAgent",
    "create_agent",
]
