"""
Structured prompt service used by the classifier and the answering agents.
"""

from .prompts import (
    AGENT_ANSWER,
    DEFAULT_CONTRACTS,
    ENTITY_EXTRACTION,
    QUERY_EXPANSION,
    ROUTING_CLASSIFIER,
    PromptContract,
)
from .service import (
    CompletionConfig,
    LLMPromptService,
    StructuredPromptService,
    extract_json_object,
    get_prompt_service,
)

__all__ = [
    "AGENT_ANSWER",
    "DEFAULT_CONTRACTS",
    "ENTITY_EXTRACTION",
    "QUERY_EXPANSION",
    "ROUTING_CLASSIFIER",
    "PromptContract",
    "CompletionConfig",
    "LLMPromptService",
    "StructuredPromptService",
    "extract_json_object",
    "get_prompt_service",
]
