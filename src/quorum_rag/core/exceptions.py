"""
Exception hierarchy shared across the routing and orchestration layers.
"""

from typing import Any, Dict, Optional


class QuorumError(Exception):
    """Base exception for QuorumRAG errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(QuorumError):
    """No usable agent configuration could be loaded."""


class PromptServiceError(QuorumError):
    """The structured prompt service failed or returned unusable output."""

    def __init__(self, message: str, prompt_name: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.prompt_name = prompt_name


class AgentExecutionError(QuorumError):
    """An agent could not produce a result."""

    def __init__(self, message: str, agent_key: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.agent_key = agent_key
