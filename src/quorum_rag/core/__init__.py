"""
Core configuration, logging, caching and error types.
"""

from .cache import TTLCache
from .config import ExecutionBudget, OrchestrationSettings, Settings, settings
from .exceptions import AgentExecutionError, ConfigurationError, PromptServiceError, QuorumError
from .logging import AuditLogger, audit_logger, logger

__all__ = [
    "TTLCache",
    "ExecutionBudget",
    "OrchestrationSettings",
    "Settings",
    "settings",
    "AgentExecutionError",
    "ConfigurationError",
    "PromptServiceError",
    "QuorumError",
    "AuditLogger",
    "audit_logger",
    "logger",
]
