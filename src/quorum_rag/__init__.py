"""
QuorumRAG - Multi-Agent Question Routing and Consensus Engine

Routes questions about a document corpus to specialized answering agents, runs
them under time budgets and merges their outputs into one grounded answer.
"""

__version__ = "0.1.0"

from .core.config import settings
from .core.logging import logger
from .orchestration import QuestionOrchestrator, SynthesizedResult

__all__ = ["settings", "logger", "QuestionOrchestrator", "SynthesizedResult"]
