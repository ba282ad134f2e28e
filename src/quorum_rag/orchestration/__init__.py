"""
Question orchestration: planning, budgeted execution, consensus synthesis and
critic refinement, wired together as a LangGraph pipeline.
"""

from .consensus import ConsensusSynthesizer, SimilarityStrategy, TokenOverlapSimilarity, merge_citations
from .critic import CriticRefiner, filter_by_keywords
from .executor import BudgetedExecutor, run_with_timeout
from .models import (
    AgentInsight,
    AgentOutcome,
    ConsensusResult,
    ExecutionPlan,
    ExecutionResult,
    ExecutionTraceEntry,
    ParallelExecutionResult,
    Question,
    SynthesizedResult,
)
from .orchestrator import QuestionOrchestrator, QuestionState
from .planner import ExecutionPlanner

__all__ = [
    "ConsensusSynthesizer",
    "SimilarityStrategy",
    "TokenOverlapSimilarity",
    "merge_citations",
    "CriticRefiner",
    "filter_by_keywords",
    "BudgetedExecutor",
    "run_with_timeout",
    "AgentInsight",
    "AgentOutcome",
    "ConsensusResult",
    "ExecutionPlan",
    "ExecutionResult",
    "ExecutionTraceEntry",
    "ParallelExecutionResult",
    "Question",
    "SynthesizedResult",
    "QuestionOrchestrator",
    "QuestionState",
    "ExecutionPlanner",
]
