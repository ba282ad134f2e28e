"""
Data models that flow through one question-answer cycle.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..agents.base import AgentResult, Citation, ConversationTurn
from ..agents.decision import Memory, RoutingDecision


class Question(BaseModel):
    """Immutable input of one cycle."""

    model_config = ConfigDict(frozen=True)

    text: str
    conversation: List[ConversationTurn] = Field(default_factory=list)
    memory: Memory = Field(default_factory=Memory)


class ExecutionPlan(BaseModel):
    """Which agents to run for a question."""

    model_config = ConfigDict(frozen=True)

    primary: str
    secondary: List[str] = Field(default_factory=list)
    mode: Literal["sequential", "parallel"] = "sequential"


class ExecutionTraceEntry(BaseModel):
    """One agent invocation attempt, including timeouts."""

    model_config = ConfigDict(frozen=True)

    agent: str
    type: Literal["primary", "secondary", "refinement", "parallel", "chain", "fallback", "single"]
    duration_ms: float
    success: bool
    error: Optional[str] = None
    timed_out: bool = False
    budget_remaining_ms: Optional[float] = None


class ExecutionResult(BaseModel):
    """Raw output of the budgeted executor."""

    model_config = ConfigDict(frozen=True)

    primary_agent: str
    primary: AgentResult
    secondary: Dict[str, AgentResult] = Field(default_factory=dict)
    execution_trace: List[ExecutionTraceEntry] = Field(default_factory=list)
    total_duration_ms: float = 0.0
    primary_failed: bool = False


class AgentOutcome(BaseModel):
    """Settled outcome of one agent in parallel or fallback execution."""

    model_config = ConfigDict(frozen=True)

    agent: str
    result: Optional[AgentResult] = None
    error: Optional[str] = None


class ParallelExecutionResult(BaseModel):
    """All agents settled: what succeeded and what failed."""

    model_config = ConfigDict(frozen=True)

    successful: List[AgentOutcome] = Field(default_factory=list)
    failed: List[AgentOutcome] = Field(default_factory=list)
    execution_trace: List[ExecutionTraceEntry] = Field(default_factory=list)
    total_duration_ms: float = 0.0


class AgentInsight(BaseModel):
    """A secondary result good enough to take part in synthesis."""

    model_config = ConfigDict(frozen=True)

    agent: str
    answer: str
    confidence: float
    citations: List[Citation] = Field(default_factory=list)


class ConsensusResult(BaseModel):
    """Agreement found among two or more insights."""

    model_config = ConfigDict(frozen=True)

    answer: str
    confidence: float
    agents: List[str] = Field(default_factory=list)
    group_size: int = 0


class SynthesizedResult(BaseModel):
    """Final answer handed back to the caller."""

    model_config = ConfigDict(frozen=True)

    answer: str
    confidence: float = Field(ge=0.0, le=1.0)
    citations: List[Citation] = Field(default_factory=list)
    agent_type: str = "content"
    agent_insights: List[AgentInsight] = Field(default_factory=list)
    consensus_result: Optional[ConsensusResult] = None
    execution_trace: List[ExecutionTraceEntry] = Field(default_factory=list)
    total_duration_ms: float = 0.0
    routing: Optional[RoutingDecision] = None
    refined: bool = False
    clarification_question: Optional[str] = None

    @classmethod
    def from_agent_result(
        cls,
        result: AgentResult,
        agent_type: str,
        execution_trace: Optional[List[ExecutionTraceEntry]] = None,
        total_duration_ms: float = 0.0,
    ) -> "SynthesizedResult":
        return cls(
            answer=result.answer,
            confidence=result.confidence,
            citations=list(result.citations),
            agent_type=agent_type,
            execution_trace=list(execution_trace or []),
            total_duration_ms=total_duration_ms,
        )

    def as_agent_result(self) -> AgentResult:
        return AgentResult(answer=self.answer, confidence=self.confidence, citations=self.citations)
