"""
Question Orchestrator - LangGraph pipeline that answers one question end to end:
classify, plan, execute under budget, synthesize and optionally refine.
"""

import time
from typing import Any, Dict, List, Optional, Sequence, TypedDict, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from ..agents.base import AgentDefinition, AgentResult, ConversationTurn, Document
from ..agents.config_store import AgentConfigStore, InMemoryAgentConfigStore
from ..agents.decision import Memory, RoutingDecision
from ..agents.registry import AgentRegistry
from ..agents.router import QuestionClassifier
from ..core.config import ExecutionBudget, settings
from ..core.exceptions import ConfigurationError
from ..core.logging import audit_logger, logger
from ..llm.service import StructuredPromptService
from .consensus import ConsensusSynthesizer
from .critic import CriticRefiner
from .executor import ERROR_CONFIDENCE, BudgetedExecutor, error_result
from .models import (
    AgentOutcome,
    ExecutionPlan,
    ExecutionResult,
    ExecutionTraceEntry,
    ParallelExecutionResult,
    Question,
    SynthesizedResult,
)
from .planner import ExecutionPlanner

NO_SUITABLE_ANSWER = (
    "I couldn't find a suitable answer to your question. Please try rephrasing or ask something else."
)
FALLBACK_MIN_CONFIDENCE = 0.5
CHAIN_CONTEXT_LENGTH = 100


class QuestionState(TypedDict):
    """State shared between the nodes of the answering graph."""
    messages: List[BaseMessage]
    question: Question
    documents: List[Document]
    budget: ExecutionBudget
    routing_override: Optional[RoutingDecision]
    decision: Optional[RoutingDecision]
    plan: Optional[ExecutionPlan]
    execution: Optional[ExecutionResult]
    result: Optional[SynthesizedResult]


def error_response(
    agent_name: str = "Content Agent",
    execution_trace: Optional[List[ExecutionTraceEntry]] = None,
    total_duration_ms: float = 0.0,
) -> SynthesizedResult:
    """Degraded answer returned when the primary agent or the pipeline fails."""
    return SynthesizedResult.from_agent_result(
        error_result(agent_name),
        agent_type="error",
        execution_trace=execution_trace,
        total_duration_ms=total_duration_ms,
    )


def override_decision(routing_override: Union[RoutingDecision, str, Dict[str, Any]]) -> RoutingDecision:
    """Turn a caller-supplied override into a routing decision."""
    if isinstance(routing_override, RoutingDecision):
        return routing_override.model_copy(update={"source": "override"})
    if isinstance(routing_override, str):
        return RoutingDecision(
            agent_type=routing_override,
            primary_agent=routing_override,
            confidence=1.0,
            reasoning="Routing override supplied by caller",
            source="override",
        )
    return RoutingDecision.model_validate({**routing_override, "source": "override"})


def coerce_documents(documents: Optional[Sequence[Any]]) -> List[Document]:
    return [doc if isinstance(doc, Document) else Document.model_validate(doc) for doc in documents or []]


def coerce_conversation(conversation: Optional[Sequence[Any]]) -> List[ConversationTurn]:
    return [
        turn if isinstance(turn, ConversationTurn) else ConversationTurn.model_validate(turn)
        for turn in conversation or []
    ]


class QuestionOrchestrator:
    """Coordinates the classifier, planner, executor, synthesizer and critic.

    ``answer`` always returns a well-formed result; only a failure to load any
    agent configuration on first use escapes as ``ConfigurationError``.
    """

    def __init__(
        self,
        config_store: Optional[AgentConfigStore] = None,
        registry: Optional[AgentRegistry] = None,
        classifier: Optional[QuestionClassifier] = None,
        prompt_service: Optional[StructuredPromptService] = None,
        planner: Optional[ExecutionPlanner] = None,
        synthesizer: Optional[ConsensusSynthesizer] = None,
        enable_critic_refinement: Optional[bool] = None,
    ):
        """Initialize the orchestrator.

        Args:
            config_store: Source of agent definitions
            registry: Agent registry; built from the prompt service when omitted
            classifier: Question classifier; built from the prompt service when omitted
            prompt_service: Prompt service shared by the default classifier and agents
            planner: Execution planner
            synthesizer: Consensus synthesizer
            enable_critic_refinement: Overrides the configured refinement switch
        """
        self.config_store = config_store or InMemoryAgentConfigStore()
        self.registry = registry or AgentRegistry(prompt_service=prompt_service)
        self.classifier = classifier or QuestionClassifier(prompt_service=prompt_service)
        self.planner = planner or ExecutionPlanner()
        self.executor = BudgetedExecutor(self.registry)
        self.synthesizer = synthesizer or ConsensusSynthesizer()
        self.critic = CriticRefiner(self.executor, enabled=enable_critic_refinement)

        self.graph: Optional[CompiledStateGraph] = None
        self._build_graph()

    def _build_graph(self) -> None:
        """Build the LangGraph StateGraph for one question cycle."""
        workflow = StateGraph(QuestionState)

        workflow.add_node("classify", self._classify_node)
        workflow.add_node("plan", self._plan_node)
        workflow.add_node("execute", self._execute_node)
        workflow.add_node("synthesize", self._synthesize_node)
        workflow.add_node("refine", self._refine_node)

        workflow.set_entry_point("classify")
        workflow.add_edge("classify", "plan")
        workflow.add_edge("plan", "execute")
        workflow.add_edge("execute", "synthesize")

        # Refinement runs only for weak answers
        workflow.add_conditional_edges(
            "synthesize",
            self._route_after_synthesis,
            {"refine": "refine", "end": END},
        )
        workflow.add_edge("refine", END)

        self.graph = workflow.compile()
        logger.info("Built question answering graph")

    async def _classify_node(self, state: QuestionState) -> Dict[str, Any]:
        question = state["question"]
        if state["routing_override"] is not None:
            decision = state["routing_override"]
            logger.info(f"Using routing override: {decision.requested_primary}")
        else:
            decision = await self.classifier.classify(
                question.text, question.conversation, question.memory
            )

        messages = state["messages"] + [
            SystemMessage(
                content=f"Routing decision: {decision.agent_type.value} "
                f"({decision.intent.value}, confidence {decision.confidence:.2f})"
            )
        ]
        return {"decision": decision, "messages": messages}

    async def _plan_node(self, state: QuestionState) -> Dict[str, Any]:
        plan = self.planner.plan(
            state["decision"], state["question"].text, active_keys=self.registry.active_keys()
        )
        return {"plan": plan}

    async def _execute_node(self, state: QuestionState) -> Dict[str, Any]:
        question = state["question"]
        execution = await self.executor.execute(
            state["plan"],
            question.text,
            state["documents"],
            question.conversation,
            state["budget"],
        )
        return {"execution": execution}

    async def _synthesize_node(self, state: QuestionState) -> Dict[str, Any]:
        execution = state["execution"]
        if execution.primary_failed:
            result = SynthesizedResult.from_agent_result(
                execution.primary,
                agent_type="error",
                execution_trace=execution.execution_trace,
                total_duration_ms=execution.total_duration_ms,
            )
        else:
            result = self.synthesizer.synthesize(execution, state["question"].text)

        messages = state["messages"] + [AIMessage(content=result.answer)]
        return {"result": result, "messages": messages}

    def _route_after_synthesis(self, state: QuestionState) -> str:
        result = state["result"]
        if result.agent_type == "error" or not state["documents"]:
            return "end"
        if self.critic.needs_refinement(result, state["budget"]):
            return "refine"
        return "end"

    async def _refine_node(self, state: QuestionState) -> Dict[str, Any]:
        question = state["question"]
        result = await self.critic.refine(
            state["result"],
            state["decision"],
            state["documents"],
            question.text,
            state["plan"],
            question.conversation,
            state["budget"],
        )
        return {"result": result}

    async def answer(
        self,
        question: str,
        conversation_history: Optional[Sequence[Any]] = None,
        memory: Optional[Memory] = None,
        retrieved_documents: Optional[Sequence[Any]] = None,
        routing_override: Optional[Union[RoutingDecision, str, Dict[str, Any]]] = None,
        budget: Optional[ExecutionBudget] = None,
    ) -> SynthesizedResult:
        """Answer a question about the retrieved documents.

        Args:
            question: The user's question
            conversation_history: Previous turns, oldest first
            memory: Memory snapshot carried across turns
            retrieved_documents: Candidate documents, most relevant first
            routing_override: Skip classification and route to this decision or agent key
            budget: Execution budget; defaults to configured settings

        Returns:
            Synthesized result with answer, confidence, citations and trace

        Raises:
            ConfigurationError: If no agent configuration could ever be loaded
        """
        await self.registry.ensure_loaded(self.config_store)

        start_time = time.time()
        budget = budget or settings.orchestration.to_budget()

        try:
            conversation = coerce_conversation(conversation_history)
            query = Question(text=question or "", conversation=conversation, memory=memory or Memory())
            documents = coerce_documents(retrieved_documents)
            override = override_decision(routing_override) if routing_override is not None else None

            messages: List[BaseMessage] = [
                AIMessage(content=turn.content) if turn.role == "assistant" else HumanMessage(content=turn.content)
                for turn in conversation
            ]
            messages.append(HumanMessage(content=query.text))

            initial_state: QuestionState = {
                "messages": messages,
                "question": query,
                "documents": documents,
                "budget": budget,
                "routing_override": override,
                "decision": None,
                "plan": None,
                "execution": None,
                "result": None,
            }

            final_state = await self.graph.ainvoke(initial_state)
            decision = final_state["decision"]
            result = final_state["result"].model_copy(
                update={
                    "routing": decision,
                    "clarification_question": (
                        decision.clarification_question if decision.needs_clarification else None
                    ),
                }
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Question processing failed: {e}")
            result = error_response(total_duration_ms=(time.time() - start_time) * 1000)

        duration_ms = (time.time() - start_time) * 1000
        audit_logger.log_event(
            event_type="answer",
            action=f"answer:{result.agent_type}",
            outcome="success" if result.agent_type != "error" else "error",
            duration_ms=duration_ms,
            metadata={
                "confidence": result.confidence,
                "citations": len(result.citations),
                "agents_invoked": len(result.execution_trace),
                "refined": result.refined,
            },
        )
        logger.info(
            f"Answered with {result.agent_type} (confidence {result.confidence:.2f}, "
            f"{len(result.citations)} citations) in {duration_ms:.0f}ms"
        )
        return result

    async def process_single(
        self,
        agent_key: str,
        question: str,
        retrieved_documents: Optional[Sequence[Any]] = None,
        conversation_history: Optional[Sequence[Any]] = None,
        timeout_ms: Optional[float] = None,
    ) -> SynthesizedResult:
        """Run exactly one agent, without classification or synthesis."""
        await self.registry.ensure_loaded(self.config_store)
        budget = settings.orchestration.to_budget()

        agent = self.registry.resolve(agent_key)
        result, entry = await self.executor.invoke(
            agent.key,
            question,
            coerce_documents(retrieved_documents),
            coerce_conversation(conversation_history),
            budget.per_agent_timeout_ms if timeout_ms is None else timeout_ms,
            "single",
        )
        if result is None:
            return error_response(agent.name, [entry], entry.duration_ms)
        return SynthesizedResult.from_agent_result(result, agent.key, [entry], entry.duration_ms)

    async def execute_parallel(
        self,
        agent_keys: Sequence[str],
        question: str,
        retrieved_documents: Optional[Sequence[Any]] = None,
        conversation_history: Optional[Sequence[Any]] = None,
        timeout_ms: Optional[float] = None,
    ) -> ParallelExecutionResult:
        """Run several agents concurrently and return every settled outcome."""
        await self.registry.ensure_loaded(self.config_store)
        return await self.executor.execute_parallel(
            agent_keys,
            question,
            coerce_documents(retrieved_documents),
            coerce_conversation(conversation_history),
            timeout_ms,
        )

    async def chain_agents(
        self,
        agent_keys: Sequence[str],
        question: str,
        retrieved_documents: Optional[Sequence[Any]] = None,
        conversation_history: Optional[Sequence[Any]] = None,
    ) -> List[AgentOutcome]:
        """Run agents one after another, feeding each answer into the next question.

        A failing agent is recorded and the chain continues.
        """
        await self.registry.ensure_loaded(self.config_store)
        budget = settings.orchestration.to_budget()
        documents = coerce_documents(retrieved_documents)
        conversation = coerce_conversation(conversation_history)

        current_question = question
        outcomes: List[AgentOutcome] = []
        for agent_key in agent_keys:
            result, entry = await self.executor.invoke(
                agent_key, current_question, documents, conversation, budget.per_agent_timeout_ms, "chain"
            )
            if result is None or not entry.success:
                outcomes.append(AgentOutcome(agent=entry.agent, error=entry.error))
                continue

            outcomes.append(AgentOutcome(agent=entry.agent, result=result))
            if result.answer:
                current_question = (
                    f'Based on the previous analysis: "{result.answer[:CHAIN_CONTEXT_LENGTH]}...", {question}'
                )
        return outcomes

    async def execute_with_fallback(
        self,
        agent_keys: Sequence[str],
        question: str,
        retrieved_documents: Optional[Sequence[Any]] = None,
        conversation_history: Optional[Sequence[Any]] = None,
    ) -> SynthesizedResult:
        """Try agents in order and return the first reasonably confident answer."""
        await self.registry.ensure_loaded(self.config_store)
        budget = settings.orchestration.to_budget()
        documents = coerce_documents(retrieved_documents)
        conversation = coerce_conversation(conversation_history)

        trace: List[ExecutionTraceEntry] = []
        for agent_key in agent_keys:
            result, entry = await self.executor.invoke(
                agent_key, question, documents, conversation, budget.per_agent_timeout_ms, "fallback"
            )
            trace.append(entry)
            if result is not None and entry.success and result.confidence > FALLBACK_MIN_CONFIDENCE:
                logger.info(f"Fallback strategy answered with {entry.agent}")
                return SynthesizedResult.from_agent_result(
                    result, entry.agent, trace, sum(item.duration_ms for item in trace)
                )

        logger.warning(f"No agent in {list(agent_keys)} produced a confident answer")
        return SynthesizedResult.from_agent_result(
            AgentResult(answer=NO_SUITABLE_ANSWER, confidence=ERROR_CONFIDENCE, citations=[]),
            "error",
            trace,
            sum(item.duration_ms for item in trace),
        )

    async def available_agents(self) -> List[AgentDefinition]:
        """Active agent definitions, sorted by name."""
        await self.registry.ensure_loaded(self.config_store)
        return sorted(self.registry.list_active(), key=lambda definition: definition.name)
