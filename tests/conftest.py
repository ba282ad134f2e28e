import asyncio
import json
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from quorum_rag.agents.base import AgentDefinition, AgentResult, BaseAgent, Citation, ConversationTurn, Document
from quorum_rag.agents.config_store import InMemoryAgentConfigStore
from quorum_rag.agents.registry import AgentRegistry
from quorum_rag.core.exceptions import AgentExecutionError, PromptServiceError
from quorum_rag.llm.prompts import PromptContract
from quorum_rag.llm.service import StructuredPromptService

ScriptedResponse = Union[Dict[str, Any], str, Exception, Callable[[str], Any]]


class ScriptedPromptService(StructuredPromptService):
    """Prompt service that answers each contract with a scripted response.

    Responses may be a dict (serialized to JSON), a raw string, an exception
    to raise, or a callable receiving the rendered prompt.
    """

    def __init__(self, responses: Optional[Dict[str, ScriptedResponse]] = None):
        super().__init__()
        self.responses: Dict[str, ScriptedResponse] = dict(responses or {})
        self.calls: List[str] = []
        self.prompts: List[str] = []

    async def _complete(self, prompt: str, contract: PromptContract) -> str:
        self.calls.append(contract.name)
        self.prompts.append(prompt)

        if contract.name not in self.responses:
            raise PromptServiceError("No scripted response", contract.name)

        response = self.responses[contract.name]
        if callable(response) and not isinstance(response, Exception):
            response = response(prompt)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)


class FakeAgent(BaseAgent):
    """Agent returning a fixed result after an optional delay."""

    def __init__(
        self,
        key: str,
        result: Optional[AgentResult] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        results: Optional[Sequence[AgentResult]] = None,
    ):
        super().__init__(AgentDefinition(key=key, name=f"{key.title()} Agent"))
        self.result = result or AgentResult(answer=f"{key} answer", confidence=0.8)
        self.results = list(results or [])
        self.delay = delay
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def process(
        self,
        question: str,
        documents: Sequence[Document],
        conversation: Sequence[ConversationTurn] = (),
    ) -> AgentResult:
        self.invocation_count += 1
        self.calls.append({"question": question, "documents": list(documents)})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.results:
            return self.results.pop(0)
        return self.result


def make_registry(agents: Dict[str, BaseAgent], ttl_seconds: float = 300.0) -> AgentRegistry:
    """Registry whose factory hands out the given agents by key."""

    def factory(definition: AgentDefinition) -> BaseAgent:
        return agents.get(definition.key) or FakeAgent(definition.key)

    return AgentRegistry(agent_factory=factory, ttl_seconds=ttl_seconds)


def make_store(keys: Sequence[str] = ("metadata", "content", "casual")) -> InMemoryAgentConfigStore:
    return InMemoryAgentConfigStore(
        [AgentDefinition(key=key, name=f"{key.title()} Agent") for key in keys]
    )


def cite(doc_id: str, snippet: str = "snippet") -> Citation:
    return Citation(doc_id=doc_id, doc_name=f"Document {doc_id}", snippet=snippet)


@pytest.fixture
def documents() -> List[Document]:
    return [
        Document(
            id="d1",
            title="Roof Inspection 2023",
            content="Inspection found minor damage to the roof flashing.",
            document_type="inspection",
            document_date="2023-05-01",
            sender="Acme Inspections",
        ),
        Document(
            id="d2",
            title="Invoice 1042",
            content="Invoice for roof repair, total due 1,200 USD.",
            document_type="invoice",
            sender="Roofers Ltd",
        ),
        Document(id="d3", name="notes.txt", content="Meeting notes about the budget."),
    ]


@pytest.fixture
def agent_failure() -> AgentExecutionError:
    return AgentExecutionError("model unavailable", "content")
