import pytest
from pydantic import BaseModel

from conftest import ScriptedPromptService

from quorum_rag.core.exceptions import PromptServiceError
from quorum_rag.llm.prompts import AGENT_ANSWER, QUERY_EXPANSION, PromptContract
from quorum_rag.llm.service import extract_json_object


def test_extract_json_object_from_wrapped_text() -> None:
    text = 'Sure! Here is the result:\n```json\n{"answer": "ok", "confidence": 0.6}\n```'
    assert extract_json_object(text) == {"answer": "ok", "confidence": 0.6}


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
def test_extract_json_object_rejects_non_objects(text) -> None:
    with pytest.raises(ValueError):
        extract_json_object(text)


@pytest.mark.asyncio
async def test_invoke_validates_and_normalizes_output() -> None:
    service = ScriptedPromptService(
        {
            QUERY_EXPANSION: {
                "original": "find bills",
                "expanded": "find bills invoices",
                "terms": ["invoice"],
                "relatedConcepts": ["payment"],
            }
        }
    )

    output = await service.invoke(QUERY_EXPANSION, {"question": "find bills"})

    assert output["related_concepts"] == ["payment"]
    assert 'Original query: "find bills"' in service.prompts[0]


@pytest.mark.asyncio
async def test_invalid_input_is_rejected_before_calling_the_model() -> None:
    service = ScriptedPromptService({AGENT_ANSWER: {"answer": "ok"}})

    with pytest.raises(PromptServiceError) as excinfo:
        await service.invoke(AGENT_ANSWER, {"question": "missing agent key"})

    assert excinfo.value.prompt_name == AGENT_ANSWER
    assert service.calls == []


@pytest.mark.asyncio
async def test_schema_violation_raises_prompt_error() -> None:
    service = ScriptedPromptService({AGENT_ANSWER: {"answer": "ok", "confidence": 3}})

    with pytest.raises(PromptServiceError):
        await service.invoke(AGENT_ANSWER, {"agent_key": "content", "question": "q"})


@pytest.mark.asyncio
async def test_unknown_contract() -> None:
    with pytest.raises(PromptServiceError):
        await ScriptedPromptService().invoke("summarize", {})


@pytest.mark.asyncio
async def test_registered_contracts_can_be_invoked() -> None:
    class EchoInput(BaseModel):
        text: str

    class EchoOutput(BaseModel):
        echo: str

    service = ScriptedPromptService({"echo": lambda prompt: {"echo": prompt.upper()}})
    service.register_contract(
        PromptContract(
            name="echo",
            input_model=EchoInput,
            output_model=EchoOutput,
            template="say {text}",
            renderer=lambda payload: {"text": payload.text},
        )
    )

    assert await service.invoke("echo", {"text": "hi"}) == {"echo": "SAY HI"}
