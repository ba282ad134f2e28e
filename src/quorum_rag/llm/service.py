"""
Structured prompt service: renders a prompt contract, calls the model and
validates the JSON it returns.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from ..core.config import settings
from ..core.exceptions import PromptServiceError
from ..core.logging import logger
from .prompts import DEFAULT_CONTRACTS, ROUTING_CLASSIFIER, PromptContract


class CompletionConfig(BaseModel):
    """Configuration for model completions."""

    model: str = "gpt-4o-mini"
    max_tokens: int = 1500
    temperature: float = 0.2


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the first JSON object embedded in a model response.

    Raises:
        ValueError: If no JSON object can be found or decoded
    """
    response_text = (text or "").strip()
    start_idx = response_text.find("{")
    end_idx = response_text.rfind("}") + 1

    if start_idx < 0 or end_idx <= start_idx:
        raise ValueError("No JSON object found in model response")

    data = json.loads(response_text[start_idx:end_idx])
    if not isinstance(data, dict):
        raise ValueError("Model response JSON is not an object")
    return data


class StructuredPromptService(ABC):
    """Invokes named prompt contracts with schema-checked input and output."""

    def __init__(self, contracts: Optional[Dict[str, PromptContract]] = None):
        self.contracts: Dict[str, PromptContract] = dict(contracts or DEFAULT_CONTRACTS)

    def register_contract(self, contract: PromptContract) -> None:
        self.contracts[contract.name] = contract

    def get_contract(self, prompt_name: str) -> PromptContract:
        contract = self.contracts.get(prompt_name)
        if contract is None:
            raise PromptServiceError(f"Unknown prompt contract: {prompt_name}", prompt_name)
        return contract

    async def invoke(self, prompt_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Run a prompt contract and return its validated output as a dict.

        Args:
            prompt_name: Name of a registered contract
            payload: Input matching the contract's input schema

        Returns:
            Output matching the contract's output schema

        Raises:
            PromptServiceError: On invalid input, provider failure, or output
                that is not JSON or violates the schema
        """
        contract = self.get_contract(prompt_name)
        start_time = time.time()

        try:
            validated_input = contract.input_model.model_validate(payload)
        except ValidationError as e:
            raise PromptServiceError(
                f"Invalid input for prompt '{prompt_name}'", prompt_name, {"errors": e.errors()}
            ) from e

        prompt = contract.render(validated_input)
        raw_text = await self._complete(prompt, contract)

        try:
            data = extract_json_object(raw_text)
            output = contract.output_model.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Prompt '{prompt_name}' returned unusable output: {e}")
            raise PromptServiceError(
                f"Malformed output from prompt '{prompt_name}'",
                prompt_name,
                {"raw": raw_text[:500]},
            ) from e

        logger.debug(f"Prompt '{prompt_name}' completed in {time.time() - start_time:.2f}s")
        return output.model_dump()

    @abstractmethod
    async def _complete(self, prompt: str, contract: PromptContract) -> str:
        """Return raw model text for a rendered prompt."""
        pass


class LLMPromptService(StructuredPromptService):
    """Prompt service backed by the OpenAI or Anthropic async SDK."""

    def __init__(
        self,
        config: Optional[CompletionConfig] = None,
        provider: str = "openai",
        router_model: Optional[str] = None,
        contracts: Optional[Dict[str, PromptContract]] = None,
    ):
        super().__init__(contracts)
        self.config = config or CompletionConfig()
        self.provider = provider
        self.router_model = router_model
        self._client = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize the LLM client based on provider."""
        try:
            if self.provider == "openai":
                from openai import AsyncOpenAI
                self._client = AsyncOpenAI(api_key=settings.openai_api_key)
                self._complete_method = self._complete_openai

            elif self.provider == "anthropic":
                from anthropic import AsyncAnthropic
                self._client = AsyncAnthropic(api_key=settings.anthropic_api_key)
                self._complete_method = self._complete_anthropic

            else:
                raise ValueError(f"Unsupported provider: {self.provider}")

            logger.info(f"Initialized {self.provider} prompt service")

        except Exception as e:
            logger.error(f"Failed to initialize {self.provider} prompt service: {e}")
            raise

    def _model_for(self, contract: PromptContract) -> str:
        if contract.name == ROUTING_CLASSIFIER and self.router_model:
            return self.router_model
        return self.config.model

    def _temperature_for(self, contract: PromptContract) -> float:
        if contract.temperature is not None:
            return contract.temperature
        return self.config.temperature

    async def _complete(self, prompt: str, contract: PromptContract) -> str:
        try:
            return await self._complete_method(prompt, contract)
        except Exception as e:
            logger.error(f"{self.provider} completion for '{contract.name}' failed: {e}")
            raise PromptServiceError(
                f"Provider call failed for prompt '{contract.name}': {e}",
                contract.name,
                {"provider": self.provider, "error_type": type(e).__name__},
            ) from e

    async def _complete_openai(self, prompt: str, contract: PromptContract) -> str:
        """Complete a prompt using the OpenAI API."""
        response = await self._client.chat.completions.create(
            model=self._model_for(contract),
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.config.max_tokens,
            temperature=self._temperature_for(contract),
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    async def _complete_anthropic(self, prompt: str, contract: PromptContract) -> str:
        """Complete a prompt using the Anthropic API."""
        response = await self._client.messages.create(
            model=self._model_for(contract),
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.config.max_tokens,
            temperature=self._temperature_for(contract),
        )
        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")


def get_prompt_service(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> StructuredPromptService:
    """Factory function to get a prompt service based on provider."""
    provider = provider or settings.llm_provider
    config = CompletionConfig(
        model=model or settings.default_llm_model,
        max_tokens=kwargs.pop("max_tokens", settings.max_tokens),
        temperature=kwargs.pop("temperature", settings.temperature),
    )

    if provider not in ("openai", "anthropic"):
        logger.warning(f"Unknown provider '{provider}', defaulting to OpenAI")
        provider = "openai"

    return LLMPromptService(
        config,
        provider=provider,
        router_model=kwargs.pop("router_model", settings.router_model),
        **kwargs,
    )
