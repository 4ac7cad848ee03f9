"""
LLM service: pydantic-ai backed text completion.

The pipeline only ever needs "prompt in, text out"; validating the text
is the caller's job (the FeedBuilder parses it against a strict schema).
Mock mode swaps the model for a FunctionModel with canned responses.
"""

import asyncio
import logging
from typing import Dict, Optional, Protocol

from pydantic_ai import Agent
from pydantic_ai.models.function import FunctionModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from ..config import Settings, get_settings
from . import mock_responses

logger = logging.getLogger(__name__)


class TextCompleter(Protocol):
    """Collaborator interface for anything that turns a prompt into text."""

    async def complete(self, prompt: str, system_instructions: str) -> str: ...


class LLMService:
    """TextCompleter backed by a pydantic-ai Agent (one cached agent per system prompt)."""

    def __init__(self, settings: Optional[Settings] = None, mock_mode: bool = False):
        self.settings = settings or get_settings()
        self.mock_mode = mock_mode or self.settings.mock_mode
        self._agents: Dict[str, Agent] = {}
        if self.mock_mode:
            logger.info("LLM: MOCK mode")
        else:
            logger.info(f"LLM: {self.settings.llm_model}")

    def _build_model(self):
        if self.mock_mode:
            return FunctionModel(mock_responses.get_mock_response_for_function_model)
        provider, _, model_name = self.settings.llm_model.partition(":")
        if provider == "openai" and self.settings.openai_api_key:
            return OpenAIChatModel(
                model_name=model_name,
                provider=OpenAIProvider(api_key=self.settings.openai_api_key),
            )
        # Any other pydantic-ai model string; credentials come from the environment
        return self.settings.llm_model

    def _get_agent(self, system_instructions: str) -> Agent:
        if system_instructions not in self._agents:
            self._agents[system_instructions] = Agent(
                self._build_model(),
                output_type=str,
                system_prompt=system_instructions,
                retries=1,
            )
        return self._agents[system_instructions]

    async def complete(self, prompt: str, system_instructions: str = "") -> str:
        """Raw model text for `prompt`.

        Raises:
            asyncio.TimeoutError: no answer within LLM_TIMEOUT
            ValueError: the model returned an empty response
        """
        agent = self._get_agent(system_instructions)
        result = await asyncio.wait_for(
            agent.run(
                prompt,
                model_settings=ModelSettings(
                    temperature=self.settings.llm_temperature,
                    max_tokens=self.settings.llm_max_tokens,
                ),
            ),
            timeout=self.settings.llm_timeout,
        )
        if not result.output:
            raise ValueError("Empty response")
        return result.output
