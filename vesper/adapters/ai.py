"""AI completion backed by pydantic-ai."""

from __future__ import annotations

import logging
from typing import Dict

from pydantic_ai import Agent

from ..utils.retry import call_with_retries
from .base import AICompletion

logger = logging.getLogger(__name__)


class PydanticAICompletion(AICompletion):
    """Run prompts through a pydantic-ai ``Agent`` per model string.

    Model strings use the pydantic-ai ``provider:model`` form, e.g.
    ``openai:gpt-4o``.
    """

    def __init__(self, max_retries: int = 2) -> None:
        self.max_retries = max_retries
        self._agents: Dict[str, Agent] = {}

    def _agent(self, model: str) -> Agent:
        agent = self._agents.get(model)
        if agent is None:
            agent = Agent(model, output_type=str)
            self._agents[model] = agent
        return agent

    async def complete(self, model: str, prompt: str) -> str:
        agent = self._agent(model)
        logger.debug(f"Sending {len(prompt)} character prompt to {model}")

        async def _run() -> str:
            result = await agent.run(prompt)
            return result.output

        output = await call_with_retries(_run, self.max_retries, label=f"AI call to {model}")
        return output or ""
