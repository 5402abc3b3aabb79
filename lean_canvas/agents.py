"""Agent capability (generate / stream / network) and a logging decorator for it."""

import json
import logging
import time
from typing import List, Dict, Any, AsyncIterator, Callable, Optional, Union

from .config import AI_MODEL, NETWORK_MAX_STEPS
from .network import run_network
from .openrouter import ModelError, query_model, stream_model
from .think import strip_think

logger = logging.getLogger(__name__)

Instructions = Union[str, Callable[[Dict[str, Any]], str]]


class Agent:
    """A hosted-model agent with optional canvas tools and specialist sub-agents."""

    def __init__(
        self,
        name: str,
        description: str,
        instructions: Instructions,
        model: str = AI_MODEL,
        tools: Optional[List[Any]] = None,
        agents: Optional[List[Any]] = None,
    ):
        self.name = name
        self.description = description
        self.instructions = instructions
        self.model = model
        self.tools = tools or []
        self.agents = agents or []

    def resolve_instructions(self, runtime_context: Optional[Dict[str, Any]] = None) -> str:
        if callable(self.instructions):
            return self.instructions(runtime_context or {})
        return self.instructions

    def build_messages(
        self,
        messages: Union[str, List[Dict[str, Any]]],
        runtime_context: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Prefix the conversation with this agent's system prompt and the canvas context."""
        if isinstance(messages, str):
            messages = [{"role": "user", "content": messages}]

        system = self.resolve_instructions(runtime_context).strip()
        canvas_state = (runtime_context or {}).get("canvasState")
        if canvas_state and not callable(self.instructions):
            system += f"\n\n**Current Canvas State:**\n{canvas_state}"
        return [{"role": "system", "content": system}] + list(messages)

    async def generate(
        self,
        messages: Union[str, List[Dict[str, Any]]],
        runtime_context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Single completion.

        Raises:
            ModelError: if the model returns no usable content
        """
        response = await query_model(self.model, self.build_messages(messages, runtime_context))
        if not response or not isinstance(response.get("content"), str) or not response["content"]:
            detail = (response or {}).get("error") or "no content"
            raise ModelError(f"{self.name} returned no response: {detail}", (response or {}).get("status_code"))
        return response

    async def stream(
        self,
        messages: Union[str, List[Dict[str, Any]]],
        runtime_context: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[str]:
        """Stream visible text deltas, without tools."""
        async for chunk in stream_model(self.model, self.build_messages(messages, runtime_context)):
            if chunk["type"] == "content":
                yield chunk["delta"]

    def network(
        self,
        message: str,
        runtime_context: Optional[Dict[str, Any]] = None,
        history: Optional[List[Dict[str, str]]] = None,
        max_steps: int = NETWORK_MAX_STEPS,
        message_id: Optional[str] = None,
    ):
        return run_network(self, message, runtime_context, history, max_steps, message_id)


def _preview(text: Any, limit: int) -> str:
    text = text if isinstance(text, str) else json.dumps(text, default=str)
    return text[:limit] + ("..." if len(text) > limit else "")


class LoggedAgent:
    """Wraps an agent and logs each generate / stream / network call before delegating."""

    def __init__(self, agent):
        self._agent = agent

    def __getattr__(self, item):
        return getattr(self._agent, item)

    async def generate(self, messages, runtime_context=None):
        logger.info("[Agent: %s] Starting generation. Input: %s", self.name, _preview(messages, 200))
        started = time.monotonic()
        try:
            result = await self._agent.generate(messages, runtime_context)
        except Exception:
            logger.exception("[Agent: %s] Generation failed after %.0fms", self.name, (time.monotonic() - started) * 1000)
            raise
        logger.info(
            "[Agent: %s] Generation completed in %.0fms: %s",
            self.name,
            (time.monotonic() - started) * 1000,
            _preview(strip_think(result.get("content") or ""), 200),
        )
        return result

    async def stream(self, messages, runtime_context=None):
        logger.info("[Agent: %s] Starting stream. Input: %s", self.name, _preview(messages, 200))
        try:
            async for delta in self._agent.stream(messages, runtime_context):
                yield delta
        except Exception:
            logger.exception("[Agent: %s] Stream failed", self.name)
            raise
        logger.info("[Agent: %s] Stream finished", self.name)

    async def network(self, message, runtime_context=None, history=None, max_steps=NETWORK_MAX_STEPS, message_id=None):
        logger.info("[Agent: %s] Starting network request: %s", self.name, _preview(message, 100))
        if history:
            logger.debug("[Agent: %s] %d prior message(s) in context", self.name, len(history))
        started = time.monotonic()
        try:
            async for event in self._agent.network(message, runtime_context, history, max_steps, message_id):
                yield event
        except Exception:
            logger.exception(
                "[Agent: %s] Network request failed after %.0fms",
                self.name,
                (time.monotonic() - started) * 1000,
            )
            raise
        logger.info("[Agent: %s] Network request completed in %.0fms", self.name, (time.monotonic() - started) * 1000)
