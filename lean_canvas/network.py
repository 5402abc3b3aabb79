"""Agent network turn: the orchestrator streams, calls canvas tools, and delegates to specialists."""

import json
import logging
import re
from typing import List, Dict, Any, AsyncIterator, Optional

from pydantic import ValidationError

from .events import (
    STEP_ERROR,
    STEP_RUNNING,
    STEP_SUCCESS,
    FinishEvent,
    ReasoningDeltaEvent,
    StartEvent,
    StepEvent,
    StreamEvent,
    TextDeltaEvent,
)
from .messages import new_message_id
from .openrouter import ModelError, stream_model
from .think import REASONING, ThinkScanner, strip_think

logger = logging.getLogger(__name__)

DELEGATE_PREFIX = "delegate_to_"


def delegate_tool_name(agent_name: str) -> str:
    base = re.sub(r"-agent$", "", agent_name)
    return DELEGATE_PREFIX + re.sub(r"[^a-zA-Z0-9]+", "_", base).strip("_")


def delegate_tool_schema(agent) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": delegate_tool_name(agent.name),
            "description": agent.description,
            "parameters": {
                "type": "object",
                "properties": {
                    "task": {
                        "type": "string",
                        "description": "What the specialist should work on, with the relevant user context",
                    },
                },
                "required": ["task"],
            },
        },
    }


def _parse_arguments(raw: Any) -> Any:
    if isinstance(raw, str):
        try:
            return json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            return raw
    return raw


class NetworkTurn:
    """State for one orchestrator turn: conversation so far, step counter, scanner."""

    def __init__(
        self,
        agent,
        message: str,
        runtime_context: Dict[str, Any],
        history: List[Dict[str, str]],
        message_id: str,
    ):
        self.agent = agent
        self.runtime_context = runtime_context
        self.message_id = message_id
        self.conversation = agent.build_messages(
            list(history) + [{"role": "user", "content": message}],
            runtime_context,
        )
        self.specialists = {delegate_tool_name(sub.name): sub for sub in agent.agents}
        self.tools = {tool.name: tool for tool in agent.tools}
        self.step_index = 0
        self.scanner = ThinkScanner()

    def tool_schemas(self) -> List[Dict[str, Any]]:
        schemas = [tool.schema() for tool in self.tools.values()]
        schemas.extend(delegate_tool_schema(sub) for sub in self.specialists.values())
        return schemas

    def text_events(self, segments) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for kind, text in segments:
            if kind == REASONING:
                events.append(ReasoningDeltaEvent(self.message_id, text))
            else:
                events.append(TextDeltaEvent(self.message_id, text))
        return events

    async def call_tool(self, name: str, arguments: Any) -> Any:
        """
        Execute one requested tool call.

        Raises:
            KeyError: unknown tool name
            ModelError: a specialist could not answer
            ValueError / ValidationError: malformed tool arguments
        """
        if name in self.specialists:
            specialist = self.specialists[name]
            args = arguments if isinstance(arguments, dict) else {"task": str(arguments)}
            task = str(args.get("task") or "").strip()
            if not task:
                raise ValueError("Delegation requires a task")
            response = await specialist.generate(task, self.runtime_context)
            return strip_think(response["content"]).strip()

        if name in self.tools:
            return self.tools[name].run(arguments)

        raise KeyError(f"Unknown tool: {name}")

    def step_agent_name(self, name: str) -> str:
        if name in self.specialists:
            return self.specialists[name].name
        return self.agent.name


async def _run_steps(turn: NetworkTurn, max_steps: int) -> AsyncIterator[StreamEvent]:
    agent = turn.agent

    for step in range(max_steps + 1):
        # The last pass is a tools-free request for the final answer.
        final_pass = step == max_steps
        tool_schemas = None if final_pass else turn.tool_schemas()

        content_parts: List[str] = []
        tool_calls: List[Dict[str, Any]] = []
        async for chunk in stream_model(agent.model, turn.conversation, tools=tool_schemas):
            if chunk["type"] == "content":
                content_parts.append(chunk["delta"])
                for event in turn.text_events(turn.scanner.feed(chunk["delta"])):
                    yield event
            elif chunk["type"] == "tool_calls":
                tool_calls = chunk["tool_calls"]

        for event in turn.text_events(turn.scanner.flush()):
            yield event

        if not tool_calls or final_pass:
            return

        turn.conversation.append({
            "role": "assistant",
            "content": "".join(content_parts) or None,
            "tool_calls": tool_calls,
        })

        for call in tool_calls:
            function = call.get("function") or {}
            name = function.get("name", "")
            arguments = _parse_arguments(function.get("arguments"))
            agent_name = turn.step_agent_name(name)

            yield StepEvent(turn.message_id, turn.step_index, name, STEP_RUNNING, agent_name, input=arguments)
            try:
                output = await turn.call_tool(name, arguments)
                status = STEP_SUCCESS
            except (KeyError, ValueError, ValidationError, ModelError) as e:
                logger.warning("Step %s (%s) failed: %s", turn.step_index, name, e)
                output = {"error": str(e)}
                status = STEP_ERROR

            tool_content = output if isinstance(output, str) else json.dumps(output)
            # Tool outputs are serialized JSON so every consumer parses the same payload.
            yield StepEvent(turn.message_id, turn.step_index, name, status, agent_name, input=arguments, output=tool_content)
            turn.conversation.append({
                "role": "tool",
                "tool_call_id": call.get("id", ""),
                "content": tool_content,
            })
            turn.step_index += 1


async def run_network(
    agent,
    message: str,
    runtime_context: Optional[Dict[str, Any]] = None,
    history: Optional[List[Dict[str, str]]] = None,
    max_steps: int = 3,
    message_id: Optional[str] = None,
) -> AsyncIterator[StreamEvent]:
    """
    Run one chat turn through the agent network.

    The start event is held back until the orchestrator has produced its
    first event, so a failing model call surfaces on the first iteration
    instead of after the response has begun.

    Yields:
        StartEvent, text/reasoning deltas, step events, FinishEvent
    """
    turn = NetworkTurn(agent, message, runtime_context or {}, history or [], message_id or new_message_id())
    steps = _run_steps(turn, max_steps)

    first = None
    async for event in steps:
        first = event
        break

    yield StartEvent(turn.message_id)
    if first is not None:
        yield first
        async for event in steps:
            yield event
    yield FinishEvent(turn.message_id)
