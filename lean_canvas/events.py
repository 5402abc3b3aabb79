"""Typed chat stream events and their server-sent-event framing."""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Callable, List, Optional, Union

logger = logging.getLogger(__name__)

STEP_RUNNING = "running"
STEP_SUCCESS = "success"
STEP_ERROR = "error"


@dataclass
class StartEvent:
    message_id: str
    type: str = field(default="start", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "messageId": self.message_id}


@dataclass
class TextDeltaEvent:
    message_id: str
    delta: str
    type: str = field(default="text-delta", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "messageId": self.message_id, "delta": self.delta}


@dataclass
class ReasoningDeltaEvent:
    message_id: str
    delta: str
    type: str = field(default="reasoning-delta", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "messageId": self.message_id, "delta": self.delta}


@dataclass
class StepEvent:
    """Progress of one network step: an agent delegation or a tool call."""

    message_id: str
    step_index: int
    name: str
    status: str
    agent_name: Optional[str] = None
    input: Any = None
    output: Any = None
    type: str = field(default="data-network", init=False)

    def to_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "status": self.status}
        if self.agent_name:
            data["agentName"] = self.agent_name
        if self.input is not None:
            data["input"] = self.input
        if self.output is not None:
            data["output"] = self.output
        return data

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "messageId": self.message_id,
            "stepIndex": self.step_index,
            "data": self.to_data(),
        }


@dataclass
class FinishEvent:
    message_id: str
    type: str = field(default="finish", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "messageId": self.message_id}


@dataclass
class ErrorEvent:
    message: str
    type: str = field(default="error", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}


@dataclass
class UnknownEvent:
    payload: Any
    type: str = field(default="unknown", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return self.payload if isinstance(self.payload, dict) else {"type": "unknown", "payload": self.payload}


StreamEvent = Union[
    StartEvent,
    TextDeltaEvent,
    ReasoningDeltaEvent,
    StepEvent,
    FinishEvent,
    ErrorEvent,
    UnknownEvent,
]


def encode_sse(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.to_dict())}\n\n"


def _get(mapping: Any, *path: str) -> Any:
    current = mapping
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


# Tried in order against an event envelope; the first non-empty string wins.
AGENT_NAME_STRATEGIES: List[Callable[[Any], Any]] = [
    lambda envelope: _get(envelope, "payload", "agentName"),
    lambda envelope: _get(envelope, "payload", "name"),
    lambda envelope: _get(envelope, "data", "agentName"),
    lambda envelope: _get(envelope, "data", "name"),
    lambda envelope: _get(envelope, "agentName"),
    lambda envelope: _get(envelope, "name"),
]


def extract_agent_name(envelope: Any) -> str:
    for strategy in AGENT_NAME_STRATEGIES:
        value = strategy(envelope)
        if isinstance(value, str) and value:
            return value
    return "unknown"


def format_agent_name(agent_name: str) -> str:
    """Turn ``customer-insight-agent`` into ``Customer Insight``."""
    base = agent_name[:-len("-agent")] if agent_name.lower().endswith("-agent") else agent_name
    return " ".join(word[:1].upper() + word[1:] for word in base.split("-") if word)


def _as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def parse_event(payload: Any) -> StreamEvent:
    """
    Decode one event payload. Never raises; anything unrecognized or
    malformed becomes an UnknownEvent.
    """
    if not isinstance(payload, dict):
        return UnknownEvent(payload)

    event_type = payload.get("type")
    message_id = _as_str(payload.get("messageId") or payload.get("id"))

    if event_type == "start" and message_id:
        return StartEvent(message_id)
    if event_type == "text-delta":
        return TextDeltaEvent(message_id, _as_str(payload.get("delta") or payload.get("text")))
    if event_type in ("reasoning-delta", "reasoning"):
        return ReasoningDeltaEvent(message_id, _as_str(payload.get("delta") or payload.get("text")))
    if event_type == "data-network":
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        step_index = _as_int(payload.get("stepIndex"))
        if step_index is None:
            return UnknownEvent(payload)
        status = data.get("status")
        return StepEvent(
            message_id=message_id,
            step_index=step_index,
            name=_as_str(data.get("name"), "unknown"),
            status=status if status in (STEP_RUNNING, STEP_SUCCESS, STEP_ERROR) else STEP_RUNNING,
            agent_name=extract_agent_name(payload),
            input=data.get("input"),
            output=data.get("output"),
        )
    if event_type in ("finish", "done"):
        return FinishEvent(message_id)
    if event_type == "error":
        return ErrorEvent(_as_str(payload.get("message") or payload.get("errorText"), "Unknown error"))
    return UnknownEvent(payload)


def parse_sse_line(line: str) -> Optional[StreamEvent]:
    """Decode one ``data:`` line of the stream; other lines yield None."""
    if not line or not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Ignoring undecodable stream line: %s", data[:200])
        return UnknownEvent(data)
    return parse_event(payload)
