"""UI message shape: folding stream events into messages and back into model history."""

import uuid
from typing import List, Dict, Any, Optional

from .events import (
    StartEvent,
    TextDeltaEvent,
    ReasoningDeltaEvent,
    StepEvent,
    StreamEvent,
)
from .think import strip_think


def new_message_id() -> str:
    return f"msg-{uuid.uuid4().hex}"


def user_message(text: str, message_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": message_id or new_message_id(),
        "role": "user",
        "parts": [{"type": "text", "text": text}],
    }


def extract_message_text(message: Dict[str, Any]) -> str:
    """Text of a message in either the parts shape or the plain ``content`` shape."""
    for part in message.get("parts") or []:
        if isinstance(part, dict) and part.get("type") == "text" and part.get("text"):
            return part["text"]
    content = message.get("content")
    return content if isinstance(content, str) else ""


def message_display_text(message: Dict[str, Any]) -> str:
    """All visible text of a message, including specialist outputs from network steps."""
    if not isinstance(message.get("parts"), list):
        content = message.get("content")
        return content if isinstance(content, str) else ""

    text = ""
    for part in message["parts"]:
        if not isinstance(part, dict):
            continue
        if part.get("type") == "text" and part.get("text"):
            text += part["text"]
        elif part.get("type") == "data-network":
            output = (part.get("data") or {}).get("output")
            if isinstance(output, str):
                text += output
    return text


def _find_message(messages: List[Dict[str, Any]], message_id: str) -> Optional[Dict[str, Any]]:
    for message in reversed(messages):
        if message.get("id") == message_id:
            return message
    return None


def _ensure_message(messages: List[Dict[str, Any]], message_id: str) -> Dict[str, Any]:
    message = _find_message(messages, message_id)
    if message is None:
        message = {"id": message_id, "role": "assistant", "parts": []}
        messages.append(message)
    return message


def _append_text(message: Dict[str, Any], part_type: str, delta: str):
    parts = message["parts"]
    if parts and parts[-1].get("type") == part_type:
        parts[-1]["text"] += delta
    else:
        parts.append({"type": part_type, "text": delta})


def apply_event(messages: List[Dict[str, Any]], event: StreamEvent) -> bool:
    """
    Fold one stream event into the message list in place.

    Step events replace the step part with the same ``stepIndex``, so a
    repeated or updated step never duplicates.

    Returns:
        True if the messages changed
    """
    if isinstance(event, StartEvent):
        _ensure_message(messages, event.message_id)
        return True
    if isinstance(event, (TextDeltaEvent, ReasoningDeltaEvent)):
        if not event.delta or not event.message_id:
            return False
        message = _ensure_message(messages, event.message_id)
        part_type = "text" if isinstance(event, TextDeltaEvent) else "reasoning"
        _append_text(message, part_type, event.delta)
        return True
    if isinstance(event, StepEvent):
        if not event.message_id:
            return False
        message = _ensure_message(messages, event.message_id)
        part = {"type": "data-network", "stepIndex": event.step_index, "data": event.to_data()}
        for idx, existing in enumerate(message["parts"]):
            if existing.get("type") == "data-network" and existing.get("stepIndex") == event.step_index:
                message["parts"][idx] = part
                return True
        message["parts"].append(part)
        return True
    return False


def messages_to_history(messages: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Convert stored UI messages into role/content pairs for the model."""
    history = []
    for message in messages:
        role = message.get("role")
        if role not in ("user", "assistant"):
            continue
        if role == "user":
            content = extract_message_text(message)
        else:
            content = strip_think("".join(
                part.get("text", "")
                for part in message.get("parts") or []
                if isinstance(part, dict) and part.get("type") == "text"
            ) or message.get("content") or "")
        if content.strip():
            history.append({"role": role, "content": content.strip()})
    return history
