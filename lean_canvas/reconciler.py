"""Applies canvas changes carried by streamed tool steps, once per step."""

import logging
from typing import List, Dict, Any, Iterator, Set, Tuple

from .canvas import CanvasState
from .changes import ChangeDescriptor, parse_changes
from .mutations import apply_change

logger = logging.getLogger(__name__)

STEP_PART_TYPES = {"data-network", "tool-result"}


def step_key(message_id: str, step_index: int) -> str:
    return f"{message_id}:{step_index}"


def is_step_part(part: Any) -> bool:
    if not isinstance(part, dict):
        return False
    part_type = part.get("type", "")
    return part_type in STEP_PART_TYPES or part_type.startswith("tool-")


def _step_body(part: Dict[str, Any]) -> Dict[str, Any]:
    data = part.get("data")
    return data if isinstance(data, dict) else part


def is_step_complete(part: Dict[str, Any]) -> bool:
    """A step is complete once it reports success or carries any output."""
    body = _step_body(part)
    if body.get("status") == "success" or part.get("state") == "output-available":
        return True
    output = body.get("output")
    return output is not None and output != "" and output != {} and output != []


def iter_tool_steps(messages: List[Dict[str, Any]]) -> Iterator[Tuple[str, int, Dict[str, Any]]]:
    """Yield (message_id, step_index, part) for every tool step, in stream order."""
    for message in messages:
        if not isinstance(message, dict) or message.get("role") == "user":
            continue
        message_id = message.get("id")
        if not message_id:
            continue
        for position, part in enumerate(message.get("parts") or []):
            if not is_step_part(part):
                continue
            step_index = part.get("stepIndex", position)
            yield message_id, step_index, part


class Reconciler:
    """
    Walks observed chat messages and applies tool-step canvas changes.

    Safe to call with the full message list on every stream chunk: the
    ledger of processed step keys guarantees each step is applied at most
    once for the lifetime of the session.
    """

    def __init__(self):
        self.applied: Set[str] = set()
        self.pending_changes: List[ChangeDescriptor] = []

    def has_processed(self, message_id: str, step_index: int) -> bool:
        return step_key(message_id, step_index) in self.applied

    def reconcile(self, messages: List[Dict[str, Any]], state: CanvasState) -> CanvasState:
        """
        Apply changes from newly completed tool steps.

        Args:
            messages: Current snapshot of UI messages
            state: Canvas state before this pass

        Returns:
            Canvas state after applying every newly observed step
        """
        applied_now: List[ChangeDescriptor] = []

        for message_id, step_index, part in iter_tool_steps(messages):
            key = step_key(message_id, step_index)
            if key in self.applied or not is_step_complete(part):
                continue

            changes = parse_changes(_step_body(part).get("output"))
            next_state = state
            try:
                for change in changes:
                    next_state = apply_change(next_state, change)
            except Exception:
                logger.exception("Failed to apply changes from step %s", key)
            else:
                state = next_state
                applied_now.extend(changes)
            self.applied.add(key)

            if changes:
                logger.info("Applied %d canvas change(s) from step %s", len(changes), key)

        if applied_now:
            self.pending_changes = applied_now
        return state

    def clear_pending(self):
        self.pending_changes = []

    def reset(self):
        self.applied.clear()
        self.pending_changes = []

    def mark_processed(self, messages: List[Dict[str, Any]]):
        """Record every completed step as handled without applying it (e.g. restored history)."""
        for message_id, step_index, part in iter_tool_steps(messages):
            if is_step_complete(part):
                self.applied.add(step_key(message_id, step_index))
