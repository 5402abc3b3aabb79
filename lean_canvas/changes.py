"""Canvas change descriptors and the tool-output parser that extracts them."""

import json
import logging
import time
from typing import List, Dict, Any, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

ChangeType = Literal["update", "add", "remove", "replace"]


def now_ms() -> int:
    return int(time.time() * 1000)


class ChangeDescriptor(BaseModel):
    """One atomic canvas mutation, as emitted by the canvas tools."""

    model_config = ConfigDict(populate_by_name=True)

    type: ChangeType
    section_id: str = Field(default="", alias="sectionId")
    subsection_title: Optional[str] = Field(default=None, alias="subsectionTitle")
    index: Optional[int] = None
    value: Optional[str] = None
    new_state: Optional[Dict[str, Any]] = Field(default=None, alias="newState")
    timestamp: int = Field(default_factory=now_ms)

    @model_validator(mode="after")
    def _check_required_fields(self) -> "ChangeDescriptor":
        if self.type == "update" and (self.index is None or self.value is None):
            raise ValueError("update requires index and value")
        if self.type == "remove" and self.index is None:
            raise ValueError("remove requires index")
        if self.type == "replace" and self.new_state is None:
            raise ValueError("replace requires newState")
        if self.type != "replace" and not self.section_id:
            raise ValueError(f"{self.type} requires sectionId")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _load_payload(output: Any) -> Optional[Dict[str, Any]]:
    if output is None:
        return None
    if isinstance(output, (str, bytes)):
        if not output:
            return None
        try:
            output = json.loads(output)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Tool output is not JSON; treating as no changes")
            return None
    if isinstance(output, dict):
        return output
    return None


def _extract_raw_changes(output: Any) -> List[Any]:
    """Return the raw ``changes`` list from a tool output, or an empty list."""
    payload = _load_payload(output)
    if payload is None:
        return []

    changes = payload.get("changes")
    if changes is None and isinstance(payload.get("result"), dict):
        changes = payload["result"].get("changes")
    if isinstance(changes, list):
        return changes
    return []


def parse_changes(output: Any) -> List[ChangeDescriptor]:
    """
    Extract change descriptors from a tool-result payload.

    Args:
        output: JSON string, already-parsed mapping, or None

    Returns:
        Valid descriptors in payload order. Malformed payloads and invalid
        entries yield nothing rather than raising.
    """
    descriptors = []
    for raw in _extract_raw_changes(output):
        if isinstance(raw, ChangeDescriptor):
            descriptors.append(raw)
            continue
        if not isinstance(raw, dict):
            continue
        try:
            descriptors.append(ChangeDescriptor.model_validate(raw))
        except ValidationError as e:
            logger.debug("Skipping invalid change descriptor %r: %s", raw, e)
    return descriptors
