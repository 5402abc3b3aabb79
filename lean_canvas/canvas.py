"""Lean Canvas document model: initial layout, shape coercion and prompt rendering."""

import copy
import re
from typing import List, Dict, Any, Optional

from pydantic import BaseModel

CanvasState = Dict[str, Dict[str, Any]]

SECTION_IDS = [
    "problem",
    "solution",
    "key-metrics",
    "unique-value-proposition",
    "unfair-advantage",
    "channels",
    "customer-segments",
    "cost-structure",
    "revenue-streams",
]


class Subsection(BaseModel):
    title: str
    items: List[str] = []


class CanvasSection(BaseModel):
    title: str
    order: Optional[int] = None
    items: Optional[List[str]] = None
    subsections: Optional[Dict[str, Subsection]] = None


def get_initial_canvas() -> CanvasState:
    """Return a fresh canvas with the nine well-known sections."""
    return {
        "problem": {
            "order": 2,
            "title": "Problem",
            "subsections": {
                "problem": {"title": "Problem", "items": []},
                "existing-alternatives": {"title": "Existing Alternatives", "items": []},
            },
        },
        "solution": {"order": 4, "title": "Solution", "items": []},
        "key-metrics": {"order": 8, "title": "Key Metrics", "items": []},
        "unique-value-proposition": {
            "order": 3,
            "title": "Unique Value Proposition",
            "subsections": {
                "unique-value-proposition": {"title": "Unique Value Proposition", "items": []},
                "high-level-concept": {"title": "High Level Concept", "items": []},
            },
        },
        "unfair-advantage": {"order": 9, "title": "Unfair Advantage", "items": []},
        "channels": {"order": 5, "title": "Channels", "items": []},
        "customer-segments": {
            "order": 1,
            "title": "Customer Segments",
            "subsections": {
                "customer-segments": {"title": "Customer Segments", "items": []},
                "early-adopter": {"title": "Early Adopter", "items": []},
            },
        },
        "cost-structure": {"order": 7, "title": "Cost Structure", "items": []},
        "revenue-streams": {"order": 6, "title": "Revenue Streams", "items": []},
    }


def kebab_case(text: str) -> str:
    return re.sub(r"\s+", "-", text.strip().lower())


def _coerce_items(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [str(item) for item in raw if item is not None]


def _coerce_subsections(raw: Any) -> Dict[str, Dict[str, Any]]:
    subsections: Dict[str, Dict[str, Any]] = {}
    if isinstance(raw, dict):
        for key, sub in raw.items():
            if not isinstance(sub, dict):
                continue
            subsections[str(key)] = {
                "title": str(sub.get("title") or key),
                "items": _coerce_items(sub.get("items")),
            }
    elif isinstance(raw, list):
        for sub in raw:
            if not isinstance(sub, dict) or not sub.get("title"):
                continue
            title = str(sub["title"])
            subsections[kebab_case(title)] = {
                "title": title,
                "items": _coerce_items(sub.get("items")),
            }
    return subsections


def _coerce_section(section_id: str, raw: Dict[str, Any]) -> Dict[str, Any]:
    section: Dict[str, Any] = {"title": str(raw.get("title") or section_id)}
    if isinstance(raw.get("order"), int):
        section["order"] = raw["order"]
    if raw.get("subsections"):
        section["subsections"] = _coerce_subsections(raw["subsections"])
    else:
        section["items"] = _coerce_items(raw.get("items"))
    return section


def coerce_canvas_state(raw: Any) -> Optional[CanvasState]:
    """
    Normalize a canvas payload into the id-keyed shape.

    Accepts the id-keyed mapping as well as the older array-of-sections shape
    (``[{"id", "order", "title", "items", "subsections": [...]}]``).

    Returns:
        CanvasState, or None if the payload is not a canvas at all
    """
    if isinstance(raw, dict):
        return {
            str(section_id): _coerce_section(str(section_id), section)
            for section_id, section in raw.items()
            if isinstance(section, dict)
        }
    if isinstance(raw, list):
        state: CanvasState = {}
        for section in raw:
            if isinstance(section, dict) and section.get("id"):
                state[str(section["id"])] = _coerce_section(str(section["id"]), section)
        return state
    return None


def validate_canvas_state(state: CanvasState) -> CanvasState:
    """Validate every section against the section model and return a deep copy."""
    for section in state.values():
        CanvasSection.model_validate(section)
    return copy.deepcopy(state)


def ordered_sections(state: CanvasState) -> List[tuple]:
    """Sections sorted by ``order``; unordered sections go last in insertion order."""
    indexed = list(enumerate(state.items()))
    indexed.sort(key=lambda entry: (
        entry[1][1].get("order") if isinstance(entry[1][1].get("order"), int) else float("inf"),
        entry[0],
    ))
    return [entry[1] for entry in indexed]


def canvas_to_prompt(state: Optional[CanvasState]) -> str:
    """Render the canvas as the text block handed to agents as runtime context."""
    lines = ["=== Start of Lean Canvas State ==="]

    for _, section in ordered_sections(state or {}):
        lines.append(f"## {section.get('title', '')}")
        lines.append("")
        items = section.get("items") or []
        for item in items:
            lines.append(f"* {item}")
        if items:
            lines.append("")

        for sub in (section.get("subsections") or {}).values():
            lines.append(f"### {sub.get('title', '')}:")
            lines.append("")
            sub_items = sub.get("items") or []
            for item in sub_items:
                lines.append(f"* {item}")
            if sub_items:
                lines.append("")

    lines.append("")
    lines.append("=== End of Lean Canvas State ===")
    return "\n".join(lines) + "\n"
