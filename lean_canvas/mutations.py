"""
Pure canvas mutation functions.

Every function takes a CanvasState and returns a CanvasState. Inputs are never
modified: changed sections and lists are copied along the edited path, and a
call that changes nothing returns the input object unchanged.
"""

import copy
from typing import List, Dict, Any, Optional, Tuple

from .canvas import CanvasState, kebab_case
from .changes import ChangeDescriptor
from .config import MAX_ITEMS_PER_LIST


def find_subsection_key(subsections: Dict[str, Dict[str, Any]], title: str) -> Optional[str]:
    """Find a subsection key by exact key, lowercase key, title, or kebab-cased title."""
    if not subsections or not title:
        return None
    if title in subsections:
        return title

    lower_title = title.lower()
    if lower_title in subsections:
        return lower_title

    for key, sub in subsections.items():
        if str(sub.get("title", "")).lower() == lower_title:
            return key

    kebab_title = kebab_case(title)
    if kebab_title in subsections:
        return kebab_title
    return None


def resolve_section(
    state: CanvasState,
    section_id: str,
    subsection_title: Optional[str] = None,
) -> Tuple[str, Optional[str]]:
    """
    Resolve loosely-named section/subsection identifiers against the canvas.

    Order: exact section key, case-insensitive section title, then any
    section's subsections. Unresolved identifiers are returned unchanged.
    """
    if section_id in state:
        return section_id, subsection_title

    lowered = section_id.lower()
    for sid, section in state.items():
        if str(section.get("title", "")).lower() == lowered:
            return sid, subsection_title
        sub_key = find_subsection_key(section.get("subsections") or {}, section_id)
        if sub_key:
            return sid, sub_key

    return section_id, subsection_title


def _locate_items(
    state: CanvasState,
    section_id: str,
    subsection_title: Optional[str],
) -> Optional[Tuple[str, Optional[str], List[str]]]:
    """Return (section_key, subsection_key, items) for the list a change targets."""
    resolved_id, resolved_sub = resolve_section(state, section_id, subsection_title)
    section = state.get(resolved_id)
    if section is None:
        return None

    subsections = section.get("subsections")
    if subsections:
        effective = resolved_sub or resolved_id
        sub_key = find_subsection_key(subsections, effective)
        if sub_key is None:
            return None
        return resolved_id, sub_key, list(subsections[sub_key].get("items") or [])

    if resolved_sub:
        return None
    return resolved_id, None, list(section.get("items") or [])


def _with_items(
    state: CanvasState,
    section_key: str,
    sub_key: Optional[str],
    items: List[str],
) -> CanvasState:
    section = dict(state[section_key])
    if sub_key is None:
        section["items"] = items
    else:
        subsections = dict(section["subsections"])
        subsections[sub_key] = {**subsections[sub_key], "items": items}
        section["subsections"] = subsections
    return {**state, section_key: section}


def update_item(
    state: CanvasState,
    section_id: str,
    index: int,
    value: str,
    subsection_title: Optional[str] = None,
) -> CanvasState:
    """Replace the item at ``index``; an index at or past the end appends instead."""
    located = _locate_items(state, section_id, subsection_title)
    if located is None or index < 0:
        return state

    section_key, sub_key, items = located
    if index < len(items):
        items[index] = value
    elif len(items) < MAX_ITEMS_PER_LIST:
        items.append(value)
    else:
        return state
    return _with_items(state, section_key, sub_key, items)


def add_item(
    state: CanvasState,
    section_id: str,
    subsection_title: Optional[str] = None,
    value: str = "",
) -> CanvasState:
    located = _locate_items(state, section_id, subsection_title)
    if located is None:
        return state

    section_key, sub_key, items = located
    if len(items) >= MAX_ITEMS_PER_LIST:
        return state
    return _with_items(state, section_key, sub_key, items + [value])


def remove_item(
    state: CanvasState,
    section_id: str,
    index: int,
    subsection_title: Optional[str] = None,
) -> CanvasState:
    located = _locate_items(state, section_id, subsection_title)
    if located is None:
        return state

    section_key, sub_key, items = located
    if index < 0 or index >= len(items):
        return state
    return _with_items(state, section_key, sub_key, items[:index] + items[index + 1:])


def replace(state: CanvasState, new_state: CanvasState) -> CanvasState:
    """Swap in a whole new document."""
    return copy.deepcopy(new_state)


def apply_change(state: CanvasState, change: ChangeDescriptor) -> CanvasState:
    """Apply a single change descriptor."""
    if change.type == "update":
        return update_item(state, change.section_id, change.index, change.value, change.subsection_title)
    if change.type == "add":
        return add_item(state, change.section_id, change.subsection_title, change.value or "")
    if change.type == "remove":
        return remove_item(state, change.section_id, change.index, change.subsection_title)
    if change.type == "replace":
        return replace(state, change.new_state)
    return state


def apply_changes(state: CanvasState, changes: List[ChangeDescriptor]) -> CanvasState:
    for change in changes:
        state = apply_change(state, change)
    return state
