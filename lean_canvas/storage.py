"""JSON-based storage for conversation threads and saved canvases."""

import hashlib
import json
import logging
import os
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple
from pathlib import Path
from .canvas import CanvasState, coerce_canvas_state, get_initial_canvas
from .config import THREADS_DIR, CANVAS_STORE_FILE, DEFAULT_CANVAS_NAME, MEMORY_RESOURCE

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _thread_file_name(thread_id: str) -> str:
    # Injective and path-safe for any id.
    return hashlib.sha256(thread_id.encode("utf-8")).hexdigest()


# --- conversation threads (one file per canvas) ---

def ensure_threads_dir():
    """Ensure the threads directory exists."""
    Path(THREADS_DIR).mkdir(parents=True, exist_ok=True)


def get_thread_path(thread_id: str) -> str:
    """Get the file path for a thread."""
    return os.path.join(THREADS_DIR, f"{_thread_file_name(thread_id)}.json")


def get_thread(thread_id: str) -> Optional[Dict[str, Any]]:
    """
    Load a thread from storage.

    Args:
        thread_id: Canvas identifier the thread belongs to

    Returns:
        Thread dict or None if not found
    """
    path = get_thread_path(thread_id)

    if not os.path.exists(path):
        return None

    try:
        with open(path, 'r') as f:
            thread = json.load(f)
    except (json.JSONDecodeError, OSError):
        logger.warning("Thread file %s is unreadable; treating as empty", path, exc_info=True)
        return None

    if not isinstance(thread, dict):
        logger.warning("Thread file %s has an unexpected shape; treating as empty", path)
        return None
    return thread


def get_thread_messages(thread_id: str) -> List[Dict[str, Any]]:
    """Stored UI messages for a thread, or an empty list."""
    thread = get_thread(thread_id)
    if thread is None:
        return []
    messages = thread.get("messages")
    return messages if isinstance(messages, list) else []


def save_thread(thread: Dict[str, Any]):
    ensure_threads_dir()

    path = get_thread_path(thread['id'])
    with open(path, 'w') as f:
        json.dump(thread, f, indent=2)


def append_thread_messages(thread_id: str, messages: List[Dict[str, Any]]):
    """
    Append UI messages to a thread, creating it on first use.

    Args:
        thread_id: Canvas identifier
        messages: UI messages to append in order
    """
    thread = get_thread(thread_id)
    if thread is None:
        thread = {
            "id": thread_id,
            "resource": MEMORY_RESOURCE,
            "created_at": _now(),
            "messages": [],
        }

    if not isinstance(thread.get("messages"), list):
        thread["messages"] = []
    thread["messages"].extend(messages)
    thread["updated_at"] = _now()
    save_thread(thread)


def delete_thread(thread_id: str):
    """
    Delete a thread from storage.

    Raises:
        ValueError: if the thread does not exist
    """
    path = get_thread_path(thread_id)
    if os.path.exists(path):
        os.remove(path)
    else:
        raise ValueError(f"Thread {thread_id} not found")


# --- saved canvases (a single JSON blob keyed by canvas id) ---

def load_canvas_store(store_path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """Load every saved canvas record. A missing or corrupt store reads as empty."""
    path = store_path or CANVAS_STORE_FILE
    if not os.path.exists(path):
        return {}

    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        logger.warning("Canvas store %s is corrupt; starting from an empty store", path, exc_info=True)
        return {}

    if not isinstance(data, dict):
        logger.warning("Canvas store %s has an unexpected shape; ignoring it", path)
        return {}
    return data


def _write_canvas_store(store: Dict[str, Dict[str, Any]], store_path: Optional[str] = None):
    path = store_path or CANVAS_STORE_FILE
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(store, f, indent=2)


def get_canvas(canvas_id: str, store_path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Saved record ``{state, name, createdAt, updatedAt}`` or None."""
    return load_canvas_store(store_path).get(canvas_id)


def load_canvas_state(canvas_id: str, store_path: Optional[str] = None) -> Tuple[CanvasState, str]:
    """
    Load a canvas for editing.

    Returns:
        (state, name); the default canvas when nothing usable is stored
    """
    record = get_canvas(canvas_id, store_path)
    if record is None:
        return get_initial_canvas(), DEFAULT_CANVAS_NAME

    state = coerce_canvas_state(record.get("state")) if isinstance(record, dict) else None
    if state is None:
        logger.warning("Saved canvas %s is malformed; using the default canvas", canvas_id)
        return get_initial_canvas(), DEFAULT_CANVAS_NAME
    return state, record.get("name") or DEFAULT_CANVAS_NAME


def save_canvas(
    canvas_id: str,
    state: CanvasState,
    name: str = DEFAULT_CANVAS_NAME,
    store_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Create or update a saved canvas; ``createdAt`` is kept on update."""
    store = load_canvas_store(store_path)
    now = _now()
    existing = store.get(canvas_id)

    if isinstance(existing, dict):
        record = {**existing, "state": state, "name": name, "updatedAt": now}
    else:
        record = {"state": state, "name": name, "createdAt": now, "updatedAt": now}

    store[canvas_id] = record
    _write_canvas_store(store, store_path)
    return record


def delete_canvas(canvas_id: str, store_path: Optional[str] = None):
    """
    Delete a saved canvas.

    Raises:
        ValueError: if the canvas does not exist
    """
    store = load_canvas_store(store_path)
    if canvas_id not in store:
        raise ValueError(f"Canvas {canvas_id} not found")
    del store[canvas_id]
    _write_canvas_store(store, store_path)


def list_canvases(store_path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    List saved canvases (metadata only).

    Returns:
        List of canvas metadata dicts, most recently updated first
    """
    canvases = []
    for canvas_id, record in load_canvas_store(store_path).items():
        if not isinstance(record, dict):
            continue
        canvases.append({
            "id": canvas_id,
            "name": record.get("name", DEFAULT_CANVAS_NAME),
            "createdAt": record.get("createdAt", ""),
            "updatedAt": record.get("updatedAt", ""),
        })

    canvases.sort(key=lambda x: x["updatedAt"], reverse=True)
    return canvases
