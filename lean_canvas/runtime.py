"""Process-wide agent registry, built once on first use and reused across requests."""

import logging
import threading
from typing import Dict, Any, Optional

from .advisors import ORCHESTRATOR_NAME, build_orchestrator
from .config import AI_MODEL

logger = logging.getLogger(__name__)

_registry: Optional[Dict[str, Any]] = None
_registry_lock = threading.Lock()


def get_registry() -> Dict[str, Any]:
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                orchestrator = build_orchestrator(AI_MODEL)
                registry = {orchestrator.name: orchestrator}
                for specialist in orchestrator.agents:
                    registry[specialist.name] = specialist
                logger.info("Agent registry initialized with model %s: %s", AI_MODEL, ", ".join(registry))
                _registry = registry
    return _registry


def get_orchestrator():
    return get_registry()[ORCHESTRATOR_NAME]


def reset_registry():
    """Drop the cached registry; the next lookup rebuilds it."""
    global _registry
    with _registry_lock:
        _registry = None
