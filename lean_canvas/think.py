"""Incremental handling of <think>...</think> blocks in streamed model text."""

import re
from typing import List, Dict, Tuple

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"

TEXT = "text"
REASONING = "reasoning"

_THINK_BLOCK = re.compile(r"<think>([\s\S]*?)(</think>|\Z)")


def _partial_tag_suffix(buffer: str, tag: str) -> int:
    """Length of the longest suffix of ``buffer`` that is a proper prefix of ``tag``."""
    for size in range(min(len(tag) - 1, len(buffer)), 0, -1):
        if buffer.endswith(tag[:size]):
            return size
    return 0


class ThinkScanner:
    """
    Two-state scanner separating visible text from reasoning.

    Feed chunks as they arrive; each call returns the segments that can be
    emitted so far. A trailing fragment that could still grow into a tag is
    held back until the next chunk (or ``flush``).
    """

    def __init__(self):
        self.inside = False
        self._carry = ""

    def feed(self, chunk: str) -> List[Tuple[str, str]]:
        buffer = self._carry + (chunk or "")
        self._carry = ""
        segments: List[Tuple[str, str]] = []

        while buffer:
            tag = CLOSE_TAG if self.inside else OPEN_TAG
            kind = REASONING if self.inside else TEXT
            pos = buffer.find(tag)
            if pos >= 0:
                if pos:
                    segments.append((kind, buffer[:pos]))
                buffer = buffer[pos + len(tag):]
                self.inside = not self.inside
                continue

            held = _partial_tag_suffix(buffer, tag)
            emit = buffer[:len(buffer) - held]
            if emit:
                segments.append((kind, emit))
            self._carry = buffer[len(buffer) - held:]
            break

        return segments

    def flush(self) -> List[Tuple[str, str]]:
        """Release any held-back fragment as literal text of the current state."""
        if not self._carry:
            return []
        segment = (REASONING if self.inside else TEXT, self._carry)
        self._carry = ""
        return [segment]


def strip_think(text: str) -> str:
    """Drop reasoning blocks from a complete string."""
    scanner = ThinkScanner()
    segments = scanner.feed(text) + scanner.flush()
    return "".join(content for kind, content in segments if kind == TEXT)


def split_think_blocks(text: str) -> List[Dict[str, str]]:
    """
    Split finished message text into ``text`` and ``think`` parts for display.

    An unterminated ``<think>`` runs to the end of the text.
    """
    parts = []
    last_index = 0
    for match in _THINK_BLOCK.finditer(text or ""):
        if match.start() > last_index:
            parts.append({"type": "text", "content": text[last_index:match.start()]})
        parts.append({"type": "think", "content": match.group(1), "key": str(match.start())})
        last_index = match.end()
        if match.group(2) != CLOSE_TAG:
            break
    if last_index < len(text or ""):
        parts.append({"type": "text", "content": text[last_index:]})
    return parts
