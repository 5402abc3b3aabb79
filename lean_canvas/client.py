"""Chat client: consumes the /api/chat stream and keeps a local canvas in sync."""

import asyncio
import logging
import httpx
from pydantic import ValidationError
from typing import List, Dict, Any, Callable, Optional

from . import storage
from .canvas import CanvasState, get_initial_canvas, validate_canvas_state
from .config import DEFAULT_CANVAS_NAME, MODEL_TIMEOUT, SAVE_DEBOUNCE_SECONDS
from .events import ErrorEvent, StreamEvent, parse_sse_line
from .messages import apply_event, user_message
from .reconciler import Reconciler

logger = logging.getLogger(__name__)


class ChatError(Exception):
    """Raised when the chat endpoint rejects a request or reports a stream error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CanvasSession:
    """
    One open canvas: its state, the chat messages observed for it, and the
    reconciler that turns completed tool steps into canvas edits.

    Saves are debounced; ``close()`` flushes a pending save.
    """

    def __init__(self, canvas_id: str, store_path: Optional[str] = None):
        self.canvas_id = canvas_id
        self.store_path = store_path
        self.messages: List[Dict[str, Any]] = []
        self.reconciler = Reconciler()
        self._save_handle: Optional[asyncio.TimerHandle] = None

        state, self.name = storage.load_canvas_state(canvas_id, store_path)
        try:
            self.state: CanvasState = validate_canvas_state(state)
        except ValidationError:
            logger.warning("Saved canvas %s failed validation; using the default canvas", canvas_id, exc_info=True)
            self.state = get_initial_canvas()

    @property
    def save_pending(self) -> bool:
        return self._save_handle is not None

    def set_state(self, state: CanvasState):
        if state is self.state:
            return
        self.state = state
        self.schedule_save()

    def rename(self, name: str):
        self.name = name.strip() or DEFAULT_CANVAS_NAME
        self.schedule_save()

    def clear(self):
        """Reset the canvas and its name. Already-applied steps stay applied."""
        self.name = DEFAULT_CANVAS_NAME
        self.reconciler.clear_pending()
        self.set_state(get_initial_canvas())

    def load_messages(self, messages: List[Dict[str, Any]]):
        """Adopt restored history; its steps were applied when they first streamed."""
        self.messages = list(messages)
        self.reconciler.mark_processed(self.messages)

    def observe(self) -> bool:
        """Reconcile the current messages into the canvas. Returns True if it changed."""
        new_state = self.reconciler.reconcile(self.messages, self.state)
        if new_state is self.state:
            return False
        self.set_state(new_state)
        return True

    def schedule_save(self):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.save_now()
            return

        if self._save_handle is not None:
            self._save_handle.cancel()
        self._save_handle = loop.call_later(SAVE_DEBOUNCE_SECONDS, self.save_now)

    def save_now(self):
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        storage.save_canvas(self.canvas_id, self.state, self.name, self.store_path)
        logger.debug("Saved canvas %s", self.canvas_id)

    def close(self):
        if self._save_handle is not None:
            self.save_now()


class ChatClient:
    """Streams chat turns for one canvas session from the API server."""

    def __init__(
        self,
        session: CanvasSession,
        base_url: str = "http://localhost:8001",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = MODEL_TIMEOUT,
    ):
        self.session = session
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def load_history(self) -> List[Dict[str, Any]]:
        """Fetch the stored thread for this canvas and adopt it."""
        response = await self._http.get("/api/chat", params={"canvasId": self.session.canvas_id})
        if response.status_code >= 400:
            raise ChatError(_error_detail(response), response.status_code)
        messages = response.json()
        self.session.load_messages(messages if isinstance(messages, list) else [])
        return self.session.messages

    async def send_message(
        self,
        text: str,
        on_event: Optional[Callable[[StreamEvent], None]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Send one user message and consume the streamed reply.

        Every event is folded into the session messages and reconciled into
        the canvas as it arrives.

        Returns:
            The assistant message assembled from the stream, if any

        Raises:
            ChatError: on a rejected request or an ``error`` event
        """
        session = self.session
        session.messages.append(user_message(text))
        body = {
            "messages": session.messages,
            "canvasId": session.canvas_id,
            "canvasState": session.state,
        }

        assistant_id = None
        async with self._http.stream("POST", "/api/chat", json=body) as response:
            if response.status_code >= 400:
                await response.aread()
                raise ChatError(_error_detail(response), response.status_code)

            async for line in response.aiter_lines():
                event = parse_sse_line(line)
                if event is None:
                    continue
                if on_event is not None:
                    on_event(event)
                if isinstance(event, ErrorEvent):
                    raise ChatError(event.message)
                if apply_event(session.messages, event):
                    assistant_id = getattr(event, "message_id", None) or assistant_id
                    session.observe()

        for message in reversed(session.messages):
            if message.get("id") == assistant_id:
                return message
        return None

    async def aclose(self):
        self.session.close()
        if self._owns_http:
            await self._http.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        detail = data.get("error") or data.get("detail")
        if data.get("details"):
            detail = f"{detail}: {data['details']}"
        return str(detail)
    return str(data)
