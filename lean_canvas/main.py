"""FastAPI backend for the Lean Canvas advisor chat."""

import logging
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from typing import List, Dict, Any, Optional

from . import storage
from .canvas import canvas_to_prompt, coerce_canvas_state, get_initial_canvas
from .config import CORS_ORIGINS, DEFAULT_CANVAS_NAME, configure_logging
from .events import ErrorEvent, encode_sse
from .messages import apply_event, extract_message_text, messages_to_history, user_message
from .runtime import get_orchestrator

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Lean Canvas Advisor API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ChatRequest(BaseModel):
    messages: List[Dict[str, Any]] = []
    canvasId: Optional[str] = None
    canvasState: Optional[Any] = None


class SaveCanvasRequest(BaseModel):
    state: Any
    name: Optional[str] = None


class CanvasMetadata(BaseModel):
    id: str
    name: str
    createdAt: str
    updatedAt: str


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def _stored_user_message(message: Dict[str, Any], text: str) -> Dict[str, Any]:
    if isinstance(message.get("parts"), list) and message.get("id"):
        return {"id": message["id"], "role": "user", "parts": message["parts"]}
    return user_message(text, message.get("id"))


@app.get("/")
async def root():
    return {"status": "ok", "service": "Lean Canvas Advisor API"}


@app.post("/api/chat")
async def chat(request: ChatRequest):
    """Run one orchestrator turn and stream its events."""
    canvas_id = request.canvasId
    if not canvas_id:
        return _bad_request("canvasId is required")
    if not request.messages:
        return _bad_request("No message provided")

    last_message = request.messages[-1]
    text = extract_message_text(last_message)
    if not text:
        return _bad_request("No message text found")

    canvas_state = coerce_canvas_state(request.canvasState) or get_initial_canvas()
    runtime_context = {"canvasState": canvas_to_prompt(canvas_state)}

    try:
        history = messages_to_history(storage.get_thread_messages(canvas_id))
        stream = get_orchestrator().network(text, runtime_context=runtime_context, history=history)
        # Pull the first event here so upstream failures become a 500.
        first_event = await stream.__anext__()
    except Exception as e:
        logger.exception("Chat request failed for canvas %s", canvas_id)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process chat request", "details": str(e)},
        )

    async def event_generator():
        assistant_messages: List[Dict[str, Any]] = []
        try:
            apply_event(assistant_messages, first_event)
            yield encode_sse(first_event)

            async for event in stream:
                apply_event(assistant_messages, event)
                yield encode_sse(event)

            storage.append_thread_messages(
                canvas_id,
                [_stored_user_message(last_message, text)] + assistant_messages,
            )

        except Exception as e:
            logger.exception("Chat stream failed for canvas %s", canvas_id)
            yield encode_sse(ErrorEvent(str(e)))

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
    )


@app.get("/api/chat")
async def get_chat_history(canvasId: Optional[str] = None):
    if not canvasId:
        return _bad_request("canvasId is required")
    return storage.get_thread_messages(canvasId)


@app.get("/api/canvases", response_model=List[CanvasMetadata])
async def list_canvases():
    return storage.list_canvases()


@app.get("/api/canvases/{canvas_id}")
async def get_canvas(canvas_id: str):
    record = storage.get_canvas(canvas_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Canvas not found")
    return {"id": canvas_id, **record}


@app.put("/api/canvases/{canvas_id}")
async def save_canvas(canvas_id: str, request: SaveCanvasRequest):
    state = coerce_canvas_state(request.state)
    if state is None:
        raise HTTPException(status_code=400, detail="Invalid canvas state")
    record = storage.save_canvas(canvas_id, state, request.name or DEFAULT_CANVAS_NAME)
    return {"id": canvas_id, **record}


@app.delete("/api/canvases/{canvas_id}")
async def delete_canvas(canvas_id: str):
    try:
        storage.delete_canvas(canvas_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if storage.get_thread(canvas_id) is not None:
        storage.delete_thread(canvas_id)
    return {"status": "deleted"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("lean_canvas.main:app", host="0.0.0.0", port=8001, reload=True)
