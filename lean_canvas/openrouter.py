"""OpenRouter API client for agent model calls."""

import asyncio
import json
import logging
import httpx
from typing import List, Dict, Any, AsyncIterator, Optional
from .config import (
    OPENROUTER_API_KEY,
    OPENROUTER_API_URL,
    OPENROUTER_SITE_URL,
    OPENROUTER_APP_TITLE,
    MODEL_TIMEOUT,
    MODEL_MAX_RETRIES,
    MODEL_RETRY_BASE_DELAY,
)

logger = logging.getLogger(__name__)


class ModelError(Exception):
    """Raised when the hosted model cannot produce a usable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _headers() -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {OPENROUTER_API_KEY}",
        "Content-Type": "application/json",
    }
    if OPENROUTER_SITE_URL:
        headers["HTTP-Referer"] = OPENROUTER_SITE_URL
    if OPENROUTER_APP_TITLE:
        headers["X-Title"] = OPENROUTER_APP_TITLE
    return headers


def _build_payload(
    model: str,
    messages: List[Dict[str, Any]],
    tools: Optional[List[Dict[str, Any]]] = None,
    extra_body: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
    }
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = "auto"
    if extra_body:
        payload.update(extra_body)
    return payload


async def query_model(
    model: str,
    messages: List[Dict[str, Any]],
    timeout: float = MODEL_TIMEOUT,
    extra_body: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Query a single model via OpenRouter API.

    Args:
        model: OpenRouter model identifier (e.g., "openai/gpt-4o")
        messages: List of message dicts with 'role' and 'content'
        timeout: Request timeout in seconds

    Returns:
        Response dict with 'content' and 'reasoning_details', an error dict for
        authorization failures, or None if every attempt failed
    """
    if not OPENROUTER_API_KEY:
        logger.warning("OpenRouter API key is missing. Skipping model call.")
        return None

    payload = _build_payload(model, messages, extra_body=extra_body)

    for attempt in range(MODEL_MAX_RETRIES):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    OPENROUTER_API_URL,
                    headers=_headers(),
                    json=payload
                )

                if response.status_code == 429:
                    delay = MODEL_RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning("Rate limited (429) for %s. Retrying in %ss...", model, delay)
                    await asyncio.sleep(delay)
                    continue

                if response.status_code in (401, 403):
                    try:
                        data = response.json()
                    except ValueError:
                        data = response.text
                    logger.error("Authorization error (%s) for %s: %s", response.status_code, model, data)
                    return {"content": None, "error": data, "status_code": response.status_code}

                response.raise_for_status()

                data = response.json()
                if not data.get('choices'):
                    logger.error("Invalid response from %s: %s", model, data)
                    return {"content": None, "error": data, "status_code": response.status_code}

                message = data['choices'][0]['message']

                return {
                    'content': message.get('content'),
                    'reasoning_details': message.get('reasoning_details'),
                }

        except (httpx.HTTPError, ValueError) as e:
            delay = MODEL_RETRY_BASE_DELAY * (2 ** attempt)
            if attempt < MODEL_MAX_RETRIES - 1:
                logger.warning(
                    "Error querying model %s (Attempt %d/%d): %s. Retrying in %ss...",
                    model, attempt + 1, MODEL_MAX_RETRIES, e, delay,
                )
                await asyncio.sleep(delay)
            else:
                logger.error("Final failure for model %s after %d attempts: %s", model, MODEL_MAX_RETRIES, e)
                return None

    return None


def _merge_tool_call_delta(tool_calls: Dict[int, Dict[str, Any]], delta: Dict[str, Any]):
    index = delta.get("index", len(tool_calls))
    call = tool_calls.setdefault(index, {
        "id": "",
        "type": "function",
        "function": {"name": "", "arguments": ""},
    })
    if delta.get("id"):
        call["id"] = delta["id"]
    function = delta.get("function") or {}
    if function.get("name"):
        call["function"]["name"] += function["name"]
    if function.get("arguments"):
        call["function"]["arguments"] += function["arguments"]


async def stream_model(
    model: str,
    messages: List[Dict[str, Any]],
    tools: Optional[List[Dict[str, Any]]] = None,
    timeout: float = MODEL_TIMEOUT,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Stream a completion from OpenRouter.

    Yields ``{"type": "content", "delta": str}`` chunks as they arrive and,
    once the stream ends, a single ``{"type": "tool_calls", "tool_calls": [...]}``
    item if the model requested any tools.

    Raises:
        ModelError: if the key is missing or the request is rejected
    """
    if not OPENROUTER_API_KEY:
        raise ModelError("OpenRouter API key is missing")

    payload = _build_payload(model, messages, tools, {"stream": True})
    tool_calls: Dict[int, Dict[str, Any]] = {}

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            async with client.stream(
                "POST",
                OPENROUTER_API_URL,
                headers=_headers(),
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ModelError(
                        f"Model {model} returned {response.status_code}: {body[:500]}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if not line or not line.startswith("data: "):
                        continue
                    data = line[6:].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        continue

                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    delta = choices[0].get("delta") or {}
                    if delta.get("content"):
                        yield {"type": "content", "delta": delta["content"]}
                    for call_delta in delta.get("tool_calls") or []:
                        _merge_tool_call_delta(tool_calls, call_delta)
    except httpx.HTTPError as e:
        raise ModelError(f"Streaming request to {model} failed: {e}") from e

    if tool_calls:
        yield {"type": "tool_calls", "tool_calls": [tool_calls[i] for i in sorted(tool_calls)]}
