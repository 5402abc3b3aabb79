import asyncio
import sys
import os
import tempfile
import unittest
from unittest.mock import patch

import httpx

# Add the project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '.')))

from lean_canvas import storage
from lean_canvas.agents import Agent
from lean_canvas.canvas import get_initial_canvas
from lean_canvas.client import CanvasSession, ChatClient, ChatError
from lean_canvas.main import app
from lean_canvas.openrouter import ModelError
from lean_canvas.tools import CANVAS_TOOLS
from test_network import calls, scripted_stream, text, tool_call


class TestChatClient(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.store_file = os.path.join(self.tmp.name, "canvases.json")
        for name, value in (
            ("THREADS_DIR", os.path.join(self.tmp.name, "threads")),
            ("CANVAS_STORE_FILE", self.store_file),
        ):
            patcher = patch.object(storage, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)

        orchestrator = Agent(
            name="lean-canvas-orchestrator-agent",
            description="Coordinates the canvas",
            instructions="Coordinate.",
            model="test/model",
            tools=CANVAS_TOOLS,
        )
        patcher = patch("lean_canvas.main.get_orchestrator", return_value=orchestrator)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        self.addAsyncCleanup(self.http.aclose)

    def new_client(self):
        session = CanvasSession("canvas-1", store_path=self.store_file)
        return ChatClient(session, http_client=self.http)

    async def test_stream_updates_canvas_and_saves_on_close(self):
        client = self.new_client()
        fake = scripted_stream(
            [calls(
                tool_call("c1", "canvas_add_item", {"sectionId": "solution", "value": "Auto-sync"}),
                tool_call("c2", "canvas_add_item", {"sectionId": "Early Adopter", "value": "Indie studios"}),
            )],
            [text("<think>check</think>Both added.")],
        )
        seen = []
        with patch("lean_canvas.network.stream_model", fake):
            reply = await client.send_message("Add my solution", on_event=seen.append)

        session = client.session
        self.assertEqual(session.state["solution"]["items"], ["Auto-sync"])
        self.assertEqual(
            session.state["customer-segments"]["subsections"]["early-adopter"]["items"],
            ["Indie studios"],
        )
        self.assertEqual(len(session.reconciler.applied), 2)
        self.assertEqual([p["type"] for p in reply["parts"]][-2:], ["reasoning", "text"])
        self.assertEqual(seen[-1].type, "finish")

        self.assertTrue(session.save_pending)
        await client.aclose()
        self.assertFalse(session.save_pending)
        saved, _ = storage.load_canvas_state("canvas-1", self.store_file)
        self.assertEqual(saved["solution"]["items"], ["Auto-sync"])

    async def test_saves_are_debounced(self):
        session = CanvasSession("canvas-1", store_path=self.store_file)
        with patch("lean_canvas.client.SAVE_DEBOUNCE_SECONDS", 0.01):
            session.rename("First")
            session.rename("Second")
            self.assertIsNone(storage.get_canvas("canvas-1", self.store_file))
            await asyncio.sleep(0.05)

        self.assertFalse(session.save_pending)
        self.assertEqual(storage.get_canvas("canvas-1", self.store_file)["name"], "Second")

    async def test_error_event_raises(self):
        client = self.new_client()
        fake = scripted_stream(
            [calls(tool_call("c1", "canvas_add_item", {"sectionId": "channels", "value": "Reddit"}))],
            ModelError("connection reset"),
        )
        with patch("lean_canvas.network.stream_model", fake):
            with self.assertRaises(ChatError) as ctx:
                await client.send_message("Add a channel")
        self.assertEqual(str(ctx.exception), "connection reset")
        # The completed step before the failure was still applied.
        self.assertEqual(client.session.state["channels"]["items"], ["Reddit"])

    async def test_rejected_request_raises_with_status(self):
        client = self.new_client()
        fake = scripted_stream(ModelError("Model test/model returned 401", status_code=401))
        with patch("lean_canvas.network.stream_model", fake):
            with self.assertRaises(ChatError) as ctx:
                await client.send_message("Hello")
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn("Failed to process chat request", str(ctx.exception))

    async def test_restored_history_is_not_reapplied(self):
        client = self.new_client()
        fake = scripted_stream(
            [calls(tool_call("c1", "canvas_add_item", {"sectionId": "solution", "value": "Auto-sync"}))],
            [text("Done.")],
        )
        with patch("lean_canvas.network.stream_model", fake):
            await client.send_message("Add my solution")
        client.session.clear()
        await client.aclose()

        restored = self.new_client()
        messages = await restored.load_history()
        self.assertEqual([m["role"] for m in messages], ["user", "assistant"])
        self.assertFalse(restored.session.observe())
        self.assertEqual(restored.session.state, get_initial_canvas())


if __name__ == '__main__':
    unittest.main()
