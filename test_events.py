import json
import sys
import os
import unittest

# Add the project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '.')))

from lean_canvas.events import (
    ErrorEvent,
    FinishEvent,
    ReasoningDeltaEvent,
    StartEvent,
    StepEvent,
    TextDeltaEvent,
    UnknownEvent,
    encode_sse,
    extract_agent_name,
    format_agent_name,
    parse_event,
    parse_sse_line,
)
from lean_canvas.messages import apply_event, message_display_text, messages_to_history


class TestEventDecoding(unittest.TestCase):

    def test_known_events(self):
        self.assertEqual(parse_event({"type": "start", "messageId": "m1"}), StartEvent("m1"))
        self.assertEqual(
            parse_event({"type": "text-delta", "messageId": "m1", "delta": "Hi"}),
            TextDeltaEvent("m1", "Hi"),
        )
        self.assertEqual(
            parse_event({"type": "reasoning-delta", "messageId": "m1", "delta": "hmm"}),
            ReasoningDeltaEvent("m1", "hmm"),
        )
        self.assertEqual(parse_event({"type": "finish", "messageId": "m1"}), FinishEvent("m1"))
        self.assertEqual(parse_event({"type": "error", "message": "boom"}), ErrorEvent("boom"))

    def test_step_event(self):
        event = parse_event({
            "type": "data-network",
            "messageId": "m1",
            "stepIndex": 2,
            "data": {"name": "delegate_to_edge_auditor", "agentName": "edge-auditor-agent", "status": "success", "output": "ok"},
        })
        self.assertIsInstance(event, StepEvent)
        self.assertEqual(event.step_index, 2)
        self.assertEqual(event.agent_name, "edge-auditor-agent")
        self.assertEqual(event.output, "ok")

    def test_decoding_is_total(self):
        for payload in (None, 42, "text", [], {}, {"type": "mystery"}, {"type": "data-network", "stepIndex": "1"}):
            event = parse_event(payload)
            self.assertIsInstance(event, UnknownEvent)

    def test_sse_lines(self):
        self.assertIsNone(parse_sse_line(""))
        self.assertIsNone(parse_sse_line(": keep-alive"))
        self.assertIsNone(parse_sse_line("data: [DONE]"))
        self.assertIsInstance(parse_sse_line("data: {not json"), UnknownEvent)
        self.assertEqual(parse_sse_line('data: {"type": "start", "messageId": "m9"}'), StartEvent("m9"))

    def test_encode_sse_round_trip(self):
        event = StepEvent("m1", 0, "canvas_add_item", "running", "lean-canvas-orchestrator-agent", input={"sectionId": "problem"})
        frame = encode_sse(event)
        self.assertTrue(frame.startswith("data: "))
        self.assertTrue(frame.endswith("\n\n"))
        self.assertEqual(parse_sse_line(frame.strip()), event)


class TestAgentNames(unittest.TestCase):

    def test_extraction_order(self):
        self.assertEqual(extract_agent_name({"payload": {"agentName": "a"}, "data": {"agentName": "b"}}), "a")
        self.assertEqual(extract_agent_name({"data": {"name": "c"}, "name": "d"}), "c")
        self.assertEqual(extract_agent_name({"name": "d"}), "d")
        self.assertEqual(extract_agent_name({}), "unknown")
        self.assertEqual(extract_agent_name("garbage"), "unknown")

    def test_format_agent_name(self):
        self.assertEqual(format_agent_name("customer-insight-agent"), "Customer Insight")
        self.assertEqual(format_agent_name("lean-canvas-orchestrator-agent"), "Lean Canvas Orchestrator")
        self.assertEqual(format_agent_name("solo"), "Solo")


class TestMessageFolding(unittest.TestCase):

    def test_folds_stream_into_assistant_message(self):
        messages = []
        apply_event(messages, StartEvent("m1"))
        apply_event(messages, TextDeltaEvent("m1", "Hel"))
        apply_event(messages, TextDeltaEvent("m1", "lo"))
        apply_event(messages, ReasoningDeltaEvent("m1", "thinking"))
        apply_event(messages, StepEvent("m1", 0, "canvas_add_item", "running"))
        apply_event(messages, StepEvent("m1", 0, "canvas_add_item", "success", output='{"changes": []}'))

        self.assertEqual(len(messages), 1)
        parts = messages[0]["parts"]
        self.assertEqual(parts[0], {"type": "text", "text": "Hello"})
        self.assertEqual(parts[1]["type"], "reasoning")
        steps = [p for p in parts if p["type"] == "data-network"]
        self.assertEqual(len(steps), 1)
        self.assertEqual(steps[0]["data"]["status"], "success")

    def test_unknown_and_finish_do_not_change_messages(self):
        messages = []
        self.assertFalse(apply_event(messages, UnknownEvent({"type": "x"})))
        self.assertFalse(apply_event(messages, FinishEvent("m1")))
        self.assertEqual(messages, [])

    def test_history_strips_reasoning(self):
        messages = [
            {"id": "u1", "role": "user", "parts": [{"type": "text", "text": "Help me"}]},
            {"id": "m1", "role": "assistant", "parts": [{"type": "text", "text": "<think>hidden</think>Sure"}]},
            {"id": "s1", "role": "system", "content": "ignored"},
            {"role": "user", "content": "Plain content"},
        ]
        self.assertEqual(messages_to_history(messages), [
            {"role": "user", "content": "Help me"},
            {"role": "assistant", "content": "Sure"},
            {"role": "user", "content": "Plain content"},
        ])

    def test_display_text_includes_specialist_output(self):
        message = {
            "parts": [
                {"type": "text", "text": "Summary. "},
                {"type": "data-network", "stepIndex": 0, "data": {"output": "Specialist says hi"}},
            ]
        }
        self.assertEqual(message_display_text(message), "Summary. Specialist says hi")
        self.assertEqual(message_display_text({"content": "legacy"}), "legacy")


if __name__ == '__main__':
    unittest.main()
