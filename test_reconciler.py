import json
import sys
import os
import unittest

# Add the project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '.')))

from lean_canvas.canvas import get_initial_canvas
from lean_canvas.changes import parse_changes, ChangeDescriptor
from lean_canvas.reconciler import Reconciler, is_step_complete, step_key


def tool_step(step_index, output, status="success"):
    return {
        "type": "data-network",
        "stepIndex": step_index,
        "data": {"name": "canvas_add_item", "status": status, "output": output},
    }


def assistant(message_id, *parts):
    return {"id": message_id, "role": "assistant", "parts": list(parts)}


def add_output(section_id, value):
    return json.dumps({
        "changes": [{"type": "add", "sectionId": section_id, "value": value, "timestamp": 1}],
        "message": "Added new item",
    })


class TestReconciler(unittest.TestCase):

    def setUp(self):
        self.reconciler = Reconciler()
        self.state = get_initial_canvas()

    def test_applies_each_step_once(self):
        messages = [assistant("m1", tool_step(0, add_output("solution", "Auto-sync")))]

        state = self.reconciler.reconcile(messages, self.state)
        self.assertEqual(state["solution"]["items"], ["Auto-sync"])

        # Same snapshot observed again on the next stream chunk.
        again = self.reconciler.reconcile(messages, state)
        self.assertIs(again, state)
        self.assertEqual(again["solution"]["items"], ["Auto-sync"])
        self.assertTrue(self.reconciler.has_processed("m1", 0))

    def test_running_step_is_applied_when_it_completes(self):
        running = [assistant("m1", tool_step(0, None, status="running"))]
        state = self.reconciler.reconcile(running, self.state)
        self.assertIs(state, self.state)
        self.assertFalse(self.reconciler.has_processed("m1", 0))

        done = [assistant("m1", tool_step(0, add_output("channels", "Reddit")))]
        state = self.reconciler.reconcile(done, state)
        self.assertEqual(state["channels"]["items"], ["Reddit"])

    def test_malformed_output_records_step(self):
        messages = [assistant("m1", tool_step(0, "not json"))]
        state = self.reconciler.reconcile(messages, self.state)
        self.assertIs(state, self.state)
        self.assertIn(step_key("m1", 0), self.reconciler.applied)

    def test_steps_across_messages_apply_in_order(self):
        messages = [
            {"id": "u1", "role": "user", "parts": [{"type": "text", "text": "hi"}]},
            assistant("m1", tool_step(0, add_output("solution", "A")), tool_step(1, add_output("solution", "B"))),
            assistant("m2", tool_step(0, add_output("solution", "C"))),
        ]
        state = self.reconciler.reconcile(messages, self.state)
        self.assertEqual(state["solution"]["items"], ["A", "B", "C"])
        self.assertEqual(len(self.reconciler.pending_changes), 3)

    def test_specialist_text_output_yields_no_changes(self):
        messages = [assistant("m1", tool_step(0, "- Target indie studios\n- Interview 5 founders"))]
        state = self.reconciler.reconcile(messages, self.state)
        self.assertIs(state, self.state)
        self.assertTrue(self.reconciler.has_processed("m1", 0))

    def test_mark_processed_skips_restored_steps(self):
        messages = [assistant("m1", tool_step(0, add_output("solution", "Old")))]
        self.reconciler.mark_processed(messages)
        state = self.reconciler.reconcile(messages, self.state)
        self.assertIs(state, self.state)

    def test_reset_forgets_ledger(self):
        messages = [assistant("m1", tool_step(0, add_output("solution", "A")))]
        self.reconciler.reconcile(messages, self.state)
        self.reconciler.reset()
        self.assertFalse(self.reconciler.has_processed("m1", 0))
        self.assertEqual(self.reconciler.pending_changes, [])

    def test_step_completion_rules(self):
        self.assertTrue(is_step_complete(tool_step(0, None, status="success")))
        self.assertTrue(is_step_complete(tool_step(0, "output", status="running")))
        self.assertFalse(is_step_complete(tool_step(0, "", status="running")))
        self.assertTrue(is_step_complete({"type": "tool-canvas_add_item", "state": "output-available"}))


class TestChangeParsing(unittest.TestCase):

    def test_parses_json_string(self):
        changes = parse_changes(add_output("problem", "Churn"))
        self.assertEqual(len(changes), 1)
        self.assertEqual(changes[0].section_id, "problem")
        self.assertEqual(changes[0].value, "Churn")

    def test_parses_nested_result(self):
        payload = {"result": {"changes": [{"type": "remove", "sectionId": "channels", "index": 0}]}}
        changes = parse_changes(payload)
        self.assertEqual([c.type for c in changes], ["remove"])

    def test_malformed_payloads_yield_nothing(self):
        self.assertEqual(parse_changes(None), [])
        self.assertEqual(parse_changes("not json"), [])
        self.assertEqual(parse_changes(json.dumps({"changes": "nope"})), [])
        self.assertEqual(parse_changes(json.dumps(["a", "b"])), [])

    def test_invalid_entries_are_skipped(self):
        payload = {
            "changes": [
                {"type": "update", "sectionId": "solution", "value": "missing index"},
                {"type": "explode", "sectionId": "solution"},
                {"type": "add", "sectionId": "solution", "value": "ok"},
            ]
        }
        changes = parse_changes(payload)
        self.assertEqual(len(changes), 1)
        self.assertEqual(changes[0].value, "ok")

    def test_payload_uses_wire_names(self):
        change = ChangeDescriptor(type="add", section_id="problem", subsection_title="Existing Alternatives", value="Excel")
        payload = change.to_payload()
        self.assertEqual(payload["sectionId"], "problem")
        self.assertEqual(payload["subsectionTitle"], "Existing Alternatives")
        self.assertNotIn("index", payload)
        self.assertIsInstance(payload["timestamp"], int)


if __name__ == '__main__':
    unittest.main()
