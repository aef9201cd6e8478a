"""Tests for the ordered message list and streamed updates."""

from __future__ import annotations

import unittest

from watchai_chat.models import ChatMessage, PendingId, PersistedId, UserFile
from watchai_chat.reconciler import UIStateReconciler
from watchai_chat.schemas import ChunkEvent, ErrorEvent


class UIStateReconcilerTests(unittest.TestCase):
    """Validate placeholder, streaming and finalisation rules."""

    def setUp(self) -> None:
        self.reconciler = UIStateReconciler()
        self.changes = 0

        def _count() -> None:
            self.changes += 1

        self.reconciler.on_change(_count)

    def test_placeholders_are_adjacent_and_pending(self) -> None:
        file = UserFile(id="f1", filename="a.pdf")
        turn = self.reconciler.append_placeholders("Hello", [file])
        user, assistant = self.reconciler.messages
        self.assertIsInstance(turn.user_id, PendingId)
        self.assertEqual(user.id, turn.user_id)
        self.assertEqual(user.content, "Hello")
        self.assertEqual(user.attachments, [file])
        self.assertEqual(assistant.id, turn.assistant_id)
        self.assertEqual(assistant.content, "")
        self.assertTrue(assistant.is_streaming)
        self.assertTrue(assistant.is_pending)
        self.assertTrue(self.reconciler.is_turn_active)
        self.assertNotEqual(turn.user_id, turn.assistant_id)

    def test_second_placeholder_pair_rejected_while_streaming(self) -> None:
        self.reconciler.append_placeholders("one")
        with self.assertRaises(RuntimeError):
            self.reconciler.append_placeholders("two")
        self.assertEqual(len(self.reconciler.messages), 2)

    def test_chunks_then_finalize(self) -> None:
        turn = self.reconciler.append_placeholders("Hello")
        self.assertTrue(self.reconciler.apply_event(turn.assistant_id, ChunkEvent(content="Hi")))
        self.reconciler.apply_event(turn.assistant_id, ChunkEvent(content="!"))
        self.reconciler.finalize(turn.assistant_id, model="gemini-2.0-flash")
        assistant = self.reconciler.find(turn.assistant_id)
        assert assistant is not None
        self.assertEqual(assistant.content, "Hi!")
        self.assertFalse(assistant.is_streaming)
        self.assertEqual(assistant.model, "gemini-2.0-flash")
        self.assertFalse(self.reconciler.is_turn_active)

    def test_error_event_finalises_and_ignores_later_chunks(self) -> None:
        turn = self.reconciler.append_placeholders("Hello")
        self.reconciler.apply_event(turn.assistant_id, ChunkEvent(content="par"))
        still = self.reconciler.apply_event(
            turn.assistant_id, ErrorEvent(error="rate limited")
        )
        self.assertFalse(still)
        self.assertFalse(self.reconciler.apply_event(turn.assistant_id, ChunkEvent(content="x")))
        assistant = self.reconciler.find(turn.assistant_id)
        assert assistant is not None
        self.assertEqual(assistant.content, "rate limited")
        self.assertTrue(assistant.is_error)
        self.assertFalse(assistant.is_streaming)

    def test_fail_streaming_uses_given_text(self) -> None:
        turn = self.reconciler.append_placeholders("Hello")
        self.reconciler.apply_event(turn.assistant_id, ChunkEvent(content="partial"))
        self.reconciler.fail_streaming("failed")
        assistant = self.reconciler.find(turn.assistant_id)
        assert assistant is not None
        self.assertEqual(assistant.content, "failed")
        self.assertTrue(assistant.is_error)
        self.assertFalse(self.reconciler.is_turn_active)

    def test_interrupt_keeps_partial_content(self) -> None:
        turn = self.reconciler.append_placeholders("Hello")
        self.reconciler.apply_event(turn.assistant_id, ChunkEvent(content="partial"))
        self.reconciler.interrupt_streaming("(stopped)")
        assistant = self.reconciler.find(turn.assistant_id)
        assert assistant is not None
        self.assertEqual(assistant.content, "partial\n\n(stopped)")
        self.assertFalse(assistant.is_error)

    def test_existing_messages_keep_their_order(self) -> None:
        history = [
            ChatMessage(id=PersistedId("1"), role="user", content="a"),
            ChatMessage(id=PersistedId("2"), role="assistant", content="b"),
        ]
        self.reconciler.replace_history(history)
        turn = self.reconciler.append_placeholders("c")
        self.reconciler.apply_event(turn.assistant_id, ChunkEvent(content="d"))
        ids = [m.id for m in self.reconciler.messages]
        self.assertEqual(ids[:2], [PersistedId("1"), PersistedId("2")])
        self.assertEqual(ids[2:], [turn.user_id, turn.assistant_id])

    def test_clear_and_listeners(self) -> None:
        self.reconciler.append_placeholders("Hello")
        before = self.changes
        self.reconciler.clear()
        self.assertEqual(self.reconciler.messages, [])
        self.assertEqual(self.changes, before + 1)


if __name__ == "__main__":
    unittest.main()
