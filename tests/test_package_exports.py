"""Tests for top-level package lazy exports."""

from __future__ import annotations

import unittest

import watchai_chat


class PackageExportTests(unittest.TestCase):
    """Ensure __getattr__ and exported symbols behave as expected."""

    def test_lazy_exports_resolve_known_symbols(self) -> None:
        self.assertTrue(callable(watchai_chat.load_config))
        self.assertTrue(callable(watchai_chat.ensure_config_dir))
        self.assertIsNotNone(watchai_chat.ChatPipeline)
        self.assertIsNotNone(watchai_chat.TurnOutcome)
        self.assertIsNotNone(watchai_chat.WatchAIClient)
        self.assertIsNotNone(watchai_chat.QuotaGate)
        self.assertIsNotNone(watchai_chat.ConversationCoordinator)
        self.assertIsNotNone(watchai_chat.NavigationOrigin)
        self.assertIsNotNone(watchai_chat.AttachmentUploadManager)
        self.assertIsNotNone(watchai_chat.UIStateReconciler)
        self.assertIsNotNone(watchai_chat.MessageStreamDecoder)
        self.assertIsNotNone(watchai_chat.StreamAccumulator)
        self.assertIsNotNone(watchai_chat.TurnStateMachine)
        self.assertIsNotNone(watchai_chat.WatchAIChatError)
        self.assertIsNotNone(watchai_chat.QuotaExceededError)

    def test_all_names_resolve(self) -> None:
        for name in watchai_chat.__all__:
            with self.subTest(name=name):
                self.assertIsNotNone(getattr(watchai_chat, name))

    def test_unknown_symbol_raises_attribute_error(self) -> None:
        with self.assertRaises(AttributeError):
            getattr(watchai_chat, "THIS_DOES_NOT_EXIST")


if __name__ == "__main__":
    unittest.main()
