"""Tests for top-level package lazy exports."""

from __future__ import annotations

import unittest

import proxychat


class PackageExportTests(unittest.TestCase):
    """Ensure __getattr__ and exported symbols behave as expected."""

    def test_lazy_exports_resolve_known_symbols(self) -> None:
        self.assertTrue(callable(proxychat.load_config))
        self.assertTrue(callable(proxychat.ensure_config_dir))
        self.assertTrue(callable(proxychat.parse_reply))
        self.assertIsNotNone(proxychat.ProxyChatApp)
        self.assertIsNotNone(proxychat.ChatServiceClient)
        self.assertIsNotNone(proxychat.ConversationStore)
        self.assertIsNotNone(proxychat.SessionPersistence)
        self.assertIsNotNone(proxychat.DispatchPipeline)
        self.assertIsNotNone(proxychat.DispatchOutcome)

    def test_exception_exports_share_hierarchy(self) -> None:
        self.assertTrue(issubclass(proxychat.ServiceError, proxychat.ProxyChatError))
        self.assertTrue(issubclass(proxychat.TransportError, proxychat.ServiceError))
        self.assertTrue(issubclass(proxychat.ApplicationError, proxychat.ServiceError))
        self.assertTrue(issubclass(proxychat.AttachmentError, proxychat.ProxyChatError))
        self.assertTrue(
            issubclass(proxychat.ConfigValidationError, proxychat.ProxyChatError)
        )

    def test_every_name_in_all_resolves(self) -> None:
        for name in proxychat.__all__:
            self.assertIsNotNone(getattr(proxychat, name), name)

    def test_unknown_symbol_raises_attribute_error(self) -> None:
        with self.assertRaises(AttributeError):
            getattr(proxychat, "THIS_DOES_NOT_EXIST")


if __name__ == "__main__":
    unittest.main()
