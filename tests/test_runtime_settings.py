import os
import unittest
from unittest.mock import patch

from highscore_node.config.runtime import RuntimeSettings


class TestRuntimeSettings(unittest.TestCase):
    def test_default_rate_limit_window_and_ttl(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = RuntimeSettings.from_env()
        self.assertEqual(settings.rate_limit_window_seconds, 30)
        self.assertEqual(settings.rate_limit_ttl_seconds, 60)
        self.assertEqual(settings.rate_limit_backend, "redis")

    def test_default_slot_layout(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = RuntimeSettings.from_env()
        self.assertEqual(settings.data_path, "_data/highscore.json")
        self.assertEqual(settings.base_branch, "main")
        self.assertEqual(settings.proposal_branch, "highscore-update")
        self.assertEqual(settings.dispatch_event_type, "update-score")
        self.assertEqual(settings.arbitration_max_attempts, 8)

    def test_dispatch_timeout_accepts_subsecond_values(self):
        with patch.dict(os.environ, {"DISPATCH_TIMEOUT_SECONDS": "0.5"}):
            settings = RuntimeSettings.from_env()
        self.assertEqual(settings.dispatch_timeout_seconds, 0.5)

    def test_client_address_headers_are_lowercased(self):
        with patch.dict(os.environ, {"CLIENT_ADDRESS_HEADERS": "X-Real-IP, X-Forwarded-For,"}):
            settings = RuntimeSettings.from_env()
        self.assertEqual(settings.client_address_headers, ("x-real-ip", "x-forwarded-for"))

    def test_token_is_not_in_repr(self):
        with patch.dict(os.environ, {"GITHUB_TOKEN": "ghp_secret"}):
            settings = RuntimeSettings.from_env()
        self.assertEqual(settings.github_token, "ghp_secret")
        self.assertNotIn("ghp_secret", repr(settings))


if __name__ == "__main__":
    unittest.main()
