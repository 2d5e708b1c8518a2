"""Tests for environment helpers."""

from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from inbox.utils.env_helper import env_list, env_none_or_str


class EnvHelperTests(unittest.TestCase):
    def test_env_none_or_str(self) -> None:
        with patch.dict(os.environ, {"COOKIE_DOMAIN": "None", "LOG_LEVEL": "debug"}):
            self.assertIsNone(env_none_or_str("COOKIE_DOMAIN"))
            self.assertEqual(env_none_or_str("LOG_LEVEL"), "debug")
            self.assertEqual(env_none_or_str("NOT_SET_ANYWHERE", "x"), "x")

    def test_env_list(self) -> None:
        with patch.dict(os.environ, {"CORS_ORIGINS": " https://a.dev, ,https://b.dev "}):
            self.assertEqual(env_list("CORS_ORIGINS"), ["https://a.dev", "https://b.dev"])

        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(env_list("CORS_ORIGINS", ["http://localhost:5173"]), ["http://localhost:5173"])


if __name__ == "__main__":
    unittest.main()
