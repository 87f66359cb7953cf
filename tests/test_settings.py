from __future__ import annotations

import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from settings import baseline_settings, load_settings, save_settings  # noqa: E402


class SettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "settings.json"
        patcher = mock.patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        os.environ.pop("DUTY_ROSTER_PTO_BALANCES", None)
        os.environ.pop("DUTY_ROSTER_LOG_LEVEL", None)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_file_gives_baseline(self) -> None:
        self.assertEqual(load_settings(self.path), baseline_settings())

    def test_save_keeps_known_keys_only(self) -> None:
        saved = save_settings({"pto_balances_enabled": False, "colour": "blue"}, self.path)

        self.assertFalse(saved["pto_balances_enabled"])
        self.assertNotIn("colour", json.loads(self.path.read_text(encoding="utf-8")))

    def test_bad_values_fall_back(self) -> None:
        self.path.write_text(json.dumps({"max_step_attempts": "many", "extra_positions": "K9"}), encoding="utf-8")

        data = load_settings(self.path)

        self.assertEqual(data["max_step_attempts"], 3)
        self.assertEqual(data["extra_positions"], [])

    def test_unreadable_file_is_ignored(self) -> None:
        self.path.write_text("[1, 2", encoding="utf-8")

        with self.assertLogs("settings", level="WARNING"):
            data = load_settings(self.path)

        self.assertEqual(data, baseline_settings())

    def test_environment_overrides_file(self) -> None:
        save_settings({"pto_balances_enabled": True, "log_level": "INFO"}, self.path)
        os.environ["DUTY_ROSTER_PTO_BALANCES"] = "off"
        os.environ["DUTY_ROSTER_LOG_LEVEL"] = "debug"

        data = load_settings(self.path)

        self.assertFalse(data["pto_balances_enabled"])
        self.assertEqual(data["log_level"], "DEBUG")


if __name__ == "__main__":
    unittest.main()
