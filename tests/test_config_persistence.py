import json
import tempfile
import unittest
from dataclasses import asdict
from pathlib import Path
from unittest import mock

from config import Config, CURRENT_CONFIG_VERSION, DownmixRounding
import config_persistence


class TestConfigPersistence(unittest.TestCase):
    def test_save_and_load_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            cfg = Config()
            cfg.analysis.frame_duration_ms = 40
            cfg.analysis.downmix_rounding = DownmixRounding.NEAREST
            cfg.haptic.amplitude_floor = 30

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                self.assertTrue(config_persistence.save_config(cfg))
                loaded = config_persistence.load_config()

            self.assertEqual(loaded.analysis.frame_duration_ms, 40)
            self.assertIs(loaded.analysis.downmix_rounding, DownmixRounding.NEAREST)
            self.assertEqual(loaded.haptic.amplitude_floor, 30)

    def test_load_default_when_missing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()
            self.assertIsInstance(loaded, Config)
            self.assertFalse(cfg_file.exists())

    def test_load_migrates_and_autosaves(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            legacy = Config()
            legacy.version = 1
            legacy_data = asdict(legacy)
            legacy_data["analysis"]["drain_timeout_ms"] = None
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump(legacy_data, f)

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertEqual(loaded.version, CURRENT_CONFIG_VERSION)
            self.assertEqual(loaded.analysis.drain_timeout_ms, 10)

            with open(cfg_file, "r", encoding="utf-8") as f:
                persisted = json.load(f)
            self.assertEqual(persisted["version"], CURRENT_CONFIG_VERSION)
            self.assertEqual(persisted["analysis"]["drain_timeout_ms"], 10)

    def test_load_invalid_json_returns_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                f.write("{invalid json")

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertIsInstance(loaded, Config)

    def test_null_section_keeps_section_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump({"version": 1, "analysis": None, "haptic": {"amplitude_floor": 12}}, f)

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file):
                loaded = config_persistence.load_config()

            self.assertEqual(loaded.analysis.frame_duration_ms, 20)
            self.assertEqual(loaded.analysis.feed_timeout_ms, 10)
            self.assertEqual(loaded.haptic.amplitude_floor, 12)
            self.assertEqual(loaded.version, CURRENT_CONFIG_VERSION)

    def test_unexpected_load_error_returns_default(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg_file = Path(tmpdir) / "config.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump({"version": 2}, f)

            with mock.patch.object(config_persistence, "get_config_file", return_value=cfg_file), \
                    mock.patch.object(config_persistence, "migrate_config", side_effect=AttributeError("broken")):
                loaded = config_persistence.load_config()

            self.assertIsInstance(loaded, Config)
            self.assertEqual(loaded.analysis.frame_duration_ms, 20)

    def test_save_failure_returns_false(self):
        cfg = Config()

        with mock.patch.object(config_persistence, "get_config_file", side_effect=OSError("boom")):
            self.assertFalse(config_persistence.save_config(cfg))

    def test_report_dir_resolution(self):
        cfg = Config()
        with tempfile.TemporaryDirectory() as tmpdir:
            with mock.patch.object(config_persistence, "get_config_dir", return_value=Path(tmpdir)):
                self.assertEqual(config_persistence.get_report_dir(cfg), Path(tmpdir) / "reports")

            cfg.report.report_dir = tmpdir
            self.assertEqual(config_persistence.get_report_dir(cfg), Path(tmpdir))


if __name__ == "__main__":
    unittest.main()
