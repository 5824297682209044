import sys
import tempfile
import os
import unittest
from pathlib import Path
from unittest import mock

import yaml

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from visionmcp.config import AppConfig, app_config, load_config, save_config


class TestConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "visionmcp" / "config.yml"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_file_written_with_defaults(self) -> None:
        cfg = load_config(self.path)
        self.assertTrue(self.path.exists())
        self.assertEqual(cfg["output_root"], "output")
        self.assertEqual(cfg["predict_path"], "/api/predict/")
        self.assertEqual(cfg["fn_index"], 0)

    def test_invalid_values_fall_back(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(
            yaml.safe_dump({
                "endpoint_url": "gpu-box:7589",
                "request_timeout": -5,
                "fn_index": "first",
                "log_level": "chatty",
                "output_root": "",
                "unknown_key": 1,
            }),
            encoding="utf-8",
        )
        cfg = load_config(self.path)
        defaults = AppConfig()
        self.assertEqual(cfg["endpoint_url"], defaults.endpoint_url)
        self.assertEqual(cfg["request_timeout"], defaults.request_timeout)
        self.assertEqual(cfg["fn_index"], 0)
        self.assertEqual(cfg["log_level"], "INFO")
        self.assertEqual(cfg["output_root"], "output")
        self.assertNotIn("unknown_key", cfg)

    def test_valid_values_kept(self) -> None:
        save_config(
            {"endpoint_url": "https://gpu.lan:7589", "request_timeout": 30, "log_level": "debug", "fn_index": 3},
            self.path,
        )
        cfg = app_config(self.path)
        self.assertEqual(cfg.endpoint_url, "https://gpu.lan:7589")
        self.assertEqual(cfg.request_timeout, 30.0)
        self.assertEqual(cfg.log_level, "DEBUG")
        self.assertEqual(cfg.fn_index, 3)

    def test_non_mapping_file(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("- just\n- a list\n", encoding="utf-8")
        cfg = load_config(self.path)
        self.assertEqual(cfg["output_root"], "output")

    def test_endpoint_env_beats_saved_file(self) -> None:
        app_config(self.path)
        with mock.patch.dict(os.environ, {"VISION_MCP_ENDPOINT": "http://gpu:7589"}):
            self.assertEqual(app_config(self.path).endpoint_url, "http://gpu:7589")
        saved = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        self.assertEqual(saved["endpoint_url"], AppConfig().endpoint_url)

    def test_invalid_endpoint_env_ignored(self) -> None:
        save_config({"endpoint_url": "http://saved:7589"}, self.path)
        with mock.patch.dict(os.environ, {"VISION_MCP_ENDPOINT": "gpu:7589"}):
            self.assertEqual(app_config(self.path).endpoint_url, "http://saved:7589")
