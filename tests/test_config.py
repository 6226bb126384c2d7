import os
import tempfile
import unittest
from unittest import mock

from indi_pointing.config import DEFAULT_CONFIG, load_config


class TestConfig(unittest.TestCase):
    """Loading and validating the YAML configuration."""

    def setUp(self):
        patcher = mock.patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        for key in ("INDI_POINTING_CONFIG", "SLEW_RATE", "POLL_INTERVAL"):
            os.environ.pop(key, None)
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def write(self, text):
        path = os.path.join(self.tmpdir.name, "config.yaml")
        with open(path, "w") as f:
            f.write(text)
        return path

    def test_defaults(self):
        with mock.patch("indi_pointing.config.CONFIG_PATH", "/nonexistent/config.yaml"):
            config = load_config()
        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertIsNot(config["driver"], DEFAULT_CONFIG["driver"])

    def test_file_overrides(self):
        path = self.write(
            "observer:\n  latitude: -33.9\ndriver:\n  slew_rate: 1.5\n"
        )
        config = load_config(path)
        self.assertEqual(config["observer"]["latitude"], -33.9)
        self.assertEqual(config["observer"]["longitude"], 19.7925)
        self.assertEqual(config["driver"]["slew_rate"], 1.5)
        self.assertEqual(config["driver"]["poll_interval"], 1.0)

    def test_env_path_and_overrides(self):
        os.environ["INDI_POINTING_CONFIG"] = self.write("driver:\n  goto_mode: altaz\n")
        os.environ["SLEW_RATE"] = "6"
        os.environ["POLL_INTERVAL"] = "0.25"
        config = load_config()
        self.assertEqual(config["driver"]["goto_mode"], "altaz")
        self.assertEqual(config["driver"]["slew_rate"], 6.0)
        self.assertEqual(config["driver"]["poll_interval"], 0.25)

    def test_missing_explicit_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config(os.path.join(self.tmpdir.name, "missing.yaml"))

    def test_invalid_values(self):
        for text in (
            "observer:\n  latitude: 95\n",
            "driver:\n  slew_rate: 0\n",
            "driver:\n  unpark_policy: sideways\n",
            "- not\n- a mapping\n",
        ):
            with self.assertRaises(ValueError):
                load_config(self.write(text))


if __name__ == "__main__":
    unittest.main()
