from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from touhou_watch.config import CONFIG_ENV_VAR


class LauncherTests(unittest.TestCase):
    def setUp(self) -> None:
        try:
            from touhou_watch import launcher
        except Exception as exc:  # pragma: no cover
            self.skipTest(f"uvicorn is not importable in this environment: {exc}")
            return
        self.launcher = launcher

    def test_config_values_reach_uvicorn(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "watch.json"
            path.write_text(json.dumps({"host": "0.0.0.0", "port": 8123, "log_level": "warning"}), encoding="utf-8")
            with patch.dict(os.environ, {CONFIG_ENV_VAR: ""}), patch.object(self.launcher.uvicorn, "run") as run:
                code = self.launcher.main(["--config", str(path), "--port", "9001"])
                self.assertEqual(os.environ[CONFIG_ENV_VAR], str(path.resolve()))

        self.assertEqual(code, 0)
        _, kwargs = run.call_args
        self.assertEqual((kwargs["host"], kwargs["port"], kwargs["log_level"]), ("0.0.0.0", 9001, "warning"))

    def test_bad_config_exits(self) -> None:
        with patch.object(self.launcher.uvicorn, "run") as run:
            with self.assertRaises(SystemExit):
                with patch("sys.stderr"):
                    self.launcher.main(["--config", "/nonexistent/watch.json"])
        run.assert_not_called()


if __name__ == "__main__":
    unittest.main()
