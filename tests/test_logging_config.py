import logging
import shutil
import unittest
from pathlib import Path

from loguru import logger

from portfolio_chat.logging_config import setup_logging

_ARTIFACTS = Path(".test-artifacts") / "logging"


class SetupLoggingTests(unittest.TestCase):
    def tearDown(self) -> None:
        logger.remove()
        logging.getLogger().handlers = []
        shutil.rmtree(_ARTIFACTS, ignore_errors=True)

    def test_default_is_console_only(self) -> None:
        self.assertEqual(["console (stderr, INFO)"], setup_logging())

    def test_per_consumer_level_and_unknown_types(self) -> None:
        log_path = str(_ARTIFACTS / "app.log")

        descriptions = setup_logging("INFO", [
            {"type": "console"},
            {"type": "file", "path": log_path, "level": "DEBUG"},
            {"type": "syslog"},
            {"type": "json", "stream": "stderr", "level": "WARNING"},
        ])

        self.assertEqual(
            ["console (stderr, INFO)", f"file ({log_path}, DEBUG, rotate at 10 MB)", "json (stderr, WARNING)"],
            descriptions,
        )

    def test_file_consumer_writes_records(self) -> None:
        log_path = _ARTIFACTS / "records.log"
        setup_logging("DEBUG", [{"type": "file", "path": str(log_path)}])

        logger.info("Loaded 3 entities")
        logger.complete()
        logger.remove()

        self.assertIn("Loaded 3 entities", log_path.read_text(encoding="utf-8"))

    def test_stdlib_records_reach_loguru(self) -> None:
        log_path = _ARTIFACTS / "stdlib.log"
        setup_logging("INFO", [{"type": "file", "path": str(log_path)}])

        logging.getLogger("uvicorn.error").info("Application startup complete.")
        logging.getLogger("httpx").info("HTTP Request: GET https://api.github.com")
        logger.complete()
        logger.remove()

        text = log_path.read_text(encoding="utf-8")
        self.assertIn("Application startup complete.", text)
        self.assertNotIn("HTTP Request", text)


if __name__ == "__main__":
    unittest.main()
