import logging
import unittest
from unittest.mock import patch

from duet.engine.utils.logging import configure_logging, get_logger


class TestConfigureLogging(unittest.TestCase):
    def tearDown(self):
        for name in ("duet", "httpx", "httpcore"):
            logging.getLogger(name).setLevel(logging.NOTSET)

    def test_debug_levels(self):
        # Verifies debug mode opens up both Duet and HTTP client loggers.
        with patch("duet.engine.utils.logging.logging.basicConfig") as basic_config:
            configure_logging(debug=True)

        self.assertEqual(basic_config.call_args.kwargs["level"], logging.DEBUG)
        self.assertEqual(get_logger("duet").level, logging.DEBUG)
        self.assertEqual(logging.getLogger("httpx").level, logging.DEBUG)

    def test_default_levels(self):
        # Verifies normal mode logs Duet at INFO and silences HTTP client chatter.
        with patch("duet.engine.utils.logging.logging.basicConfig"):
            configure_logging()

        self.assertEqual(get_logger("duet").level, logging.INFO)
        self.assertEqual(logging.getLogger("httpcore").level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()
