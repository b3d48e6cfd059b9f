"""
Unit tests for the logging utilities.
"""

import unittest
from datetime import datetime
from unittest.mock import patch

from ffbatch.utils import logging as ffbatch_logging
from ffbatch.utils.logging import (
    format_duration,
    format_log_line,
    format_size,
    get_logger,
    set_debug_mode,
    set_log_level,
    set_quiet_mode,
)


class TestLogger(unittest.TestCase):
    """Test tags, module prefixes and debug/quiet filtering."""

    def setUp(self):
        self._debug = ffbatch_logging._DEBUG_ENABLED
        self._quiet = ffbatch_logging._QUIET_MODE
        self._level = ffbatch_logging._LOG_LEVEL
        self.logger = get_logger("dispatcher")

    def tearDown(self):
        set_debug_mode(self._debug)
        set_quiet_mode(self._quiet)
        set_log_level(self._level)

    @patch("ffbatch.utils.logging.tqdm.write")
    def test_info_format(self, mock_write):
        set_quiet_mode(False)
        self.logger.info("hello")
        mock_write.assert_called_once_with("[INFO] [dispatcher] hello")

    @patch("ffbatch.utils.logging.tqdm.write")
    def test_domain_tag(self, mock_write):
        set_quiet_mode(False)
        self.logger.vmaf("score 93.1")
        mock_write.assert_called_once_with("[VMAF] [dispatcher] score 93.1")

    @patch("ffbatch.utils.logging.tqdm.write")
    def test_debug_only_when_enabled(self, mock_write):
        set_quiet_mode(False)
        set_debug_mode(False)
        self.logger.debug("hidden")
        self.logger.dispatch("hidden")
        mock_write.assert_not_called()

        set_debug_mode(True)
        self.logger.dispatch("shown")
        mock_write.assert_called_once_with("[DISPATCH] [dispatcher] shown")

    @patch("ffbatch.utils.logging.tqdm.write")
    def test_log_level_filters_lower_levels(self, mock_write):
        set_quiet_mode(False)
        set_log_level("warn")
        self.logger.info("hidden")
        self.logger.search("hidden")
        self.logger.error("broken")
        mock_write.assert_called_once_with("[ERROR] [dispatcher] broken")

    @patch("ffbatch.utils.logging.tqdm.write")
    def test_quiet_mode_keeps_warnings(self, mock_write):
        set_quiet_mode(True)
        self.logger.info("hidden")
        self.logger.warn("careful")
        mock_write.assert_called_once_with("[WARN] [dispatcher] careful")


class TestFormatting(unittest.TestCase):

    def test_format_log_line(self):
        when = datetime(2024, 1, 2, 14, 2, 11, 42000)
        self.assertEqual(
            format_log_line("Process Encoder/Log", "Process exited with code 0", when),
            "[14:02:11.042] [Process Encoder/Log] Process exited with code 0\n",
        )

    def test_format_duration(self):
        self.assertEqual(format_duration(9.5), "9.5s")
        self.assertEqual(format_duration(90), "1.5m")
        self.assertEqual(format_duration(3 * 3600 + 15 * 60), "3h 15m")

    def test_format_size(self):
        self.assertEqual(format_size(512), "512.0B")
        self.assertEqual(format_size(1536), "1.5KB")


if __name__ == '__main__':
    unittest.main()
