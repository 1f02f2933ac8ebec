import unittest

from logging_utils import DEFAULT_TAG, LOGGER_NAME, get_log_level, log_event, set_log_level


class TestLogEvent(unittest.TestCase):
    def tearDown(self):
        set_log_level("INFO")

    def test_fields_and_tag(self):
        with self.assertLogs(LOGGER_NAME, level="INFO") as captured:
            log_event("INFO", "Decoder", "Configured", mime="audio/wav", slots=4)

        record = captured.records[0]
        self.assertEqual(record.tag, "Decoder")
        self.assertEqual(record.getMessage(), "Configured | mime=audio/wav slots=4")

    def test_warn_alias(self):
        with self.assertLogs(LOGGER_NAME, level="INFO") as captured:
            log_event("WARN", "Worker", "Analysis failed")
        self.assertEqual(captured.records[0].levelname, "WARNING")

    def test_empty_tag_uses_default(self):
        with self.assertLogs(LOGGER_NAME, level="INFO") as captured:
            log_event("INFO", "", "Starting")
        self.assertEqual(captured.records[0].tag, DEFAULT_TAG)
        self.assertEqual(DEFAULT_TAG, "Analysis")

    def test_set_log_level(self):
        set_log_level("warn")
        self.assertEqual(get_log_level(), "WARNING")
        set_log_level("nonsense")
        self.assertEqual(get_log_level(), "INFO")
        set_log_level(None)
        self.assertEqual(get_log_level(), "INFO")


if __name__ == "__main__":
    unittest.main()
