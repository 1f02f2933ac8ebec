import csv
import json
import tempfile
import unittest
from pathlib import Path

import numpy as np

from analysis_reporter import AnalysisReporter
from envelope_extractor import AnalysisResult
from track_selector import AudioFormat


class TestAnalysisReporter(unittest.TestCase):
    def test_save_result_writes_json_and_csv(self):
        fmt = AudioFormat(sample_rate_hz=16000, channel_count=2, duration_micros=60_000, mime_type="audio/wav")
        result = AnalysisResult(fmt, 20, (0.25, 1.0, 0.0), (0, 20, 40))

        with tempfile.TemporaryDirectory() as tmp:
            reporter = AnalysisReporter(Path(tmp) / "reports")
            json_path, csv_path = reporter.save_result("/music/take one.wav", result)

            self.assertEqual(json_path.name, "take one.envelope.json")
            self.assertEqual(csv_path.name, "take one.envelope.csv")

            with open(json_path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            with open(csv_path, "r", encoding="utf-8", newline="") as f:
                rows = list(csv.reader(f))

        self.assertEqual(payload["sampleRate"], 16000)
        self.assertEqual(payload["channelCount"], 2)
        self.assertEqual(payload["durationMs"], 60)
        self.assertEqual(payload["frameCount"], 3)
        self.assertEqual(payload["rmsValues"], [0.25, 1.0, 0.0])
        self.assertEqual(payload["timeStamps"], [0, 20, 40])
        self.assertEqual(payload["source"], "/music/take one.wav")
        self.assertIn("generated_at", payload)

        self.assertEqual(rows[0], ["index", "timestamp_ms", "loudness"])
        self.assertEqual(rows[1:], [
            ["0", "0", "0.250000"],
            ["1", "20", "1.000000"],
            ["2", "40", "0.000000"],
        ])

    def test_numpy_values_are_converted(self):
        with tempfile.TemporaryDirectory() as tmp:
            reporter = AnalysisReporter(Path(tmp))
            converted = reporter._to_builtin({"a": np.float64(0.5), "b": np.arange(3), "c": (np.int16(2),)})

        self.assertEqual(converted, {"a": 0.5, "b": [0, 1, 2], "c": [2]})
        self.assertIsInstance(converted["a"], float)

    def test_unnamed_source_falls_back(self):
        with tempfile.TemporaryDirectory() as tmp:
            reporter = AnalysisReporter(Path(tmp))
            json_path, _ = reporter.paths_for("")
        self.assertEqual(json_path.name, "analysis.envelope.json")


if __name__ == "__main__":
    unittest.main()
