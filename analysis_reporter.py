import csv
import json
import time
from pathlib import Path


class AnalysisReporter:
    """Persists analysis results as JSON (full result map) and CSV (one row per frame)."""

    def __init__(self, report_dir: Path):
        self.report_dir = Path(report_dir)
        self.report_dir.mkdir(parents=True, exist_ok=True)

    def paths_for(self, source_name: str) -> tuple[Path, Path]:
        stem = Path(source_name).stem or "analysis"
        return (
            self.report_dir / f"{stem}.envelope.json",
            self.report_dir / f"{stem}.envelope.csv",
        )

    def _to_builtin(self, value):
        if isinstance(value, dict):
            return {str(k): self._to_builtin(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._to_builtin(v) for v in value]

        tolist = getattr(value, "tolist", None)
        if callable(tolist):
            return self._to_builtin(tolist())

        item = getattr(value, "item", None)
        if callable(item):
            return self._to_builtin(item())

        return value

    def save_result(self, source_name: str, result) -> tuple[Path, Path]:
        json_path, csv_path = self.paths_for(source_name)

        payload = self._to_builtin(result.to_dict())
        payload["source"] = str(source_name)
        payload["generated_at"] = time.time()

        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

        with open(csv_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(["index", "timestamp_ms", "loudness"])
            for i, frame in enumerate(result.frames()):
                writer.writerow([i, int(frame.timestamp_ms), f"{float(frame.loudness):.6f}"])

        return json_path, csv_path
