"""
vibetrack - Analysis Worker
Runs one analysis at a time on a background thread so the caller's control
thread never blocks on decoding.
"""

import threading
from pathlib import Path
from typing import Callable, Optional, Union

from config import Config
from envelope_extractor import AnalysisResult, EnvelopeExtractor
from errors import AnalysisError
from logging_utils import log_event
import audio_analysis


class AnalysisWorker:
    """
    Background analysis runner.

    Exactly one of on_result / on_error is called per submit(), from the
    worker thread. The result is frozen, so handing it over needs no lock.
    """

    def __init__(self, config: Config,
                 on_result: Optional[Callable[[AnalysisResult], None]] = None,
                 on_error: Optional[Callable[[AnalysisError], None]] = None,
                 analyze: Callable[..., AnalysisResult] = None):
        self.config = config
        self.on_result = on_result
        self.on_error = on_error
        self._analyze = analyze if analyze is not None else audio_analysis.analyze_audio

        self.extractor = EnvelopeExtractor(config)
        self.worker_thread: Optional[threading.Thread] = None
        self.last_result: Optional[AnalysisResult] = None
        self.last_error: Optional[AnalysisError] = None

    @property
    def busy(self) -> bool:
        return self.worker_thread is not None and self.worker_thread.is_alive()

    def submit(self, path: Union[str, Path], frame_duration_ms: Optional[int] = None) -> None:
        """Start analyzing `path` in the background."""
        if self.busy:
            raise RuntimeError("An analysis is already running")

        self.last_result = None
        self.last_error = None
        self.extractor.clear_cancel()
        self.worker_thread = threading.Thread(
            target=self._run,
            args=(path, frame_duration_ms),
            name="analysis-worker",
            daemon=True,
        )
        self.worker_thread.start()
        log_event("INFO", "Worker", "Submitted", path=path)

    def cancel(self) -> bool:
        """Tear down the running decoder; the analysis then fails with DecoderReleasedError."""
        if not self.busy:
            return False
        self.extractor.request_cancel()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the worker. Returns True once no analysis is running."""
        if self.worker_thread is not None:
            self.worker_thread.join(timeout)
        return not self.busy

    def _run(self, path, frame_duration_ms) -> None:
        try:
            result = self._analyze(path, frame_duration_ms, self.config, extractor=self.extractor)
        except AnalysisError as e:
            log_event("WARN", "Worker", "Analysis failed", kind=type(e).__name__, error=e.message)
            self._fail(e)
            return
        except Exception as e:
            log_event("ERROR", "Worker", "Unexpected analysis error", kind=type(e).__name__, error=e)
            wrapped = AnalysisError(str(e) or type(e).__name__)
            wrapped.__cause__ = e
            self._fail(wrapped)
            return

        self.last_result = result
        if self.on_result:
            self.on_result(result)

    def _fail(self, error: AnalysisError) -> None:
        self.last_error = error
        if self.on_error:
            self.on_error(error)
