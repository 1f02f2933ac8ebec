"""
vibetrack - Envelope Extractor
Drives the decode loop and turns decoded PCM into a normalized loudness
envelope: downmix to mono, cut fixed-duration frames, RMS per frame, then
divide the whole sequence by its maximum once the stream has ended.
"""

import math
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from config import Config, DownmixRounding, PCM16_FULL_SCALE
from errors import DecodeError, DecoderReleasedError, InvalidSourceError
from logging_utils import log_event
from track_selector import AudioFormat


@dataclass(frozen=True)
class AnalysisFrame:
    """Loudness of one analysis frame"""
    loudness: float           # RMS before normalization, 0..1 after
    timestamp_ms: int         # frame_index * frame_duration_ms


@dataclass(frozen=True)
class AnalysisResult:
    """Normalized envelope plus the format it was computed from"""
    format: AudioFormat
    frame_duration_ms: int
    envelope: Tuple[float, ...] = ()
    timestamps: Tuple[int, ...] = ()

    @property
    def frame_count(self) -> int:
        return len(self.envelope)

    @property
    def duration_ms(self) -> int:
        return self.format.duration_ms

    def frames(self) -> List[AnalysisFrame]:
        return [AnalysisFrame(v, t) for v, t in zip(self.envelope, self.timestamps)]

    def to_dict(self) -> dict:
        """Result map as handed across the process boundary."""
        return {
            "sampleRate": self.format.sample_rate_hz,
            "channelCount": self.format.channel_count,
            "durationMs": self.duration_ms,
            "frameCount": self.frame_count,
            "frameDurationMs": self.frame_duration_ms,
            "mimeType": self.format.mime_type,
            "rmsValues": list(self.envelope),
            "timeStamps": list(self.timestamps),
        }


# ---------------------------------------------------------------------------
# Sample math
# ---------------------------------------------------------------------------

def frame_sample_count(sample_rate_hz: int, frame_duration_ms: int) -> int:
    """Samples per analysis frame, rounded half up."""
    return int(math.floor(sample_rate_hz * frame_duration_ms / 1000.0 + 0.5))


def downmix(samples: np.ndarray, channel_count: int,
            rounding: DownmixRounding = DownmixRounding.TRUNCATE) -> np.ndarray:
    """Average interleaved channels into one int16 mono channel.

    TRUNCATE divides toward zero like integer division on the channel sum;
    NEAREST rounds half away from zero. Trailing samples that do not make a
    whole sample-frame are dropped.
    """
    samples = np.asarray(samples, dtype=np.int16)
    if channel_count <= 1:
        return samples

    usable = (len(samples) // channel_count) * channel_count
    frames = samples[:usable].reshape(-1, channel_count).astype(np.int32)
    total = frames.sum(axis=1)

    if rounding == DownmixRounding.NEAREST:
        mono = np.sign(total) * ((np.abs(total) * 2 + channel_count) // (2 * channel_count))
    else:
        mono = np.sign(total) * (np.abs(total) // channel_count)
    return mono.astype(np.int16)


def compute_rms(samples: np.ndarray) -> float:
    """RMS of int16 samples scaled to [-1, 1]. Empty input gives 0.0."""
    if len(samples) == 0:
        return 0.0
    normalized = np.asarray(samples, dtype=np.float64) / PCM16_FULL_SCALE
    return float(np.sqrt(np.mean(normalized * normalized)))


def normalize_envelope(values) -> List[float]:
    """Divide by the maximum; an empty or all-zero sequence is divided by 1.0."""
    if len(values) == 0:
        return []
    arr = np.asarray(values, dtype=np.float64)
    max_loudness = float(arr.max())
    if max_loudness <= 0.0:
        max_loudness = 1.0
    return (arr / max_loudness).tolist()


class MonoSampleBuffer:
    """
    FIFO of int16 mono samples awaiting framing.

    Appends grow a backing array; consumed samples are skipped with a read
    cursor and only physically dropped when an append runs out of room, so
    taking a frame never shifts the remaining samples.
    """
    __slots__ = ('_data', '_start', '_end')

    def __init__(self, capacity: int = 4096):
        self._data = np.zeros(max(1, capacity), dtype=np.int16)
        self._start = 0
        self._end = 0

    def __len__(self) -> int:
        return self._end - self._start

    def append(self, samples: np.ndarray) -> None:
        count = len(samples)
        if count == 0:
            return
        if self._end + count > len(self._data):
            self._make_room(count)
        self._data[self._end:self._end + count] = samples
        self._end += count

    def take(self, count: int) -> np.ndarray:
        """Remove and return up to `count` samples from the front."""
        count = min(count, len(self))
        out = self._data[self._start:self._start + count].copy()
        self._start += count
        if self._start == self._end:
            self._start = self._end = 0
        return out

    def take_all(self) -> np.ndarray:
        return self.take(len(self))

    def _make_room(self, incoming: int) -> None:
        live = len(self)
        needed = live + incoming
        if needed <= len(self._data):
            # Compact in place
            self._data[:live] = self._data[self._start:self._end]
        else:
            grown = np.zeros(max(needed, len(self._data) * 2), dtype=np.int16)
            grown[:live] = self._data[self._start:self._end]
            self._data = grown
        self._start = 0
        self._end = live


# ---------------------------------------------------------------------------
# Decode loop
# ---------------------------------------------------------------------------

class EnvelopeExtractor:
    """
    Owns one decode loop at a time.

    analyze() is strictly sequential: each iteration feeds at most one access
    unit, then drains every decoded buffer that is ready. cancel() may be
    called from another thread; it releases the active decoder, which makes
    the loop fail with DecoderReleasedError at its next feed/drain.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config if config is not None else Config()
        self._active_decoder = None
        self._cancel_requested = False
        self._decoder_lock = threading.Lock()
        self._reset_session_stats()

    def _reset_session_stats(self) -> None:
        self._session_started_at = time.time()
        self._session_frame_count = 0
        self._session_sample_count = 0
        self._session_buffer_count = 0
        self._session_feed_stalls = 0
        self._session_rms_min: float | None = None
        self._session_rms_max: float | None = None
        self._session_rms_sum: float = 0.0

    def _update_session_stats(self, rms: float) -> None:
        self._session_frame_count += 1
        self._session_rms_sum += rms
        if self._session_rms_min is None or rms < self._session_rms_min:
            self._session_rms_min = rms
        if self._session_rms_max is None or rms > self._session_rms_max:
            self._session_rms_max = rms

    def _log_session_summary(self, fmt: AudioFormat) -> None:
        if self._session_frame_count <= 0:
            log_event("INFO", "Analysis", "No samples decoded", mime=fmt.mime_type)
            return

        elapsed_s = max(0.0, time.time() - self._session_started_at)
        rms_min = float(self._session_rms_min or 0.0)
        rms_max = float(self._session_rms_max or 0.0)
        rms_mean = self._session_rms_sum / float(self._session_frame_count)

        log_event(
            "INFO",
            "Analysis",
            "Envelope summary",
            frames=self._session_frame_count,
            samples=self._session_sample_count,
            buffers=self._session_buffer_count,
            feed_stalls=self._session_feed_stalls,
            seconds=f"{elapsed_s:.2f}",
            rms_min=f"{rms_min:.6f}",
            rms_max=f"{rms_max:.6f}",
            rms_mean=f"{rms_mean:.6f}",
        )

    def request_cancel(self) -> None:
        """Mark the next (or current) analysis for teardown as soon as its decoder is attached."""
        with self._decoder_lock:
            self._cancel_requested = True
        self.cancel()

    def clear_cancel(self) -> None:
        with self._decoder_lock:
            self._cancel_requested = False

    def cancel(self) -> bool:
        """Tear down the decoder of the running analysis. Returns False if none is running."""
        with self._decoder_lock:
            decoder = self._active_decoder
        if decoder is None:
            return False
        log_event("INFO", "Analysis", "Cancel requested, releasing decoder")
        decoder.release()
        return True

    def _attach_decoder(self, decoder) -> None:
        with self._decoder_lock:
            self._active_decoder = decoder
            cancel_now = self._cancel_requested
        if cancel_now:
            log_event("INFO", "Analysis", "Cancelled before decoding started")
            decoder.release()

    def _detach_decoder(self) -> None:
        with self._decoder_lock:
            self._active_decoder = None
            self._cancel_requested = False

    def analyze(self, source, decoder, fmt: AudioFormat,
                frame_duration_ms: Optional[int] = None) -> AnalysisResult:
        """Run the decode loop to end-of-stream and return the normalized envelope.

        `source` provides read_sample()/advance(); `decoder` provides
        try_feed()/try_drain()/idle. Neither is closed here.
        """
        if frame_duration_ms is None:
            frame_duration_ms = self.config.analysis.frame_duration_ms
        if frame_duration_ms <= 0:
            raise InvalidSourceError(f"frame duration must be positive, got {frame_duration_ms}")

        samples_per_frame = frame_sample_count(fmt.sample_rate_hz, frame_duration_ms)
        if samples_per_frame < 1:
            raise InvalidSourceError(
                f"{frame_duration_ms} ms at {fmt.sample_rate_hz} Hz is shorter than one sample"
            )

        feed_timeout_s = self.config.analysis.feed_timeout_ms / 1000.0
        drain_timeout_s = self.config.analysis.drain_timeout_ms / 1000.0
        rounding = self.config.analysis.downmix_rounding

        self._reset_session_stats()
        loudness: List[float] = []
        pending = MonoSampleBuffer(capacity=samples_per_frame * 4)

        def cut_frames() -> None:
            while len(pending) >= samples_per_frame:
                rms = compute_rms(pending.take(samples_per_frame))
                loudness.append(rms)
                self._update_session_stats(rms)

        self._attach_decoder(decoder)
        try:
            feeding_done = False
            end_of_stream = False

            while not end_of_stream:
                # Feed
                if not feeding_done:
                    unit = source.read_sample()
                    if decoder.try_feed(unit, feed_timeout_s):
                        if unit is None:
                            feeding_done = True
                        else:
                            source.advance()
                    else:
                        self._session_feed_stalls += 1

                # Drain
                timeout_s = drain_timeout_s
                while True:
                    buffer = decoder.try_drain(timeout_s)
                    if buffer is None:
                        break
                    timeout_s = 0.0
                    self._session_buffer_count += 1

                    if len(buffer.samples) > 0:
                        mono = downmix(buffer.samples, fmt.channel_count, rounding)
                        self._session_sample_count += len(mono)
                        pending.append(mono)
                        cut_frames()

                    if buffer.end_of_stream:
                        end_of_stream = True
                        break

                if feeding_done and not end_of_stream and decoder.idle:
                    break
        except DecoderReleasedError:
            log_event("WARN", "Analysis", "Decoder released mid-stream", frames=len(loudness))
            raise
        except DecodeError as e:
            log_event("ERROR", "Analysis", "Decode failed", error=e, frames=len(loudness))
            raise
        finally:
            self._detach_decoder()

        # Tail flush: final partial frame
        if len(pending) > 0:
            rms = compute_rms(pending.take_all())
            loudness.append(rms)
            self._update_session_stats(rms)

        self._log_session_summary(fmt)

        envelope = normalize_envelope(loudness)
        timestamps = tuple(i * frame_duration_ms for i in range(len(envelope)))
        return AnalysisResult(
            format=fmt,
            frame_duration_ms=frame_duration_ms,
            envelope=tuple(envelope),
            timestamps=timestamps,
        )
