"""
vibetrack - PCM Decoder
Push/pull decoder service with bounded input and output queues.

A background worker turns access units into PcmBuffers. Callers push with
try_feed() and pull with try_drain(); both wait at most the given timeout,
so a full input queue is back-pressure and an empty output queue just means
"nothing ready yet".
"""

import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import numpy as np
import soundfile as sf

from errors import DecodeError, DecoderReleasedError
from logging_utils import log_event
from media_source import AccessUnit, mime_type_for_format
from track_selector import AudioFormat

RAW_PCM_MIME = "audio/raw"


@dataclass
class PcmBuffer:
    """Decoded interleaved int16 samples from one decoder pull"""
    samples: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int16))
    presentation_time_us: int = 0
    end_of_stream: bool = False


# Queue markers
_END_OF_STREAM = object()
_RELEASED = object()


class PcmDecoder:
    """
    Decoder for packed little-endian int16 access units.

    The worker thread belongs to the decoder service; the decode loop that
    feeds and drains it stays single-threaded.
    """

    def __init__(self, fmt: AudioFormat, input_slots: int = 4, output_slots: int = 4):
        self.format = fmt
        self.input_queue: queue.Queue = queue.Queue(maxsize=max(1, input_slots))
        self.output_queue: queue.Queue = queue.Queue(maxsize=max(1, output_slots))
        self._frame_bytes = 2 * fmt.channel_count

        # Units accepted by try_feed but not yet handed out by try_drain
        self._in_flight = 0
        self._lock = threading.Lock()

        self._released = threading.Event()
        self.running = False
        self.worker_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the decoder worker"""
        if self.running:
            return
        if self._released.is_set():
            raise DecoderReleasedError("Decoder was released")

        self.running = True
        self.worker_thread = threading.Thread(target=self._worker_loop, name="pcm-decoder", daemon=True)
        self.worker_thread.start()
        log_event("DEBUG", "Decoder", "Started", mime=self.format.mime_type,
                  channels=self.format.channel_count, sample_rate=self.format.sample_rate_hz)

    def release(self) -> None:
        """Stop the worker and wake any pending drain. Safe to call more than once, from any thread."""
        if self._released.is_set():
            return
        self._released.set()
        self.running = False

        try:
            self.output_queue.put_nowait(_RELEASED)
        except queue.Full:
            pass  # Drainer is not blocked; its next call sees the released flag

        worker = self.worker_thread
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=1.0)
        log_event("DEBUG", "Decoder", "Released")

    @property
    def released(self) -> bool:
        return self._released.is_set()

    @property
    def idle(self) -> bool:
        """True when nothing is queued, being decoded, or waiting to be drained."""
        with self._lock:
            return self._in_flight == 0

    def try_feed(self, unit: Optional[AccessUnit], timeout_s: float) -> bool:
        """Push an access unit (None = end-of-stream marker).

        Returns False when no input slot freed up within timeout_s.
        """
        self._check_released()
        item = _END_OF_STREAM if unit is None else unit

        with self._lock:
            self._in_flight += 1
        try:
            self.input_queue.put(item, timeout=max(0.0, timeout_s))
        except queue.Full:
            with self._lock:
                self._in_flight -= 1
            return False
        return True

    def try_drain(self, timeout_s: float) -> Optional[PcmBuffer]:
        """Pull the next decoded buffer, or None if none is ready within timeout_s."""
        self._check_released()
        try:
            if timeout_s > 0:
                item = self.output_queue.get(timeout=timeout_s)
            else:
                item = self.output_queue.get_nowait()
        except queue.Empty:
            return None

        if item is _RELEASED:
            raise DecoderReleasedError("Decoder was released during analysis")

        with self._lock:
            self._in_flight -= 1

        if isinstance(item, DecodeError):
            raise item
        return item

    def _check_released(self) -> None:
        if self._released.is_set():
            raise DecoderReleasedError("Decoder was released during analysis")

    def _worker_loop(self) -> None:
        """Background worker that decodes queued access units"""
        while not self._released.is_set():
            try:
                item = self.input_queue.get(timeout=0.1)
            except queue.Empty:
                continue

            if item is _END_OF_STREAM:
                self._emit(PcmBuffer(end_of_stream=True))
                continue

            try:
                self._emit(self._decode(item))
            except DecodeError as e:
                log_event("ERROR", "Decoder", "Bad access unit", error=e)
                self._emit(e)

    def _decode(self, unit: AccessUnit) -> PcmBuffer:
        if len(unit.data) % self._frame_bytes:
            raise DecodeError(
                f"Access unit of {len(unit.data)} bytes is not a whole number of "
                f"{self.format.channel_count}-channel int16 frames"
            )
        samples = np.frombuffer(unit.data, dtype='<i2').astype(np.int16)
        return PcmBuffer(samples=samples, presentation_time_us=unit.presentation_time_us)

    def _emit(self, item) -> None:
        # Block on a full output queue (output back-pressure) until released
        while not self._released.is_set():
            try:
                self.output_queue.put(item, timeout=0.1)
                return
            except queue.Full:
                continue


DecoderFactory = Callable[[AudioFormat, int, int], PcmDecoder]


def _build_registry() -> Dict[str, DecoderFactory]:
    registry: Dict[str, DecoderFactory] = {RAW_PCM_MIME: PcmDecoder}
    for major_format in sf.available_formats():
        registry[mime_type_for_format(major_format)] = PcmDecoder
    return registry


DECODERS: Dict[str, DecoderFactory] = _build_registry()


def create_decoder(fmt: AudioFormat, input_slots: int = 4, output_slots: int = 4) -> PcmDecoder:
    """Configure a decoder for the selected track.

    Raises DecodeError when no decoder handles the track's MIME type.
    """
    factory = DECODERS.get(fmt.mime_type)
    if factory is None:
        raise DecodeError(f"Unsupported codec: {fmt.mime_type}")
    if fmt.sample_rate_hz <= 0 or fmt.channel_count < 1:
        raise DecodeError(
            f"Cannot configure decoder for {fmt.sample_rate_hz} Hz / {fmt.channel_count} channels"
        )
    decoder = factory(fmt, input_slots, output_slots)
    log_event("DEBUG", "Decoder", "Configured", mime=fmt.mime_type, input_slots=input_slots, output_slots=output_slots)
    return decoder
