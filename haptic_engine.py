"""
vibetrack - Haptic Engine
Queues vibration commands and hands them to an actuator driver on a worker
thread. The driver is passed in explicitly; nothing here owns hardware.
"""

import queue
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from config import Config
from haptic_mapper import envelope_to_waveform, to_on_off_pattern
from logging_utils import log_event

MIN_AMPLITUDE = 0
MAX_AMPLITUDE = 255


@dataclass(frozen=True)
class DeviceCapabilities:
    """What the actuator can do"""
    has_amplitude_control: bool = False
    min_pulse_ms: int = 10
    max_continuous_duration_ms: int = 5000
    has_vibrator: bool = True

    def to_dict(self) -> dict:
        return {
            "hasAmplitudeControl": self.has_amplitude_control,
            "minPulseMs": self.min_pulse_ms,
            "maxContinuousDurationMs": self.max_continuous_duration_ms,
            "hasVibrator": self.has_vibrator,
        }


@dataclass
class HapticCommand:
    """One queued actuator command"""
    kind: str                                   # "vibrate" or "waveform"
    duration_ms: int = 0                        # vibrate only
    amplitude: int = MAX_AMPLITUDE              # vibrate only
    timings: List[int] = field(default_factory=list)     # waveform only (ms)
    amplitudes: List[int] = field(default_factory=list)  # waveform only (0-255)

    def describe(self) -> str:
        if self.kind == "vibrate":
            return f"vibrate {self.duration_ms}ms @ {self.amplitude}"
        total = sum(self.timings)
        return f"waveform {len(self.timings)} segments / {total}ms"


class HapticDriver:
    """Actuator driver interface. Subclasses talk to real hardware."""

    def capabilities(self) -> DeviceCapabilities:
        return DeviceCapabilities()

    def vibrate(self, duration_ms: int, amplitude: Optional[int]) -> None:
        raise NotImplementedError

    def play_waveform(self, timings: List[int], amplitudes: Optional[List[int]]) -> None:
        raise NotImplementedError

    def cancel(self) -> None:
        raise NotImplementedError


class DryRunHapticDriver(HapticDriver):
    """Logs and records commands instead of moving a motor."""

    def __init__(self, caps: Optional[DeviceCapabilities] = None):
        self._caps = caps if caps is not None else DeviceCapabilities(has_amplitude_control=True)
        self.sent: list[tuple] = []
        self._lock = threading.Lock()

    def capabilities(self) -> DeviceCapabilities:
        return self._caps

    def vibrate(self, duration_ms: int, amplitude: Optional[int]) -> None:
        with self._lock:
            self.sent.append(("vibrate", duration_ms, amplitude))
        log_event("INFO", "Haptic", "Dry-run vibrate", duration_ms=duration_ms, amplitude=amplitude)

    def play_waveform(self, timings: List[int], amplitudes: Optional[List[int]]) -> None:
        with self._lock:
            self.sent.append(("waveform", list(timings), None if amplitudes is None else list(amplitudes)))
        log_event("INFO", "Haptic", "Dry-run waveform", segments=len(timings), total_ms=sum(timings))

    def cancel(self) -> None:
        with self._lock:
            self.sent.append(("cancel",))
        log_event("INFO", "Haptic", "Dry-run cancel")


class HapticEngine:
    """
    Sends queued commands to the driver from a background worker.
    """

    def __init__(self, config: Config, driver: HapticDriver):
        self.config = config
        self.driver = driver
        self.running = False

        # Command queue (thread-safe)
        self.cmd_queue: queue.Queue[HapticCommand] = queue.Queue()

        # Worker thread
        self.worker_thread: Optional[threading.Thread] = None

    def capabilities(self) -> DeviceCapabilities:
        return self.driver.capabilities()

    def start(self) -> None:
        """Start the haptic engine"""
        if self.running:
            return

        self.running = True
        self.worker_thread = threading.Thread(target=self._worker_loop, name="haptic-engine", daemon=True)
        self.worker_thread.start()
        log_event("INFO", "HapticEngine", "Started")

    def stop(self) -> None:
        """Stop the haptic engine"""
        self.running = False
        self._clear_queue()
        if self.worker_thread is not None and self.worker_thread is not threading.current_thread():
            self.worker_thread.join(timeout=1.0)
        self.worker_thread = None
        log_event("INFO", "HapticEngine", "Stopped")

    def send_vibrate(self, duration_ms: Optional[int] = None, amplitude: Optional[int] = None) -> None:
        """Queue a one-shot pulse (defaults: configured duration, full amplitude)."""
        if duration_ms is None:
            duration_ms = self.config.haptic.default_duration_ms
        if amplitude is None:
            amplitude = MAX_AMPLITUDE
        self._enqueue(HapticCommand(kind="vibrate", duration_ms=int(duration_ms), amplitude=int(amplitude)))

    def send_waveform(self, timings: List[int], amplitudes: List[int]) -> None:
        """Queue a waveform. An empty timing list is ignored."""
        if not timings:
            return
        self._enqueue(HapticCommand(kind="waveform", timings=[int(t) for t in timings],
                                    amplitudes=[int(a) for a in amplitudes]))

    def play_result(self, result) -> None:
        """Map an analysis result onto the device and queue it as one waveform."""
        waveform = envelope_to_waveform(result, self.capabilities(), self.config.haptic)
        log_event("INFO", "HapticEngine", "Queued envelope", segments=len(waveform.timings),
                  total_ms=waveform.total_ms)
        self.send_waveform(waveform.timings, waveform.amplitudes)

    def cancel(self) -> None:
        """Drop queued commands and stop the actuator immediately."""
        self._clear_queue()
        self.driver.cancel()

    def wait_idle(self, timeout: float = 1.0) -> bool:
        """Block until the queue is drained. Returns False on timeout."""
        done = threading.Event()

        def _waiter():
            self.cmd_queue.join()
            done.set()

        threading.Thread(target=_waiter, daemon=True).start()
        return done.wait(timeout)

    def _enqueue(self, cmd: HapticCommand) -> None:
        if self.running:
            self.cmd_queue.put(cmd)
        else:
            log_event("WARN", "HapticEngine", "Dropped command, engine not running", cmd=cmd.describe())

    def _clear_queue(self) -> None:
        while not self.cmd_queue.empty():
            try:
                self.cmd_queue.get_nowait()
                self.cmd_queue.task_done()
            except queue.Empty:
                break

    def _worker_loop(self) -> None:
        """Background worker that sends queued commands"""
        while self.running:
            try:
                cmd = self.cmd_queue.get(timeout=0.1)
            except queue.Empty:
                continue

            try:
                self._dispatch(cmd)
            except Exception as e:
                log_event("ERROR", "HapticEngine", "Driver error", cmd=cmd.describe(), error=e)
            finally:
                self.cmd_queue.task_done()

    def _dispatch(self, cmd: HapticCommand) -> None:
        caps = self.driver.capabilities()
        if not caps.has_vibrator:
            log_event("WARN", "HapticEngine", "No vibrator, skipping", cmd=cmd.describe())
            return

        if cmd.kind == "vibrate":
            if caps.has_amplitude_control:
                self.driver.vibrate(cmd.duration_ms, max(1, min(MAX_AMPLITUDE, cmd.amplitude)))
            else:
                self.driver.vibrate(cmd.duration_ms, None)
        elif cmd.kind == "waveform":
            if caps.has_amplitude_control:
                clamped = [max(MIN_AMPLITUDE, min(MAX_AMPLITUDE, a)) for a in cmd.amplitudes]
                self.driver.play_waveform(cmd.timings, clamped)
            else:
                self.driver.play_waveform(to_on_off_pattern(cmd.timings, cmd.amplitudes), None)
        else:
            log_event("WARN", "HapticEngine", "Unknown command", kind=cmd.kind)
