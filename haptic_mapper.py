"""
vibetrack - Haptic Mapper
Converts a normalized loudness envelope into an actuator waveform: parallel
lists of segment durations (ms) and amplitudes (0-255).
"""

import math
from dataclasses import dataclass, field
from typing import List

from config import HapticConfig


@dataclass
class Waveform:
    """Actuator-ready segments"""
    timings: List[int] = field(default_factory=list)
    amplitudes: List[int] = field(default_factory=list)

    @property
    def total_ms(self) -> int:
        return sum(self.timings)

    def __len__(self) -> int:
        return len(self.timings)


def _frame_timings(result) -> List[int]:
    """Frame durations; the last frame gets whatever is left of the track."""
    count = result.frame_count
    step = result.frame_duration_ms
    if count == 0:
        return []
    timings = [step] * count
    remaining = result.duration_ms - (count - 1) * step
    if result.duration_ms > 0:
        timings[-1] = max(1, min(step, remaining))
    return timings


def loudness_to_amplitude(value: float, cfg: HapticConfig) -> int:
    """Scale 0..1 loudness onto 0..max_amplitude, honoring the non-zero floor."""
    amp = int(math.floor(value * cfg.max_amplitude + 0.5))
    if value > 0.0 and amp < cfg.amplitude_floor:
        amp = cfg.amplitude_floor
    return max(0, min(255, amp))


def merge_segments(timings: List[int], amplitudes: List[int]):
    """Join neighbours with the same amplitude."""
    out_t: List[int] = []
    out_a: List[int] = []
    for t, a in zip(timings, amplitudes):
        if out_a and out_a[-1] == a:
            out_t[-1] += t
        else:
            out_t.append(t)
            out_a.append(a)
    return out_t, out_a


def fold_short_segments(timings: List[int], amplitudes: List[int], min_pulse_ms: int):
    """Fold segments shorter than min_pulse_ms into the previous one (the next one at the start)."""
    out_t: List[int] = []
    out_a: List[int] = []
    carry = 0
    for t, a in zip(timings, amplitudes):
        if t < min_pulse_ms:
            if out_t:
                out_t[-1] += t
            else:
                carry += t
            continue
        out_t.append(t + carry)
        out_a.append(a)
        carry = 0

    if carry:
        # Everything was shorter than the minimum pulse
        out_t.append(carry)
        out_a.append(amplitudes[-1] if amplitudes else 0)
    return merge_segments(out_t, out_a)


def envelope_to_waveform(result, capabilities, cfg: HapticConfig) -> Waveform:
    """Map an AnalysisResult onto the capabilities of one actuator."""
    timings = _frame_timings(result)
    if not timings:
        return Waveform()

    if capabilities.has_amplitude_control:
        amplitudes = [loudness_to_amplitude(v, cfg) for v in result.envelope]
    else:
        # On/off only
        amplitudes = [255 if v > cfg.on_threshold else 0 for v in result.envelope]

    timings, amplitudes = merge_segments(timings, amplitudes)
    timings, amplitudes = fold_short_segments(timings, amplitudes, capabilities.min_pulse_ms)
    return Waveform(timings=timings, amplitudes=amplitudes)


def to_on_off_pattern(timings: List[int], amplitudes: List[int]) -> List[int]:
    """Alternating off/on durations (starting with off) for drivers without amplitude control."""
    pattern: List[int] = []
    for t, a in zip(timings, amplitudes):
        on = a > 0
        slot_on = len(pattern) % 2 == 1
        if pattern and on != slot_on:
            pattern[-1] += t
        elif not pattern and on:
            pattern.extend([0, t])
        else:
            pattern.append(t)
    return pattern
