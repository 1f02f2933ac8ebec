# vibetrack Configuration
# All default values and constants

from dataclasses import dataclass, field, is_dataclass
from enum import IntEnum

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 2

# Largest positive int16 sample; RMS normalizes by this
PCM16_FULL_SCALE = 32767

class DownmixRounding(IntEnum):
    """How the per-sample channel average is turned back into an int16"""
    TRUNCATE = 1           # Integer division toward zero (bit-compatible default)
    NEAREST = 2            # Round half away from zero

@dataclass
class AnalysisConfig:
    """Envelope extraction parameters"""
    frame_duration_ms: int = 20       # Analysis frame length (ms)
    feed_timeout_ms: int = 10         # Max wait for a free decoder input slot
    drain_timeout_ms: int = 10        # Max wait for the first decoded buffer per iteration
    downmix_rounding: DownmixRounding = DownmixRounding.TRUNCATE

@dataclass
class DecoderConfig:
    """Decoder service settings"""
    access_unit_frames: int = 1024    # Sample-frames per access unit read from the source
    input_slots: int = 4              # Bounded input queue depth (back-pressure)
    output_slots: int = 4             # Bounded output queue depth

@dataclass
class HapticConfig:
    """Envelope -> actuator mapping"""
    max_amplitude: int = 255          # Amplitude for envelope == 1.0
    amplitude_floor: int = 0          # Minimum amplitude for any non-zero frame (0=off)
    on_threshold: float = 0.5         # On/off cut for devices without amplitude control
    default_duration_ms: int = 100    # One-shot pulse length when none is given
    dry_run: bool = True              # Log commands instead of driving hardware

@dataclass
class ReportConfig:
    """Result persistence"""
    enabled: bool = False             # Write JSON/CSV reports after analysis
    report_dir: str = ""              # Empty = <config dir>/reports

@dataclass
class Config:
    """Master configuration"""
    version: int = CURRENT_CONFIG_VERSION  # Schema version for persisted configs
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    haptic: HapticConfig = field(default_factory=HapticConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    # Global
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; IntEnum fields are coerced when possible."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current):
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            else:
                log_event("WARN", "Config", "Section is not an object, keeping defaults", key=key)
            continue

        if isinstance(current, IntEnum):
            try:
                setattr(target, key, current.__class__(value))
            except (TypeError, ValueError):
                log_event("WARN", "Config", "Could not convert value, keeping default",
                          key=key, type=current.__class__.__name__)
            continue

        setattr(target, key, value)


def _clamp_int(value, default: int, low: int, high: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = default
    return max(low, min(high, number))


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Adds defaults for newly introduced fields and bumps version."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    if version < 2:
        # Fields introduced in v2
        if getattr(config.analysis, 'feed_timeout_ms', None) is None:
            config.analysis.feed_timeout_ms = 10
        if getattr(config.analysis, 'drain_timeout_ms', None) is None:
            config.analysis.drain_timeout_ms = 10
        if getattr(config.haptic, 'amplitude_floor', None) is None:
            config.haptic.amplitude_floor = 0
        if getattr(config.report, 'enabled', None) is None:
            config.report.enabled = False

    if getattr(config, 'log_level', None) is None:
        config.log_level = "INFO"
    if getattr(config.haptic, 'dry_run', None) is None:
        config.haptic.dry_run = True
    if getattr(config.report, 'report_dir', None) is None:
        config.report.report_dir = ""

    # Always clamp ranges that would break the decode loop or the actuator
    config.analysis.frame_duration_ms = _clamp_int(config.analysis.frame_duration_ms, 20, 1, 1000)
    config.analysis.feed_timeout_ms = _clamp_int(config.analysis.feed_timeout_ms, 10, 0, 1000)
    config.analysis.drain_timeout_ms = _clamp_int(config.analysis.drain_timeout_ms, 10, 0, 1000)
    config.decoder.access_unit_frames = _clamp_int(config.decoder.access_unit_frames, 1024, 1, 1 << 20)
    config.decoder.input_slots = _clamp_int(config.decoder.input_slots, 4, 1, 64)
    config.decoder.output_slots = _clamp_int(config.decoder.output_slots, 4, 1, 64)
    config.haptic.max_amplitude = _clamp_int(config.haptic.max_amplitude, 255, 1, 255)
    config.haptic.amplitude_floor = _clamp_int(config.haptic.amplitude_floor, 0, 0, config.haptic.max_amplitude)

    config.version = CURRENT_CONFIG_VERSION
