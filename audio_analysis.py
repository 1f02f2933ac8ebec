"""
vibetrack - Audio Analysis
Entry points that open a source, select its audio track, and run the
envelope extractor with the decoder and source released on every exit path.
"""

from pathlib import Path
from typing import Callable, Optional, Union

from config import Config
from envelope_extractor import AnalysisResult, EnvelopeExtractor
from errors import AnalysisError, InvalidSourceError
from logging_utils import log_event
from media_source import MediaSource
from pcm_decoder import create_decoder
from track_selector import select_audio_track

SourceRef = Union[str, Path]


def validate_source(path: Optional[SourceRef]) -> Path:
    """Reject missing source references before any resource is acquired."""
    if path is None:
        raise InvalidSourceError("filePath is required")
    text = str(path).strip()
    if not text:
        raise InvalidSourceError("filePath is required")
    return Path(text)


def get_audio_duration(path: Optional[SourceRef],
                       source_factory: Callable[..., MediaSource] = MediaSource) -> int:
    """Duration of the first audio track in milliseconds. No decoding."""
    source_path = validate_source(path)
    with source_factory(source_path) as source:
        _, fmt = select_audio_track(source.tracks)
    return fmt.duration_ms


def analyze_audio(
    path: Optional[SourceRef],
    frame_duration_ms: Optional[int] = None,
    config: Optional[Config] = None,
    *,
    extractor: Optional[EnvelopeExtractor] = None,
    source_factory: Callable[..., MediaSource] = MediaSource,
) -> AnalysisResult:
    """Analyze one file and return its normalized loudness envelope.

    Raises InvalidSourceError, NoAudioTrackError, SourceUnavailableError or
    DecodeError. No partial result is returned on failure.
    """
    config = config if config is not None else Config()
    source_path = validate_source(path)
    if frame_duration_ms is None:
        frame_duration_ms = config.analysis.frame_duration_ms
    if frame_duration_ms <= 0:
        raise InvalidSourceError(f"frameDurationMs must be positive, got {frame_duration_ms}")

    extractor = extractor if extractor is not None else EnvelopeExtractor(config)
    log_event("INFO", "Analysis", "Starting", path=source_path, frame_ms=frame_duration_ms)

    source = None
    decoder = None
    try:
        source = source_factory(source_path, config.decoder.access_unit_frames)
        track_index, fmt = select_audio_track(source.tracks)
        source.select_track(track_index)
        log_event("INFO", "Analysis", "Selected track", index=track_index, mime=fmt.mime_type,
                  sample_rate=fmt.sample_rate_hz, channels=fmt.channel_count,
                  duration_ms=fmt.duration_ms)

        decoder = create_decoder(fmt, config.decoder.input_slots, config.decoder.output_slots)
        decoder.start()
        result = extractor.analyze(source, decoder, fmt, frame_duration_ms)
    except AnalysisError as e:
        log_event("ERROR", "Analysis", "Failed", path=source_path, kind=type(e).__name__, error=e.message)
        raise
    finally:
        if decoder is not None:
            decoder.release()
        if source is not None:
            source.close()

    log_event("INFO", "Analysis", "Done", path=source_path, frames=result.frame_count,
              duration_ms=result.duration_ms)
    return result
