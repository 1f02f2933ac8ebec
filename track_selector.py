"""
vibetrack - Track Selector
Picks the first audio track out of a demuxed container's track list.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from errors import DecodeError, NoAudioTrackError

AUDIO_MIME_PREFIX = "audio/"


@dataclass(frozen=True)
class TrackDescriptor:
    """One track as reported by the media source"""
    index: int
    mime_type: Optional[str]
    sample_rate_hz: Optional[int] = None
    channel_count: Optional[int] = None
    duration_micros: Optional[int] = None


@dataclass(frozen=True)
class AudioFormat:
    """Format of the selected audio track"""
    sample_rate_hz: int
    channel_count: int
    duration_micros: int
    mime_type: str

    @property
    def duration_ms(self) -> int:
        return self.duration_micros // 1000


def is_audio_track(track: TrackDescriptor) -> bool:
    return bool(track.mime_type) and track.mime_type.startswith(AUDIO_MIME_PREFIX)


def audio_format_of(track: TrackDescriptor) -> AudioFormat:
    """Build an AudioFormat from an audio track, rejecting unusable descriptions."""
    if not track.sample_rate_hz or track.sample_rate_hz <= 0:
        raise DecodeError(f"Track {track.index} ({track.mime_type}) has no valid sample rate")
    if not track.channel_count or track.channel_count < 1:
        raise DecodeError(f"Track {track.index} ({track.mime_type}) has no valid channel count")
    return AudioFormat(
        sample_rate_hz=int(track.sample_rate_hz),
        channel_count=int(track.channel_count),
        duration_micros=max(0, int(track.duration_micros or 0)),
        mime_type=track.mime_type,
    )


def select_audio_track(tracks: Sequence[TrackDescriptor]) -> Tuple[int, AudioFormat]:
    """Return (track index, format) of the first track whose MIME type is audio/*.

    Raises NoAudioTrackError when the container has no audio track.
    """
    for track in tracks:
        if is_audio_track(track):
            return track.index, audio_format_of(track)
    raise NoAudioTrackError("No audio track found in source")
