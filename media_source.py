"""
vibetrack - Media Source
Demuxer side of the decode pipeline, backed by libsndfile (soundfile).

libsndfile does the codec work while reading, so access units handed to the
decoder are blocks of interleaved little-endian int16 PCM.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import soundfile as sf

from errors import SourceUnavailableError
from logging_utils import log_event
from track_selector import TrackDescriptor

# libsndfile major format -> MIME type
FORMAT_MIME_TYPES = {
    'WAV': 'audio/wav',
    'WAVEX': 'audio/wav',
    'RF64': 'audio/wav',
    'W64': 'audio/x-w64',
    'FLAC': 'audio/flac',
    'OGG': 'audio/ogg',
    'MP3': 'audio/mpeg',
    'MPEG': 'audio/mpeg',
    'AIFF': 'audio/aiff',
    'AU': 'audio/basic',
    'CAF': 'audio/x-caf',
}


def mime_type_for_format(major_format: str) -> str:
    """Map a libsndfile major format name to a MIME type."""
    name = (major_format or '').upper()
    return FORMAT_MIME_TYPES.get(name, f"audio/x-{name.lower() or 'unknown'}")


@dataclass(frozen=True)
class AccessUnit:
    """One block handed from the source to the decoder"""
    data: bytes
    presentation_time_us: int


class MediaSource:
    """
    Sequential reader over one audio file.

    Mirrors a demuxer: enumerate tracks, select one, then read_sample()/advance()
    until read_sample() returns None. read_sample() keeps returning the same
    unit until advance() is called, so a unit the decoder refused can be
    offered again.
    """

    def __init__(self, path: Union[str, Path], access_unit_frames: int = 1024):
        self.path = Path(path)
        self.access_unit_frames = max(1, int(access_unit_frames))
        self._file: Optional[sf.SoundFile] = None
        self._selected: Optional[int] = None
        self._current: Optional[AccessUnit] = None
        self._exhausted = False

        try:
            self._file = sf.SoundFile(str(self.path), mode='r')
        except (RuntimeError, OSError) as e:
            raise SourceUnavailableError(f"Cannot open {self.path}: {e}") from e

        log_event("DEBUG", "MediaSource", "Opened", path=self.path,
                  format=self._file.format, subtype=self._file.subtype,
                  sample_rate=self._file.samplerate, channels=self._file.channels)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def tracks(self) -> List[TrackDescriptor]:
        """libsndfile containers expose exactly one audio track."""
        f = self._require_open()
        frames = max(0, int(f.frames))
        duration_us = frames * 1_000_000 // f.samplerate if f.samplerate > 0 else 0
        return [
            TrackDescriptor(
                index=0,
                mime_type=mime_type_for_format(f.format),
                sample_rate_hz=int(f.samplerate),
                channel_count=int(f.channels),
                duration_micros=duration_us,
            )
        ]

    def select_track(self, index: int) -> None:
        if index != 0:
            raise SourceUnavailableError(f"Track {index} not available in {self.path}")
        self._selected = index

    def read_sample(self) -> Optional[AccessUnit]:
        """Return the current access unit, or None once the track is exhausted."""
        if self._selected is None:
            raise RuntimeError("select_track() must be called before reading")
        if self._current is not None:
            return self._current
        if self._exhausted:
            return None

        f = self._require_open()
        try:
            position = f.tell()
            block = f.read(self.access_unit_frames, dtype='int16', always_2d=True)
        except (RuntimeError, OSError) as e:
            raise SourceUnavailableError(f"Read failed in {self.path}: {e}") from e

        if len(block) == 0:
            self._exhausted = True
            return None

        self._current = AccessUnit(
            data=np.ascontiguousarray(block, dtype='<i2').tobytes(),
            presentation_time_us=position * 1_000_000 // f.samplerate,
        )
        return self._current

    def advance(self) -> bool:
        """Drop the current unit. Returns False once nothing is left."""
        self._current = None
        return not self._exhausted

    def close(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            finally:
                self._file = None
                log_event("DEBUG", "MediaSource", "Closed", path=self.path)

    def _require_open(self) -> sf.SoundFile:
        if self._file is None:
            raise SourceUnavailableError(f"{self.path} is closed")
        return self._file
