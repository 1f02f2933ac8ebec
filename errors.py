"""
vibetrack - Error types
Every failure an analysis call can surface to its caller.
"""


class AnalysisError(Exception):
    """Base class for analysis failures. The message is user-presentable."""

    code = "ANALYSIS_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidSourceError(AnalysisError, ValueError):
    """Missing or malformed input, rejected before any resource is opened."""

    code = "INVALID_ARGUMENT"


class NoAudioTrackError(AnalysisError):
    """The container holds no track with an audio MIME type."""

    code = "NO_AUDIO_TRACK"


class SourceUnavailableError(AnalysisError):
    """The source could not be opened or read."""

    code = "SOURCE_UNAVAILABLE"


class DecodeError(AnalysisError):
    """The decoder could not be configured or produced unusable output."""

    code = "DECODE_ERROR"


class DecoderReleasedError(DecodeError):
    """The decoder was torn down while the decode loop was still using it."""

    code = "DECODER_RELEASED"
