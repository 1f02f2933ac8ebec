import unittest

from errors import DecodeError, NoAudioTrackError
from track_selector import AudioFormat, TrackDescriptor, select_audio_track


class TestTrackSelector(unittest.TestCase):
    def test_picks_first_audio_track(self):
        tracks = [
            TrackDescriptor(0, "video/avc", None, None, 5_000_000),
            TrackDescriptor(1, "audio/mp4a-latm", 44100, 2, 4_999_000),
            TrackDescriptor(2, "audio/opus", 48000, 1, 4_999_000),
        ]

        index, fmt = select_audio_track(tracks)

        self.assertEqual(index, 1)
        self.assertEqual(fmt, AudioFormat(44100, 2, 4_999_000, "audio/mp4a-latm"))
        self.assertEqual(fmt.duration_ms, 4999)

    def test_returns_descriptor_index_not_list_position(self):
        tracks = [
            TrackDescriptor(4, "video/avc"),
            TrackDescriptor(9, "audio/opus", 48000, 2, 1_000_000),
        ]
        index, _ = select_audio_track(tracks)
        self.assertEqual(index, 9)

    def test_video_only_container_is_rejected(self):
        tracks = [TrackDescriptor(0, "video/avc"), TrackDescriptor(1, "text/vtt")]
        with self.assertRaises(NoAudioTrackError):
            select_audio_track(tracks)

    def test_empty_track_list_is_rejected(self):
        with self.assertRaises(NoAudioTrackError):
            select_audio_track([])

    def test_missing_mime_is_skipped(self):
        tracks = [TrackDescriptor(0, None), TrackDescriptor(1, "audio/flac", 16000, 1, 0)]
        index, fmt = select_audio_track(tracks)
        self.assertEqual(index, 1)
        self.assertEqual(fmt.mime_type, "audio/flac")

    def test_mime_prefix_is_case_sensitive_family(self):
        # "audiox/..." is not the audio family
        tracks = [TrackDescriptor(0, "audiox/fake", 8000, 1, 0)]
        with self.assertRaises(NoAudioTrackError):
            select_audio_track(tracks)

    def test_audio_track_without_sample_rate_is_a_format_error(self):
        tracks = [TrackDescriptor(0, "audio/wav", None, 2, 1000)]
        with self.assertRaises(DecodeError):
            select_audio_track(tracks)

    def test_negative_duration_is_clamped(self):
        tracks = [TrackDescriptor(0, "audio/wav", 8000, 1, -5)]
        _, fmt = select_audio_track(tracks)
        self.assertEqual(fmt.duration_micros, 0)


if __name__ == "__main__":
    unittest.main()
