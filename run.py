#!/usr/bin/env python3
"""
vibetrack - Audio loudness envelope for vibration playback

Analyzes an audio file into a normalized per-frame loudness envelope and
optionally plays it back through a (dry-run) haptic driver.
"""

import argparse
import cProfile
import json
import sys
from pathlib import Path

from analysis_reporter import AnalysisReporter
from analysis_worker import AnalysisWorker
from audio_analysis import get_audio_duration
from config import Config
from config_persistence import get_report_dir, load_config
from errors import (
    AnalysisError,
    DecodeError,
    InvalidSourceError,
    NoAudioTrackError,
    SourceUnavailableError,
)
from haptic_engine import DeviceCapabilities, DryRunHapticDriver, HapticEngine
from logging_utils import log_event, set_log_level

EXIT_OK = 0
EXIT_INVALID_INPUT = 2
EXIT_NO_AUDIO = 3
EXIT_SOURCE_UNAVAILABLE = 4
EXIT_DECODE_FAILED = 5


def exit_code_for(error: AnalysisError) -> int:
    if isinstance(error, InvalidSourceError):
        return EXIT_INVALID_INPUT
    if isinstance(error, NoAudioTrackError):
        return EXIT_NO_AUDIO
    if isinstance(error, SourceUnavailableError):
        return EXIT_SOURCE_UNAVAILABLE
    if isinstance(error, DecodeError):
        return EXIT_DECODE_FAILED
    return 1


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Extract a loudness envelope from an audio file for vibration playback",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--log-level", default=None, help="DEBUG/INFO/WARNING/ERROR (default: from config)")
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Enable cProfile and save stats to --profile-out",
    )
    parser.add_argument("--profile-out", default="profile.prof", help="Path to save cProfile stats")
    sub = parser.add_subparsers(dest="cmd", required=True)

    a = sub.add_parser("analyze", help="analyze a file into an envelope",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    a.add_argument("path", help="Audio file to analyze.")
    a.add_argument("--frame-ms", type=int, default=None, help="Frame duration in ms (default: from config).")
    a.add_argument("--report-dir", default=None, help="Write JSON/CSV reports into this directory.")
    a.add_argument("--json", action="store_true", help="Print the result map as JSON.")

    d = sub.add_parser("duration", help="print the audio track duration in ms")
    d.add_argument("path", help="Audio file to inspect.")

    p = sub.add_parser("play", help="analyze, then play the envelope on the dry-run driver",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("path", help="Audio file to analyze and play.")
    p.add_argument("--frame-ms", type=int, default=None, help="Frame duration in ms (default: from config).")
    p.add_argument("--no-amplitude-control", action="store_true",
                   help="Simulate an on/off-only actuator.")
    return parser.parse_args(argv)


def run_analysis(config: Config, path: str, frame_ms):
    """Run one analysis on the worker thread and wait for it."""
    worker = AnalysisWorker(config)
    worker.submit(path, frame_ms)
    worker.wait()
    if worker.last_error is not None:
        raise worker.last_error
    return worker.last_result


def cmd_analyze(config: Config, args) -> int:
    result = run_analysis(config, args.path, args.frame_ms)

    if args.report_dir or config.report.enabled:
        report_dir = Path(args.report_dir) if args.report_dir else get_report_dir(config)
        json_path, csv_path = AnalysisReporter(report_dir).save_result(args.path, result)
        log_event("INFO", "Report", "Saved", json=json_path, csv=csv_path)

    if args.json:
        print(json.dumps(result.to_dict()))
    else:
        print(f"{args.path}: {result.frame_count} frames x {result.frame_duration_ms} ms, "
              f"{result.duration_ms} ms, {result.format.sample_rate_hz} Hz, "
              f"{result.format.channel_count} ch ({result.format.mime_type})")
    return EXIT_OK


def cmd_duration(config: Config, args) -> int:
    print(get_audio_duration(args.path))
    return EXIT_OK


def cmd_play(config: Config, args) -> int:
    result = run_analysis(config, args.path, args.frame_ms)

    if not config.haptic.dry_run:
        log_event("WARN", "Haptic", "No hardware driver available, falling back to dry-run")
    caps = DeviceCapabilities(has_amplitude_control=not args.no_amplitude_control)
    engine = HapticEngine(config, DryRunHapticDriver(caps))
    engine.start()
    try:
        engine.play_result(result)
        engine.wait_idle(timeout=5.0)
    finally:
        engine.stop()
    return EXIT_OK


COMMANDS = {
    "analyze": cmd_analyze,
    "duration": cmd_duration,
    "play": cmd_play,
}


def run_cli(args) -> int:
    config = load_config()
    set_log_level(args.log_level or config.log_level)
    try:
        return COMMANDS[args.cmd](config, args)
    except AnalysisError as e:
        print(f"error [{e.code}]: {e.message}", file=sys.stderr)
        return exit_code_for(e)


def main(argv=None) -> None:
    args = parse_args(argv)

    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        exit_code = run_cli(args)
        profiler.disable()
        profiler.dump_stats(args.profile_out)
    else:
        exit_code = run_cli(args)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
