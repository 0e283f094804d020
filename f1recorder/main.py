"""
F1 Telemetry Recorder - Command Line

Usage:
    python -m f1recorder record --name Monaco_Race --duration 600
    python -m f1recorder play recordings/race.f1tr --speed 2.0
    python -m f1recorder list
    python -m f1recorder inspect recordings/race.f1tr --limit 20
    python -m f1recorder config --save
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

import yaml

from f1recorder import __version__
from f1recorder.capture import CaptureSession
from f1recorder.playback.player import Player
from f1recorder.recording.file_format import format_file_size, list_recordings
from f1recorder.recording.inspect import iter_entry_summaries, summarize_recording
from f1recorder.shared.errors import TelemetryError
from f1recorder.telemetry.monitor import TelemetryMonitor
from f1recorder.utils.config import DEFAULT_CONFIG_PATH, AppConfig, load_config, save_config

logger = logging.getLogger(__name__)

# Seconds between progress log lines
PROGRESS_INTERVAL = 5.0


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def cmd_record(config: AppConfig, args) -> int:
    """Record live telemetry until Ctrl+C or --duration elapses."""
    session = CaptureSession(config, session_name=args.name)

    logger.info(f"Start your F1 session now (UDP port {config.udp_port})")
    try:
        session.start()
        logger.info(f"Recording as: {session.output_path}")
        logger.info("Press Ctrl+C to stop")

        started = time.monotonic()
        while session.receiver.is_running:
            wait = PROGRESS_INTERVAL
            if args.duration is not None:
                remaining = args.duration - (time.monotonic() - started)
                if remaining <= 0:
                    break
                wait = min(wait, remaining)
            time.sleep(wait)

            receiver_stats, recorder_stats = session.stats()
            line = (
                f"{recorder_stats.packets_recorded} packets, "
                f"{format_file_size(recorder_stats.bytes_written)}, "
                f"{receiver_stats.errors} errors"
            )
            if session.latest_telemetry:
                line += f" | {session.latest_telemetry}"
            logger.info(line)
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        session.stop()

    receiver_stats, recorder_stats = session.stats()
    if session.output_path:
        logger.info(
            f"Saved {recorder_stats.packets_recorded} packets "
            f"({format_file_size(recorder_stats.bytes_written)}) to {session.output_path}"
        )
    if session.last_error:
        logger.error(f"Recording ended with error: {session.last_error}")
        return 1
    return 0


def cmd_play(config: AppConfig, args) -> int:
    """Replay a recording until it ends or Ctrl+C."""
    speed = args.speed if args.speed is not None else config.playback_speed
    player = Player(
        args.file,
        target_address=args.target or config.target_address,
        target_port=args.port or config.udp_port,
        speed=speed,
    )

    monitor = TelemetryMonitor()
    player.start()
    monitor.follow(player.packets)
    logger.info("Press Ctrl+C to stop")

    try:
        while not player.wait(PROGRESS_INTERVAL):
            stats = player.stats()
            line = (
                f"{stats.packets_played} packets, "
                f"{format_file_size(stats.bytes_sent)} sent, "
                f"{stats.elapsed:.0f}s"
            )
            if monitor.latest:
                line += f" | {monitor.latest}"
            logger.info(line)
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        player.stop()
        monitor.join(timeout=1.0)

    stats = player.stats()
    logger.info(f"Played {stats.packets_played} packets in {stats.elapsed:.1f}s")
    if player.last_error:
        logger.error(f"Playback ended with error: {player.last_error}")
        return 1
    return 0


def cmd_list(config: AppConfig, args) -> int:
    recordings = list_recordings(config.recording_dir)
    if not recordings:
        print(f"No recordings found in {config.recording_dir}")
        return 0

    for i, rec in enumerate(recordings, 1):
        print(f"  {i}. {rec.name} ({format_file_size(rec.size)}, {rec.modified:%Y-%m-%d %H:%M:%S})")
    return 0


def cmd_inspect(config: AppConfig, args) -> int:
    summary = summarize_recording(args.file)
    header = summary.file_header

    print(f"File:      {summary.path}")
    print(f"Version:   {header.version}")
    print(f"Created:   {header.created_at:%Y-%m-%d %H:%M:%S}")
    print(f"Entries:   {summary.entries} ({format_file_size(summary.payload_bytes)} payload)")
    print(f"Duration:  {summary.duration:.2f}s (max gap {summary.max_gap_ms:.1f} ms)")
    print(f"Session:   {summary.session_info.describe()}")
    if summary.invalid_packets:
        print(f"Invalid:   {summary.invalid_packets} packets without a valid header")
    if summary.error:
        print(f"Warning:   {summary.error}")
    print()

    for name, count in summary.packet_counts.most_common():
        print(f"  {name:<22} {count}")

    if args.limit:
        print()
        print(f"  {'#':>6}  {'gap ms':>8}  {'size':>6}  {'frame':>8}  type")
        for entry in iter_entry_summaries(args.file, args.limit):
            frame = entry.header.frame_identifier if entry.header else '-'
            print(f"  {entry.index:>6}  {entry.gap_ms:>8.2f}  {entry.size:>6}  {frame:>8}  {entry.type_name}")
    return 0


def cmd_config(config: AppConfig, args) -> int:
    print(yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False), end='')
    if args.save:
        save_config(config, args.config)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="f1recorder",
        description="Record and replay F1 UDP telemetry"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config file (YAML or JSON)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    record = commands.add_parser("record", help="Record live telemetry")
    record.add_argument("--name", "-n", help="Session name (default: detected from telemetry)")
    record.add_argument("--duration", "-d", type=float, help="Stop after this many seconds")
    record.set_defaults(func=cmd_record)

    play = commands.add_parser("play", help="Replay a recording over UDP")
    play.add_argument("file", help="Recording file (.f1tr)")
    play.add_argument("--target", "-t", help="Target address (default: from config)")
    play.add_argument("--port", "-p", type=int, help="Target UDP port (default: from config)")
    play.add_argument("--speed", "-s", type=float, help="Playback speed (default: from config)")
    play.set_defaults(func=cmd_play)

    list_cmd = commands.add_parser("list", help="List recordings")
    list_cmd.set_defaults(func=cmd_list)

    inspect = commands.add_parser("inspect", help="Show what is inside a recording")
    inspect.add_argument("file", help="Recording file (.f1tr)")
    inspect.add_argument("--limit", "-l", type=int, default=0, help="Also list the first N entries")
    inspect.set_defaults(func=cmd_inspect)

    config = commands.add_parser("config", help="Show the effective configuration")
    config.add_argument("--save", action="store_true", help="Write it to the config file")
    config.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        config.validate()
        return args.func(config, args)
    except (TelemetryError, OSError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
