#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
rig.py — FicTrac subject host: profiel kiezen, bron openen, frame loop

Gebruik:
    python3 -m fictrac_subject.rig --profile slip
    python3 -m fictrac_subject.rig --mode integrated --port 2000 --log-messages
    python3 -m fictrac_subject.rig --script messages.txt --frames 600
    python3 -m fictrac_subject.rig --playback                        # laatste log
    python3 -m fictrac_subject.rig --playback fictrac_20240101_120000_log.jsonl
    python3 -m fictrac_subject.rig --playback other_dir/some_log.jsonl

``--playback`` zonder waarde speelt het meest recente log in ``--log-dir`` af;
een losse bestandsnaam wordt in ``--log-dir`` gezocht, een pad met een
scheidingsteken wordt letterlijk gebruikt. Bestaat het bestand niet, dan
draait de sessie gewoon live.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from .behavior_blocks import FicTracSlipUpdater
from .errors import FicTracSubjectError, MissingCollaboratorError
from .heading_averager import HeadingAverager
from .integrator import FicTracIntegratedUpdater, FicTracSmoothedUpdater
from .kinematic_subject import KinematicSubject, SubjectMode
from .persistence import JsonFileStore, PersistentKeyValueStore
from .profiles import PROFILES, RigProfile, load_profile_from_json
from .session_log import FrameClock, SessionLogger, resolve_playback_log
from .transport import MessageSource, ScriptedMessageSource, SerialMessageReader, SocketMessageReader
from .vectors import Pose

logger = logging.getLogger("fictrac_subject.rig")


# === Wiring ==================================================================

def build_source(
    profile: RigProfile,
    serial_port: Optional[str] = None,
    baud: int = 115200,
    script: Optional[str] = None,
    per_frame: int = 1,
) -> MessageSource:
    if script:
        return ScriptedMessageSource.from_file(script, per_frame)
    if serial_port:
        return SerialMessageReader(serial_port, baud, buffer_size=profile.buffer_size)
    return SocketMessageReader(
        profile.fictrac_address,
        profile.fictrac_port,
        buffer_size=profile.buffer_size,
        buffer_count=profile.buffer_count,
        protocol=profile.fictrac_protocol,
    )


def build_subject(
    profile: RigProfile,
    source: Optional[MessageSource],
    session_logger: SessionLogger,
    store: Optional[PersistentKeyValueStore] = None,
    playback_path: Optional[Path] = None,
) -> KinematicSubject:
    """Wire updater, averager and subject for ``profile.updater``."""
    pose = Pose()

    if profile.updater == "integrated":
        updater = FicTracIntegratedUpdater(source, profile, session_logger)
    elif profile.updater == "smoothed":
        updater = FicTracSmoothedUpdater(source, profile, session_logger)
    elif profile.updater == "slip":
        updater = FicTracSlipUpdater(source, pose, profile, session_logger)
    else:
        raise MissingCollaboratorError(f"No updater called {profile.updater!r}")

    averager = None
    if store is not None:
        averager = HeadingAverager(store, session_logger, profile.hierarchy)
        if profile.averaging_window_frames > 0:
            averager.start_averaging(profile.averaging_window_frames)

    return KinematicSubject(
        updater,
        session_logger,
        clock=session_logger.clock,
        pose=pose,
        detect_collisions=profile.detect_collisions,
        still_frames=profile.still_frames,
        min_write_interval=profile.min_write_interval,
        max_write_interval=profile.max_write_interval,
        write_log_when_still=profile.write_log_when_still,
        log_delta_time=profile.log_delta_time,
        playback_path=playback_path,
        averager=averager,
    )


def run(
    subject: KinematicSubject,
    frame_rate: float,
    frames: Optional[int] = None,
    realtime: bool = True,
    stop_when_idle: bool = True,
) -> int:
    """Tick ``subject`` at ``frame_rate`` until ``frames`` or Ctrl+C. Returns frames run."""
    dt_target = 1.0 / frame_rate
    n = 0
    last = time.perf_counter()
    while frames is None or n < frames:
        if realtime:
            now = time.perf_counter()
            wait = dt_target - (now - last)
            if wait > 0:
                time.sleep(wait)
            now = time.perf_counter()
            dt = now - last
            last = now
        else:
            dt = dt_target
        mode = subject.tick(dt)
        n += 1
        if stop_when_idle and mode is SubjectMode.IDLE:
            break
    return n


# === CLI =====================================================================

def select_profile(args: argparse.Namespace) -> RigProfile:
    if args.profile_file:
        profile = load_profile_from_json(args.profile_file, args.profile)
    else:
        if args.profile not in PROFILES:
            raise ValueError(f"Profile '{args.profile}' not found. Available: {list(PROFILES.keys())}")
        profile = PROFILES[args.profile]

    return profile.replace(
        updater=args.mode,
        fictrac_address=args.host,
        fictrac_port=args.port,
        fictrac_protocol=args.protocol,
        ball_radius=args.ball_radius,
        translational_gain=args.gain,
        heading_source=args.heading_source,
        log_messages=True if args.log_messages else None,
        log_delta_time=True if args.log_delta_time else None,
        averaging_window_frames=args.average_window,
        frame_rate=args.fps,
        log_dir=args.log_dir,
        store_path=args.store,
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='FicTrac-driven kinematic subject with record/replay'
    )
    parser.add_argument('--profile', default='integrated',
                        help=f"Preset ({', '.join(PROFILES)}) or name in --profile-file")
    parser.add_argument('--profile-file', default=None, help='JSON file with profiles')
    parser.add_argument('--mode', choices=['integrated', 'smoothed', 'slip'], default=None)
    parser.add_argument('--host', default=None, help='FicTrac address')
    parser.add_argument('--port', type=int, default=None, help='FicTrac port')
    parser.add_argument('--protocol', choices=['udp', 'tcp'], default=None)
    parser.add_argument('--serial', default=None, help='Read FicTrac from a serial port instead')
    parser.add_argument('--baud', type=int, default=115200)
    parser.add_argument('--script', default=None, help='Text file with FicTrac messages (offline)')
    parser.add_argument('--per-frame', type=int, default=1, help='Scripted messages per frame')
    parser.add_argument('--ball-radius', type=float, default=None)
    parser.add_argument('--gain', type=float, default=None, help='Translational gain')
    parser.add_argument('--heading-source', choices=['integrated', 'delta'], default=None)
    parser.add_argument('--playback', nargs='?', const='', default=None, metavar='LOG',
                        help='Replay a previous session (no value: the most recent one)')
    parser.add_argument('--log-dir', default=None)
    parser.add_argument('--store', default=None, help='JSON file for persisted values')
    parser.add_argument('--fps', type=float, default=None)
    parser.add_argument('--frames', type=int, default=None, help='Stop after N frames')
    parser.add_argument('--fast', action='store_true', help='Do not sleep between frames')
    parser.add_argument('--log-messages', action='store_true')
    parser.add_argument('--log-delta-time', action='store_true')
    parser.add_argument('--average-window', type=int, default=None,
                        help='Average the heading over N frames')
    parser.add_argument('--verbose', '-v', action='store_true')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        profile = select_profile(args)
    except (ValueError, OSError) as e:
        print(f"[!] {e}")
        return 1

    log_dir = Path(profile.log_dir)
    playback_path = resolve_playback_log(args.playback, log_dir)
    if args.playback is not None and playback_path is None:
        print("[!] Playback disabled, running live")

    clock = FrameClock()
    session_logger = SessionLogger(log_dir, clock=clock)
    store = JsonFileStore(profile.store_path)

    try:
        source = build_source(profile, args.serial, args.baud, args.script, args.per_frame)
        subject = build_subject(profile, source, session_logger, store, playback_path)
        subject.start()
    except (FicTracSubjectError, OSError, ImportError) as e:
        print(f"[!] {e}")
        return 1

    print(f"[i] Profile: {profile.name} ({profile.updater})")
    if args.script:
        print(f"[i] Source: script {args.script}")
    elif args.serial:
        print(f"[i] Source: serial {args.serial} @ {args.baud}")
    else:
        print(f"[i] Source: {profile.fictrac_protocol} {profile.fictrac_address}:{profile.fictrac_port}")
    if playback_path is not None:
        print(f"[i] Playback: {playback_path}")
    print(f"[i] Logging to: {session_logger.path}")
    print(f"[i] Running at {profile.frame_rate:.0f} fps... (Ctrl+C to stop)")
    print()

    t0 = time.time()
    frames = 0
    try:
        frames = run(subject, profile.frame_rate, args.frames, realtime=not args.fast)
    except KeyboardInterrupt:
        frames = subject.clock.frame
        print("\n\n[i] Stopped")
    finally:
        subject.close()

        elapsed = time.time() - t0
        updater = subject.updater
        pose = subject.pose
        print()
        print("=" * 65)
        print("SESSION SUMMARY")
        print("=" * 65)
        print(f"  Duration:        {elapsed:.1f}s")
        print(f"  Frames:          {frames}")
        print(f"  Final mode:      {subject.mode.value}")
        print(f"  Log writes:      {subject.writes}")
        print(f"  Messages:        {getattr(updater, 'messages_processed', 0)}")
        print(f"  Parse failures:  {getattr(updater, 'parse_failures', 0)}")
        gate = getattr(updater, 'gate', None)
        if gate is not None:
            print(f"  Spin gated:      {gate.gated_count}")
        print()
        print(f"  Position:        ({pose.world_position.x:.3f}, {pose.world_position.z:.3f})")
        print(f"  Heading:         {pose.heading:.2f} deg")
        if subject.averager is not None and subject.averager.started:
            print(f"  Mean heading:    {subject.averager.mean():.2f} deg")
        print("=" * 65)

    return 0


if __name__ == "__main__":
    sys.exit(main())
