#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
kinematic_subject.py — live/playback subject met adaptieve log writes

KinematicSubject is de enige eigenaar van de Pose. Per ``tick(dt)``:

    LIVE      updater.update(dt) -> translation/rotation -> Pose
    PLAYBACK  volgende Transformation uit een vorige sessie -> Pose (exact)
    IDLE      playback is op; er gebeurt niets meer

State machine:
```
start()
├── playback gevraagd + log gevonden -> PLAYBACK
│   └── log uitgeput -> IDLE (nooit terug naar LIVE: geen mix van echt en opgenomen)
└── anders -> LIVE
```

Write heuristiek (alleen LIVE):
- framesSinceWrite en framesStill tellen elke frame op
- beweging zet framesStill op 0
- write als (framesStill >= still_frames en framesSinceWrite > min_write_interval)
  of framesSinceWrite >= max_write_interval; daarna beide tellers op 0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol

from .errors import MissingCollaboratorError
from .heading_averager import HeadingAverager
from .session_log import DeltaTime, FrameClock, SessionLogger, Transformation
from .vectors import Pose, Vector3

logger = logging.getLogger(__name__)


class SubjectMode(Enum):
    LIVE = "live"
    PLAYBACK = "playback"
    IDLE = "idle"


class KinematicUpdater(Protocol):
    def start(self) -> None: ...

    def update(self, dt: float) -> None: ...

    def translation(self) -> Optional[Vector3]: ...

    def rotation_degrees(self) -> Optional[Vector3]: ...

    def stop(self) -> None: ...


class CollisionCorrector(Protocol):
    def translate(self, attempted: Vector3) -> Vector3: ...


class PassThroughCorrector:
    """No geometry: the actual translation is the attempted one."""

    def translate(self, attempted: Vector3) -> Vector3:
        return attempted


# === Write scheduling ========================================================

@dataclass
class WriteScheduler:
    still_frames: int = 5
    min_write_interval: int = 100
    max_write_interval: int = 200
    write_when_still: bool = True

    frames_since_write: int = 0
    frames_still: int = 0

    def tick(self, moved: bool) -> bool:
        """Count one frame; True when the log should be written now."""
        self.frames_since_write += 1
        self.frames_still += 1
        if moved:
            self.frames_still = 0

        write = False
        if self.write_when_still:
            if self.frames_still >= self.still_frames and self.frames_since_write > self.min_write_interval:
                write = True
        if self.frames_since_write >= self.max_write_interval:
            write = True

        if write:
            self.frames_since_write = 0
            self.frames_still = 0
        return write


# === Playback ================================================================

@dataclass
class PlaybackCursor:
    entries: List[Transformation] = field(default_factory=list)
    start_frame: int = 0
    index: int = 0

    @classmethod
    def from_entries(cls, entries: List[Transformation], start_frame: int) -> "PlaybackCursor":
        """Drop frames without attempted translation or rotation, then start at ``start_frame``."""
        kept = [e for e in entries if not e.is_motionless()]
        return cls(entries=kept, start_frame=int(start_frame))

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.entries)

    def next_entry(self, adjusted_frame: int) -> Optional[Transformation]:
        while self.index < len(self.entries):
            entry = self.entries[self.index]
            if entry.frame < adjusted_frame:
                self.index += 1
                continue
            if entry.frame == adjusted_frame:
                self.index += 1
                return entry
            return None
        return None


# === Subject =================================================================

class KinematicSubject:
    """
    Drives one Pose from an updater (LIVE) or from a recorded log (PLAYBACK).

    The shared FrameClock is advanced here, once per ``tick``; every record
    any collaborator logs during that tick carries the same frame number.
    """

    def __init__(
        self,
        updater: Optional[KinematicUpdater],
        session_logger: Optional[SessionLogger] = None,
        *,
        clock: Optional[FrameClock] = None,
        pose: Optional[Pose] = None,
        corrector: Optional[CollisionCorrector] = None,
        detect_collisions: bool = False,
        still_frames: int = 5,
        min_write_interval: int = 100,
        max_write_interval: int = 200,
        write_log_when_still: bool = True,
        log_delta_time: bool = False,
        playback_path: Optional[str | Path] = None,
        averager: Optional[HeadingAverager] = None,
    ):
        if updater is None:
            raise MissingCollaboratorError("KinematicSubject needs an updater")
        self.updater = updater
        if session_logger is None:
            session_logger = SessionLogger(clock=clock)
        self.session_logger = session_logger
        self.clock = clock or session_logger.clock
        self.pose = pose if pose is not None else Pose()
        self.corrector = corrector or PassThroughCorrector()
        self.detect_collisions = bool(detect_collisions)
        self.scheduler = WriteScheduler(
            still_frames=still_frames,
            min_write_interval=min_write_interval,
            max_write_interval=max_write_interval,
            write_when_still=write_log_when_still,
        )
        self.log_delta_time = bool(log_delta_time)
        self.playback_path = Path(playback_path) if playback_path is not None else None
        self.averager = averager

        self.mode = SubjectMode.LIVE
        self.cursor: Optional[PlaybackCursor] = None
        self.frame_errors = 0
        self.writes = 0
        self._started = False
        self._closed = False

    # --------------------------
    # Lifecycle
    # --------------------------

    def start(self) -> None:
        if self._started:
            return
        self.updater.start()
        self._started = True
        if self.playback_path is not None:
            self.start_playback(self.playback_path)

    def start_playback(self, path: str | Path) -> None:
        if self.mode is SubjectMode.PLAYBACK:
            return
        logger.info("Playing back log file '%s'", path)
        entries = SessionLogger.read(path, Transformation)
        self.cursor = PlaybackCursor.from_entries(entries, self.clock.frame)
        self.mode = SubjectMode.PLAYBACK
        logger.info("%d of %d entries have motion", len(self.cursor.entries), len(entries))

    def close(self) -> int:
        """Session end: stop the updater, store the mean heading, final write.

        Returns the number of records the final write flushed.
        """
        if self._closed:
            return 0
        self._closed = True
        try:
            self.updater.stop()
        except Exception:
            logger.exception("Stopping the updater failed")
        if self.averager is not None:
            try:
                self.averager.finalize()
            except OSError:
                logger.exception("Storing the mean heading failed")
        return self._write(self.clock.frame)

    # --------------------------
    # Per frame
    # --------------------------

    def tick(self, dt: float) -> SubjectMode:
        frame = self.clock.advance(dt)
        moved = False
        try:
            if self.mode is SubjectMode.LIVE:
                moved = self._live_frame(dt)
            elif self.mode is SubjectMode.PLAYBACK:
                self._playback_frame(frame)
        except Exception:
            self.frame_errors += 1
            logger.exception("Frame %d: update failed", frame)

        if self.log_delta_time:
            self.session_logger.log(DeltaTime(delta_time_s=float(dt)))

        if self.mode is SubjectMode.LIVE and self.scheduler.tick(moved):
            self._write(frame)
        return self.mode

    def _live_frame(self, dt: float) -> bool:
        self.updater.update(dt)
        translation = self.updater.translation()
        rotation = self.updater.rotation_degrees()

        record = Transformation()
        moved = False
        if translation is not None and not translation.is_zero():
            if self.detect_collisions:
                actual = self.corrector.translate(translation)
            else:
                actual = translation
            self.pose.translate(actual)
            record.attempted_translation = translation
            record.actual_translation = actual
            moved = True
        if rotation is not None and not rotation.is_zero():
            self.pose.rotate(rotation)
            record.rotation_degs = rotation
            moved = True

        if moved:
            record.world_position = self.pose.world_position
            record.world_rotation_degs = self.pose.world_rotation_degs
            self.session_logger.log(record)

        if self.averager is not None:
            self.averager.record_heading(self.pose.heading)
        return moved

    def _playback_frame(self, frame: int) -> None:
        entry = self.cursor.next_entry(frame - self.cursor.start_frame)
        if entry is None:
            if self.cursor.exhausted:
                self.mode = SubjectMode.IDLE
                logger.info("Frame %d: playback finished", frame)
            return
        self.pose.set(entry.world_position, entry.world_rotation_degs)
        self.session_logger.log(Transformation(
            attempted_translation=entry.attempted_translation,
            actual_translation=entry.actual_translation,
            rotation_degs=entry.rotation_degs,
            world_position=self.pose.world_position,
            world_rotation_degs=self.pose.world_rotation_degs,
        ))

    def _write(self, frame: int) -> int:
        try:
            n = self.session_logger.write()
        except OSError:
            logger.exception("Frame %d: writing the session log failed", frame)
            return 0
        if n:
            self.writes += 1
        logger.debug("Frame %d: wrote %d records", frame, n)
        return n
