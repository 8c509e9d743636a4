#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
session_log.py — gestructureerd sessielog (JSONL) voor record/replay

Records ONLY facts, one JSON object per line:
    {"kind": "Transformation", "frame": 12, "timestamp": 1700000000123.4, ...}

Kernprincipes:
- ``log()`` only buffers; nothing touches the disk until ``write()``.
  KinematicSubject decides when to write (still/min/max heuristic).
- Every record is stamped with the frame number from the shared FrameClock.
  Playback matches on that number, so it must be the subject's frame.
- ``read()`` loads one record kind from a previous session, in file order.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

import pandas as pd

from .errors import PlaybackSourceMissing
from .vectors import Vector3

logger = logging.getLogger(__name__)

LOG_FILE_PREFIX = "fictrac_"
LOG_FILE_SUFFIX = "_log.jsonl"


# === Frame clock =============================================================

@dataclass
class FrameClock:
    """Frame counter + accumulated time, advanced once per tick."""
    frame: int = 0
    time_s: float = 0.0
    delta_time_s: float = 0.0

    def advance(self, dt: float) -> int:
        self.frame += 1
        self.delta_time_s = float(dt)
        self.time_s += float(dt)
        return self.frame


# === Record kinds ============================================================

@dataclass
class LogRecord:
    frame: int = 0
    timestamp: float = 0.0    # wall clock, ms

    @classmethod
    def kind(cls) -> str:
        return cls.__name__


@dataclass
class Transformation(LogRecord):
    """One frame of subject motion: the unit that playback replays."""
    attempted_translation: Vector3 = field(default_factory=Vector3)
    actual_translation: Vector3 = field(default_factory=Vector3)
    rotation_degs: Vector3 = field(default_factory=Vector3)
    world_position: Vector3 = field(default_factory=Vector3)
    world_rotation_degs: Vector3 = field(default_factory=Vector3)

    def is_motionless(self) -> bool:
        return self.attempted_translation.is_zero() and self.rotation_degs.is_zero()


@dataclass
class FicTracParameters(LogRecord):
    server_address: str = ""
    server_port: int = 0
    ball_radius: float = 0.0
    translational_gain: float = 1.0
    mode: str = ""


@dataclass
class FicTracMessage(LogRecord):
    timestamp_write_ms: int = 0
    timestamp_read_ms: int = 0
    delta_rotation_vector_lab: Vector3 = field(default_factory=Vector3)
    integrated_heading_lab: float = 0.0
    gated: bool = False


@dataclass
class SpinGated(LogRecord):
    angular_speed: float = 0.0
    threshold: float = 0.0
    heading_delta_degs: float = 0.0


@dataclass
class SlipAttempt(LogRecord):
    fictrac_attempt: Vector3 = field(default_factory=Vector3)
    slip_heading_degs: float = 0.0
    slip_offset_degs: float = 0.0


@dataclass
class BlockTransition(LogRecord):
    state: str = ""
    direction: float = 1.0
    heading_at_entry_degs: float = 0.0


@dataclass
class HeadingStored(LogRecord):
    stored_mean_heading_degs: float = 0.0


@dataclass
class HeadingRestored(LogRecord):
    restored_mean_heading_degs: float = 0.0


@dataclass
class DeltaTime(LogRecord):
    delta_time_s: float = 0.0


RECORD_TYPES: Dict[str, Type[LogRecord]] = {
    t.kind(): t
    for t in (
        Transformation,
        FicTracParameters,
        FicTracMessage,
        SpinGated,
        SlipAttempt,
        BlockTransition,
        HeadingStored,
        HeadingRestored,
        DeltaTime,
    )
}

R = TypeVar("R", bound=LogRecord)


def record_to_dict(record: LogRecord) -> Dict[str, Any]:
    d = dataclasses.asdict(record)   # Vector3 wordt {"x","y","z"}
    d["kind"] = record.kind()
    return d


def record_from_dict(d: Dict[str, Any], record_type: Optional[Type[R]] = None) -> LogRecord:
    if record_type is None:
        record_type = RECORD_TYPES.get(d.get("kind", ""))
        if record_type is None:
            raise ValueError(f"Unknown record kind: {d.get('kind')!r}")
    kwargs: Dict[str, Any] = {}
    for f in dataclasses.fields(record_type):
        if f.name not in d:
            continue
        value = d[f.name]
        if f.type in ("Vector3", Vector3):
            value = Vector3.from_dict(value)
        kwargs[f.name] = value
    return record_type(**kwargs)


# === Logger ==================================================================

class SessionLogger:
    """
    Buffered JSONL logger for one session.

    ``log_dir=None`` keeps everything in memory (``written``), which is what
    the tests and dry runs use.
    """

    def __init__(
        self,
        log_dir: Optional[str | Path] = None,
        clock: Optional[FrameClock] = None,
        file_name: Optional[str] = None,
    ):
        self.clock = clock or FrameClock()
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self._path: Optional[Path] = None
        if self.log_dir is not None:
            if file_name is None:
                stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
                file_name = f"{LOG_FILE_PREFIX}{stamp}{LOG_FILE_SUFFIX}"
            self._path = self.log_dir / file_name

        self._pending: List[Dict[str, Any]] = []
        self.written: List[Dict[str, Any]] = []
        self.write_frames: List[int] = []

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def pending(self) -> int:
        return len(self._pending)

    def log(self, record: LogRecord) -> None:
        record.frame = self.clock.frame
        record.timestamp = round(time.time() * 1000.0, 3)
        self._pending.append(record_to_dict(record))

    def write(self) -> int:
        """Flush buffered records. Returns how many were written."""
        n = len(self._pending)
        self.write_frames.append(self.clock.frame)
        if n == 0:
            return 0
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                for d in self._pending:
                    f.write(json.dumps(d, separators=(",", ":")) + "\n")
        else:
            self.written.extend(self._pending)
        self._pending = []
        return n

    def close(self) -> None:
        self.write()

    def records(self, record_type: Type[R]) -> List[R]:
        """Records of one kind already written by this logger (memory mode)."""
        kind = record_type.kind()
        return [record_from_dict(d, record_type) for d in self.written if d.get("kind") == kind]

    @staticmethod
    def read(path: str | Path, record_type: Type[R] = Transformation) -> List[R]:
        """Load the ``record_type`` records of a previous session, in file order."""
        kind = record_type.kind()
        out: List[R] = []
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    d = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("%s:%d: skipping unreadable log line", path, line_no)
                    continue
                if d.get("kind") == kind:
                    out.append(record_from_dict(d, record_type))
        return out


# === Playback file lookup ====================================================

def previous_log_file(log_dir: str | Path) -> Optional[Path]:
    """Most recent session log in ``log_dir``, or None."""
    d = Path(log_dir)
    if not d.is_dir():
        return None
    candidates = sorted(d.glob(f"{LOG_FILE_PREFIX}*{LOG_FILE_SUFFIX}"))
    return candidates[-1] if candidates else None


def resolve_playback_log(
    requested: Optional[str],
    log_dir: str | Path,
    *,
    strict: bool = False,
) -> Optional[Path]:
    """
    Map the ``--playback`` value onto a log file.

    - None          : playback not requested
    - ""            : most recent log in ``log_dir``
    - "name.jsonl"  : ``log_dir / name.jsonl``
    - "dir/x.jsonl" : used as given

    A missing file disables playback (None) unless ``strict``.
    """
    if requested is None:
        return None

    if requested == "":
        path = previous_log_file(log_dir)
        if path is None:
            msg = f"No previous log in '{log_dir}' to play back"
            if strict:
                raise PlaybackSourceMissing(msg)
            logger.warning(msg)
            return None
        return path

    if "/" in requested or "\\" in requested:
        path = Path(requested)
    else:
        path = Path(log_dir) / requested

    if not path.exists():
        msg = f"Cannot find playback log file '{path}'"
        if strict:
            raise PlaybackSourceMissing(msg)
        logger.warning(msg)
        return None
    return path


# === Analysis export =========================================================

def entries_to_frame(entries: Iterable[Transformation]) -> pd.DataFrame:
    """Flatten Transformation records into one row per frame."""
    rows = []
    for e in entries:
        rows.append({
            "frame": e.frame,
            "timestamp": e.timestamp,
            "attempted_x": e.attempted_translation.x,
            "attempted_z": e.attempted_translation.z,
            "actual_x": e.actual_translation.x,
            "actual_z": e.actual_translation.z,
            "rotation_y": e.rotation_degs.y,
            "pos_x": e.world_position.x,
            "pos_y": e.world_position.y,
            "pos_z": e.world_position.z,
            "heading": e.world_rotation_degs.y,
        })
    columns = [
        "frame", "timestamp", "attempted_x", "attempted_z", "actual_x", "actual_z",
        "rotation_y", "pos_x", "pos_y", "pos_z", "heading",
    ]
    return pd.DataFrame(rows, columns=columns)


def load_session_frame(path: str | Path) -> pd.DataFrame:
    return entries_to_frame(SessionLogger.read(path, Transformation))
