#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
behavior_blocks.py — primary/secondary blokken met open-loop "slip" rotatie

State machine:
```
PRIMARY (FicTrac stuurt, smoothed + gated)
│   elapsed += dt
│   elapsed >= primary_duration  -> SECONDARY (heading bij entry onthouden)
SECONDARY (script stuurt de heading)
│   slip_heading = heading_at_entry + direction * rate * secondary_elapsed
│   secondary_elapsed += dt
│   secondary_elapsed >= secondary_duration -> PRIMARY, direction *= -1
```

In SECONDARY worden FicTrac berichten nog steeds gelezen en gelogd (anders
loopt de buffer vol en missen we ground truth), maar ze bewegen de subject
niet. De spin gate krijgt dan absolute headings (veld 17).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from .errors import MissingCollaboratorError
from .integrator import (
    FIELD_DELTA_X,
    FIELD_DELTA_Y,
    FIELD_DELTA_Z,
    FIELD_HEADING,
    RAD2DEG,
    FicTracSmoothedUpdater,
)
from .profiles import RigProfile
from .session_log import BlockTransition, SessionLogger, SlipAttempt
from .spin_gate import shortest_delta_degrees
from .vectors import ZERO, Pose, Vector3, wrap_degrees

logger = logging.getLogger(__name__)


class BehaviorState(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class BehaviorBlocks:
    """Timer for alternating sensor-driven and scripted rotation bouts."""

    def __init__(
        self,
        primary_duration: float = 2.0,
        secondary_duration: float = 15.0,
        rotation_rate_deg_s: float = 50.0,
        direction: int = 1,
        session_logger: Optional[SessionLogger] = None,
    ):
        if direction not in (1, -1):
            raise ValueError("direction must be +1 or -1")
        self.primary_duration = float(primary_duration)
        self.secondary_duration = float(secondary_duration)
        self.rotation_rate_deg_s = float(rotation_rate_deg_s)
        self.direction = direction
        self.session_logger = session_logger

        self.state = BehaviorState.PRIMARY
        self.elapsed = 0.0
        self.secondary_elapsed = 0.0
        self.heading_at_entry = 0.0
        self.bouts = 0

    @classmethod
    def from_profile(cls, profile: RigProfile, session_logger: Optional[SessionLogger] = None) -> "BehaviorBlocks":
        return cls(
            primary_duration=profile.primary_duration_s,
            secondary_duration=profile.secondary_duration_s,
            rotation_rate_deg_s=profile.rotation_rate_deg_s,
            direction=profile.initial_direction,
            session_logger=session_logger,
        )

    def advance(self, dt: float, heading_degs: float = 0.0) -> BehaviorState:
        """
        Add one frame of ``dt`` seconds. ``heading_degs`` is the subject heading
        now; it becomes the start of the scripted rotation when SECONDARY begins.
        """
        if self.state is BehaviorState.PRIMARY:
            self.elapsed += dt
            if self.elapsed >= self.primary_duration:
                self.state = BehaviorState.SECONDARY
                self.secondary_elapsed = 0.0
                self.heading_at_entry = float(heading_degs)
                self.bouts += 1
                self._log_transition()
        else:
            self.secondary_elapsed += dt
            if self.secondary_elapsed >= self.secondary_duration:
                self.direction = -self.direction
                self.elapsed = 0.0
                self.secondary_elapsed = 0.0
                self.state = BehaviorState.PRIMARY
                self._log_transition()
        return self.state

    def slip_heading(self) -> float:
        """Scripted heading in degrees, not wrapped."""
        return self.heading_at_entry + self.direction * self.rotation_rate_deg_s * self.secondary_elapsed

    def _log_transition(self) -> None:
        logger.debug(
            "Block -> %s (direction %+d, heading at entry %.2f)",
            self.state.value, self.direction, self.heading_at_entry,
        )
        if self.session_logger is not None:
            self.session_logger.log(BlockTransition(
                state=self.state.value,
                direction=float(self.direction),
                heading_at_entry_degs=self.heading_at_entry,
            ))


class FicTracSlipUpdater(FicTracSmoothedUpdater):
    """
    Smoothed + gated FicTrac integration interleaved with scripted rotation.

    Needs the subject's Pose (read only) for the heading at SECONDARY entry
    and to turn the scripted heading into a per-frame rotation.
    """

    MODE = "slip"

    def __init__(
        self,
        source,
        pose: Optional[Pose],
        profile=None,
        session_logger=None,
        blocks: Optional[BehaviorBlocks] = None,
        gate=None,
        smoother=None,
    ):
        if pose is None:
            raise MissingCollaboratorError("FicTracSlipUpdater needs the subject pose")
        super().__init__(source, profile, session_logger, gate=gate, smoother=smoother)
        self.pose = pose
        self.blocks = blocks or BehaviorBlocks.from_profile(self.profile, session_logger)
        self._scripted = False

    @property
    def state(self) -> BehaviorState:
        return self.blocks.state

    def update(self, dt: float) -> None:
        state = self.blocks.advance(dt, self.pose.heading)
        if state is BehaviorState.PRIMARY:
            self._scripted = False
            super().update(dt)
            return

        self._scripted = True
        slip_heading = self.blocks.slip_heading()
        self._translation = ZERO
        self._rotation_y = shortest_delta_degrees(self.pose.heading, wrap_degrees(slip_heading))
        self._frame_messages = 0
        for raw, read_ms, i0 in self.source.drain():
            if self._observe_message(raw, read_ms, i0, dt, slip_heading):
                self._frame_messages += 1
                self.messages_processed += 1

    def translation(self) -> Optional[Vector3]:
        if self._scripted:
            return ZERO
        return super().translation()

    def rotation_degrees(self) -> Optional[Vector3]:
        # scripted rotation does not depend on FicTrac data arriving
        if self._scripted:
            return Vector3(0.0, self._rotation_y, 0.0)
        return super().rotation_degrees()

    def _observe_message(self, raw: bytes, read_ms: int, i0: int, dt: float, slip_heading: float) -> bool:
        parsed = self._fields(raw, i0, FIELD_DELTA_X, FIELD_DELTA_Y, FIELD_HEADING)
        if parsed is None:
            return False
        a, b, d = parsed
        heading_raw = d * RAD2DEG
        self.gate.update_absolute(heading_raw, dt)

        if self.session_logger is not None:
            self.session_logger.log(SlipAttempt(
                fictrac_attempt=Vector3(a, b, d),
                slip_heading_degs=slip_heading,
                slip_offset_degs=slip_heading - heading_raw,
            ))

        if self.log_messages:
            c, ok = self.parser.double(raw, i0, FIELD_DELTA_Z)
            if not ok:
                self._parse_failed(raw, FIELD_DELTA_Z)
                return True
            self._log_message(raw, read_ms, i0, Vector3(a, b, c), heading=d)
        return True
