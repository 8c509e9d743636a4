"""
fictrac_subject.spin_gate

SpinThresholder: herkent "free spin" van de trackbal.

When the animal lifts its legs the ball keeps spinning on its own and FicTrac
reports heading changes far faster than a walking animal produces. Those
samples must not steer the subject. The gate measures angular speed per
message and exposes ``angular_speed < threshold`` as the pass condition.
"""

from __future__ import annotations

import math
from typing import Optional

from .session_log import SessionLogger, SpinGated


def shortest_delta_degrees(from_degs: float, to_degs: float) -> float:
    """Signed difference ``to - from`` folded into [-180, 180)."""
    d = math.fmod(to_degs - from_degs + 180.0, 360.0)
    if d < 0.0:
        d += 360.0
    return d - 180.0


class SpinThresholder:
    def __init__(self, threshold: float = 300.0, session_logger: Optional[SessionLogger] = None):
        self.threshold = float(threshold)
        self.session_logger = session_logger
        self.angular_speed = 0.0
        self._last_heading: Optional[float] = None
        self._last_delta = 0.0
        self.gated_count = 0

    @property
    def passes(self) -> bool:
        return self.angular_speed < self.threshold

    def _speed(self, delta: float, dt: float) -> float:
        if dt > 0.0:
            return abs(delta) / dt
        return 0.0 if delta == 0.0 else math.inf

    def update_relative(self, heading_delta_degs: float, dt: float) -> float:
        """Feed a heading change (degrees) observed over ``dt`` seconds."""
        self._last_delta = float(heading_delta_degs)
        self.angular_speed = self._speed(self._last_delta, dt)
        return self.angular_speed

    def update_absolute(self, heading_degs: float, dt: float) -> float:
        """Feed an absolute heading; the first call only sets the reference."""
        heading_degs = float(heading_degs)
        if self._last_heading is None:
            self._last_delta = 0.0
        else:
            self._last_delta = shortest_delta_degrees(self._last_heading, heading_degs)
        self._last_heading = heading_degs
        self.angular_speed = self._speed(self._last_delta, dt)
        return self.angular_speed

    def log(self) -> None:
        self.gated_count += 1
        if self.session_logger is not None:
            self.session_logger.log(SpinGated(
                angular_speed=self.angular_speed,
                threshold=self.threshold,
                heading_delta_degs=self._last_delta,
            ))
