"""
fictrac_subject.smoothing

CircularSmoother: schuivend gemiddelde over de laatste K delta-rotatievectoren.

Note: the ring starts zero-filled and ``average()`` always divides by K, so
the first K-1 outputs are pulled toward zero. The rig has always behaved
this way and recorded sessions depend on it; ``filled`` tells callers when
the window holds K real samples.
"""

from __future__ import annotations

import numpy as np

from .vectors import Vector3


class CircularSmoother:
    """Ring buffer of ``count`` Vector3 samples with a running mean."""

    def __init__(self, count: int = 3):
        if count < 1:
            raise ValueError("smoothing count must be >= 1")
        self.count = int(count)
        self._data = np.zeros((self.count, 3), dtype=np.float64)
        self._oldest = 0
        self._recorded = 0

    @property
    def filled(self) -> bool:
        return self._recorded >= self.count

    def record(self, delta: Vector3) -> None:
        self._data[self._oldest] = (delta.x, delta.y, delta.z)
        self._oldest = (self._oldest + 1) % self.count
        self._recorded += 1

    def average(self) -> Vector3:
        m = self._data.sum(axis=0) / self.count
        return Vector3(float(m[0]), float(m[1]), float(m[2]))

    def smooth(self, delta: Vector3) -> Vector3:
        """``record`` then ``average`` in one call."""
        self.record(delta)
        return self.average()

    def clear(self) -> None:
        self._data.fill(0.0)
        self._oldest = 0
        self._recorded = 0
