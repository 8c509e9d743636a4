#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
heading_averager.py — circulair gemiddelde van de heading (met geheugen)

Rol:
- Houdt een ring van de laatste W headings (graden) bij.
- Berekent het circulaire gemiddelde: sin/cos middelen, atan2, terug naar
  graden, genormaliseerd naar [0, 360).  Een gewoon gemiddelde van 350 en 10
  zou 180 geven; dit geeft ~0.
- Bewaart het gemiddelde aan het eind van de sessie in een persistente store,
  onder een sleutel die de hiërarchie van de subject bevat ("Rig-Subject").
- Zolang er in deze sessie niet gemiddeld wordt, geeft ``mean()`` de waarde
  uit de vorige sessie terug.

Cache: ``mean()`` rekent alleen opnieuw als er sinds de vorige keer een
heading is bijgekomen (dirty flag).
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import numpy as np

from .persistence import PersistentKeyValueStore
from .session_log import HeadingRestored, HeadingStored, SessionLogger
from .vectors import wrap_degrees

logger = logging.getLogger(__name__)

KEY_PREFIX = "fictrac_subject.HeadingAverager"


def circular_mean(angles_degs: Iterable[float]) -> float:
    """Angle-aware mean in degrees, in [0, 360). Empty input gives 0."""
    a = np.radians(np.asarray(list(angles_degs), dtype=np.float64))
    if a.size == 0:
        return 0.0
    avg_sin = float(np.sin(a).mean())
    avg_cos = float(np.cos(a).mean())
    return wrap_degrees(float(np.degrees(np.arctan2(avg_sin, avg_cos))))


class HeadingAverager:
    """Rolling circular mean of the subject heading, persisted across sessions."""

    def __init__(
        self,
        store: PersistentKeyValueStore,
        session_logger: Optional[SessionLogger] = None,
        hierarchy: Sequence[str] = ("FicTracSubject",),
    ):
        if not hierarchy:
            raise ValueError("hierarchy needs at least one name")
        self.store = store
        self.session_logger = session_logger
        self.hierarchy = tuple(hierarchy)

        self._window = 0
        self._headings: Optional[np.ndarray] = None
        self._index = 0
        self._started = False
        self._mean = 0.0
        self._dirty = True
        self._stored = False

    # --------------------------
    # Identity
    # --------------------------

    @property
    def path_name(self) -> str:
        """Hierarchy joined root to leaf with '-'."""
        return "-".join(self.hierarchy)

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX}.{self.path_name}.meanHeadingDegs"

    @property
    def started(self) -> bool:
        return self._started

    @property
    def dirty(self) -> bool:
        return self._dirty

    # --------------------------
    # Accumulation
    # --------------------------

    def start_averaging(self, window_in_frames: int) -> None:
        if window_in_frames < 1:
            raise ValueError("averaging window must be >= 1 frame")
        self._window = int(window_in_frames)
        self._headings = np.zeros(self._window, dtype=np.float64)
        self._index = 0
        self._started = True
        self._dirty = True

    def record_heading(self, heading_degs: float) -> None:
        if not self._started:
            return
        self._headings[self._index] = heading_degs
        self._index = (self._index + 1) % self._window
        self._dirty = True

    def mean(self) -> float:
        if not self._dirty:
            return self._mean
        if not self._started:
            self._mean = self._restore()
        else:
            # all W slots, zero-filled ones included until the window is full
            self._mean = circular_mean(self._headings)
        self._dirty = False
        return self._mean

    # --------------------------
    # Persistence
    # --------------------------

    def finalize(self) -> Optional[float]:
        """Session end: store the current mean once. None if nothing was averaged."""
        if not self._started or self._stored:
            return None
        mean = self.mean()
        self.store.set_float(self.key, mean)
        self._stored = True
        if self.session_logger is not None:
            self.session_logger.log(HeadingStored(stored_mean_heading_degs=mean))
        logger.info("%s stored mean heading %.3f", self.path_name, mean)
        return mean

    def _restore(self) -> float:
        mean = self.store.get_float(self.key, 0.0)
        if self.session_logger is not None:
            self.session_logger.log(HeadingRestored(restored_mean_heading_degs=mean))
        logger.info("%s restored mean heading %.3f", self.path_name, mean)
        return mean
