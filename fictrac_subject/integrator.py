#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
integrator.py — FicTrac berichten -> translatie/rotatie per frame

Twee varianten, zelfde interface voor KinematicSubject:

    start()
    update(dt)
    translation()       -> Optional[Vector3]   (lokaal frame, None = geen data)
    rotation_degrees()  -> Optional[Vector3]   (Euler delta, None = geen data)
    stop()

FicTrac velden (0-based, "FT, 1, ..." -> veld N == data_header kolom N):
    6, 7, 8 : delta rotatie vector (lab), radialen
    17      : geïntegreerde heading van het dier (lab), radialen
    22      : timestamp van schrijven, ms

Ball rotatie -> beweging:
    forward  = b * r * gain     (rotatie rond lab y-as, veld 7)
    sideways = a * r * gain     (rotatie rond lab x-as, veld 6)
    heading  = -degrees(c)      (FicTrac met de klok mee, scene tegen de klok in)

- FicTracIntegratedUpdater : "Direct". Geen smoothing; heading uit veld 17
                             (integrated) of veld 8 (delta).
- FicTracSmoothedUpdater   : spin gate + CircularSmoother; gegate samples
                             tellen niet mee maar worden wel gelogd.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

from .errors import MissingCollaboratorError
from .field_parser import FieldParser
from .profiles import RigProfile
from .session_log import FicTracMessage, FicTracParameters, SessionLogger
from .smoothing import CircularSmoother
from .spin_gate import SpinThresholder
from .transport import HEADER, MessageSource
from .vectors import ZERO, Vector3

logger = logging.getLogger(__name__)

RAD2DEG = 180.0 / math.pi

# Veldnummers in een FicTrac bericht
FIELD_DELTA_X = 6
FIELD_DELTA_Y = 7
FIELD_DELTA_Z = 8
FIELD_HEADING = 17
FIELD_TIMESTAMP_WRITE = 22


class FicTracUpdater:
    """Shared plumbing: message source, parser, parameter + message logging."""

    MODE = "fictrac"

    def __init__(
        self,
        source: MessageSource,
        profile: Optional[RigProfile] = None,
        session_logger: Optional[SessionLogger] = None,
    ):
        if source is None:
            raise MissingCollaboratorError(f"{type(self).__name__} needs a FicTrac message source")
        self.source = source
        self.profile = profile or RigProfile()
        self.session_logger = session_logger
        self.parser = FieldParser()
        self.header = HEADER

        self.ball_radius = float(self.profile.ball_radius)
        self.translational_gain = float(self.profile.translational_gain)
        self.log_messages = bool(self.profile.log_messages)

        self.parse_failures = 0
        self.messages_processed = 0
        self._frame_messages = 0
        self._translation = ZERO
        self._rotation_y = 0.0

    # --------------------------
    # Lifecycle
    # --------------------------

    def start(self) -> None:
        self.source.start()
        if self.session_logger is not None:
            self.session_logger.log(FicTracParameters(
                server_address=self.profile.fictrac_address,
                server_port=int(self.profile.fictrac_port),
                ball_radius=self.ball_radius,
                translational_gain=self.translational_gain,
                mode=self.MODE,
            ))

    def stop(self) -> None:
        self.source.stop()

    # --------------------------
    # Per frame
    # --------------------------

    def update(self, dt: float) -> None:
        self._frame_messages = 0
        self._translation = ZERO
        self._rotation_y = 0.0
        for raw, read_ms, i0 in self.source.drain():
            if self._handle_message(raw, read_ms, i0, dt):
                self._frame_messages += 1
                self.messages_processed += 1

    def translation(self) -> Optional[Vector3]:
        if self._frame_messages == 0:
            return None
        return self._translation

    def rotation_degrees(self) -> Optional[Vector3]:
        if self._frame_messages == 0:
            return None
        return Vector3(0.0, self._rotation_y, 0.0)

    def _handle_message(self, raw: bytes, read_ms: int, i0: int, dt: float) -> bool:
        raise NotImplementedError

    # --------------------------
    # Helpers
    # --------------------------

    def _fields(self, raw: bytes, i0: int, *ns: int) -> Optional[Tuple[float, ...]]:
        """Parse fields ``ns`` as doubles; None (and a counted failure) if any is bad."""
        out = []
        for n in ns:
            value, ok = self.parser.double(raw, i0, n)
            if not ok:
                self._parse_failed(raw, n)
                return None
            out.append(value)
        return tuple(out)

    def _parse_failed(self, raw: bytes, n: int) -> None:
        self.parse_failures += 1
        logger.debug(
            "FicTrac parse failure #%d (field %d): %r",
            self.parse_failures, n, raw[:80],
        )

    def _motion(self, a: float, b: float) -> Vector3:
        scale = self.ball_radius * self.translational_gain
        return Vector3(b * scale, 0.0, a * scale)

    def _log_message(
        self,
        raw: bytes,
        read_ms: int,
        i0: int,
        delta: Vector3,
        heading: Optional[float] = None,
        gated: bool = False,
    ) -> None:
        if not self.log_messages or self.session_logger is None:
            return
        if heading is None:
            heading, ok = self.parser.double(raw, i0, FIELD_HEADING)
            if not ok:
                self._parse_failed(raw, FIELD_HEADING)
                return
        write_ms, ok = self.parser.long(raw, i0, FIELD_TIMESTAMP_WRITE)
        if not ok:
            self._parse_failed(raw, FIELD_TIMESTAMP_WRITE)
            return
        self.session_logger.log(FicTracMessage(
            timestamp_write_ms=write_ms,
            timestamp_read_ms=int(read_ms),
            delta_rotation_vector_lab=delta,
            integrated_heading_lab=heading,
            gated=gated,
        ))


# === Direct ==================================================================

class FicTracIntegratedUpdater(FicTracUpdater):
    """
    Every parsed message moves the subject straight away, no filtering.

    ``heading_source="integrated"`` takes FicTrac's own integrated heading
    (field 17): the rotation per frame is the change of ``-heading`` since the
    previous message, so the subject heading follows ``-heading`` exactly and
    dropped messages do not accumulate error. ``"delta"`` integrates field 8.

    A repeated message therefore turns the subject only once in
    ``"integrated"`` mode (field 17 did not change); a fixed rotation per
    message (e.g. 0.1 rad of field 8 each time) needs ``"delta"``.
    """

    MODE = "integrated"

    def __init__(self, source, profile=None, session_logger=None):
        super().__init__(source, profile, session_logger)
        self.heading_source = self.profile.heading_source
        self._last_heading_degs = 0.0

    def _handle_message(self, raw, read_ms, i0, dt):
        heading_field = FIELD_HEADING if self.heading_source == "integrated" else FIELD_DELTA_Z
        parsed = self._fields(raw, i0, FIELD_DELTA_X, FIELD_DELTA_Y, heading_field)
        if parsed is None:
            return False
        a, b, h = parsed

        self._translation = self._translation + self._motion(a, b)
        if self.heading_source == "integrated":
            heading_degs = h * RAD2DEG
            self._rotation_y -= heading_degs - self._last_heading_degs
            self._last_heading_degs = heading_degs
        else:
            self._rotation_y -= h * RAD2DEG

        if self.log_messages:
            if self.heading_source == "integrated":
                c, ok = self.parser.double(raw, i0, FIELD_DELTA_Z)
                if not ok:
                    self._parse_failed(raw, FIELD_DELTA_Z)
                    return True
                self._log_message(raw, read_ms, i0, Vector3(a, b, c), heading=h)
            else:
                self._log_message(raw, read_ms, i0, Vector3(a, b, h))
        return True


# === Smoothed + gated ========================================================

class FicTracSmoothedUpdater(FicTracUpdater):
    """
    Spin-gated, smoothed integration.

    Per message the heading change (field 8) goes to the spin gate. Below the
    threshold the delta vector enters the smoother and the smoothed output is
    accumulated; at or above it the sample is dropped from integration and a
    SpinGated record is logged.
    """

    MODE = "smoothed"

    def __init__(
        self,
        source,
        profile=None,
        session_logger=None,
        gate: Optional[SpinThresholder] = None,
        smoother: Optional[CircularSmoother] = None,
    ):
        super().__init__(source, profile, session_logger)
        self.gate = gate or SpinThresholder(self.profile.spin_threshold_deg_s, session_logger)
        self.smoother = smoother or CircularSmoother(self.profile.smoothing_count)
        self._updated = ZERO

    def update(self, dt: float) -> None:
        self._updated = ZERO
        super().update(dt)
        u = self._updated
        self._translation = self._motion(u.x, u.y)
        self._rotation_y = -u.z * RAD2DEG

    def _handle_message(self, raw, read_ms, i0, dt):
        parsed = self._fields(raw, i0, FIELD_DELTA_X, FIELD_DELTA_Y, FIELD_DELTA_Z)
        if parsed is None:
            return False
        delta = Vector3(*parsed)
        gated = self._integrate(delta, dt)
        self._log_message(raw, read_ms, i0, delta, gated=gated)
        return True

    def _integrate(self, delta: Vector3, dt: float) -> bool:
        """Gate + smooth one sample. Returns True when the sample was gated out."""
        self.gate.update_relative(delta.z * RAD2DEG, dt)
        if not self.gate.passes:
            self.gate.log()
            return True
        self._updated = self._updated + self.smoother.smooth(delta)
        return False
