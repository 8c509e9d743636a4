#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
profiles.py — configureerbare rig-profielen

Alle instelbare parameters van een sessie in één dataclass, plus een paar
presets en een JSON loader. De CLI (rig.py) kiest een profiel en overschrijft
losse velden met flags.

JSON vorm:

    {
      "profiles": {
        "my_rig": {
          "params": {
            "fictrac":   {"address": "127.0.0.1", "port": 2000, "ball_radius": 0.5, ...},
            "smoothing": {"count": 3},
            "spin":      {"threshold_deg_s": 300.0},
            "logging":   {"still_frames": 5, "min_write_interval": 100, ...},
            "blocks":    {"primary_duration_s": 2.0, "secondary_duration_s": 15.0, ...},
            "averaging": {"window_frames": 0, "hierarchy": ["Rig", "FicTracSubject"]},
            "host":      {"updater": "slip", "frame_rate": 60.0, "log_dir": "logs"}
          }
        }
      }
    }
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from .errors import ProfileError

UPDATERS = ("integrated", "smoothed", "slip")
HEADING_SOURCES = ("integrated", "delta")


@dataclass
class RigProfile:
    """Configureerbaar profiel voor één rig-sessie."""
    name: str = "custom"

    # FicTrac bron
    fictrac_address: str = "127.0.0.1"
    fictrac_port: int = 2000
    fictrac_protocol: str = "udp"        # "udp" | "tcp"
    ball_radius: float = 0.5
    translational_gain: float = 1.0
    heading_source: str = "integrated"   # veld 17 (integrated) of veld 8 (delta)
    buffer_size: int = 1024
    buffer_count: int = 240
    log_messages: bool = False

    # Smoothing + spin gate
    smoothing_count: int = 3
    spin_threshold_deg_s: float = 300.0

    # Log write heuristiek (frames)
    write_log_when_still: bool = True
    still_frames: int = 5
    min_write_interval: int = 100
    max_write_interval: int = 200
    log_delta_time: bool = False
    detect_collisions: bool = False

    # Primary/secondary blokken (slip)
    primary_duration_s: float = 2.0
    secondary_duration_s: float = 15.0
    rotation_rate_deg_s: float = 50.0
    initial_direction: int = 1

    # Heading averaging
    averaging_window_frames: int = 0
    hierarchy: Tuple[str, ...] = ("FicTracSubject",)

    # Host
    updater: str = "integrated"          # "integrated" | "smoothed" | "slip"
    frame_rate: float = 60.0
    log_dir: str = "logs"
    store_path: str = "logs/fictrac_subject_store.json"

    def validate(self) -> "RigProfile":
        if self.updater not in UPDATERS:
            raise ProfileError(f"updater must be one of {UPDATERS}, not {self.updater!r}")
        if self.heading_source not in HEADING_SOURCES:
            raise ProfileError(f"heading_source must be one of {HEADING_SOURCES}")
        if self.fictrac_protocol not in ("udp", "tcp"):
            raise ProfileError("fictrac_protocol must be 'udp' or 'tcp'")
        if self.smoothing_count < 1:
            raise ProfileError("smoothing_count must be >= 1")
        if self.buffer_size < 1 or self.buffer_count < 1:
            raise ProfileError("buffer_size and buffer_count must be >= 1")
        if self.still_frames < 0:
            raise ProfileError("still_frames must be >= 0")
        if self.min_write_interval < 0 or self.max_write_interval < 1:
            raise ProfileError("write intervals must be positive")
        if self.min_write_interval > self.max_write_interval:
            raise ProfileError("min_write_interval must be <= max_write_interval")
        if self.primary_duration_s < 0 or self.secondary_duration_s < 0:
            raise ProfileError("block durations must be >= 0")
        if self.initial_direction not in (1, -1):
            raise ProfileError("initial_direction must be +1 or -1")
        if self.averaging_window_frames < 0:
            raise ProfileError("averaging_window_frames must be >= 0")
        if self.frame_rate <= 0:
            raise ProfileError("frame_rate must be > 0")
        if not self.hierarchy:
            raise ProfileError("hierarchy needs at least one name")
        return self

    def replace(self, **changes: Any) -> "RigProfile":
        """Copy with ``changes``; None values are ignored (handy for argparse)."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return dataclasses.replace(self, **changes).validate()


# Preset profielen
PROFILE_INTEGRATED = RigProfile(
    name="integrated",
    updater="integrated",
    translational_gain=1.0,
    heading_source="integrated",
)

PROFILE_SMOOTHED = RigProfile(
    name="smoothed",
    updater="smoothed",
    translational_gain=4.0,
    smoothing_count=3,
    spin_threshold_deg_s=300.0,
)

PROFILE_SLIP = RigProfile(
    name="slip",
    updater="slip",
    translational_gain=4.0,
    smoothing_count=3,
    spin_threshold_deg_s=300.0,
    primary_duration_s=2.0,
    secondary_duration_s=15.0,
    rotation_rate_deg_s=50.0,
    initial_direction=1,
)

PROFILES: Dict[str, RigProfile] = {
    p.name: p for p in (PROFILE_INTEGRATED, PROFILE_SMOOTHED, PROFILE_SLIP)
}

# JSON groep/sleutel -> RigProfile veld
_JSON_FIELDS = {
    "fictrac": {
        "address": "fictrac_address",
        "port": "fictrac_port",
        "protocol": "fictrac_protocol",
        "ball_radius": "ball_radius",
        "translational_gain": "translational_gain",
        "heading_source": "heading_source",
        "buffer_size": "buffer_size",
        "buffer_count": "buffer_count",
        "log_messages": "log_messages",
    },
    "smoothing": {
        "count": "smoothing_count",
    },
    "spin": {
        "threshold_deg_s": "spin_threshold_deg_s",
    },
    "logging": {
        "write_when_still": "write_log_when_still",
        "still_frames": "still_frames",
        "min_write_interval": "min_write_interval",
        "max_write_interval": "max_write_interval",
        "log_delta_time": "log_delta_time",
        "detect_collisions": "detect_collisions",
    },
    "blocks": {
        "primary_duration_s": "primary_duration_s",
        "secondary_duration_s": "secondary_duration_s",
        "rotation_rate_deg_s": "rotation_rate_deg_s",
        "initial_direction": "initial_direction",
    },
    "averaging": {
        "window_frames": "averaging_window_frames",
        "hierarchy": "hierarchy",
    },
    "host": {
        "updater": "updater",
        "frame_rate": "frame_rate",
        "log_dir": "log_dir",
        "store_path": "store_path",
    },
}


def profile_from_params(name: str, params: Dict[str, Any], base: RigProfile | None = None) -> RigProfile:
    """Build a profile from the nested ``params`` groups; missing keys keep ``base`` values."""
    changes: Dict[str, Any] = {"name": name}
    for group, mapping in _JSON_FIELDS.items():
        values = params.get(group, {})
        unknown = set(values) - set(mapping)
        if unknown:
            raise ProfileError(f"Unknown keys in '{group}': {sorted(unknown)}")
        for key, attr in mapping.items():
            if key in values:
                changes[attr] = values[key]
    if "hierarchy" in changes:
        changes["hierarchy"] = tuple(changes["hierarchy"])
    return dataclasses.replace(base or RigProfile(), **changes).validate()


def load_profile_from_json(json_path: str, profile_name: str) -> RigProfile:
    """Load a RigProfile from a JSON profile file."""
    with open(json_path, "r", encoding="utf-8") as f:
        doc = json.load(f)

    profiles = doc.get("profiles", {})
    if profile_name not in profiles:
        raise ValueError(f"Profile '{profile_name}' not found. Available: {list(profiles.keys())}")

    entry = profiles[profile_name]
    base = PROFILES.get(entry.get("base", ""), None)
    return profile_from_params(profile_name, entry.get("params", {}), base=base)
