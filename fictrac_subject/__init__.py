"""
FicTrac subject – fictrac_subject package
Trackball-gestuurde kinematische subject met record/replay.

Modules:
- field_parser                          : velden uit FicTrac berichten, zonder exceptions
- smoothing                             : CircularSmoother (ring van K deltas)
- heading_averager                      : circulair gemiddelde heading, persistent
- spin_gate                             : SpinThresholder (free spin detectie)
- integrator                            : Direct en smoothed + gated updaters
- behavior_blocks                       : primary/secondary blokken, slip updater
- kinematic_subject                     : live/playback subject, write heuristiek
- session_log                           : JSONL sessielog, records, pandas export
- persistence                           : key-value stores (memory, JSON)
- transport                             : socket/serieel/script berichtbronnen
- profiles                              : RigProfile + presets
- rig                                   : CLI host
"""

__all__ = [
    "field_parser",
    "smoothing",
    "heading_averager",
    "spin_gate",
    "integrator",
    "behavior_blocks",
    "kinematic_subject",
    "session_log",
    "persistence",
    "transport",
    "profiles",
    "rig",
]

# versie van het pakket
VERSION = "1.0"
