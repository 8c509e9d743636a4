"""
fictrac_subject.vectors

Vector3 en Pose: het kleine stukje 3D-wiskunde dat de subject nodig heeft.

Conventions follow the scene the rig renders into:
- y is up, headings are rotations about y in degrees,
- a positive yaw turns the subject clockwise when seen from above,
- translations handed to ``Pose.translate`` are in the subject's own frame.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, s: float) -> "Vector3":
        return Vector3(self.x * s, self.y * s, self.z * s)

    __rmul__ = __mul__

    def __getitem__(self, i: int) -> float:
        return (self.x, self.y, self.z)[i]

    def is_zero(self) -> bool:
        return self.x == 0.0 and self.y == 0.0 and self.z == 0.0

    def as_tuple(self):
        return (self.x, self.y, self.z)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Vector3":
        return cls(float(d.get("x", 0.0)), float(d.get("y", 0.0)), float(d.get("z", 0.0)))

    @classmethod
    def from_iterable(cls, values) -> "Vector3":
        x, y, z = values
        return cls(float(x), float(y), float(z))


ZERO = Vector3()


def wrap_degrees(angle: float) -> float:
    """Normalize an angle into [0, 360)."""
    result = math.fmod(angle, 360.0)
    if result < 0.0:
        result += 360.0
    # fmod(-1e-17) + 360 can round up to exactly 360
    if result >= 360.0:
        result = 0.0
    return result


def yaw_rotate(v: Vector3, yaw_degs: float) -> Vector3:
    """Rotate ``v`` about the y axis by ``yaw_degs`` (clockwise seen from above)."""
    if yaw_degs == 0.0:
        return v
    r = math.radians(yaw_degs)
    c = math.cos(r)
    s = math.sin(r)
    return Vector3(v.x * c + v.z * s, v.y, -v.x * s + v.z * c)


@dataclass
class Pose:
    """
    Authoritative transform of the subject.

    Only one owner mutates it per frame: the live updater path of
    KinematicSubject, or its playback path.
    """
    world_position: Vector3 = field(default_factory=Vector3)
    world_rotation_degs: Vector3 = field(default_factory=Vector3)

    @property
    def heading(self) -> float:
        return self.world_rotation_degs.y

    def translate(self, local: Vector3) -> Vector3:
        """Move by ``local`` expressed in the subject frame; returns the world delta."""
        world = yaw_rotate(local, self.world_rotation_degs.y)
        self.world_position = self.world_position + world
        return world

    def rotate(self, euler_degs: Vector3) -> None:
        r = self.world_rotation_degs
        self.world_rotation_degs = Vector3(
            wrap_degrees(r.x + euler_degs.x),
            wrap_degrees(r.y + euler_degs.y),
            wrap_degrees(r.z + euler_degs.z),
        )

    def set(self, world_position: Vector3, world_rotation_degs: Vector3) -> None:
        self.world_position = world_position
        self.world_rotation_degs = world_rotation_degs

    def copy(self) -> "Pose":
        return Pose(self.world_position, self.world_rotation_degs)
