import json

import pytest

from fictrac_subject.errors import ProfileError
from fictrac_subject.profiles import (
    PROFILE_INTEGRATED,
    PROFILE_SLIP,
    PROFILE_SMOOTHED,
    PROFILES,
    RigProfile,
    load_profile_from_json,
)


def test_presets():
    assert set(PROFILES) == {"integrated", "smoothed", "slip"}
    assert PROFILE_INTEGRATED.translational_gain == 1.0
    assert PROFILE_SMOOTHED.translational_gain == 4.0
    assert PROFILE_SLIP.primary_duration_s == 2.0
    assert PROFILE_SLIP.secondary_duration_s == 15.0
    assert PROFILE_SLIP.rotation_rate_deg_s == 50.0
    for p in PROFILES.values():
        assert p.validate() is p


def test_defaults():
    p = RigProfile()
    assert (p.fictrac_address, p.fictrac_port) == ("127.0.0.1", 2000)
    assert p.ball_radius == 0.5
    assert (p.buffer_size, p.buffer_count) == (1024, 240)
    assert (p.still_frames, p.min_write_interval, p.max_write_interval) == (5, 100, 200)
    assert p.frame_rate == 60.0


@pytest.mark.parametrize("changes", [
    {"updater": "teleport"},
    {"smoothing_count": 0},
    {"min_write_interval": 300},
    {"initial_direction": 0},
    {"frame_rate": 0.0},
    {"fictrac_protocol": "sctp"},
])
def test_invalid_values(changes):
    with pytest.raises(ProfileError):
        RigProfile().replace(**changes)


def test_replace_ignores_none():
    p = PROFILE_SLIP.replace(fictrac_port=None, translational_gain=2.0)
    assert p.fictrac_port == 2000
    assert p.translational_gain == 2.0
    assert PROFILE_SLIP.translational_gain == 4.0


def _write(tmp_path, doc):
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def test_load_profile_from_json(tmp_path):
    path = _write(tmp_path, {
        "profiles": {
            "rig_b": {
                "base": "slip",
                "params": {
                    "fictrac": {"address": "192.168.1.5", "port": 2010, "ball_radius": 0.45},
                    "spin": {"threshold_deg_s": 250.0},
                    "logging": {"still_frames": 8, "max_write_interval": 400},
                    "blocks": {"secondary_duration_s": 5.0},
                    "averaging": {"window_frames": 120, "hierarchy": ["Rig", "Fly"]},
                },
            },
        },
    })
    p = load_profile_from_json(str(path), "rig_b")
    assert p.name == "rig_b"
    assert p.updater == "slip"
    assert p.fictrac_address == "192.168.1.5"
    assert p.fictrac_port == 2010
    assert p.ball_radius == 0.45
    assert p.spin_threshold_deg_s == 250.0
    assert p.still_frames == 8
    assert p.max_write_interval == 400
    assert p.secondary_duration_s == 5.0
    assert p.primary_duration_s == 2.0
    assert p.averaging_window_frames == 120
    assert p.hierarchy == ("Rig", "Fly")


def test_unknown_profile_lists_available(tmp_path):
    path = _write(tmp_path, {"profiles": {"a": {"params": {}}}})
    with pytest.raises(ValueError, match="Available"):
        load_profile_from_json(str(path), "b")


def test_unknown_keys_rejected(tmp_path):
    path = _write(tmp_path, {"profiles": {"a": {"params": {"fictrac": {"gian": 3}}}}})
    with pytest.raises(ProfileError):
        load_profile_from_json(str(path), "a")
