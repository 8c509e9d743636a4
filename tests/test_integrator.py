import math

import pytest

from fictrac_subject.errors import MissingCollaboratorError
from fictrac_subject.integrator import FicTracIntegratedUpdater, FicTracSmoothedUpdater
from fictrac_subject.kinematic_subject import KinematicSubject
from fictrac_subject.profiles import RigProfile
from fictrac_subject.session_log import FicTracMessage, FicTracParameters, SpinGated
from fictrac_subject.transport import ScriptedMessageSource
from fictrac_subject.vectors import Vector3

DT = 1.0 / 60.0
RAD2DEG = 180.0 / math.pi


def _angle_close(a, b, tol=1e-6):
    d = abs(a - b) % 360.0
    return min(d, 360.0 - d) < tol


@pytest.fixture
def direct_profile():
    return RigProfile(ball_radius=0.5, translational_gain=1.0, heading_source="integrated")


def test_scenario_translation_and_heading(make_message, direct_profile, session_logger, clock):
    messages = [make_message(counter=i, delta=(1.0, 2.0, 0.1), heading=0.1 * i) for i in range(1, 6)]
    updater = FicTracIntegratedUpdater(ScriptedMessageSource(messages), direct_profile, session_logger)
    subject = KinematicSubject(updater, session_logger, clock=clock)
    subject.start()

    subject.tick(DT)
    assert updater.translation() == Vector3(1.0, 0.0, 0.5)
    assert updater.rotation_degrees().y == pytest.approx(-0.1 * RAD2DEG)

    for _ in range(4):
        subject.tick(DT)
        assert updater.rotation_degrees().y == pytest.approx(-0.1 * RAD2DEG)
    assert _angle_close(subject.pose.heading, (-0.5 * RAD2DEG) % 360.0)


def test_integrated_heading_follows_field_17(make_message, direct_profile):
    # two messages in one frame: only the net change counts
    messages = [make_message(heading=0.2), make_message(heading=0.5)]
    updater = FicTracIntegratedUpdater(ScriptedMessageSource(messages, per_frame=2), direct_profile)
    updater.start()
    updater.update(DT)
    assert updater.rotation_degrees().y == pytest.approx(-0.5 * RAD2DEG)
    assert updater.translation() == Vector3()


def test_delta_heading_mode(make_message):
    profile = RigProfile(ball_radius=1.0, translational_gain=2.0, heading_source="delta")
    messages = [make_message(delta=(0.0, 0.5, 0.01)), make_message(delta=(0.0, 0.5, 0.02))]
    updater = FicTracIntegratedUpdater(ScriptedMessageSource(messages, per_frame=2), profile)
    updater.start()
    updater.update(DT)
    assert updater.translation() == Vector3(2.0, 0.0, 0.0)
    assert updater.rotation_degrees().y == pytest.approx(-0.03 * RAD2DEG)


def test_no_messages_means_no_motion(direct_profile):
    updater = FicTracIntegratedUpdater(ScriptedMessageSource([]), direct_profile)
    updater.start()
    updater.update(DT)
    assert updater.translation() is None
    assert updater.rotation_degrees() is None


def test_parse_failure_skips_only_that_message(make_message, direct_profile):
    bad = make_message(delta=(1.0, 2.0, 0.0)).replace("2.0", "2.x", 1)
    good = make_message(delta=(1.0, 2.0, 0.0))
    updater = FicTracIntegratedUpdater(ScriptedMessageSource([bad, good], per_frame=2), direct_profile)
    updater.start()
    updater.update(DT)
    assert updater.parse_failures == 1
    assert updater.messages_processed == 1
    assert updater.translation() == Vector3(1.0, 0.0, 0.5)


def test_truncated_message_is_a_parse_failure(direct_profile):
    updater = FicTracIntegratedUpdater(ScriptedMessageSource(["FT, 1, 0, 0\n"]), direct_profile)
    updater.start()
    updater.update(DT)
    assert updater.parse_failures == 1
    assert updater.translation() is None


def test_start_logs_parameters_and_messages(make_message, session_logger):
    profile = RigProfile(
        fictrac_address="10.0.0.2", fictrac_port=2001, ball_radius=0.5,
        translational_gain=1.0, log_messages=True,
    )
    msg = make_message(delta=(0.1, 0.2, 0.3), heading=1.25, timestamp_ms=1680000000123)
    source = ScriptedMessageSource([msg], start_ms=5000)
    updater = FicTracIntegratedUpdater(source, profile, session_logger)
    updater.start()
    updater.update(DT)
    session_logger.write()

    params = session_logger.records(FicTracParameters)
    assert len(params) == 1
    assert params[0].server_address == "10.0.0.2"
    assert params[0].server_port == 2001
    assert params[0].mode == "integrated"

    logged = session_logger.records(FicTracMessage)
    assert len(logged) == 1
    assert logged[0].timestamp_write_ms == 1680000000123
    assert logged[0].timestamp_read_ms == 5016
    assert logged[0].delta_rotation_vector_lab == Vector3(0.1, 0.2, 0.3)
    assert logged[0].integrated_heading_lab == 1.25
    assert not logged[0].gated


def test_missing_source():
    with pytest.raises(MissingCollaboratorError):
        FicTracIntegratedUpdater(None)


# === Smoothed + gated ========================================================

def test_smoothed_applies_averaged_delta(make_message):
    profile = RigProfile(ball_radius=0.5, translational_gain=4.0, smoothing_count=2)
    messages = [make_message(delta=(0.2, 0.4, 0.001)) for _ in range(3)]
    updater = FicTracSmoothedUpdater(ScriptedMessageSource(messages), profile)
    updater.start()

    updater.update(DT)
    # half of the first sample: the second slot is still empty
    t = updater.translation()
    assert t.x == pytest.approx(0.4 * 2.0 / 2)
    assert t.z == pytest.approx(0.2 * 2.0 / 2)
    assert updater.rotation_degrees().y == pytest.approx(-0.0005 * RAD2DEG)

    updater.update(DT)
    t = updater.translation()
    assert t.x == pytest.approx(0.4 * 2.0)
    assert t.z == pytest.approx(0.2 * 2.0)


def test_spin_gate_drops_fast_samples_but_logs_them(make_message, session_logger):
    profile = RigProfile(
        ball_radius=0.5, translational_gain=4.0, smoothing_count=1,
        spin_threshold_deg_s=300.0, log_messages=True,
    )
    # 0.1 rad in 1/60 s is ~344 deg/s
    messages = [make_message(delta=(0.5, 0.5, 0.1)), make_message(delta=(0.5, 0.5, 0.001))]
    updater = FicTracSmoothedUpdater(ScriptedMessageSource(messages), profile, session_logger)
    updater.start()

    updater.update(DT)
    assert updater.translation() == Vector3()
    assert updater.gate.gated_count == 1

    updater.update(DT)
    assert updater.translation() == Vector3(1.0, 0.0, 1.0)
    session_logger.write()

    gated = session_logger.records(SpinGated)
    assert len(gated) == 1
    assert gated[0].angular_speed == pytest.approx(0.1 * RAD2DEG * 60.0)
    assert gated[0].threshold == 300.0

    logged = session_logger.records(FicTracMessage)
    assert [m.gated for m in logged] == [True, False]
    assert logged[0].delta_rotation_vector_lab == Vector3(0.5, 0.5, 0.1)


def test_huge_field_does_not_abort_the_drain(make_message, direct_profile):
    huge = make_message(delta=(0.0, 0.0, 0.0)).replace("0.0", "9" * 320 + ".5", 1)
    good = make_message(delta=(1.0, 2.0, 0.0))
    updater = FicTracIntegratedUpdater(ScriptedMessageSource([huge, good], per_frame=2), direct_profile)
    updater.start()
    updater.update(DT)
    assert updater.parse_failures == 0
    assert updater.messages_processed == 2


@pytest.mark.parametrize("heading_source, turns", [("integrated", [1, 0, 0]), ("delta", [1, 1, 1])])
def test_repeated_message_per_heading_source(make_message, heading_source, turns):
    profile = RigProfile(heading_source=heading_source)
    message = make_message(delta=(0.0, 0.0, 0.1), heading=0.1)
    updater = FicTracIntegratedUpdater(ScriptedMessageSource([message] * 3), profile)
    updater.start()
    for turned in turns:
        updater.update(DT)
        rotation = updater.rotation_degrees()
        if turned:
            assert rotation.y == pytest.approx(-0.1 * RAD2DEG)
        else:
            assert rotation is None or rotation.is_zero()
