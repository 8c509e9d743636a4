import math

import pytest

from fictrac_subject.behavior_blocks import BehaviorBlocks, BehaviorState, FicTracSlipUpdater
from fictrac_subject.errors import MissingCollaboratorError
from fictrac_subject.kinematic_subject import KinematicSubject
from fictrac_subject.profiles import RigProfile
from fictrac_subject.session_log import BlockTransition, FicTracMessage, SlipAttempt
from fictrac_subject.transport import ScriptedMessageSource
from fictrac_subject.vectors import Pose

RAD2DEG = 180.0 / math.pi


def _angle_close(a, b, tol=1e-6):
    d = abs(a - b) % 360.0
    return min(d, 360.0 - d) < tol


def test_primary_then_secondary_then_primary_with_flipped_direction():
    blocks = BehaviorBlocks(primary_duration=2.0, secondary_duration=15.0, rotation_rate_deg_s=50.0)
    assert blocks.state is BehaviorState.PRIMARY
    for _ in range(3):
        assert blocks.advance(0.5) is BehaviorState.PRIMARY
    # exactly 2 s of frame time
    assert blocks.advance(0.5) is BehaviorState.SECONDARY
    assert blocks.direction == 1

    for _ in range(29):
        assert blocks.advance(0.5) is BehaviorState.SECONDARY
    assert blocks.advance(0.5) is BehaviorState.PRIMARY
    assert blocks.direction == -1
    assert blocks.elapsed == 0.0
    assert blocks.secondary_elapsed == 0.0


def test_slip_heading_is_time_driven():
    blocks = BehaviorBlocks(primary_duration=1.0, secondary_duration=10.0, rotation_rate_deg_s=50.0)
    blocks.advance(1.0, heading_degs=30.0)
    assert blocks.heading_at_entry == 30.0
    assert blocks.slip_heading() == 30.0
    blocks.advance(0.25)
    blocks.advance(0.25)
    assert blocks.slip_heading() == pytest.approx(55.0)


def test_transitions_are_logged(session_logger):
    blocks = BehaviorBlocks(primary_duration=1.0, secondary_duration=1.0, session_logger=session_logger)
    for _ in range(4):
        blocks.advance(0.5, heading_degs=12.0)
    session_logger.write()
    transitions = session_logger.records(BlockTransition)
    assert [(t.state, t.direction) for t in transitions] == [("secondary", 1.0), ("primary", -1.0)]
    assert transitions[0].heading_at_entry_degs == 12.0


def test_invalid_direction():
    with pytest.raises(ValueError):
        BehaviorBlocks(direction=2)


def test_slip_updater_needs_pose():
    with pytest.raises(MissingCollaboratorError):
        FicTracSlipUpdater(ScriptedMessageSource([]), None)


def test_secondary_rotates_open_loop_and_logs_attempts(make_message, session_logger, clock):
    profile = RigProfile(
        updater="slip", ball_radius=0.5, translational_gain=4.0, smoothing_count=1,
        primary_duration_s=0.5, secondary_duration_s=1.0, rotation_rate_deg_s=40.0,
        log_messages=True,
    )
    dt = 0.25
    # heading changes per message stay well under the spin threshold
    messages = [make_message(counter=i, delta=(0.0, 0.1, 0.0), heading=0.01 * i) for i in range(40)]
    pose = Pose()
    updater = FicTracSlipUpdater(ScriptedMessageSource(messages), pose, profile, session_logger)
    subject = KinematicSubject(updater, session_logger, clock=clock, pose=pose)
    subject.start()

    # frame 1: primary, FicTrac moves the subject forward
    subject.tick(dt)
    assert updater.state is BehaviorState.PRIMARY
    assert pose.world_position.x == pytest.approx(0.1 * 0.5 * 4.0)

    # frame 2: 0.5 s reached -> secondary, heading fixed at entry
    subject.tick(dt)
    assert updater.state is BehaviorState.SECONDARY
    entry_heading = updater.blocks.heading_at_entry
    position = pose.world_position

    headings = []
    for _ in range(3):
        subject.tick(dt)
        assert updater.state is BehaviorState.SECONDARY
        headings.append(pose.heading)
    # messages keep draining but do not move the subject
    assert pose.world_position == position
    for k, h in enumerate(headings, start=1):
        assert _angle_close(h, entry_heading + 40.0 * dt * k)

    # 1 s of secondary time -> back to primary, direction flipped
    subject.tick(dt)
    assert updater.state is BehaviorState.PRIMARY
    assert updater.blocks.direction == -1

    subject.close()
    attempts = session_logger.records(SlipAttempt)
    assert len(attempts) == 4
    first = attempts[0]
    assert first.fictrac_attempt.y == 0.1
    assert first.slip_offset_degs == pytest.approx(first.slip_heading_degs - first.fictrac_attempt.z * RAD2DEG)
    assert len(session_logger.records(FicTracMessage)) == 6


def test_secondary_feeds_gate_absolute_headings(make_message):
    profile = RigProfile(primary_duration_s=0.0, secondary_duration_s=10.0, spin_threshold_deg_s=300.0)
    messages = [make_message(heading=0.0), make_message(heading=0.6)]
    updater = FicTracSlipUpdater(ScriptedMessageSource(messages), Pose(), profile)
    updater.start()
    updater.update(0.1)
    updater.update(0.1)
    assert updater.state is BehaviorState.SECONDARY
    assert updater.gate.angular_speed == pytest.approx(0.6 * RAD2DEG / 0.1)
    assert not updater.gate.passes
