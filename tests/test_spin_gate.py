import pytest

from fictrac_subject.session_log import SpinGated
from fictrac_subject.spin_gate import SpinThresholder, shortest_delta_degrees


@pytest.mark.parametrize("a, b, expected", [
    (0.0, 10.0, 10.0),
    (350.0, 10.0, 20.0),
    (10.0, 350.0, -20.0),
    (0.0, 180.0, -180.0),
])
def test_shortest_delta(a, b, expected):
    assert shortest_delta_degrees(a, b) == pytest.approx(expected)


def test_relative_speed_against_threshold():
    gate = SpinThresholder(threshold=300.0)
    gate.update_relative(4.0, 0.01)
    assert gate.angular_speed == pytest.approx(400.0)
    assert not gate.passes
    gate.update_relative(-2.0, 0.01)
    assert gate.angular_speed == pytest.approx(200.0)
    assert gate.passes


def test_absolute_first_sample_sets_reference():
    gate = SpinThresholder(threshold=100.0)
    gate.update_absolute(359.0, 0.1)
    assert gate.angular_speed == 0.0
    gate.update_absolute(1.0, 0.1)
    assert gate.angular_speed == pytest.approx(20.0)


def test_zero_dt():
    gate = SpinThresholder()
    gate.update_relative(0.0, 0.0)
    assert gate.passes
    gate.update_relative(1.0, 0.0)
    assert not gate.passes


def test_log_records_gated_sample(session_logger):
    gate = SpinThresholder(threshold=50.0, session_logger=session_logger)
    gate.update_relative(10.0, 0.1)
    gate.log()
    session_logger.write()
    (rec,) = session_logger.records(SpinGated)
    assert rec.angular_speed == pytest.approx(100.0)
    assert rec.threshold == 50.0
    assert rec.heading_delta_degs == 10.0
    assert gate.gated_count == 1
