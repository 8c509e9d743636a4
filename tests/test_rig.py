import pytest

from fictrac_subject.behavior_blocks import FicTracSlipUpdater
from fictrac_subject.integrator import FicTracIntegratedUpdater, FicTracSmoothedUpdater
from fictrac_subject.kinematic_subject import SubjectMode
from fictrac_subject.persistence import JsonFileStore
from fictrac_subject.profiles import PROFILES
from fictrac_subject.rig import build_subject, main, run
from fictrac_subject.session_log import SessionLogger, Transformation, previous_log_file
from fictrac_subject.transport import ScriptedMessageSource


@pytest.mark.parametrize("name, cls", [
    ("integrated", FicTracIntegratedUpdater),
    ("smoothed", FicTracSmoothedUpdater),
    ("slip", FicTracSlipUpdater),
])
def test_build_subject_per_mode(name, cls, session_logger, store):
    subject = build_subject(PROFILES[name], ScriptedMessageSource([]), session_logger, store)
    assert isinstance(subject.updater, cls)
    assert subject.clock is session_logger.clock
    assert subject.averager is not None
    assert not subject.averager.started
    if name == "slip":
        assert subject.updater.pose is subject.pose


def test_build_subject_starts_averaging(session_logger, store):
    profile = PROFILES["slip"].replace(averaging_window_frames=30)
    subject = build_subject(profile, ScriptedMessageSource([]), session_logger, store)
    assert subject.averager.started


def test_run_fixed_step(make_message, session_logger):
    messages = [make_message(delta=(0.0, 0.1, 0.0)) for _ in range(10)]
    subject = build_subject(PROFILES["integrated"], ScriptedMessageSource(messages), session_logger)
    subject.start()
    assert run(subject, 60.0, frames=12, realtime=False) == 12
    subject.close()
    assert len(session_logger.records(Transformation)) == 10


def _write_script(tmp_path, make_message, n=20):
    path = tmp_path / "messages.txt"
    path.write_text("".join(make_message(counter=i, delta=(0.01, 0.02, 0.001)) for i in range(n)), encoding="ascii")
    return path


def test_main_records_then_replays(tmp_path, make_message, capsys):
    script = _write_script(tmp_path, make_message)
    log_dir = tmp_path / "logs"
    store = tmp_path / "store.json"
    common = ["--log-dir", str(log_dir), "--store", str(store), "--fast", "--frames", "30"]

    assert main(["--profile", "slip", "--script", str(script), "--average-window", "10"] + common) == 0
    recorded = previous_log_file(log_dir)
    assert recorded is not None
    assert SessionLogger.read(recorded, Transformation)
    assert JsonFileStore(store).get_float(
        "fictrac_subject.HeadingAverager.FicTracSubject.meanHeadingDegs", -1.0) != -1.0
    out = capsys.readouterr().out
    assert "SESSION SUMMARY" in out

    assert main(["--script", str(script), "--playback"] + common) == 0
    out = capsys.readouterr().out
    assert f"[i] Playback: {recorded}" in out
    assert f"Final mode:      {SubjectMode.IDLE.value}" in out


def test_main_missing_playback_runs_live(tmp_path, make_message, capsys):
    script = _write_script(tmp_path, make_message)
    rc = main([
        "--script", str(script), "--playback", "nope.jsonl", "--log-dir", str(tmp_path / "logs"),
        "--store", str(tmp_path / "store.json"), "--fast", "--frames", "5",
    ])
    assert rc == 0
    out = capsys.readouterr().out
    assert "[!] Playback disabled, running live" in out
    assert "Final mode:      live" in out


def test_main_unknown_profile(capsys):
    assert main(["--profile", "nope"]) == 1
    assert "Available" in capsys.readouterr().out
