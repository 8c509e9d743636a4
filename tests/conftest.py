import pytest

from fictrac_subject.persistence import InMemoryStore
from fictrac_subject.session_log import FrameClock, SessionLogger

N_FIELDS = 25


def fictrac_message(counter=1, delta=(0.0, 0.0, 0.0), heading=0.0, timestamp_ms=1000, **fields):
    """One FicTrac socket line; field N is data_header column N."""
    values = ["0"] * N_FIELDS
    values[0] = "FT"
    values[1] = str(counter)
    values[6], values[7], values[8] = (repr(float(v)) for v in delta)
    values[17] = repr(float(heading))
    values[22] = str(int(timestamp_ms))
    for key, value in fields.items():
        values[int(key.lstrip("f"))] = str(value)
    return ", ".join(values) + "\n"


@pytest.fixture
def make_message():
    return fictrac_message


@pytest.fixture
def clock():
    return FrameClock()


@pytest.fixture
def session_logger(clock):
    """In-memory logger sharing ``clock``."""
    return SessionLogger(clock=clock)


@pytest.fixture
def file_logger(tmp_path, clock):
    return SessionLogger(tmp_path / "logs", clock=clock, file_name="fictrac_20240101_120000_log.jsonl")


@pytest.fixture
def store():
    return InMemoryStore()
