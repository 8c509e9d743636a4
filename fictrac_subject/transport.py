#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
transport.py — FicTrac berichtbronnen (socket, serieel, script)

De core vraagt alleen:
    start()
    drain()  -> (message_bytes, read_timestamp_ms, header_offset) per bericht
    stop()

``drain()`` returns what is available right now and never blocks; an empty
drain is a normal frame. Messages are complete lines that contain the header
byte ('F' of "FT, ..."); partial lines stay in the transport until the rest
arrives.

Bronnen:
- SocketMessageReader : UDP (FicTrac's socket output) of TCP, eigen thread,
                        begrensde ring van ``buffer_count`` berichten
- SerialMessageReader : pyserial, gepold vanuit drain()
- ScriptedMessageSource : vaste lijst berichten, N per frame (offline, tests)
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections import deque
from pathlib import Path
from typing import Deque, Iterator, List, Optional, Protocol, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

Message = Tuple[bytes, int, int]   # (bytes, read_ms, header offset)

HEADER = b"F"


def now_ms() -> int:
    return int(time.time() * 1000)


class MessageSource(Protocol):
    def start(self) -> None: ...

    def drain(self) -> Iterator[Message]: ...

    def stop(self) -> None: ...


# === Line framing ============================================================

class LineSplitter:
    """Accumulate raw chunks, emit complete header-bearing lines."""

    def __init__(self, header: bytes = HEADER, max_size: int = 1024):
        self.header = header
        self.max_size = int(max_size)
        self.buf = bytearray()
        self.dropped = 0

    def feed(self, chunk: bytes) -> List[Tuple[bytes, int]]:
        if chunk:
            self.buf.extend(chunk)
        out: List[Tuple[bytes, int]] = []
        while True:
            idx = self.buf.find(b"\n")
            if idx < 0:
                # Geen einde in zicht: voorkom onbegrensde groei
                if len(self.buf) > self.max_size:
                    self.dropped += 1
                    self.buf.clear()
                break
            line = bytes(self.buf[:idx + 1])
            del self.buf[:idx + 1]
            framed = frame_message(line, self.header, self.max_size)
            if framed is None:
                self.dropped += 1
                continue
            out.append(framed)
        return out


def frame_message(raw: bytes, header: bytes = HEADER, max_size: int = 1024) -> Optional[Tuple[bytes, int]]:
    """Clip ``raw`` to ``max_size`` and find the header. None if there is none."""
    if len(raw) > max_size:
        raw = raw[:max_size]
    i0 = raw.find(header)
    if i0 < 0:
        return None
    return raw, i0


# === Socket ==================================================================

class SocketMessageReader:
    """
    FicTrac socket reader on a background thread.

    ``protocol="udp"`` binds ``address:port`` and takes one message per
    datagram (FicTrac 2 sends that way). ``protocol="tcp"`` connects to
    ``address:port`` and splits the stream on newlines.
    """

    def __init__(
        self,
        address: str = "127.0.0.1",
        port: int = 2000,
        *,
        header: bytes = HEADER,
        buffer_size: int = 1024,
        buffer_count: int = 240,
        protocol: str = "udp",
        poll_timeout_s: float = 0.1,
    ):
        if protocol not in ("udp", "tcp"):
            raise ValueError(f"protocol must be 'udp' or 'tcp', not {protocol!r}")
        self.address = address
        self.port = int(port)
        self.header = header
        self.buffer_size = int(buffer_size)
        self.buffer_count = int(buffer_count)
        self.protocol = protocol
        self.poll_timeout_s = float(poll_timeout_s)

        self._ring: Deque[Message] = deque(maxlen=self.buffer_count)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._sock: Optional[socket.socket] = None

        self.received = 0
        self.overflowed = 0

    def start(self) -> None:
        if self._thread is not None:
            return
        if self.protocol == "udp":
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.address, self.port))
        else:
            sock = socket.create_connection((self.address, self.port))
        sock.settimeout(self.poll_timeout_s)
        self._sock = sock
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="fictrac-socket", daemon=True)
        self._thread.start()
        logger.info("Reading FicTrac %s messages from %s:%d", self.protocol, self.address, self.port)

    def _push(self, raw: bytes, i0: int) -> None:
        with self._lock:
            if len(self._ring) == self._ring.maxlen:
                self.overflowed += 1
            self._ring.append((raw, now_ms(), i0))
            self.received += 1

    def _run(self) -> None:
        splitter = LineSplitter(self.header, self.buffer_size)
        sock = self._sock
        while not self._stop.is_set():
            try:
                chunk = sock.recv(self.buffer_size)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop.is_set():
                    logger.warning("FicTrac socket error: %s", e)
                break
            if not chunk:
                if self.protocol == "tcp":
                    logger.warning("FicTrac closed the connection")
                    break
                continue
            if self.protocol == "udp":
                framed = frame_message(chunk, self.header, self.buffer_size)
                if framed is not None:
                    self._push(*framed)
            else:
                for raw, i0 in splitter.feed(chunk):
                    self._push(raw, i0)

    def drain(self) -> Iterator[Message]:
        with self._lock:
            batch = list(self._ring)
            self._ring.clear()
        return iter(batch)

    def stop(self) -> None:
        self._stop.set()
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        self._thread = None
        self._sock = None


# === Serial ==================================================================

class SerialMessageReader:
    """FicTrac serial output (``out_port``) via pyserial; read without blocking."""

    def __init__(
        self,
        port: str = "/dev/ttyUSB0",
        baud: int = 115200,
        *,
        header: bytes = HEADER,
        buffer_size: int = 1024,
    ):
        self.port = port
        self.baud = int(baud)
        self.header = header
        self.buffer_size = int(buffer_size)
        self._splitter = LineSplitter(header, buffer_size)
        self._ser = None

    def start(self) -> None:
        import serial

        self._ser = serial.Serial(self.port, self.baud, timeout=0)
        logger.info("Reading FicTrac messages from %s @ %d", self.port, self.baud)

    def drain(self) -> Iterator[Message]:
        if self._ser is None:
            return iter(())
        chunk = self._ser.read(4096)
        t = now_ms()
        return iter([(raw, t, i0) for raw, i0 in self._splitter.feed(chunk)])

    def stop(self) -> None:
        if self._ser is not None:
            self._ser.close()
        self._ser = None


# === Scripted ================================================================

class ScriptedMessageSource:
    """
    Replays a fixed list of messages, ``per_frame`` per drain.

    ``per_frame`` may also be a list: element k is how many messages frame k
    gets (0 = a frame without data); past its end every frame gets 1.
    """

    def __init__(
        self,
        messages: Sequence[Union[bytes, str]],
        per_frame: Union[int, Sequence[int]] = 1,
        *,
        header: bytes = HEADER,
        start_ms: int = 0,
        frame_ms: int = 16,
    ):
        self._messages: List[Tuple[bytes, int]] = []
        for m in messages:
            raw = m.encode("ascii") if isinstance(m, str) else bytes(m)
            i0 = raw.find(header)
            self._messages.append((raw, i0 if i0 >= 0 else 0))
        self._per_frame = per_frame
        self._next = 0
        self._frame = 0
        self._t_ms = int(start_ms)
        self._frame_ms = int(frame_ms)
        self.started = False
        self.stopped = False

    @classmethod
    def from_file(cls, path: str | Path, per_frame: Union[int, Sequence[int]] = 1) -> "ScriptedMessageSource":
        with open(path, "r", encoding="ascii") as f:
            lines = [ln.rstrip("\r\n") + "\n" for ln in f if ln.strip()]
        return cls(lines, per_frame)

    @property
    def exhausted(self) -> bool:
        return self._next >= len(self._messages)

    def _count_for_frame(self) -> int:
        if isinstance(self._per_frame, int):
            return self._per_frame
        if self._frame < len(self._per_frame):
            return int(self._per_frame[self._frame])
        return 1

    def start(self) -> None:
        self.started = True

    def drain(self) -> Iterator[Message]:
        n = self._count_for_frame()
        self._frame += 1
        self._t_ms += self._frame_ms
        batch = self._messages[self._next:self._next + n]
        self._next += len(batch)
        return iter([(raw, self._t_ms, i0) for raw, i0 in batch])

    def stop(self) -> None:
        self.stopped = True
