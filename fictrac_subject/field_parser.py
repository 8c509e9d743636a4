#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
field_parser.py — FicTrac socket field extraction

Een FicTrac bericht is één regel tekst:

    FT, 1, 0.001, 0.002, ..., 0.1, ..., 1680000000000, ...

Field 0 is the "FT" header, so field N lines up with column N of FicTrac's
data_header.txt:
- 6-8  delta rotation vector (lab), radians
- 17   integrated animal heading (lab), radians
- 22   timestamp written by FicTrac, ms

Principes:
- A field is described as ``(offset, length)`` into the transport's buffer,
  nothing is sliced or copied.
- Numbers are parsed straight from the bytes, ``%f`` / ``%e`` / ``%ld`` style.
- Failure is a flag, never an exception. The caller drops the message.
"""

from __future__ import annotations

from typing import Tuple

SEPARATOR = ord(",")

_SPACE = (0x20, 0x09)
_END = (0x0A, 0x0D, 0x00)    # \n, \r, NUL close a message
_DIGIT_0 = 0x30
_DIGIT_9 = 0x39
_MINUS = 0x2D
_PLUS = 0x2B
_DOT = 0x2E
_E_LOWER = 0x65
_E_UPPER = 0x45

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

# Beyond this the decimal exponent cannot matter for a double.
_MAX_DECIMAL_EXP = 400


def nth_split(buf, separator: int, start: int, n: int) -> Tuple[int, int]:
    """
    Locate field ``n`` (0-based) of the message beginning at ``start``.

    Returns ``(offset, length)``. When the message ends before field ``n``
    the result is ``(-1, 0)``. The scan never passes the end of ``buf`` or
    the end of the message (newline / NUL).
    """
    end = len(buf)
    if start < 0 or start >= end or n < 0:
        return -1, 0

    i = start
    remaining = n
    while remaining > 0:
        if i >= end:
            return -1, 0
        b = buf[i]
        if b in _END:
            return -1, 0
        if b == separator:
            remaining -= 1
        i += 1

    offset = i
    while i < end:
        b = buf[i]
        if b == separator or b in _END:
            break
        i += 1
    return offset, i - offset


def _trim(buf, offset: int, length: int) -> Tuple[int, int]:
    i = offset
    j = offset + length
    while i < j and buf[i] in _SPACE:
        i += 1
    while j > i and buf[j - 1] in _SPACE:
        j -= 1
    return i, j


def _matches_word(buf, i: int, j: int, word: bytes) -> bool:
    if j - i != len(word):
        return False
    for k in range(len(word)):
        b = buf[i + k]
        if 0x41 <= b <= 0x5A:
            b += 0x20
        if b != word[k]:
            return False
    return True


def parse_double(buf, offset: int, length: int) -> Tuple[float, bool]:
    """Parse ``buf[offset:offset+length]`` as a double. Returns ``(value, valid)``."""
    if offset < 0 or length <= 0 or offset + length > len(buf):
        return 0.0, False

    i, j = _trim(buf, offset, length)
    if i >= j:
        return 0.0, False

    negative = False
    if buf[i] in (_MINUS, _PLUS):
        negative = buf[i] == _MINUS
        i += 1
        if i >= j:
            return 0.0, False

    # nan / inf, zoals printf ze schrijft
    b = buf[i]
    if not (_DIGIT_0 <= b <= _DIGIT_9) and b != _DOT:
        if _matches_word(buf, i, j, b"nan"):
            return float("nan"), True
        if _matches_word(buf, i, j, b"inf") or _matches_word(buf, i, j, b"infinity"):
            return (float("-inf") if negative else float("inf")), True
        return 0.0, False

    mantissa = 0
    exp10 = 0
    digits = 0

    while i < j and _DIGIT_0 <= buf[i] <= _DIGIT_9:
        mantissa = mantissa * 10 + (buf[i] - _DIGIT_0)
        digits += 1
        i += 1

    if i < j and buf[i] == _DOT:
        i += 1
        while i < j and _DIGIT_0 <= buf[i] <= _DIGIT_9:
            mantissa = mantissa * 10 + (buf[i] - _DIGIT_0)
            exp10 -= 1
            digits += 1
            i += 1

    if digits == 0:
        return 0.0, False

    if i < j and buf[i] in (_E_LOWER, _E_UPPER):
        i += 1
        exp_negative = False
        if i < j and buf[i] in (_MINUS, _PLUS):
            exp_negative = buf[i] == _MINUS
            i += 1
        exp_digits = 0
        e = 0
        while i < j and _DIGIT_0 <= buf[i] <= _DIGIT_9:
            if e <= _MAX_DECIMAL_EXP:
                e = e * 10 + (buf[i] - _DIGIT_0)
            exp_digits += 1
            i += 1
        if exp_digits == 0:
            return 0.0, False
        exp10 += -e if exp_negative else e

    if i != j:
        return 0.0, False

    if mantissa == 0:
        value = 0.0
    elif exp10 > _MAX_DECIMAL_EXP:
        value = float("inf")
    elif exp10 < -2 * _MAX_DECIMAL_EXP:
        value = 0.0
    elif exp10 >= 0:
        try:
            value = float(mantissa * 10 ** exp10)
        except OverflowError:
            value = float("inf")
    else:
        # int / int is correctly rounded
        try:
            value = mantissa / 10 ** (-exp10)
        except OverflowError:
            value = float("inf")

    return (-value if negative else value), True


def parse_long(buf, offset: int, length: int) -> Tuple[int, bool]:
    """Parse ``buf[offset:offset+length]`` as a signed 64-bit integer."""
    if offset < 0 or length <= 0 or offset + length > len(buf):
        return 0, False

    i, j = _trim(buf, offset, length)
    if i >= j:
        return 0, False

    negative = False
    if buf[i] in (_MINUS, _PLUS):
        negative = buf[i] == _MINUS
        i += 1
        if i >= j:
            return 0, False

    value = 0
    while i < j:
        b = buf[i]
        if not (_DIGIT_0 <= b <= _DIGIT_9):
            return 0, False
        value = value * 10 + (b - _DIGIT_0)
        i += 1

    if negative:
        value = -value
    if value < _INT64_MIN or value > _INT64_MAX:
        return 0, False
    return value, True


class FieldParser:
    """Field access for one separator; thin wrapper over the module functions."""

    def __init__(self, separator: int = SEPARATOR):
        if isinstance(separator, (bytes, str)):
            separator = ord(separator)
        self.separator = int(separator)

    def locate(self, buf, start: int, n: int) -> Tuple[int, int]:
        return nth_split(buf, self.separator, start, n)

    def double(self, buf, start: int, n: int) -> Tuple[float, bool]:
        offset, length = nth_split(buf, self.separator, start, n)
        if offset < 0:
            return 0.0, False
        return parse_double(buf, offset, length)

    def long(self, buf, start: int, n: int) -> Tuple[int, bool]:
        offset, length = nth_split(buf, self.separator, start, n)
        if offset < 0:
            return 0, False
        return parse_long(buf, offset, length)
