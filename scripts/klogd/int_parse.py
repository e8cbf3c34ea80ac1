#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
klogd/int_parse.py

Whole-token integer parsing with C `strtol(s, &end, 0)` rules:
leading whitespace is skipped, an optional sign is accepted and the base is
picked from the prefix (0x -> 16, 0 -> 8, else 10). The token is accepted only
if every character was consumed and the value fits a 64-bit long. The result
is then narrowed to a 32-bit int by wrap-around, without a range check.
"""

from __future__ import annotations

from typing import Optional, Tuple

LONG_MIN = -(1 << 63)
LONG_MAX = (1 << 63) - 1

_C_SPACE = " \t\n\v\f\r"
_HEX = "0123456789abcdefABCDEF"
_DIGITS = "0123456789abcdef"


def _to_c_int(n: int) -> int:
    return ((n + (1 << 31)) % (1 << 32)) - (1 << 31)


def _strtol(s: str) -> Tuple[int, int, bool]:
    """
    Return (value, end_index, overflow). end_index == 0 means nothing was
    converted.
    """
    i = 0
    n = len(s)
    while i < n and s[i] in _C_SPACE:
        i += 1

    neg = False
    if i < n and s[i] in "+-":
        neg = s[i] == "-"
        i += 1

    base = 10
    if i + 1 < n and s[i] == "0" and s[i + 1] in "xX" and i + 2 < n and s[i + 2] in _HEX:
        base = 16
        i += 2
    elif i < n and s[i] == "0":
        base = 8

    digits = _DIGITS[:base]
    start = i
    value = 0
    while i < n:
        d = digits.find(s[i].lower())
        if d < 0:
            break
        value = value * base + d
        i += 1

    if i == start:
        return 0, 0, False

    if neg:
        value = -value
    if value > LONG_MAX or value < LONG_MIN:
        return (LONG_MAX if value > 0 else LONG_MIN), i, True
    return value, i, False


def parse_int(text: Optional[str]) -> Tuple[int, bool]:
    """
    Parse an entire token as an integer.

    Returns (value, True) on success and (0, False) otherwise. " 5" parses
    (leading whitespace is skipped) but "5 " does not (trailing characters).
    """
    if not text:
        return 0, False

    value, end, overflow = _strtol(text)
    if end == 0 or end != len(text) or overflow:
        return 0, False

    return _to_c_int(value), True
