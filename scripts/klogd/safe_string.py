#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
klogd/safe_string.py
====================

Bounded string construction into fixed-capacity, NUL-terminated buffers.

A bounded buffer is a caller-owned `bytearray` plus a declared capacity
(`dst_size`). Its content is every byte before the first NUL inside the
declared capacity. None of the functions below ever writes at or past index
`dst_size`, and every anomaly (bad arguments, truncation, formatting failure)
is reported on the diagnostic channel instead of being silently absorbed.

Sources may be `str` (encoded UTF-8) or `bytes`. `None` stands for an absent
pointer. Like a C string, a source ends at its first NUL.

Return codes
------------
STR_OK            = 0  result complete
STR_TRUNCATED     = 1  result valid but shortened to fit
STR_INVALID       = 2  bad arguments (buffer untouched or forced empty)
STR_FORMAT_ERROR  = 3  formatting failed (buffer forced empty)
"""

from __future__ import annotations

import logging
from typing import Optional, Union

STR_OK = 0
STR_TRUNCATED = 1
STR_INVALID = 2
STR_FORMAT_ERROR = 3

Text = Union[str, bytes, bytearray]

_log = logging.getLogger("klogd")


def _as_cstring(src: Text) -> bytes:
    data = src.encode("utf-8") if isinstance(src, str) else bytes(src)
    nul = data.find(b"\0")
    return data if nul < 0 else data[:nul]


def _dst_ok(name: str, dst: Optional[bytearray], dst_size: int, logger) -> bool:
    if dst is None:
        logger.error(f"{name} null dst")
        return False
    if dst_size < 1 or dst_size > len(dst):
        logger.error(f"{name} invalid dst size")
        return False
    return True


def _cur_len(dst: bytearray, dst_size: int) -> int:
    """Length of the buffer content, or dst_size when no NUL is in bounds."""
    nul = dst.find(b"\0", 0, dst_size)
    return dst_size if nul < 0 else nul


def buffer_value(dst: bytearray, dst_size: Optional[int] = None) -> bytes:
    """Return the content of a bounded buffer (bytes before the first NUL)."""
    size = len(dst) if dst_size is None else min(dst_size, len(dst))
    return bytes(dst[:_cur_len(dst, size)])


def bounded_copy(dst: Optional[bytearray], dst_size: int, src: Optional[Text], *, logger=None) -> int:
    """
    Copy `src` into `dst`, truncating to `dst_size - 1` bytes if needed.

    An absent `src` still leaves `dst` holding the empty string.
    """
    logger = logger or _log
    if not _dst_ok("bounded_copy", dst, dst_size, logger):
        return STR_INVALID

    dst[0] = 0

    if src is None:
        logger.error("bounded_copy null src")
        return STR_INVALID
    if not isinstance(src, (str, bytes, bytearray)):
        logger.error(f"bounded_copy invalid src type {type(src).__name__}")
        return STR_INVALID

    data = _as_cstring(src)
    rc = STR_OK
    if len(data) >= dst_size:
        logger.error(f"bounded_copy buffer overflow on '{data.decode('utf-8', 'replace')}'")
        data = data[:dst_size - 1]
        rc = STR_TRUNCATED

    dst[:len(data)] = data
    dst[len(data)] = 0
    return rc


def bounded_append(dst: Optional[bytearray], dst_size: int, src: Optional[Text], *, logger=None) -> int:
    """
    Append `src` to the content of `dst` in place.

    A buffer with no terminator inside `dst_size` is already broken; it is
    reported and left alone rather than repaired.
    """
    logger = logger or _log
    if not _dst_ok("bounded_append", dst, dst_size, logger):
        return STR_INVALID

    dst_len = _cur_len(dst, dst_size)
    if dst_len >= dst_size:
        logger.error("bounded_append invalid dst len")
        return STR_INVALID

    if src is None:
        logger.error("bounded_append null src")
        return STR_INVALID
    if not isinstance(src, (str, bytes, bytearray)):
        logger.error(f"bounded_append invalid src type {type(src).__name__}")
        return STR_INVALID

    data = _as_cstring(src)
    if not data:
        return STR_OK

    max_len = (dst_size - 1) - dst_len
    rc = STR_OK
    if len(data) > max_len:
        logger.error("bounded_append buffer overflow")
        data = data[:max_len]
        rc = STR_TRUNCATED

    if data:
        dst[dst_len:dst_len + len(data)] = data
        dst[dst_len + len(data)] = 0
    return rc


def bounded_format(dst: Optional[bytearray], dst_size: int, fmt: Optional[Text], *args, logger=None) -> int:
    """
    printf-style formatted write (`fmt % args`) into a bounded buffer.

    The formatted result is measured before it is stored; anything at or past
    `dst_size - 1` is dropped and the buffer is re-terminated explicitly.
    """
    logger = logger or _log
    if not _dst_ok("bounded_format", dst, dst_size, logger):
        return STR_INVALID

    dst[0] = 0

    if fmt is None:
        logger.error("bounded_format null fmt")
        return STR_INVALID
    if not isinstance(fmt, (str, bytes, bytearray)):
        logger.error(f"bounded_format invalid fmt type {type(fmt).__name__}")
        return STR_INVALID

    try:
        out = fmt % args
        if isinstance(out, str):
            out = out.encode("utf-8")
        else:
            out = bytes(out)
    except (TypeError, ValueError, KeyError, OverflowError, UnicodeError) as e:
        logger.error(f"bounded_format error: {e}")
        dst[0] = 0
        return STR_FORMAT_ERROR

    n = len(out)
    if n >= dst_size:
        logger.error("bounded_format buffer overflow")
        dst[:dst_size - 1] = out[:dst_size - 1]
        dst[dst_size - 1] = 0
        return STR_TRUNCATED

    dst[:n] = out
    dst[n] = 0
    return STR_OK


class BoundedBuffer:
    """A bytearray and its capacity, kept together."""

    def __init__(self, capacity: int, *, logger=None):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.buf = bytearray(capacity)
        self.logger = logger

    def copy(self, src: Optional[Text]) -> int:
        return bounded_copy(self.buf, self.capacity, src, logger=self.logger)

    def append(self, src: Optional[Text]) -> int:
        return bounded_append(self.buf, self.capacity, src, logger=self.logger)

    def format(self, fmt: Optional[Text], *args) -> int:
        return bounded_format(self.buf, self.capacity, fmt, *args, logger=self.logger)

    @property
    def value(self) -> bytes:
        return buffer_value(self.buf, self.capacity)

    @property
    def text(self) -> str:
        return self.value.decode("utf-8", "replace")

    def __len__(self) -> int:
        return len(self.value)

    def __repr__(self) -> str:
        return f"BoundedBuffer(capacity={self.capacity}, value={self.value!r})"
