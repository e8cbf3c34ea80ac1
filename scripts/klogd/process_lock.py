#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
klogd/process_lock.py
=====================

Single-instance guarantee for the daemon.

Each component holds an exclusive POSIX advisory lock (fcntl.lockf) on
`<lock_dir>/<component>.pid` for as long as the process runs. The pid written
into the file is for humans only and is never read back: the lock is what
makes the instance exclusive. The OS drops the lock when the holder exits, so
a crashed daemon never leaves a stuck lock behind.

Two ways to use it
------------------
1) Explicit handle (preferred):
     lock = lock_process("logd", logger=logger)
     if lock is None:
         return RC_LOCKED
     ...
     unlock_process(lock)

2) Ambient single instance, for hosts that want one process-wide lock:
     if not acquire_process_lock("logd"):
         return RC_LOCKED
     ...
     release_process_lock()

Failure semantics
-----------------
- Directory creation failure is not fatal (it usually already exists).
- Open or lock failure is fatal to the call: reported at error level, then
  None / False is returned. A descriptor opened before a failed lock attempt
  is left to the OS to reclaim at exit.
- Truncate / pid write failures are reported at debug level only; the lock is
  already held at that point.
"""

from __future__ import annotations

import os
import errno
import fcntl
import logging
import threading
from typing import Optional

from klogd.safe_string import bounded_format, buffer_value

LOCK_DIR = "/tmp/run"
LOCK_DIR_MODE = 0o777
LOCK_FILE_MODE = 0o600
PATH_MAX = 4096
PID_STR_SIZE = 16

_CONTENDED = (errno.EAGAIN, errno.EACCES, errno.EDEADLK)

_log = logging.getLogger("klogd")


class ProcessLockError(RuntimeError):
    """Raised when the lock cannot be taken via the context-manager form."""


class ProcessLock:
    """Lock handle: the pid file path and the descriptor holding the lock."""

    def __init__(self, component: str = "", lock_dir: str = LOCK_DIR, *, logger=None):
        self.component = component
        self.lock_dir = lock_dir
        self.logger = logger or _log
        self.path = ""
        self.fd: Optional[int] = None

    @property
    def locked(self) -> bool:
        return self.fd is not None

    def acquire(self) -> bool:
        """Try once, without blocking. True when this process now owns the lock."""
        logger = self.logger

        try:
            os.mkdir(self.lock_dir, LOCK_DIR_MODE)
        except OSError as e:
            if e.errno != errno.EEXIST:
                logger.debug(f"Failed creating lock dir {self.lock_dir} (err {e.errno}, {e.strerror}).")

        path_buf = bytearray(PATH_MAX)
        bounded_format(path_buf, PATH_MAX, "%s/%s.pid", self.lock_dir, self.component, logger=logger)
        path = buffer_value(path_buf).decode("utf-8", "replace")

        try:
            fd = os.open(path, os.O_RDWR | os.O_CREAT, LOCK_FILE_MODE)
        except OSError as e:
            logger.error(f"Failed to open lock file (err {e.errno}, {e.strerror}), exiting.")
            return False

        # POSIX advisory lock on the whole file, used as an inter-process mutex
        try:
            fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            if e.errno in _CONTENDED:
                logger.error("Failed to acquire lock, exiting.")
            else:
                logger.error(f"Failed to acquire lock (err {e.errno}, {e.strerror}), exiting.")
            return False

        # drop the previous owner's pid
        try:
            os.ftruncate(fd, 0)
        except OSError as e:
            logger.debug(f"Failed truncating lock file (err {e.errno}, {e.strerror}).")

        pid_buf = bytearray(PID_STR_SIZE)
        bounded_format(pid_buf, PID_STR_SIZE, "%d\n", os.getpid(), logger=logger)
        pid_str = buffer_value(pid_buf)
        try:
            written = os.write(fd, pid_str)
            if written < len(pid_str):
                logger.debug(f"Failed writing lock file (wrote {written} of {len(pid_str)} bytes).")
        except OSError as e:
            logger.debug(f"Failed writing lock file (err {e.errno}, {e.strerror}).")

        self.path = path
        self.fd = fd
        return True

    def release(self) -> None:
        """Close the descriptor and remove the pid file. No-op when not held."""
        fd, path = self.fd, self.path
        self.fd = None
        self.path = ""

        if fd is not None:
            try:
                os.close(fd)
            except OSError as e:
                self.logger.debug(f"Failed closing lock file (err {e.errno}, {e.strerror}).")
        if path:
            try:
                os.unlink(path)
            except OSError as e:
                self.logger.debug(f"Failed removing lock file (err {e.errno}, {e.strerror}).")

    def __enter__(self):
        if not self.acquire():
            raise ProcessLockError(f"'{self.component}' is already running or its lock is unavailable")
        return self

    def __exit__(self, *_):
        self.release()

    def __repr__(self) -> str:
        return f"ProcessLock(component={self.component!r}, path={self.path!r}, fd={self.fd!r})"


def lock_process(component: str, *, lock_dir: str = LOCK_DIR, logger=None) -> Optional[ProcessLock]:
    """Acquire the lock for `component`. Returns the held handle, or None."""
    lock = ProcessLock(component, lock_dir, logger=logger)
    if not lock.acquire():
        return None
    return lock


def unlock_process(lock: Optional[ProcessLock]) -> None:
    """Release a handle returned by lock_process(). None is ignored."""
    if lock is None:
        return
    lock.release()


# -----------------------------------------------------------------------------
# Ambient single instance
# -----------------------------------------------------------------------------

_process_lock = ProcessLock()
_process_lock_guard = threading.Lock()


def acquire_process_lock(component: str, *, lock_dir: str = LOCK_DIR, logger=None) -> bool:
    """Acquire the process-wide lock for `component`.

    Refused while the process-wide lock is already held; release it first.
    """
    global _process_lock
    with _process_lock_guard:
        if _process_lock.locked:
            (logger or _log).error(f"Process lock already held at {_process_lock.path}, not re-acquiring.")
            return False
        lock = ProcessLock(component, lock_dir, logger=logger)
        if not lock.acquire():
            return False
        _process_lock = lock
        return True


def release_process_lock() -> None:
    """Release the process-wide lock taken by acquire_process_lock(). Harmless if never taken."""
    with _process_lock_guard:
        _process_lock.release()
