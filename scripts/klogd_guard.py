#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
scripts/klogd_guard.py
======================

Role
----
Hold the single-instance lock for a daemon component.

   $ klogd_guard.py --component logd [--settings klogd_settings.yaml] [--lock-dir /tmp/run]
                    [--hold-seconds 30] [--log-level DEBUG]

- Acquires `<lock_dir>/<component>.pid` (non-blocking) and prints
  `locked <path>` on stdout once held.
- Holds the lock until SIGTERM/SIGINT, or until --hold-seconds elapse.
- Releases the lock (closes + unlinks the pid file) on the way out.

Exit codes (contract with the host / service manager)
-----------------------------------------------------
RC_OK         = 0  (held and released cleanly)
RC_LOCKED     = 1  (another instance holds the lock; do not retry immediately)
RC_FATAL_ERR  = 2  (settings or argument error)
"""

from __future__ import annotations

import os
import sys
import signal
import argparse
import threading
from typing import List, Optional

# --- Make scripts/ importable whether run via systemd or shell ---
SCRIPTS_DIR = os.path.abspath(os.path.dirname(__file__))
if SCRIPTS_DIR not in sys.path:
    sys.path.insert(0, SCRIPTS_DIR)

from klogd.utils import load_settings, resolve_all_paths, setup_logger  # noqa: E402
from klogd.int_parse import parse_int  # noqa: E402
from klogd.process_lock import lock_process, unlock_process  # noqa: E402

DEFAULT_SETTINGS = "klogd_settings.yaml"

# -----------------------------------------------------------------------------
# Exit codes
RC_OK = 0                 # Clean finish
RC_LOCKED = 1             # Lock held elsewhere
RC_FATAL_ERR = 2          # Unrecoverable/config error
# -----------------------------------------------------------------------------


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="klogd single-instance guard")
    parser.add_argument("--component", required=True,
                        help="Component name; the lock file is <lock_dir>/<component>.pid")
    parser.add_argument("--settings", default=None,
                        help=f"Path to YAML settings (default: {DEFAULT_SETTINGS} if present)")
    parser.add_argument("--lock-dir", help="Override paths.lock_dir from the settings.")
    parser.add_argument("--hold-seconds", default=None,
                        help="Release after this many seconds (decimal, 0x hex or 0 octal).")
    parser.add_argument("--log-level", default=None, help="Force a log level, e.g. DEBUG.")
    args = parser.parse_args(argv)

    # Settings: an explicit file must exist, the default one is optional
    settings = None
    settings_path = args.settings or DEFAULT_SETTINGS
    if args.settings or os.path.isfile(settings_path):
        try:
            settings = load_settings(settings_path)
        except Exception as e:
            print(f"[FATAL] Cannot load settings: {e}", file=sys.stderr)
            return RC_FATAL_ERR

    hold_seconds = None
    if args.hold_seconds is not None:
        hold_seconds, ok = parse_int(args.hold_seconds)
        if not ok or hold_seconds < 0:
            print(f"[FATAL] Invalid --hold-seconds: {args.hold_seconds!r}", file=sys.stderr)
            return RC_FATAL_ERR

    logger = setup_logger("klogd", settings=settings, level_override=args.log_level,
                          to_file=settings is not None)
    paths = resolve_all_paths(settings)
    lock_dir = args.lock_dir or paths["lock_dir"]

    lock = lock_process(args.component, lock_dir=lock_dir, logger=logger)
    if lock is None:
        logger.error(f"[{args.component}] could not acquire the process lock; exiting.")
        return RC_LOCKED

    stop = threading.Event()

    def _on_signal(signum, _frame):
        logger.info(f"[{args.component}] received signal {signum}; releasing lock.")
        stop.set()

    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)

    logger.info(f"[{args.component}] acquired lock at {lock.path} (pid={os.getpid()})")
    print(f"locked {lock.path}", flush=True)

    try:
        stop.wait(hold_seconds)
    finally:
        unlock_process(lock)
        logger.info(f"[{args.component}] lock released.")

    return RC_OK


if __name__ == "__main__":
    raise SystemExit(main())
