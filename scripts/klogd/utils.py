#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
klogd/utils.py
==============

Shared utilities for the klogd core.

Key responsibilities
--------------------
- Load and normalize YAML settings.
- Resolve the directories the core needs (lock dir, logs dir).
- Provide logging helpers (rotating file + console), with a live-level refresher.

Notes
-----
The logger returned by setup_logger() is the diagnostic channel handed to the
core primitives: they only ever call `.error(...)` and `.debug(...)` on it.

Conventions
-----------
- All "paths" are absolute (resolved relative to settings file if user provides
  relative paths).
- `settings['_meta']['settings_dir']` is injected by load_settings() so other
  helpers can resolve relative paths consistently.

"""

from __future__ import annotations

import os
import yaml
import logging
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Optional

DEFAULT_LOCK_DIR = "/tmp/run"


# -----------------------------------------------------------------------------
# Settings loading / normalization
# -----------------------------------------------------------------------------

def _abspath_relative_to(base_dir: str, maybe_path: Optional[str]) -> Optional[str]:
    """Return absolute path given a base directory."""
    if not maybe_path:
        return None
    p = str(maybe_path).strip()
    if not p:
        return None
    if os.path.isabs(p):
        return p
    return os.path.abspath(os.path.join(base_dir, p))


def load_settings(path: str) -> Dict[str, Any]:
    """
    Load YAML settings and inject a `_meta` section with:
      - settings_file (abs path)
      - settings_dir  (dir of the file)

    Every string under `paths` is normalized to an absolute path.
    """
    path = os.path.abspath(path)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Settings file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a mapping: {path}")

    settings_dir = os.path.dirname(path)
    data.setdefault("_meta", {})
    data["_meta"]["settings_file"] = path
    data["_meta"]["settings_dir"] = settings_dir

    if isinstance(data.get("paths"), dict):
        for k, v in list(data["paths"].items()):
            if isinstance(v, str):
                data["paths"][k] = _abspath_relative_to(settings_dir, v)

    return data


def resolve_all_paths(settings: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """
    Return a dictionary of important absolute paths derived from settings.

    Keys:
      - lock_dir : where `<component>.pid` lock files live (default /tmp/run)
      - logs_dir : where rotating log files are written (default ./logs)

    This function DOES NOT create directories automatically. The lock manager
    creates the lock dir itself, best-effort.
    """
    paths = (settings or {}).get("paths", {}) or {}
    out = {}

    def must(key: str) -> Optional[str]:
        p = paths.get(key)
        if p:
            return os.path.abspath(p)
        return None

    out["lock_dir"] = must("lock_dir") or DEFAULT_LOCK_DIR
    out["logs_dir"] = must("logs_dir") or os.path.abspath("logs")
    return out


# -----------------------------------------------------------------------------
# Logging helpers
# -----------------------------------------------------------------------------

def _level_from_name(name: str, default=logging.INFO) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default


def setup_logger(
    name: str,
    settings: Optional[Dict[str, Any]] = None,
    *,
    level_override: Optional[str] = None,
    to_console: bool = True,
    to_file: bool = True,
    logfile_path: Optional[str] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Create or reuse a configured logger.

    Parameters
    ----------
    name : str
        Logger name; also used to lookup per-logger level in YAML under
        `logging_levels.<name>` (falls back to `logging_levels.default`).
    settings : dict
        Settings dict loaded via load_settings(), or None.
    level_override : str
        Force a level (e.g., "DEBUG") ignoring YAML.
    to_console : bool
        Attach a stream handler to stderr.
    to_file : bool
        Attach a RotatingFileHandler under `paths.logs_dir`.
    logfile_path : str
        Full path to a logfile; overrides the default derived from logs_dir/name.
    max_bytes : int
        RotatingFileHandler maxBytes.
    backup_count : int
        RotatingFileHandler backupCount.
    """
    logger = logging.getLogger(name)

    default_level = logging.INFO
    if settings:
        levels = settings.get("logging_levels", {}) or {}
        level_name = levels.get(name, levels.get("default", "INFO"))
        default_level = _level_from_name(level_name, logging.INFO)

    if level_override:
        default_level = _level_from_name(level_override, default_level)

    logger.setLevel(default_level)

    # Idempotent handler attachment
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    if to_console and not any(type(h) is logging.StreamHandler for h in logger.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        sh.setLevel(default_level)
        logger.addHandler(sh)

    if to_file:
        if not logfile_path:
            logs_dir = resolve_all_paths(settings)["logs_dir"]
            logfile_path = os.path.join(logs_dir, f"{name}.log")
        logfile_path = os.path.abspath(logfile_path)

        if not any(isinstance(h, RotatingFileHandler) and getattr(h, "baseFilename", None) == logfile_path
                   for h in logger.handlers):
            os.makedirs(os.path.dirname(logfile_path), exist_ok=True)
            fh = RotatingFileHandler(logfile_path, maxBytes=max_bytes, backupCount=backup_count)
            fh.setFormatter(fmt)
            fh.setLevel(default_level)
            logger.addHandler(fh)

    return logger


def refresh_logger_levels(settings: Dict[str, Any], names: Optional[List[str]] = None) -> None:
    """
    Refresh levels for registered loggers according to `logging_levels`.

    Useful when a host re-reads YAML and wants to push level changes to
    already-instantiated loggers. `names` restricts the refresh; by default
    every logger known to the logging manager is updated.
    """
    levels = settings.get("logging_levels", {}) or {}

    def get_level(name: str) -> int:
        v = levels.get(name, levels.get("default", "INFO"))
        return _level_from_name(v, logging.INFO)

    targets = names if names is not None else list(logging.Logger.manager.loggerDict.keys())
    for name in targets:
        level = get_level(name)
        lg = logging.getLogger(name)
        lg.setLevel(level)
        for h in lg.handlers:
            h.setLevel(level)

        if lg.isEnabledFor(logging.DEBUG):
            lg.debug(f"Logger '{name}' level refreshed to {logging.getLevelName(level)}")
