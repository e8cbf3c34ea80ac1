import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import klogd_guard

GUARD = str(Path(__file__).resolve().parent.parent / "scripts" / "klogd_guard.py")


def _guard(*args, **kwargs) -> subprocess.Popen:
    return subprocess.Popen([sys.executable, GUARD, *args],
                            stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, **kwargs)


def test_hold_and_release(tmp_path):
    proc = _guard("--component", "logd", "--lock-dir", str(tmp_path), "--hold-seconds", "1",
                  cwd=str(tmp_path))
    out, err = proc.communicate(timeout=20)
    assert proc.returncode == klogd_guard.RC_OK, err
    assert out.strip() == f"locked {tmp_path / 'logd.pid'}"
    assert "lock released" in err
    assert not (tmp_path / "logd.pid").exists()


def test_second_instance_exits_locked(tmp_path):
    first = _guard("--component", "logd", "--lock-dir", str(tmp_path), cwd=str(tmp_path))
    try:
        assert first.stdout.readline().startswith("locked ")
        assert (tmp_path / "logd.pid").read_text() == f"{first.pid}\n"

        started = time.monotonic()
        second = subprocess.run(
            [sys.executable, GUARD, "--component", "logd", "--lock-dir", str(tmp_path)],
            capture_output=True, text=True, timeout=20, cwd=str(tmp_path),
        )
        assert time.monotonic() - started < 10
        assert second.returncode == klogd_guard.RC_LOCKED
        assert "Failed to acquire lock, exiting." in second.stderr
    finally:
        first.send_signal(signal.SIGTERM)
        _, err = first.communicate(timeout=20)

    assert first.returncode == klogd_guard.RC_OK, err
    assert not (tmp_path / "logd.pid").exists()


def test_sigkill_then_restart(tmp_path):
    first = _guard("--component", "logd", "--lock-dir", str(tmp_path), cwd=str(tmp_path))
    assert first.stdout.readline().startswith("locked ")
    first.send_signal(signal.SIGKILL)
    first.communicate(timeout=20)

    third = _guard("--component", "logd", "--lock-dir", str(tmp_path), "--hold-seconds", "0",
                   cwd=str(tmp_path))
    out, err = third.communicate(timeout=20)
    assert third.returncode == klogd_guard.RC_OK, err
    assert out.startswith("locked ")


def test_settings_lock_dir_and_log_file(tmp_path):
    settings = tmp_path / "custom.yaml"
    settings.write_text("paths:\n  lock_dir: locks\n  logs_dir: logs\n")
    rc = subprocess.run(
        [sys.executable, GUARD, "--component", "logd", "--settings", str(settings),
         "--hold-seconds", "0x0"],
        capture_output=True, text=True, timeout=20, cwd=str(tmp_path),
    )
    assert rc.returncode == klogd_guard.RC_OK, rc.stderr
    assert rc.stdout.strip() == f"locked {tmp_path / 'locks' / 'logd.pid'}"
    assert "acquired lock" in (tmp_path / "logs" / "klogd.log").read_text()


def test_missing_explicit_settings_is_fatal(tmp_path):
    assert klogd_guard.main(["--component", "logd",
                             "--settings", str(tmp_path / "nope.yaml")]) == klogd_guard.RC_FATAL_ERR


def test_bad_hold_seconds_is_fatal(tmp_path):
    assert klogd_guard.main(["--component", "logd", "--lock-dir", str(tmp_path),
                             "--hold-seconds", "10s"]) == klogd_guard.RC_FATAL_ERR
    assert not os.path.exists(tmp_path / "logd.pid")
