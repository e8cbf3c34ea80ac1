import sys
from pathlib import Path

import pytest

SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"
sys.path.insert(0, str(SCRIPTS_DIR))


class Reporter:
    """Diagnostic channel double: records error/debug messages."""

    def __init__(self):
        self.errors = []
        self.debugs = []

    def error(self, msg, *args):
        self.errors.append(msg % args if args else msg)

    def debug(self, msg, *args):
        self.debugs.append(msg % args if args else msg)


@pytest.fixture
def reporter():
    return Reporter()
