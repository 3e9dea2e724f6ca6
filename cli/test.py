"""Test runner commands. Extra command-line arguments are passed to pytest."""

import subprocess
import sys


def _pytest(target: str) -> int:
    return subprocess.run(
        [sys.executable, "-m", "pytest", target, "-v", "--tb=short", *sys.argv[1:]],
        check=False,
    ).returncode


def main() -> None:
    """Run unit tests."""
    sys.exit(_pytest("tests/unit"))


def test_smoke() -> None:
    """Run API smoke tests."""
    sys.exit(_pytest("tests/smoke"))


def test_all() -> None:
    """Run every test suite."""
    sys.exit(_pytest("tests/"))
