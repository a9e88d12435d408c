#!/usr/bin/env python3
"""
Lint and format the project with ruff, isort and black.

    python lint.py           # fix in place
    python lint.py --check   # report only, non-zero exit on any finding
"""

import subprocess
import sys
from pathlib import Path

TARGETS = ["meeting_brain", "tests", "lint.py", "main.py"]

CHECK_STEPS = [
    ("ruff", ["ruff", "check"]),
    ("isort", ["isort", "--check-only", "--diff"]),
    ("black", ["black", "--check"]),
]

FIX_STEPS = [
    ("ruff", ["ruff", "check", "--fix"]),
    ("isort", ["isort"]),
    ("black", ["black"]),
]


def run_step(name: str, command: list[str]) -> bool:
    print(f"\n--- {name}: {' '.join(command)} ---", flush=True)
    try:
        result = subprocess.run(command + TARGETS, cwd=Path(__file__).parent)
    except FileNotFoundError:
        print(f"{name} is not installed (pip install -e '.[dev]')")
        return False
    return result.returncode == 0


def main() -> int:
    check_only = "--check" in sys.argv[1:]
    steps = CHECK_STEPS if check_only else FIX_STEPS

    failed = [name for name, command in steps if not run_step(name, command)]

    print()
    for name, _ in steps:
        print(f"{'FAILED' if name in failed else 'ok':>6}  {name}")

    if failed and check_only:
        print("\nRun 'python lint.py' without --check to fix what can be fixed automatically.")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
