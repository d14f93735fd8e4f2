#!/usr/bin/env python3
"""
run_tests.py - Test runner for gardepro

Runs the unit tests and the command line tests with proper setup and reporting.
"""

import sys
import subprocess
from pathlib import Path

HERE = Path(__file__).parent

SUITES = [
    ("UNIT TESTS", "test_gardepro.py"),
    ("COMMAND LINE TESTS", "test_cli.py"),
]


def run_suite(title: str, script: str) -> bool:
    """Run one unittest module in a subprocess and echo its output."""
    print("=" * 60)
    print(f"RUNNING {title}")
    print("=" * 60)

    try:
        result = subprocess.run(
            [sys.executable, script],
            cwd=HERE,
            capture_output=True,
            text=True,
            timeout=300,
        )
    except subprocess.TimeoutExpired:
        print(f"{title.capitalize()} timed out")
        return False

    print(result.stdout)
    if result.stderr:
        print(result.stderr)
    return result.returncode == 0


def check_dependencies():
    """Check if required dependencies are available."""
    print("Checking dependencies...")
    ok = True

    for module, package in (("hachoir", "hachoir"), ("exifread", "ExifRead")):
        try:
            __import__(module)
            print(f"✓ {module} available")
        except ImportError:
            print(f"✗ {module} not available - install with: pip install {package}")
            ok = False

    if not (HERE / "gardepro.py").exists():
        print("✗ gardepro.py not found next to run_tests.py")
        ok = False
    else:
        print("✓ gardepro.py found")

    return ok


def main():
    """Run all tests."""
    print("gardepro Test Suite")
    print("=" * 60)

    # Check dependencies first
    if not check_dependencies():
        print("\n❌ Dependency check failed")
        return 1

    results = [(title, run_suite(title, script)) for title, script in SUITES]

    # Summary
    print("\n" + "=" * 60)
    print("TEST SUMMARY")
    print("=" * 60)
    for title, success in results:
        print(f"{title.title()}: {'✓ PASS' if success else '✗ FAIL'}")

    if all(success for _, success in results):
        print("\n🎉 All tests passed!")
        return 0
    print("\n❌ Some tests failed")
    return 1


if __name__ == "__main__":
    sys.exit(main())
