#!/usr/bin/env python3
"""
run_tests.py - Test runner for photomunch

Runs both unit tests and integration tests with proper setup and reporting.
"""

import sys
import subprocess
from pathlib import Path

HERE = Path(__file__).parent


def run_test_module(title, module, timeout):
    """Run one test module in a child interpreter; True when it passed."""
    print("\n" + "=" * 60)
    print(f"RUNNING {title}")
    print("=" * 60)

    try:
        result = subprocess.run(
            [sys.executable, str(HERE / module)],
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=HERE,
        )
    except subprocess.TimeoutExpired:
        print(f"{title.capitalize()} timed out")
        return False

    print(result.stdout)
    if result.stderr:
        print("STDERR:", result.stderr)

    return result.returncode == 0


def check_dependencies():
    """Check if required dependencies are available."""
    print("Checking dependencies...")

    try:
        import hachoir  # noqa: F401

        print("✓ hachoir available")
    except ImportError:
        print("✗ hachoir not available - install with: pip install hachoir")
        return False

    if not (HERE / "photomunch.py").exists():
        print("✗ photomunch.py not found next to run_tests.py")
        return False
    print("✓ photomunch.py found")

    return True


def main():
    """Run all tests."""
    print("photomunch Test Suite")
    print("=" * 60)

    if not check_dependencies():
        print("\n❌ Dependency check failed")
        return 1

    unit_success = run_test_module("UNIT TESTS", "test_photomunch.py", 120)
    integration_success = run_test_module("INTEGRATION TESTS", "test_integration.py", 300)

    print("\n" + "=" * 60)
    print("TEST SUMMARY")
    print("=" * 60)
    print(f"Unit Tests: {'✓ PASS' if unit_success else '✗ FAIL'}")
    print(f"Integration Tests: {'✓ PASS' if integration_success else '✗ FAIL'}")

    if unit_success and integration_success:
        print("\n🎉 All tests passed!")
        return 0
    else:
        print("\n❌ Some tests failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
