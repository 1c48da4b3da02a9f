#!/usr/bin/env python3
"""Test runner for the repopush test suite."""

import sys
import subprocess
from pathlib import Path


def run_test(test_file: str, description: str) -> bool:
    """Run a single test file and return success status."""
    print(f"\n{'='*60}")
    print(f"Running: {description}")
    print(f"File: {test_file}")
    print('='*60)

    try:
        result = subprocess.run([sys.executable, test_file], capture_output=False, text=True)

        success = result.returncode == 0
        print(f"\n{'✅ PASSED' if success else '❌ FAILED'}: {description}")
        return success

    except OSError as e:
        print(f"❌ ERROR running {test_file}: {e}")
        return False


def main():
    """Run every test module in order, from the building blocks up."""
    print("repopush Test Suite")
    print("="*60)

    tests = [
        ("test_config.py", "Configuration, Credentials and CLI"),
        ("test_safety_net.py", "Untracked File Safety Net"),
        ("test_transport.py", "Credentialed Transport and Recovery"),
        ("test_rebase_resolver.py", "Rebase Conflict Resolution"),
        ("test_large_file_promotion.py", "Large File Promotion"),
        ("test_sync_decision.py", "Sync Decision Engine"),
        ("test_subcontainer_planning.py", "Subcontainer Planning"),
        ("test_releases.py", "GitHub Releases"),
        ("test_publisher.py", "Publishing Actions End to End"),
    ]

    root = Path(__file__).parent
    results = []
    for test_file, description in tests:
        if (root / test_file).exists():
            success = run_test(str(root / test_file), description)
            results.append((test_file, description, success))
        else:
            print(f"⚠️  Test file not found: {test_file}")
            results.append((test_file, description, False))

    # Summary
    print(f"\n{'='*60}")
    print("TEST SUITE SUMMARY")
    print("="*60)

    passed = 0
    for test_file, description, success in results:
        status = "✅ PASS" if success else "❌ FAIL"
        print(f"{status} {description}")
        if success:
            passed += 1

    print(f"\nResults: {passed}/{len(results)} tests passed")

    if passed == len(results):
        print("\n🎉 ALL TESTS PASSED!")
        return True
    else:
        print(f"\n⚠️  {len(results) - passed} tests failed")
        return False


if __name__ == "__main__":
    try:
        success = main()
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\n\nTest suite interrupted by user")
        sys.exit(1)
