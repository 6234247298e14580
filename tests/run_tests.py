import argparse
import os
import sys

import pytest

# Make the src packages importable when run as a script
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the markov_bench test suite"
    )
    parser.add_argument(
        "--integration",
        action="store_true",
        help="Include tests that start worker processes",
    )
    parsed_args, remaining = parser.parse_known_args()

    tests_dir = os.path.dirname(os.path.abspath(__file__))
    args = [tests_dir, "-vv"]
    try:
        import pytest_cov  # noqa: F401
        args += ["--cov=markov_bench", "--cov=utils", "--cov=config",
                 "--cov-report=term-missing"]
    except ImportError:
        pass

    if not parsed_args.integration:
        args += ["-m", "not integration"]

    args += remaining
    raise SystemExit(pytest.main(args))


if __name__ == "__main__":
    main()
