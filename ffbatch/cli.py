"""CLI entry point for the ffbatch package."""

import sys


def main():
    """Entry point for the ffbatch command."""
    from ffbatch.core.main import main as run_main
    sys.exit(run_main())


if __name__ == "__main__":
    main()
