"""Entry point for running CLI as module.

Usage:
    python -m concertfeed.cli sync
    python -m concertfeed.cli concerts -a "Taylor Swift" --lat 40.71 --lng -74.0
"""

from concertfeed.cli.main import main

if __name__ == "__main__":
    main()
