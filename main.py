"""
CLI entry point for tiercache.

Usage:
    python main.py keys
    python main.py get KEY
    python main.py delete-prefix PREFIX
    python main.py compact
"""

import sys

from tiercache.cli import main

if __name__ == "__main__":
    sys.exit(main())
