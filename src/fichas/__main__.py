"""
Run the fichas CLI.

Usage:
    python -m fichas roll goblin DEX --grade G2
"""

import sys

from .interface.cli import main

if __name__ == "__main__":
    sys.exit(main())
