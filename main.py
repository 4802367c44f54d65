#!/usr/bin/env python3
"""CLI for the injection defense toolkit."""

import sys

from injection_defense.cli import main

if __name__ == "__main__":
    sys.exit(main())
