#!/usr/bin/env python3
"""Convenience runner for the Zwift race data tool.

Usage:
    python run.py analysis 4321567
"""
import logging
import sys

from zwift_race_data.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    sys.exit(main())
