#!/usr/bin/env python3
"""Convenience runner for the Travel Wrapped timeline engine.

Usage:
    python run.py Timeline.json [--excel travel_wrapped.xlsx]
"""
import logging
import sys

from travel_wrapped.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    sys.exit(main())
