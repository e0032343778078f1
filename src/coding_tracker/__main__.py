#!/usr/bin/env python3
"""
Main entry point for the coding time tracker module.
This allows running the module with: python -m coding_tracker
"""

from coding_tracker.daemon import main

if __name__ == "__main__":
    main()
