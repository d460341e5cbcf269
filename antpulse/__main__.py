#!/usr/bin/env python3
"""
Entry point for running antpulse as a module.

Usage:
    python -m antpulse [--bpm MODE] [--output MODE] ...
"""

from antpulse.app import main

main()
