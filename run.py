#!/usr/bin/env python3
"""
Run script for the Meeting Minutes Backend
"""
import sys

from meeting_minutes.main import main

if __name__ == "__main__":
    sys.exit(main())
