#!/usr/bin/env python3
"""Run the door relay for local development."""

import os

# Set environment variables for local development
os.environ.setdefault("DOOR_RELAY_LOG_LEVEL", "DEBUG")
os.environ.setdefault("DOOR_RELAY_BACKEND_PORT", "8000")

from relay.main import run

if __name__ == "__main__":
    run()
