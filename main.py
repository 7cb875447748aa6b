#!/usr/bin/env python3
"""
chatmedia - media acquisition and transcoding for chat bots
Main entry point for the application.
"""

from chatmedia.cli import main

if __name__ == "__main__":
    main()
