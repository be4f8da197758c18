"""
CLI runner module.

Provides commands:
- init-config: Write a default config file
- detect: Run duplicate detection on parsed emails
- ingest: Detect, store and queue a batch of parsed emails
- status: Show corpus statistics
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
