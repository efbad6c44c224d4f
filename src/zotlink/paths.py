"""Canonical directory names for zotlink.

Layout:
  ~/.zotlink/           home_dir()  — config.yaml, zotlink.log
"""

from __future__ import annotations

from pathlib import Path

DOT_DIR = ".zotlink"


def home_dir() -> Path:
    """Return ~/.zotlink/ (config, logs)."""
    return Path.home() / DOT_DIR
