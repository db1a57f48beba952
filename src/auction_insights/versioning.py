"""Scraper version resolution helpers."""

from __future__ import annotations

import os

SCRIPT_NAME = "auction-insights"
SCRIPT_VERSION = "2026-10-17.1"


def get_scraper_version(script_name: str = SCRIPT_NAME, script_version: str = SCRIPT_VERSION) -> str:
    """Return a human-readable version string with an env override."""

    return os.getenv("AI_SCRAPER_VERSION", f"{script_name}:{script_version}")


__all__ = ["SCRIPT_NAME", "SCRIPT_VERSION", "get_scraper_version"]
