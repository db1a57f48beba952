#!/usr/bin/env python3
"""CLI shim for the Auction Insights scraper."""
from __future__ import annotations

import sys

from auction_insights.cli import main

if __name__ == "__main__":
    sys.exit(main())
