"""High-level utilities for the Auction Insights dashboard scraper."""

from .browser import CHROMIUM_LAUNCH_ARGS, close_context, launch_context
from .config import DashboardTarget, Settings, load_settings, load_targets
from .debug import capture_screenshot, ensure_debug_dir, ensure_debug_html
from .errors import ExportError, LoginTimeoutError, NoLivePageError, RunBusyError, RunFailedError, StageError
from .extractor import AuctionRow, TableExtractor, map_cells
from .logging import jlog, tlog
from .metadata import build_webhook_payload
from .race import TabRaceResolver, wait_for_authenticated_tab
from .runner import Runner, RunnerState, RunResult, TargetResult
from .urls import build_ads_url, extract_auth_params, parse_pagination_status
from .versioning import get_scraper_version

__all__ = [
    "AuctionRow",
    "build_ads_url",
    "build_webhook_payload",
    "capture_screenshot",
    "close_context",
    "DashboardTarget",
    "ensure_debug_dir",
    "ensure_debug_html",
    "ExportError",
    "extract_auth_params",
    "get_scraper_version",
    "jlog",
    "launch_context",
    "load_settings",
    "load_targets",
    "LoginTimeoutError",
    "map_cells",
    "NoLivePageError",
    "parse_pagination_status",
    "Runner",
    "RunnerState",
    "RunBusyError",
    "RunFailedError",
    "RunResult",
    "Settings",
    "StageError",
    "TableExtractor",
    "TabRaceResolver",
    "TargetResult",
    "tlog",
    "wait_for_authenticated_tab",
    "CHROMIUM_LAUNCH_ARGS",
]
