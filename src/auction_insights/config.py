"""Static configuration: dashboard targets, URLs, intervals and delivery settings.

Everything here is read once at start-up from ``AI_*`` environment variables
(and an optional JSON targets file) and then treated as immutable.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

# ============================
# Google Ads URLs
# ============================
APP_ROOT_URL = "https://ads.google.com"
OVERVIEW_URL = "https://ads.google.com/aw/overview"
DASHBOARD_LIST_URL = "https://ads.google.com/aw/dashboards"
DASHBOARD_VIEW_URL = "https://ads.google.com/aw/dashboards/view"
APP_URL_PREFIX = "ads.google.com"
AUTHENTICATED_PREFIX = "ads.google.com/aw/"

# ============================
# Defaults
# ============================
DEFAULT_MCC_ACCOUNT_ID = "000-000-0000"
DEFAULT_DASHBOARD_NAME = "Auction_Insights_Weekly"
DEFAULT_DASHBOARD_ID = "0000000"
DEFAULT_PROFILE_DIR = "browser-data"
DEFAULT_DOWNLOAD_DIR = "downloads"
DEFAULT_PAGE_TIMEOUT_MS = 60_000
DEFAULT_SLOW_MO_MS = 100
DEFAULT_LOGIN_TIMEOUT_S = 300.0
DEFAULT_FIRST_SETTLE_S = 60.0
DEFAULT_SETTLE_S = 10.0
DEFAULT_KEEPALIVE_INTERVAL_S = 4 * 60 * 60.0
DEFAULT_SCHEDULE_INTERVAL_S = 7 * 24 * 60 * 60.0
DEFAULT_EXPORT_FORMAT = "Google Sheets"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000

DELIVERY_MODES = ("response", "webhook", "export")
NAV_STRATEGIES = ("list", "direct")
TARGET_GROUPS = ("dashboard", "mcc")

# Row marker of the Ads data tables, plus the download control as the second
# capability marker for "this is a dashboard view, not the list".
DEFAULT_ROW_SELECTOR = ".particle-table-row"
DEFAULT_CELL_SELECTOR = "ess-cell, [role='gridcell']"
DOWNLOAD_TRIGGER_SELECTORS = ('[aria-label="Download"]', '[aria-label="Herunterladen"]')
DEFAULT_READY_SELECTORS = (DEFAULT_ROW_SELECTOR, *DOWNLOAD_TRIGGER_SELECTORS)


@dataclass(frozen=True)
class DashboardTarget:
    """One dashboard to visit. ``column_offset`` counts extra leading table columns."""

    name: str
    dashboard_id: str
    column_offset: int = 0
    strategy: str = "list"
    paginate: bool = False
    group: str = "dashboard"
    ready_selectors: tuple[str, ...] = DEFAULT_READY_SELECTORS
    row_selector: str = DEFAULT_ROW_SELECTOR

    def __post_init__(self) -> None:
        if self.column_offset < 0:
            raise ValueError(f"column_offset must be >= 0 (got {self.column_offset})")
        if self.strategy not in NAV_STRATEGIES:
            raise ValueError(f"strategy must be one of {NAV_STRATEGIES} (got {self.strategy!r})")
        if self.group not in TARGET_GROUPS:
            raise ValueError(f"group must be one of {TARGET_GROUPS} (got {self.group!r})")
        if not self.ready_selectors:
            raise ValueError("ready_selectors must not be empty")

    @classmethod
    def from_dict(cls, raw: dict) -> "DashboardTarget":
        paginate = bool(raw.get("paginate", False))
        return cls(
            name=str(raw["name"]),
            dashboard_id=str(raw.get("dashboard_id") or raw.get("id") or ""),
            column_offset=int(raw.get("column_offset", 0)),
            strategy=str(raw.get("strategy", "list")),
            paginate=paginate,
            group=str(raw.get("group", "mcc" if paginate else "dashboard")),
            ready_selectors=tuple(raw.get("ready_selectors") or DEFAULT_READY_SELECTORS),
            row_selector=str(raw.get("row_selector") or DEFAULT_ROW_SELECTOR),
        )


@dataclass(frozen=True)
class Settings:
    mcc_account_id: str = DEFAULT_MCC_ACCOUNT_ID
    account_name: str | None = None
    google_account_email: str | None = None
    targets: tuple[DashboardTarget, ...] = field(
        default_factory=lambda: (DashboardTarget(DEFAULT_DASHBOARD_NAME, DEFAULT_DASHBOARD_ID),)
    )
    profile_dir: Path = Path(DEFAULT_PROFILE_DIR)
    download_dir: Path = Path(DEFAULT_DOWNLOAD_DIR)
    headless: bool = False
    slow_mo_ms: int = DEFAULT_SLOW_MO_MS
    page_timeout_ms: int = DEFAULT_PAGE_TIMEOUT_MS
    login_timeout_s: float = DEFAULT_LOGIN_TIMEOUT_S
    first_settle_s: float = DEFAULT_FIRST_SETTLE_S
    settle_s: float = DEFAULT_SETTLE_S
    keepalive_interval_s: float = DEFAULT_KEEPALIVE_INTERVAL_S
    schedule_interval_s: float = DEFAULT_SCHEDULE_INTERVAL_S
    delivery_mode: str = "response"
    webhook_url: str | None = None
    webhook_timeout_s: float = 30.0
    export_format: str = DEFAULT_EXPORT_FORMAT
    export_folder: str | None = None
    smtp_host: str = "localhost"
    smtp_port: int = 25
    alert_from: str = "auction-insights@localhost"
    alert_to: str | None = None
    notify_on_success: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        if self.delivery_mode not in DELIVERY_MODES:
            raise ValueError(f"delivery_mode must be one of {DELIVERY_MODES} (got {self.delivery_mode!r})")
        if self.delivery_mode == "webhook" and not self.webhook_url:
            raise ValueError("delivery_mode=webhook requires AI_WEBHOOK_URL")

    def targets_for(self, group: str | None) -> tuple[DashboardTarget, ...]:
        """Return the configured targets of one HTTP route group (all when ``None``)."""

        if group is None:
            return self.targets
        return tuple(t for t in self.targets if t.group == group)

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def load_targets(path: str | os.PathLike[str] | None = None) -> tuple[DashboardTarget, ...]:
    """Load targets from a JSON list, or build the single env-configured target."""

    path = path or os.getenv("AI_TARGETS_FILE")
    if path:
        with open(path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
        if not isinstance(raw, list) or not raw:
            raise ValueError(f"{path}: expected a non-empty JSON list of targets")
        return tuple(DashboardTarget.from_dict(item) for item in raw)
    return (
        DashboardTarget(
            name=os.getenv("AI_DASHBOARD_NAME", DEFAULT_DASHBOARD_NAME),
            dashboard_id=os.getenv("AI_DASHBOARD_ID", DEFAULT_DASHBOARD_ID),
            column_offset=_env_int("AI_COLUMN_OFFSET", 0),
        ),
    )


def load_settings(targets_file: str | None = None, **overrides: Any) -> Settings:
    """Build :class:`Settings` from ``AI_*`` environment variables.

    Non-``None`` ``overrides`` replace the environment values before validation.
    """

    values = dict(
        mcc_account_id=os.getenv("AI_MCC_ACCOUNT_ID", DEFAULT_MCC_ACCOUNT_ID),
        account_name=os.getenv("AI_ACCOUNT_NAME") or None,
        google_account_email=os.getenv("AI_GOOGLE_ACCOUNT_EMAIL") or None,
        targets=load_targets(targets_file),
        profile_dir=Path(os.getenv("AI_PROFILE_DIR", DEFAULT_PROFILE_DIR)),
        download_dir=Path(os.getenv("AI_DOWNLOAD_DIR", DEFAULT_DOWNLOAD_DIR)),
        headless=_env_bool("AI_HEADLESS", False),
        slow_mo_ms=_env_int("AI_SLOW_MO_MS", DEFAULT_SLOW_MO_MS),
        page_timeout_ms=_env_int("AI_PAGE_TIMEOUT_MS", DEFAULT_PAGE_TIMEOUT_MS),
        login_timeout_s=_env_float("AI_LOGIN_TIMEOUT_S", DEFAULT_LOGIN_TIMEOUT_S),
        first_settle_s=_env_float("AI_FIRST_SETTLE_S", DEFAULT_FIRST_SETTLE_S),
        settle_s=_env_float("AI_SETTLE_S", DEFAULT_SETTLE_S),
        keepalive_interval_s=_env_float("AI_KEEPALIVE_INTERVAL_S", DEFAULT_KEEPALIVE_INTERVAL_S),
        schedule_interval_s=_env_float("AI_SCHEDULE_INTERVAL_S", DEFAULT_SCHEDULE_INTERVAL_S),
        delivery_mode=os.getenv("AI_DELIVERY_MODE", "response"),
        webhook_url=os.getenv("AI_WEBHOOK_URL") or None,
        webhook_timeout_s=_env_float("AI_WEBHOOK_TIMEOUT_S", 30.0),
        export_format=os.getenv("AI_EXPORT_FORMAT", DEFAULT_EXPORT_FORMAT),
        export_folder=os.getenv("AI_EXPORT_FOLDER") or None,
        smtp_host=os.getenv("AI_SMTP_HOST", "localhost"),
        smtp_port=_env_int("AI_SMTP_PORT", 25),
        alert_from=os.getenv("AI_ALERT_FROM", "auction-insights@localhost"),
        alert_to=os.getenv("AI_ALERT_TO") or None,
        notify_on_success=_env_bool("AI_NOTIFY_ON_SUCCESS", False),
        host=os.getenv("AI_HOST", DEFAULT_HOST),
        port=_env_int("AI_PORT", DEFAULT_PORT),
    )
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


__all__ = [
    "APP_ROOT_URL",
    "APP_URL_PREFIX",
    "AUTHENTICATED_PREFIX",
    "DASHBOARD_LIST_URL",
    "DASHBOARD_VIEW_URL",
    "DEFAULT_CELL_SELECTOR",
    "DEFAULT_READY_SELECTORS",
    "DEFAULT_ROW_SELECTOR",
    "DELIVERY_MODES",
    "DOWNLOAD_TRIGGER_SELECTORS",
    "DashboardTarget",
    "OVERVIEW_URL",
    "Settings",
    "load_settings",
    "load_targets",
]
