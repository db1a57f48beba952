"""Debug artifact helpers: screenshots and page HTML for operator diagnosis."""

from __future__ import annotations

import os
import re

from playwright.async_api import BrowserContext, Page

from .logging import jlog

DEBUG_DIR = "downloads"


def ensure_debug_dir(path: str | os.PathLike[str] | None = None) -> str:
    """Create the debug directory if it does not exist and return the path."""

    target = os.fspath(path or DEBUG_DIR)
    try:
        os.makedirs(target, exist_ok=True)
    except Exception:
        pass
    return target


def set_debug_dir(path: str | os.PathLike[str]) -> None:
    global DEBUG_DIR
    DEBUG_DIR = os.fspath(path)


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", name).strip("_") or "screenshot"


async def capture_screenshot(page: Page | None, name: str) -> str | None:
    """Save a full-page screenshot as ``<DEBUG_DIR>/<name>.png`` (best effort)."""

    if page is None:
        return None
    path = os.path.join(ensure_debug_dir(), f"{_safe_name(name)}.png")
    try:
        await page.screenshot(path=path, full_page=True)
    except Exception as exc:  # pragma: no cover - logging only
        jlog("warning", event="screenshot_error", name=name, error=str(exc))
        return None
    jlog("info", event="screenshot_saved", path=path)
    return path


async def capture_last_tab(context: BrowserContext | None, name: str) -> str | None:
    """Screenshot the most recently opened tab of the context."""

    if context is None:
        return None
    try:
        pages = list(context.pages)
    except Exception:
        return None
    if not pages:
        return None
    return await capture_screenshot(pages[-1], name)


async def ensure_debug_html(page: Page, name: str) -> None:
    """Persist the current page HTML for later debugging (best effort)."""

    try:
        ensure_debug_dir()
        html = await page.content()
        with open(os.path.join(DEBUG_DIR, f"{_safe_name(name)}.html"), "w", encoding="utf-8") as f:
            f.write(html)
    except Exception as exc:  # pragma: no cover - logging only
        jlog("error", event="debug_save_html_error", name=name, error=str(exc))


__all__ = [
    "DEBUG_DIR",
    "capture_last_tab",
    "capture_screenshot",
    "ensure_debug_dir",
    "ensure_debug_html",
    "set_debug_dir",
]
