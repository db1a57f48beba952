"""Playwright helpers shared by the session, navigator, extractor and export flow.

Probes in this module never raise for "element not there": they return
``False``/``None`` so callers can move on to the next fallback selector.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import BrowserContext, Locator, Page, Playwright
from playwright.async_api import Error as PlaywrightError

from .config import Settings
from .logging import jlog

CHROMIUM_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-popup-blocking",
]
IGNORE_DEFAULT_ARGS = ["--enable-automation"]
VIEWPORT = {"width": 1440, "height": 900}

# Returns the centre of the first visible element that matches the selector and
# whose trimmed text equals one of the labels.
_VISIBLE_BOX_JS = """
([selector, labels]) => {
    const visible = (el) => {
        const rect = el.getBoundingClientRect();
        if (rect.width <= 1 || rect.height <= 1) return false;
        let node = el;
        while (node) {
            if (node instanceof HTMLElement) {
                if (node.hidden || node.getAttribute('aria-hidden') === 'true') return false;
                const ns = window.getComputedStyle(node);
                if (ns.display === 'none' || ns.visibility === 'hidden' || ns.opacity === '0') return false;
            }
            node = node.parentElement;
        }
        return true;
    };
    for (const el of Array.from(document.querySelectorAll(selector))) {
        const text = (el.innerText || el.textContent || '').trim();
        if (labels.length && !labels.includes(text)) continue;
        if (!visible(el)) continue;
        const rect = el.getBoundingClientRect();
        return { x: rect.x + rect.width / 2, y: rect.y + rect.height / 2 };
    }
    return null;
}
"""


async def launch_context(playwright: Playwright, settings: Settings) -> BrowserContext:
    """Launch Chromium on the persistent profile directory."""

    settings.profile_dir.mkdir(parents=True, exist_ok=True)
    settings.download_dir.mkdir(parents=True, exist_ok=True)
    context = await playwright.chromium.launch_persistent_context(
        str(settings.profile_dir),
        headless=settings.headless,
        slow_mo=settings.slow_mo_ms,
        viewport=VIEWPORT,
        accept_downloads=True,
        args=CHROMIUM_LAUNCH_ARGS,
        ignore_default_args=IGNORE_DEFAULT_ARGS,
    )
    context.set_default_navigation_timeout(settings.page_timeout_ms)
    jlog("info", event="browser_launched", profile_dir=str(settings.profile_dir), headless=settings.headless)
    return context


async def close_context(context: BrowserContext | None) -> None:
    """Close the browser context, ignoring errors from an already dead browser."""

    if context is None:
        return
    try:
        await context.close()
        jlog("info", event="browser_closed")
    except Exception as exc:  # pragma: no cover - teardown only
        jlog("warning", event="browser_close_error", error=str(exc))


def safe_url(page: Page | None) -> str:
    if page is None:
        return ""
    try:
        return page.url
    except Exception:
        return ""


def page_is_alive(page: Page | None) -> bool:
    if page is None:
        return False
    try:
        return not page.is_closed()
    except Exception:
        return False


async def settle(page: Page, ms: int) -> None:
    """Fixed wait on the page clock; a closed page simply ends the wait."""

    if ms <= 0:
        return
    try:
        await page.wait_for_timeout(ms)
    except PlaywrightError:
        pass


async def wait_network_idle(page: Page, timeout_ms: int = 30_000) -> bool:
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)
        return True
    except PlaywrightError:
        return False


async def goto(page: Page, url: str, *, timeout_ms: int, wait_until: str = "networkidle") -> bool:
    """Navigate and report success. Ads pages rarely reach network idle, so failures are logged only."""

    try:
        await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        return True
    except PlaywrightError as exc:
        jlog("info", event="navigation_incomplete", url=url, error=str(exc).splitlines()[0])
        return False


async def probe_visible(page: Page, selectors: Sequence[str], *, timeout_ms: int) -> bool:
    """Wait until any of ``selectors`` is visible. Returns ``False`` on timeout."""

    if not selectors:
        return False
    combined: Locator = page.locator(selectors[0])
    for selector in selectors[1:]:
        combined = combined.or_(page.locator(selector))
    try:
        await combined.first.wait_for(state="visible", timeout=timeout_ms)
        return True
    except PlaywrightError:
        return False


async def first_visible(page: Page, selectors: Sequence[str], *, timeout_ms: int) -> tuple[str, Locator] | None:
    """Try each selector in order and return the first visible one."""

    for selector in selectors:
        locator = page.locator(selector).first
        try:
            await locator.wait_for(state="visible", timeout=timeout_ms)
        except PlaywrightError:
            continue
        return selector, locator
    return None


async def click_first(page: Page, selectors: Sequence[str], *, timeout_ms: int) -> str | None:
    """Click the first visible selector and return it, or ``None`` if none showed up."""

    found = await first_visible(page, selectors, timeout_ms=timeout_ms)
    if not found:
        return None
    selector, locator = found
    try:
        await locator.click()
    except PlaywrightError as exc:
        jlog("info", event="click_failed", selector=selector, error=str(exc).splitlines()[0])
        return None
    return selector


async def click_by_role(page: Page, names: Sequence[str], *, role: str = "button", timeout_ms: int = 3000) -> bool:
    """Click the first element with an exact accessible ``name``."""

    for name in names:
        locator = page.get_by_role(role, name=name, exact=True)
        try:
            await locator.first.wait_for(state="visible", timeout=timeout_ms)
            await locator.first.click()
            return True
        except PlaywrightError:
            continue
    return False


async def click_by_bounding_box(page: Page, selector: str, labels: Sequence[str] = ()) -> bool:
    """Mouse-click the centre of the first visible ``selector`` whose text is in ``labels``.

    Coordinate fallback for widgets whose accessible role is missing or shadowed.
    """

    try:
        point: dict[str, Any] | None = await page.evaluate(_VISIBLE_BOX_JS, [selector, list(labels)])
    except PlaywrightError:
        return False
    if not point:
        return False
    try:
        await page.mouse.click(point["x"], point["y"])
    except PlaywrightError:
        return False
    return True


@asynccontextmanager
async def collect_new_pages(context: BrowserContext) -> AsyncIterator[list[Page]]:
    """Collect every tab the context opens while the block runs."""

    opened: list[Page] = []

    def on_page(page: Page) -> None:
        opened.append(page)

    context.on("page", on_page)
    try:
        yield opened
    finally:
        context.remove_listener("page", on_page)


async def body_text(page: Page) -> str:
    try:
        return await page.inner_text("body", timeout=5000)
    except PlaywrightError:
        return ""


__all__ = [
    "CHROMIUM_LAUNCH_ARGS",
    "body_text",
    "click_by_bounding_box",
    "click_by_role",
    "click_first",
    "close_context",
    "collect_new_pages",
    "first_visible",
    "goto",
    "launch_context",
    "page_is_alive",
    "probe_visible",
    "safe_url",
    "settle",
    "wait_network_idle",
]
