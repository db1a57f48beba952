"""Navigator: reach a loaded, ready dashboard view for one target."""

from __future__ import annotations

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .browser import collect_new_pages, goto, page_is_alive, probe_visible, safe_url, settle, wait_network_idle
from .config import DASHBOARD_LIST_URL, DASHBOARD_VIEW_URL, DashboardTarget, Settings
from .debug import capture_screenshot, ensure_debug_html
from .errors import NoLivePageError
from .logging import tlog
from .session import SessionManager
from .urls import build_ads_url, extract_auth_params, is_app_url


class Navigator:
    # Waits in milliseconds; tests shrink them to zero.
    list_settle_ms = 5_000
    click_settle_ms = 10_000
    ready_timeout_ms = 10_000
    retry_settle_ms = 10_000
    retry_timeout_ms = 20_000
    new_tab_load_timeout_ms = 30_000

    def __init__(self, session: SessionManager, settings: Settings) -> None:
        self._session = session
        self._settings = settings

    def auth_params(self) -> dict[str, str]:
        """Scrape auth params from every live tab; never cached between attempts."""

        return extract_auth_params(safe_url(p) for p in self._session.live_pages())

    async def open_dashboard(self, target: DashboardTarget) -> Page | None:
        """Return the ready dashboard tab, or ``None`` after saving a screenshot."""

        page = self._session.active_page
        if page is None:
            page = self._pick_live_app_page()
        auth = self.auth_params()
        tlog("dashboard_open", target=target.name, dashboard_id=target.dashboard_id, strategy=target.strategy, auth_keys=sorted(auth))

        async with collect_new_pages(self._session.context) as new_pages:
            if target.strategy == "direct":
                await self._open_direct(page, target, auth)
            else:
                await self._open_from_list(page, target, auth)

        page = await self._resolve_tab(page, new_pages, target)
        if await self.wait_ready(page, target):
            tlog("dashboard_ready", target=target.name, url=safe_url(page))
            return page

        tlog("dashboard_failed", target=target.name, level="error", url=safe_url(page))
        await capture_screenshot(page, f"dashboard-{target.dashboard_id}")
        await ensure_debug_html(page, f"dashboard-{target.dashboard_id}")
        return None

    async def _open_direct(self, page: Page, target: DashboardTarget, auth: dict[str, str]) -> None:
        url = build_ads_url(DASHBOARD_VIEW_URL, auth, dashboardId=target.dashboard_id)
        tlog("dashboard_direct_link", target=target.name, url=url)
        await goto(page, url, timeout_ms=self._settings.page_timeout_ms)
        await settle(page, self.list_settle_ms)

    async def _open_from_list(self, page: Page, target: DashboardTarget, auth: dict[str, str]) -> None:
        # Deep links sometimes land on the list anyway; clicking the name is more reliable.
        url = build_ads_url(DASHBOARD_LIST_URL, auth)
        tlog("dashboard_list", target=target.name, url=url)
        await goto(page, url, timeout_ms=self._settings.page_timeout_ms)
        await settle(page, self.list_settle_ms)
        try:
            await page.locator(f'text="{target.name}"').first.click(timeout=self._settings.page_timeout_ms)
        except PlaywrightError as exc:
            tlog("dashboard_name_click_failed", target=target.name, level="warning", error=str(exc).splitlines()[0])
            return
        await settle(page, self.click_settle_ms)
        await wait_network_idle(page)
        tlog("dashboard_clicked", target=target.name, url=safe_url(page))

    def _pick_live_app_page(self) -> Page:
        for candidate in self._session.live_pages():
            if is_app_url(safe_url(candidate)):
                return self._session.adopt(candidate)
        raise NoLivePageError()

    async def _resolve_tab(self, original: Page, new_pages: list[Page], target: DashboardTarget) -> Page:
        """Adopt a tab the UI opened during navigation, else keep (or replace) the original."""

        for candidate in reversed(new_pages):
            if not page_is_alive(candidate):
                continue
            try:
                await candidate.wait_for_load_state("load", timeout=self.new_tab_load_timeout_ms)
            except PlaywrightError:
                continue
            if not is_app_url(safe_url(candidate)):
                continue
            tlog("dashboard_new_tab", target=target.name, url=safe_url(candidate))
            if candidate is not original and page_is_alive(original):
                try:
                    await original.close()
                except PlaywrightError:
                    pass
            return self._session.adopt(candidate)

        if page_is_alive(original):
            return original
        tlog("dashboard_original_tab_dead", target=target.name, level="warning")
        return self._pick_live_app_page()

    async def wait_ready(self, page: Page, target: DashboardTarget) -> bool:
        """Readiness means a row marker or the download control is visible, not a URL match."""

        if await probe_visible(page, target.ready_selectors, timeout_ms=self.ready_timeout_ms):
            return True
        tlog("dashboard_not_ready_yet", target=target.name)
        await settle(page, self.retry_settle_ms)
        return await probe_visible(page, target.ready_selectors, timeout_ms=self.retry_timeout_ms)


__all__ = ["Navigator"]
