"""Session Manager: one persistent browser context and the single active Ads tab."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from playwright.async_api import BrowserContext, Page

from .alerts import Notifier
from .browser import click_first, goto, page_is_alive, probe_visible, safe_url, settle, wait_network_idle
from .config import APP_ROOT_URL, OVERVIEW_URL, Settings
from .errors import RunBusyError
from .logging import jlog
from .race import DEFAULT_NEW_TAB_DELAYS_S, DEFAULT_POLL_INTERVAL_S, TabRaceResolver
from .urls import is_account_picker_url, is_authenticated_url, is_consent_url, is_marketing_url

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .runner import RunnerState

CONSENT_BUTTON_LABELS = ("Accept all", "Alle akzeptieren", "Reject all", "Alle ablehnen")
ACCOUNT_PICKER_TEXTS = ("Select an account", "Konto auswählen")
LOGIN_SETTLE_S = 5.0


class SessionManager:
    def __init__(self, context: BrowserContext, settings: Settings, notifier: Notifier) -> None:
        self.context = context
        self._settings = settings
        self._notifier = notifier
        self._active: Page | None = None
        self.login_settle_s = LOGIN_SETTLE_S
        self.login_poll_interval_s = DEFAULT_POLL_INTERVAL_S
        self.login_tab_delays_s = DEFAULT_NEW_TAB_DELAYS_S

    @property
    def active_page(self) -> Page | None:
        """The canonical Ads tab; ``None`` until :meth:`ensure_session` has run."""

        if self._active is not None and not page_is_alive(self._active):
            self._active = None
        return self._active

    def adopt(self, page: Page) -> Page:
        if page is not self._active:
            jlog("info", event="active_tab_adopted", url=safe_url(page))
        self._active = page
        return page

    def live_pages(self) -> list[Page]:
        try:
            return [p for p in self.context.pages if page_is_alive(p)]
        except Exception:
            return []

    async def _first_page(self) -> Page:
        pages = self.live_pages()
        if pages:
            return pages[0]
        return await self.context.new_page()

    async def ensure_session(self) -> Page:
        """Return an authenticated Ads tab, waiting for a manual login if needed."""

        page = self.adopt(await self._first_page())
        jlog("info", event="session_navigate", url=APP_ROOT_URL)
        await goto(page, APP_ROOT_URL, timeout_ms=self._settings.page_timeout_ms)

        await self.dismiss_consent(page)
        await self.escape_marketing_redirect(page)
        await self.choose_account(page)

        if is_authenticated_url(safe_url(page)):
            jlog("info", event="session_authenticated", url=safe_url(page))
            return page

        jlog("warning", event="login_required", url=safe_url(page))
        await self._notifier.login_required()
        resolver = TabRaceResolver(
            self.context,
            timeout_s=self._settings.login_timeout_s,
            poll_interval_s=self.login_poll_interval_s,
            new_tab_delays_s=self.login_tab_delays_s,
        )
        page = await resolver.wait()

        # The provider may still be redirecting; a closed page must not fail the login.
        await asyncio.sleep(self.login_settle_s)
        await wait_network_idle(page)
        jlog("info", event="login_successful", url=safe_url(page), via=resolver.resolved_via)
        return self.adopt(page)

    async def dismiss_consent(self, page: Page) -> bool:
        if not is_consent_url(safe_url(page)):
            return False
        jlog("info", event="consent_page_detected")
        selectors = [f'button:has-text("{label}")' for label in CONSENT_BUTTON_LABELS]
        clicked = await click_first(page, selectors, timeout_ms=3000)
        if not clicked:
            jlog("warning", event="consent_button_not_found")
            return False
        jlog("info", event="consent_dismissed", selector=clicked)
        await settle(page, 3000)
        await wait_network_idle(page)
        return True

    async def escape_marketing_redirect(self, page: Page) -> bool:
        url = safe_url(page)
        if not is_marketing_url(url):
            return False
        jlog("info", event="marketing_redirect", url=url, target=OVERVIEW_URL)
        await goto(page, OVERVIEW_URL, timeout_ms=self._settings.page_timeout_ms)
        return True

    async def choose_account(self, page: Page) -> bool:
        """Pick the configured account on the multi-account picker, by ID then by name."""

        on_picker = is_account_picker_url(safe_url(page))
        if not on_picker:
            selectors = [f'text="{text}"' for text in ACCOUNT_PICKER_TEXTS]
            on_picker = await probe_visible(page, selectors, timeout_ms=2000)
        if not on_picker:
            return False

        candidates = [f'text="{self._settings.mcc_account_id}"']
        if self._settings.account_name:
            candidates.append(f'text="{self._settings.account_name}"')
        clicked = await click_first(page, candidates, timeout_ms=5000)
        if not clicked:
            jlog("warning", event="account_not_found_in_picker", account=self._settings.mcc_account_id)
            return False
        jlog("info", event="account_selected", selector=clicked)
        await wait_network_idle(page)
        return True

    async def refresh(self) -> bool:
        """Keep-alive tick: reload the overview and report whether we are still logged in."""

        page = await self._first_page()
        await goto(page, OVERVIEW_URL, timeout_ms=self._settings.page_timeout_ms, wait_until="domcontentloaded")
        url = safe_url(page)
        if is_authenticated_url(url):
            jlog("info", event="keepalive_ok", url=url)
            return True
        jlog("warning", event="session_expired", url=url)
        await self._notifier.session_expired(url)
        return False

    async def keep_alive_forever(self, state: "RunnerState", interval_s: float | None = None) -> None:
        interval_s = interval_s or self._settings.keepalive_interval_s
        while True:
            await asyncio.sleep(interval_s)
            try:
                state.start("keepalive")
            except RunBusyError:
                jlog("info", event="keepalive_skipped", reason="run active")
                continue
            # Holding the run slot keeps triggers off the tab while it reloads.
            try:
                await self.refresh()
            finally:
                state.stop()


__all__ = ["SessionManager"]
