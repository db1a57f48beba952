"""First-match tab race: poll every tab and watch newly opened ones until one logs in.

Google's account selector may crash the original tab (``chrome-error://``) and
finish the login in a freshly spawned tab, so the tab identity is never
assumed to be stable. Three sources race for one future:

* a poll over ``context.pages`` every ``poll_interval_s``,
* staggered checks of every tab created after the race started,
* an overall timeout.

Every subscription is recorded in ``_subscriptions`` and the list is drained
as soon as the future settles, whichever source wins.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Sequence
from typing import Any

from playwright.async_api import BrowserContext, Page

from .browser import safe_url
from .errors import LoginTimeoutError
from .logging import jlog
from .urls import is_authenticated_url

DEFAULT_POLL_INTERVAL_S = 3.0
DEFAULT_NEW_TAB_DELAYS_S = (2.0, 5.0, 10.0)
DEFAULT_TIMEOUT_S = 300.0


class TabRaceResolver:
    def __init__(
        self,
        context: BrowserContext,
        *,
        matcher: Callable[[str], bool] = is_authenticated_url,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        new_tab_delays_s: Sequence[float] = DEFAULT_NEW_TAB_DELAYS_S,
    ) -> None:
        self._context = context
        self._matcher = matcher
        self._timeout_s = timeout_s
        self._poll_interval_s = poll_interval_s
        self._new_tab_delays_s = tuple(new_tab_delays_s)
        self._future: asyncio.Future[Page] | None = None
        self._subscriptions: list[Callable[[], Any]] = []
        self._poll_task: asyncio.Task[None] | None = None
        self._polls = 0
        self.resolved_via: str | None = None

    @property
    def pending(self) -> int:
        """Number of live subscriptions; zero once :meth:`wait` has returned."""

        return len(self._subscriptions)

    async def wait(self) -> Page:
        """Return the first tab whose URL satisfies the matcher, or raise :class:`LoginTimeoutError`."""

        loop = asyncio.get_running_loop()
        self._future = loop.create_future()

        def on_page(page: Page) -> None:
            jlog("info", event="login_race_new_tab", url=safe_url(page))
            for delay in self._new_tab_delays_s:
                handle = loop.call_later(delay, self._check, page, "new_tab")
                self._subscriptions.append(handle.cancel)

        self._context.on("page", on_page)
        self._subscriptions.append(lambda: self._context.remove_listener("page", on_page))

        timeout_handle = loop.call_later(self._timeout_s, self._expire)
        self._subscriptions.append(timeout_handle.cancel)

        self._poll_once()
        if not self._future.done():
            self._poll_task = asyncio.create_task(self._poll_forever())
            self._subscriptions.append(self._poll_task.cancel)

        try:
            return await self._future
        finally:
            self._drain()
            if self._poll_task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await self._poll_task
                self._poll_task = None

    def _drain(self) -> None:
        while self._subscriptions:
            unsubscribe = self._subscriptions.pop()
            try:
                unsubscribe()
            except Exception as exc:  # pragma: no cover - listener already gone
                jlog("debug", event="login_race_unsubscribe_error", error=str(exc))

    def _resolve(self, page: Page, source: str) -> None:
        if self._future is None or self._future.done():
            return
        self.resolved_via = source
        jlog("info", event="login_race_resolved", source=source, url=safe_url(page))
        self._future.set_result(page)

    def _expire(self) -> None:
        if self._future is None or self._future.done():
            return
        minutes = self._timeout_s / 60
        self._future.set_exception(LoginTimeoutError(f"Login timeout - {minutes:g} minutes elapsed"))

    def _check(self, page: Page, source: str) -> None:
        url = safe_url(page)
        if url and self._matcher(url):
            self._resolve(page, source)

    def _poll_once(self) -> None:
        self._polls += 1
        try:
            pages = list(self._context.pages)
        except Exception:
            pages = []
        if self._polls % 5 == 1:
            jlog("info", event="login_race_poll", poll=self._polls, tabs=[safe_url(p) or "(closed)" for p in pages])
        for page in pages:
            self._check(page, "poll")
            if self._future is not None and self._future.done():
                return

    async def _poll_forever(self) -> None:
        while self._future is not None and not self._future.done():
            await asyncio.sleep(self._poll_interval_s)
            self._poll_once()


async def wait_for_authenticated_tab(context: BrowserContext, **kwargs: Any) -> Page:
    return await TabRaceResolver(context, **kwargs).wait()


__all__ = ["TabRaceResolver", "wait_for_authenticated_tab"]
