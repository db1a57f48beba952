from __future__ import annotations

import inspect
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError

from auction_insights import debug
from auction_insights.alerts import Notifier
from auction_insights.config import APP_ROOT_URL, Settings

AUTHED_URL = "https://ads.google.com/aw/overview?ocid=123&euid=9&__u=77&authuser=0"


class FakeLocator:
    def __init__(self, page: "FakePage", selectors: tuple[str, ...]):
        self._page = page
        self._selectors = selectors

    @property
    def first(self) -> "FakeLocator":
        return self

    def or_(self, other: "FakeLocator") -> "FakeLocator":
        return FakeLocator(self._page, self._selectors + other._selectors)

    def _hit(self) -> str | None:
        return next((s for s in self._selectors if s in self._page.visible), None)

    async def wait_for(self, state: str = "visible", timeout: float | None = None) -> None:
        if self._hit() is None:
            raise PlaywrightError(f"Timeout {timeout}ms exceeded waiting for {self._selectors}")

    async def click(self, timeout: float | None = None) -> None:
        hit = self._hit()
        if hit is None:
            raise PlaywrightError(f"element not found: {self._selectors}")
        self._page.clicks.append(hit)
        callback = self._page.on_click.get(hit)
        if callback is not None:
            callback()

    async def dblclick(self, timeout: float | None = None) -> None:
        await self.click(timeout=timeout)


class FakeKeyboard:
    def __init__(self):
        self.pressed: list[str] = []
        self.typed: list[str] = []

    async def press(self, key: str) -> None:
        self.pressed.append(key)

    async def type(self, text: str) -> None:
        self.typed.append(text)


class FakeMouse:
    def __init__(self):
        self.clicks: list[tuple[float, float]] = []

    async def click(self, x: float, y: float) -> None:
        self.clicks.append((x, y))


class FakeDownload:
    def __init__(self, suggested_filename: str = "report.csv", error: Exception | None = None):
        self.suggested_filename = suggested_filename
        self.error = error
        self.saved: list[str] = []

    async def save_as(self, path: str) -> None:
        if self.error is not None:
            raise self.error
        self.saved.append(path)


class FakeEventInfo:
    def __init__(self, value):
        self._value = value

    @property
    def value(self):
        return self._resolve()

    async def _resolve(self):
        if self._value is None:
            raise PlaywrightError("Timeout exceeded while waiting for event \"download\"")
        return self._value


class FakePage:
    def __init__(self, context: "FakeContext", url: str = "about:blank"):
        self.context = context
        self.url = url
        self.closed = False
        self.visible: set[str] = set()
        self.clicks: list[str] = []
        self.visited: list[str] = []
        self.redirects: dict[str, str] = {}
        self.table: list[list[str]] = []
        self.text = ""
        self.screenshots: list[str] = []
        self.keyboard = FakeKeyboard()
        self.mouse = FakeMouse()
        self.on_click: dict[str, object] = {}
        self.on_goto = None
        self.scripts: dict[str, object] = {}
        self.downloads: list[FakeDownload] = []

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None) -> None:
        self.visited.append(url)
        self.url = self.redirects.get(url, url)
        if self.on_goto is not None:
            pending = self.on_goto(url)
            if inspect.isawaitable(pending):
                await pending

    async def wait_for_timeout(self, ms: float) -> None:
        return None

    async def wait_for_load_state(self, state: str = "load", timeout: float | None = None) -> None:
        return None

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, (selector,))

    def get_by_role(self, role: str, name: str = "", exact: bool = False) -> FakeLocator:
        return FakeLocator(self, (f'role={role}[name="{name}"]',))

    async def evaluate(self, script: str, arg=None):
        if script in self.scripts:
            return self.scripts[script]
        return [list(row) for row in self.table]

    @asynccontextmanager
    async def expect_download(self, timeout: float | None = None):
        yield FakeEventInfo(self.downloads.pop(0) if self.downloads else None)

    async def wait_for_event(self, event: str, timeout: float | None = None) -> None:
        if event == "close" and not self.closed:
            raise PlaywrightError(f"Timeout {timeout}ms exceeded while waiting for event \"close\"")

    async def inner_text(self, selector: str, timeout: float | None = None) -> str:
        return self.text

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        self.screenshots.append(path)

    async def content(self) -> str:
        return "<html></html>"


class FakeContext:
    def __init__(self):
        self.pages: list[FakePage] = []
        self._listeners: dict[str, list] = {}

    def on(self, event: str, callback) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback) -> None:
        self._listeners[event].remove(callback)

    def listener_count(self, event: str = "page") -> int:
        return len(self._listeners.get(event, []))

    async def new_page(self) -> FakePage:
        return self.open_page()

    def open_page(self, url: str = "about:blank") -> FakePage:
        page = FakePage(self, url)
        self.pages.append(page)
        for callback in list(self._listeners.get("page", [])):
            callback(page)
        return page

    async def close(self) -> None:
        for page in self.pages:
            page.closed = True


class RecordingNotifier(Notifier):
    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.subjects: list[str] = []

    async def notify(self, subject: str, body: str) -> bool:
        self.subjects.append(subject)
        return True


@pytest.fixture(autouse=True)
def _debug_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(debug, "DEBUG_DIR", str(tmp_path / "debug"))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        profile_dir=tmp_path / "profile",
        download_dir=tmp_path / "downloads",
        first_settle_s=0,
        settle_s=0,
        login_timeout_s=1,
    )


@pytest.fixture
def context() -> FakeContext:
    return FakeContext()


@pytest.fixture
def authed_page(context: FakeContext) -> FakePage:
    page = context.open_page("about:blank")
    page.redirects[APP_ROOT_URL] = AUTHED_URL
    return page
