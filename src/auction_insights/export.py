"""In-UI export of a ready dashboard (Google Sheets or a downloaded file).

The Sheets flow is one unit: trigger, format menu, optional account chooser
popup, confirmation dialog, filename, optional folder, confirm, success toast.
A failing step saves ``export-<stage>.png`` and raises :class:`ExportError`
naming the step; nothing is retried half-way.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .browser import (
    body_text,
    click_by_bounding_box,
    click_by_role,
    click_first,
    collect_new_pages,
    first_visible,
    page_is_alive,
    probe_visible,
    safe_url,
    settle,
    wait_network_idle,
)
from .config import DOWNLOAD_TRIGGER_SELECTORS, DashboardTarget, Settings
from .debug import capture_screenshot
from .errors import ExportError
from .logging import tlog

SHEETS_FORMAT = "Google Sheets"

DIALOG_PROBES = (
    'text="Download to Google Sheets"',
    'text="In Google Sheets herunterladen"',
    'text="File name"',
    'text="Dateiname"',
    'input[aria-label="File name"]',
    'input[aria-label="Dateiname"]',
)
FILENAME_INPUT_SELECTORS = (
    'input[aria-label="Dateiname"]',
    'input[aria-label="File name"]',
    '[role="dialog"] input[type="text"]',
    'input[type="text"]',
)
FOLDER_PICKER_SELECTORS = (
    '[aria-label="Change folder"]',
    '[aria-label="Ordner ändern"]',
    '[role="dialog"] button:has-text("Change")',
    '[role="dialog"] button:has-text("Ändern")',
)
FOLDER_CONFIRM_LABELS = ("Select", "Auswählen", "Move here", "Hierher verschieben")
CONFIRM_LABELS = ("Download", "Herunterladen")
CONFIRM_FALLBACK_SELECTOR = '[role="dialog"] button, [role="dialog"] material-button'
SUCCESS_TOASTS = (
    "Report downloaded to Sheets",
    "Bericht wurde in Google Sheets heruntergeladen",
)
ACCOUNT_CHOOSER_HOST = "accounts.google.com"
ACCOUNT_ITEM_SELECTORS = ("[data-identifier]", "li [role='link']", "[data-email]")


def export_filename(dashboard_name: str, today: date | None = None) -> str:
    return f"{dashboard_name}_{(today or date.today()).isoformat()}"


@dataclass(frozen=True)
class ExportOutcome:
    filename: str
    export_format: str
    confirmed: bool
    path: str | None = None
    folder: str | None = None

    def as_dict(self) -> dict:
        out = {"filename": self.filename, "format": self.export_format, "confirmed": self.confirmed}
        if self.path:
            out["path"] = self.path
        if self.folder:
            out["folder"] = self.folder
        return out


class ExportFlow:
    step_settle_ms = 2_000
    dialog_attempts = 3
    dialog_timeout_ms = 10_000
    toast_timeout_s = 30.0
    toast_poll_s = 1.0
    popup_timeout_ms = 30_000
    download_timeout_ms = 120_000

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self.export_format = settings.export_format
        self.folder = settings.export_folder

    @property
    def is_sheets(self) -> bool:
        return SHEETS_FORMAT.lower() in self.export_format.lower()

    async def _fail(self, page: Page, target: DashboardTarget, stage: str, message: str) -> ExportError:
        tlog("export_failed", target=target.name, level="error", stage=stage, error=message)
        await capture_screenshot(page, f"export-{stage}")
        return ExportError(stage, message)

    async def export(self, page: Page, target: DashboardTarget) -> ExportOutcome:
        filename = export_filename(target.name)
        tlog("export_start", target=target.name, format=self.export_format, filename=filename)
        await capture_screenshot(page, "export-step0-dashboard")

        await self._click_trigger(page, target)
        if not self.is_sheets:
            return await self._download_file(page, target, filename)

        await self._select_format(page, target)
        await self._wait_dialog(page, target)
        await self._fill_filename(page, target, filename)
        if self.folder:
            await self._choose_folder(page, target, self.folder)
        await self._confirm(page, target)
        await self._wait_toast(page, target)
        tlog("export_done", target=target.name, filename=filename)
        return ExportOutcome(filename=filename, export_format=self.export_format, confirmed=True, folder=self.folder)

    async def _click_trigger(self, page: Page, target: DashboardTarget) -> None:
        clicked = await click_first(page, DOWNLOAD_TRIGGER_SELECTORS, timeout_ms=3000)
        if not clicked:
            raise await self._fail(page, target, "trigger", "Could not find download button on dashboard")
        tlog("export_trigger_clicked", target=target.name, selector=clicked)
        await settle(page, self.step_settle_ms)

    def _format_selectors(self) -> list[str]:
        return [f'[role="menuitem"]:has-text("{self.export_format}")', f'text="{self.export_format}"']

    async def _select_format(self, page: Page, target: DashboardTarget) -> None:
        async with collect_new_pages(page.context) as popups:
            clicked = await click_first(page, self._format_selectors(), timeout_ms=5000)
            if not clicked:
                raise await self._fail(page, target, "format", f"Could not select {self.export_format} from the menu")
            await settle(page, self.step_settle_ms)
        tlog("export_format_selected", target=target.name, selector=clicked)
        for popup in popups:
            if ACCOUNT_CHOOSER_HOST in safe_url(popup) or not safe_url(popup).startswith("http"):
                await self._handle_account_chooser(popup, page, target)

    async def _handle_account_chooser(self, popup: Page, page: Page, target: DashboardTarget) -> None:
        """Pick the configured Google account in the OAuth popup, else the first one listed."""

        await wait_network_idle(popup, timeout_ms=self.popup_timeout_ms)
        if not page_is_alive(popup) or ACCOUNT_CHOOSER_HOST not in safe_url(popup):
            return
        tlog("export_account_chooser", target=target.name, url=safe_url(popup))
        candidates: list[str] = []
        email = self._settings.google_account_email
        if email:
            candidates += [f'[data-identifier="{email}"]', f'text="{email}"']
        candidates += list(ACCOUNT_ITEM_SELECTORS)
        clicked = await click_first(popup, candidates, timeout_ms=5000)
        if not clicked:
            raise await self._fail(page, target, "account_chooser", "No account to choose in the authorization popup")
        tlog("export_account_chosen", target=target.name, selector=clicked)
        try:
            await popup.wait_for_event("close", timeout=self.popup_timeout_ms)
        except PlaywrightError:
            tlog("export_popup_still_open", target=target.name, level="warning")

    async def _wait_dialog(self, page: Page, target: DashboardTarget) -> None:
        for attempt in range(self.dialog_attempts):
            if attempt:
                tlog("export_dialog_retry", target=target.name, attempt=attempt)
                await settle(page, 3000)
            if await probe_visible(page, DIALOG_PROBES, timeout_ms=self.dialog_timeout_ms):
                tlog("export_dialog_visible", target=target.name)
                return
        raise await self._fail(page, target, "dialog", "Download dialog did not appear")

    async def _fill_filename(self, page: Page, target: DashboardTarget, filename: str) -> None:
        found = await first_visible(page, FILENAME_INPUT_SELECTORS, timeout_ms=5000)
        if not found:
            raise await self._fail(page, target, "filename", "Filename field not found in dialog")
        _, field = found
        try:
            # Some inputs ignore fill(); focus, select all and type like a user.
            await field.click()
            await page.keyboard.press("Control+A")
            await page.keyboard.type(filename)
        except PlaywrightError as exc:
            raise await self._fail(page, target, "filename", str(exc).splitlines()[0]) from exc
        tlog("export_filename_set", target=target.name, filename=filename)

    async def _choose_folder(self, page: Page, target: DashboardTarget, folder: str) -> None:
        if not await click_first(page, FOLDER_PICKER_SELECTORS, timeout_ms=5000):
            raise await self._fail(page, target, "folder", "Folder picker not found")
        await settle(page, self.step_settle_ms)
        for segment in (s for s in folder.split("/") if s.strip()):
            try:
                await page.locator(f'text="{segment.strip()}"').first.dblclick(timeout=10_000)
            except PlaywrightError as exc:
                raise await self._fail(page, target, "folder", f"Folder {segment!r} not found") from exc
            await settle(page, self.step_settle_ms)
        if not await click_by_role(page, FOLDER_CONFIRM_LABELS):
            raise await self._fail(page, target, "folder", "Could not confirm folder selection")
        tlog("export_folder_selected", target=target.name, folder=folder)
        await settle(page, self.step_settle_ms)

    async def _confirm(self, page: Page, target: DashboardTarget) -> None:
        await capture_screenshot(page, "export-step4-before-download")
        if await click_by_role(page, CONFIRM_LABELS):
            tlog("export_confirmed", target=target.name, via="role")
        elif await click_by_bounding_box(page, CONFIRM_FALLBACK_SELECTOR, CONFIRM_LABELS):
            tlog("export_confirmed", target=target.name, via="bounding_box")
        else:
            raise await self._fail(page, target, "confirm", "Could not click the Download button in dialog")

    async def _wait_toast(self, page: Page, target: DashboardTarget) -> None:
        deadline = time.monotonic() + self.toast_timeout_s
        while True:
            text = await body_text(page)
            hit = next((toast for toast in SUCCESS_TOASTS if toast in text), None)
            if hit:
                tlog("export_toast", target=target.name, toast=hit)
                return
            if time.monotonic() >= deadline:
                raise await self._fail(page, target, "toast", f"No success toast after {self.toast_timeout_s:g}s")
            await asyncio.sleep(self.toast_poll_s)

    async def _download_file(self, page: Page, target: DashboardTarget, filename: str) -> ExportOutcome:
        try:
            async with page.expect_download(timeout=self.download_timeout_ms) as download_info:
                clicked = await click_first(page, self._format_selectors(), timeout_ms=5000)
                if not clicked:
                    raise await self._fail(page, target, "format", f"Could not select {self.export_format} from the menu")
            download = await download_info.value
            suffix = Path(download.suggested_filename).suffix
            destination = Path(self._settings.download_dir) / f"{filename}{suffix}"
            destination.parent.mkdir(parents=True, exist_ok=True)
            await download.save_as(str(destination))
        except (PlaywrightError, OSError) as exc:
            raise await self._fail(page, target, "download", str(exc).splitlines()[0]) from exc

        tlog("export_downloaded", target=target.name, path=str(destination))
        return ExportOutcome(filename=destination.name, export_format=self.export_format, confirmed=True, path=str(destination))


__all__ = ["ExportFlow", "ExportOutcome", "export_filename"]
