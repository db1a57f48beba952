import asyncio
from datetime import date

import pytest
from playwright.async_api import Error as PlaywrightError

from auction_insights.browser import _VISIBLE_BOX_JS
from auction_insights.config import DashboardTarget
from auction_insights.errors import ExportError
from auction_insights.export import ExportFlow, export_filename

from conftest import FakeDownload

TARGET = DashboardTarget("Auction_Insights_Weekly", "42")


def test_export_filename_appends_iso_date():
    assert export_filename("Weekly", date(2026, 10, 17)) == "Weekly_2026-10-17"


def _sheets_page(context):
    page = context.open_page("https://ads.google.com/aw/dashboards/view?dashboardId=42")
    page.visible |= {
        '[aria-label="Download"]',
        '[role="menuitem"]:has-text("Google Sheets")',
        'text="File name"',
        'input[aria-label="File name"]',
        'role=button[name="Download"]',
    }
    return page


def test_sheets_export_runs_every_step(settings, context):
    page = _sheets_page(context)
    page.text = "Report downloaded to Sheets"

    outcome = asyncio.run(ExportFlow(settings).export(page, TARGET))

    assert outcome.confirmed
    assert outcome.filename == export_filename(TARGET.name)
    assert page.clicks == [
        '[aria-label="Download"]',
        '[role="menuitem"]:has-text("Google Sheets")',
        'input[aria-label="File name"]',
        'role=button[name="Download"]',
    ]
    assert page.keyboard.pressed == ["Control+A"]
    assert page.keyboard.typed == [outcome.filename]


def test_missing_dialog_fails_with_stage_and_screenshot(settings, context):
    page = _sheets_page(context)
    page.visible -= {'text="File name"', 'input[aria-label="File name"]'}

    with pytest.raises(ExportError) as excinfo:
        asyncio.run(ExportFlow(settings).export(page, TARGET))

    assert excinfo.value.stage == "dialog"
    assert page.screenshots[-1].endswith("export-dialog.png")


def test_missing_toast_fails(settings, context):
    page = _sheets_page(context)
    flow = ExportFlow(settings)
    flow.toast_timeout_s = 0
    flow.toast_poll_s = 0

    with pytest.raises(ExportError) as excinfo:
        asyncio.run(flow.export(page, TARGET))

    assert excinfo.value.stage == "toast"


def test_account_chooser_popup_picks_configured_account(settings, context):
    settings = settings.with_overrides(google_account_email="ops@example.com")
    page = _sheets_page(context)
    page.text = "Report downloaded to Sheets"
    popups = []

    def open_chooser():
        popup = context.open_page("https://accounts.google.com/o/oauth2/v2/auth?client_id=sheets")
        popup.visible.add('[data-identifier="ops@example.com"]')
        popup.on_click['[data-identifier="ops@example.com"]'] = lambda: setattr(popup, "closed", True)
        popups.append(popup)

    page.on_click['[role="menuitem"]:has-text("Google Sheets")'] = open_chooser

    outcome = asyncio.run(ExportFlow(settings).export(page, TARGET))

    assert outcome.confirmed
    (popup,) = popups
    assert popup.clicks == ['[data-identifier="ops@example.com"]']
    assert popup.closed


def test_folder_is_chosen_segment_by_segment(settings, context):
    settings = settings.with_overrides(export_folder="Reports/Weekly")
    page = _sheets_page(context)
    page.text = "Bericht wurde in Google Sheets heruntergeladen"
    page.visible |= {'[aria-label="Change folder"]', 'text="Reports"', 'text="Weekly"', 'role=button[name="Select"]'}

    outcome = asyncio.run(ExportFlow(settings).export(page, TARGET))

    assert outcome.folder == "Reports/Weekly"
    assert page.clicks[3:7] == [
        '[aria-label="Change folder"]',
        'text="Reports"',
        'text="Weekly"',
        'role=button[name="Select"]',
    ]


def test_missing_folder_segment_fails_folder_stage(settings, context):
    settings = settings.with_overrides(export_folder="Reports/Missing")
    page = _sheets_page(context)
    page.visible |= {'[aria-label="Change folder"]', 'text="Reports"'}

    with pytest.raises(ExportError) as excinfo:
        asyncio.run(ExportFlow(settings).export(page, TARGET))

    assert excinfo.value.stage == "folder"


def test_confirm_falls_back_to_coordinate_click(settings, context):
    page = _sheets_page(context)
    page.visible.discard('role=button[name="Download"]')
    page.scripts[_VISIBLE_BOX_JS] = {"x": 640, "y": 480}
    page.text = "Report downloaded to Sheets"

    outcome = asyncio.run(ExportFlow(settings).export(page, TARGET))

    assert outcome.confirmed
    assert page.mouse.clicks == [(640, 480)]


def test_file_format_is_downloaded_into_download_dir(settings, context):
    settings = settings.with_overrides(export_format="CSV (.csv)")
    page = context.open_page("https://ads.google.com/aw/dashboards/view?dashboardId=42")
    page.visible |= {'[aria-label="Download"]', '[role="menuitem"]:has-text("CSV (.csv)")'}
    download = FakeDownload("auction_insights.csv")
    page.downloads = [download]

    outcome = asyncio.run(ExportFlow(settings).export(page, TARGET))

    expected = settings.download_dir / f"{export_filename(TARGET.name)}.csv"
    assert download.saved == [str(expected)]
    assert outcome.path == str(expected)
    assert outcome.filename == expected.name
    assert expected.parent.is_dir()


def test_failed_save_raises_download_stage(settings, context):
    settings = settings.with_overrides(export_format="CSV")
    page = context.open_page("https://ads.google.com/aw/dashboards/view?dashboardId=42")
    page.visible |= {'[aria-label="Download"]', '[role="menuitem"]:has-text("CSV")'}
    page.downloads = [FakeDownload(error=PlaywrightError("Download failed: canceled"))]

    with pytest.raises(ExportError) as excinfo:
        asyncio.run(ExportFlow(settings).export(page, TARGET))

    assert excinfo.value.stage == "download"
    assert page.screenshots[-1].endswith("export-download.png")
