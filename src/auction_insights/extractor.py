"""Table Extractor: read Auction Insights rows from a rendered dashboard table.

The cell-to-field mapping is parameterised by the target's ``column_offset``
because some report variants prepend an account column:

    field k  ->  cells[FIELD_INDEX[k] + column_offset]

With an offset the first cell is the owning account of the row.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .browser import body_text, click_by_bounding_box, click_first, probe_visible
from .config import DEFAULT_CELL_SELECTOR, DashboardTarget, Settings
from .logging import tlog
from .urls import parse_pagination_status

FIELD_NAMES = ("domain", "impr_share", "overlap_rate", "above_rate", "top_of_page", "abs_top", "outranking")
FIELD_INDEX = {name: idx for idx, name in enumerate(FIELD_NAMES)}
PAYLOAD_KEYS = {
    "domain": "domain",
    "impr_share": "imprShare",
    "overlap_rate": "overlapRate",
    "above_rate": "aboveRate",
    "top_of_page": "topOfPage",
    "abs_top": "absTop",
    "outranking": "outranking",
    "account": "account",
}

# Header and summary rows repeat these labels in the domain column.
SENTINEL_DOMAINS = frozenset({"display url domain", "anzeigen-url-domain", "domain", "--"})
SENTINEL_PREFIXES = ("total", "gesamt", "summe")

UNASSIGNED_ACCOUNT = "unassigned"

BANNER_CLOSE_SELECTORS = ('button[aria-label="Close"]', 'button[aria-label="Schließen"]')
NEXT_PAGE_SELECTORS = (
    '[aria-label="Next page"]',
    '[aria-label="Nächste Seite"]',
    'button[aria-label*="next" i]',
    '.pagination-controls button:last-of-type',
)
NEXT_PAGE_ICON_SELECTOR = "i, mat-icon, material-icon, .material-icons, .material-icons-extended"
NEXT_PAGE_ICONS = ("chevron_right", "navigate_next", "keyboard_arrow_right")
PAGINATION_CONTAINER_SELECTORS = (".pagination", "[class*='pagination']", "[aria-label*='agination']")

_READ_CELLS_JS = """
([rowSelector, cellSelector]) => Array.from(document.querySelectorAll(rowSelector)).map(row =>
    Array.from(row.querySelectorAll(cellSelector)).map(cell => (cell.innerText || cell.textContent || '').trim())
)
"""

_PAGINATION_TEXT_JS = """
(selectors) => {
    for (const sel of selectors) {
        for (const el of Array.from(document.querySelectorAll(sel))) {
            const text = (el.innerText || '').trim();
            if (text) return text;
        }
    }
    return '';
}
"""


@dataclass(frozen=True)
class AuctionRow:
    domain: str
    impr_share: str = ""
    overlap_rate: str = ""
    above_rate: str = ""
    top_of_page: str = ""
    abs_top: str = ""
    outranking: str = ""
    account: str | None = None

    def as_payload(self) -> dict[str, str]:
        return {PAYLOAD_KEYS[k]: v for k, v in asdict(self).items() if v is not None}


def map_cells(cells: Sequence[str], offset: int = 0) -> AuctionRow | None:
    """Map one row's cells to an :class:`AuctionRow`; ``None`` when the domain cell is missing."""

    if len(cells) <= offset:
        return None
    values = {
        name: (cells[idx + offset].strip() if idx + offset < len(cells) else "")
        for name, idx in FIELD_INDEX.items()
    }
    account = cells[0].strip() if offset > 0 else None
    return AuctionRow(**values, account=account)


def is_data_row(row: AuctionRow | None) -> bool:
    if row is None or not row.domain:
        return False
    lowered = row.domain.lower()
    if lowered in SENTINEL_DOMAINS:
        return False
    return not lowered.startswith(SENTINEL_PREFIXES)


def rows_from_cells(table: Iterable[Sequence[str]], offset: int = 0) -> list[AuctionRow]:
    rows = (map_cells(cells, offset) for cells in table)
    return [row for row in rows if is_data_row(row)]


def group_by_owner(rows: Iterable[AuctionRow]) -> dict[str, list[AuctionRow]]:
    grouped: dict[str, list[AuctionRow]] = {}
    for row in rows:
        grouped.setdefault(row.account or UNASSIGNED_ACCOUNT, []).append(row)
    return grouped


class TableExtractor:
    marker_timeout_ms = 30_000
    banner_timeout_ms = 2_000
    next_page_timeout_ms = 3_000
    page_change_timeout_s = 20.0
    page_change_poll_s = 0.5
    max_pages = 500

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def prepare(self, page: Page, target: DashboardTarget, *, first: bool) -> None:
        """Settle, wait for rows (non-fatal) and close the notification banner."""

        # The first dashboard of a run waits longer for backend aggregation.
        delay = self._settings.first_settle_s if first else self._settings.settle_s
        tlog("extract_settle", target=target.name, seconds=delay)
        await asyncio.sleep(delay)
        if not await probe_visible(page, [target.row_selector], timeout_ms=self.marker_timeout_ms):
            tlog("extract_no_row_marker", target=target.name, level="warning")
        closed = await click_first(page, BANNER_CLOSE_SELECTORS, timeout_ms=self.banner_timeout_ms)
        if closed:
            tlog("banner_dismissed", target=target.name, selector=closed)

    async def read_cells(self, page: Page, target: DashboardTarget) -> list[list[str]]:
        try:
            table = await page.evaluate(_READ_CELLS_JS, [target.row_selector, DEFAULT_CELL_SELECTOR])
        except PlaywrightError as exc:
            tlog("extract_read_failed", target=target.name, level="warning", error=str(exc).splitlines()[0])
            return []
        return [list(cells) for cells in table or []]

    async def read_status(self, page: Page) -> tuple[int, int, int] | None:
        try:
            text = await page.evaluate(_PAGINATION_TEXT_JS, list(PAGINATION_CONTAINER_SELECTORS))
        except PlaywrightError:
            text = ""
        return parse_pagination_status(text) or parse_pagination_status(await body_text(page))

    async def click_next(self, page: Page) -> bool:
        if await click_first(page, NEXT_PAGE_SELECTORS, timeout_ms=self.next_page_timeout_ms):
            return True
        return await click_by_bounding_box(page, NEXT_PAGE_ICON_SELECTOR, NEXT_PAGE_ICONS)

    async def wait_for_page_change(
        self, page: Page, previous: tuple[int, int, int]
    ) -> tuple[int, int, int] | None:
        deadline = time.monotonic() + self.page_change_timeout_s
        while True:
            status = await self.read_status(page)
            if status is not None and status != previous:
                return status
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(self.page_change_poll_s)

    async def scrape_visible(self, page: Page, target: DashboardTarget, *, first: bool = False) -> list[AuctionRow]:
        await self.prepare(page, target, first=first)
        rows = rows_from_cells(await self.read_cells(page, target), target.column_offset)
        tlog("extract_rows", target=target.name, rows=len(rows))
        return rows

    async def scrape_paginated(
        self, page: Page, target: DashboardTarget, *, first: bool = False
    ) -> dict[str, list[AuctionRow]]:
        """Walk every page of the aggregate view and group rows by owning account."""

        await self.prepare(page, target, first=first)
        seen: dict[AuctionRow, None] = {}
        status = await self.read_status(page)
        pages = 0
        while True:
            for row in rows_from_cells(await self.read_cells(page, target), target.column_offset):
                seen.setdefault(row, None)
            pages += 1
            tlog("extract_page", target=target.name, page=pages, status=status, rows_total=len(seen))

            if status is None:
                break
            _, end, total = status
            if end >= total:
                break
            if pages >= self.max_pages:
                tlog("extract_page_limit", target=target.name, level="warning", pages=pages)
                break
            if not await self.click_next(page):
                # No usable control: treat as end of data.
                tlog("extract_next_missing", target=target.name, level="warning", status=status)
                break
            new_status = await self.wait_for_page_change(page, status)
            if new_status is None or new_status[1] <= end:
                tlog("extract_page_stalled", target=target.name, level="warning", status=status)
                break
            status = new_status

        grouped = group_by_owner(seen)
        tlog("extract_grouped", target=target.name, pages=pages, rows=len(seen), accounts=len(grouped))
        return grouped


__all__ = [
    "AuctionRow",
    "FIELD_INDEX",
    "FIELD_NAMES",
    "TableExtractor",
    "group_by_owner",
    "is_data_row",
    "map_cells",
    "rows_from_cells",
]
