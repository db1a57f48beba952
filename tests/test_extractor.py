import asyncio

from auction_insights.config import DashboardTarget
from auction_insights.extractor import (
    FIELD_NAMES,
    AuctionRow,
    TableExtractor,
    group_by_owner,
    is_data_row,
    map_cells,
    rows_from_cells,
)

CELLS = ["example.com", "45%", "12%", "8%", "60%", "20%", "33%"]


def test_map_cells_without_offset():
    row = map_cells(CELLS, 0)
    assert row == AuctionRow(*CELLS)
    assert row.account is None


def test_map_cells_with_offset_shifts_every_field_and_keeps_account():
    for offset in (1, 2):
        cells = ["Client A"] + ["pad"] * (offset - 1) + CELLS
        row = map_cells(cells, offset)
        for name, value in zip(FIELD_NAMES, CELLS):
            assert getattr(row, name) == value
        assert row.account == "Client A"


def test_map_cells_short_rows():
    assert map_cells([], 0) is None
    assert map_cells(["Client A"], 1) is None
    row = map_cells(["example.com", "45%"], 0)
    assert row.impr_share == "45%"
    assert row.outranking == ""


def test_sentinel_rows_are_dropped():
    table = [
        ["Display URL domain", "Impr. share", "", "", "", "", ""],
        CELLS,
        ["Total: Account", "50%", "", "", "", "", ""],
        ["Gesamt", "50%", "", "", "", "", ""],
        ["--", "", "", "", "", "", ""],
        ["", "1%", "", "", "", "", ""],
    ]
    rows = rows_from_cells(table, 0)
    assert [r.domain for r in rows] == ["example.com"]
    assert not is_data_row(None)


def test_group_by_owner_uses_placeholder_for_missing_account():
    rows = [AuctionRow("a.com", account="A"), AuctionRow("b.com"), AuctionRow("c.com", account="A")]
    grouped = group_by_owner(rows)
    assert [r.domain for r in grouped["A"]] == ["a.com", "c.com"]
    assert [r.domain for r in grouped["unassigned"]] == ["b.com"]


def _paginated_extractor(settings, pages, statuses):
    extractor = TableExtractor(settings)
    extractor.page_change_poll_s = 0
    extractor.page_change_timeout_s = 0.5
    state = {"index": 0, "clicks": 0}

    async def prepare(page, target, *, first):
        return None

    async def read_cells(page, target):
        return pages[state["index"]]

    async def read_status(page):
        return statuses[state["index"]]

    async def click_next(page):
        state["clicks"] += 1
        state["index"] += 1
        return True

    extractor.prepare = prepare
    extractor.read_cells = read_cells
    extractor.read_status = read_status
    extractor.click_next = click_next
    return extractor, state


def test_scrape_paginated_stops_at_total_and_deduplicates(settings):
    pages = [
        [["A", "a.com", "1%"], ["A", "b.com", "2%"]],
        [["A", "b.com", "2%"], ["B", "c.com", "3%"]],
        [["B", "d.com", "4%"], ["Total", "", ""]],
    ]
    statuses = [(1, 100, 250), (101, 200, 250), (201, 250, 250)]
    extractor, state = _paginated_extractor(settings, pages, statuses)
    target = DashboardTarget("MCC", "1", column_offset=1, paginate=True, group="mcc")

    grouped = asyncio.run(extractor.scrape_paginated(object(), target))

    assert state["clicks"] == 2
    assert sorted(grouped) == ["A", "B"]
    assert [r.domain for r in grouped["A"]] == ["a.com", "b.com"]
    assert [r.domain for r in grouped["B"]] == ["c.com", "d.com"]


def test_scrape_paginated_stops_when_page_does_not_advance(settings):
    pages = [[["A", "a.com"]], [["A", "a.com"]]]
    statuses = [(1, 100, 250), (1, 100, 250)]
    extractor, state = _paginated_extractor(settings, pages, statuses)
    target = DashboardTarget("MCC", "1", column_offset=1, paginate=True, group="mcc")

    grouped = asyncio.run(extractor.scrape_paginated(object(), target))

    assert state["clicks"] == 1
    assert [r.domain for r in grouped["A"]] == ["a.com"]


def test_scrape_visible_reads_table(settings, context):
    page = context.open_page("https://ads.google.com/aw/dashboards/view")
    page.table = [["Display URL domain"], CELLS, ["Total", "1%"]]
    target = DashboardTarget("Weekly", "42")

    rows = asyncio.run(TableExtractor(settings).scrape_visible(page, target, first=True))

    assert rows == [AuctionRow(*CELLS)]


def test_scrape_paginated_stops_when_next_control_is_missing(settings):
    pages = [[["A", "a.com"], ["B", "b.com"]]]
    statuses = [(1, 100, 250)]
    extractor, state = _paginated_extractor(settings, pages, statuses)

    async def no_next(page):
        state["clicks"] += 1
        return False

    extractor.click_next = no_next
    target = DashboardTarget("MCC", "1", column_offset=1, paginate=True, group="mcc")

    grouped = asyncio.run(extractor.scrape_paginated(object(), target))

    assert state["clicks"] == 1
    assert {account: [r.domain for r in rows] for account, rows in grouped.items()} == {"A": ["a.com"], "B": ["b.com"]}
