from auction_insights.extractor import AuctionRow
from auction_insights.metadata import build_webhook_payload


def test_build_webhook_payload_orders_keys_and_camelcases_rows():
    rows = [AuctionRow("example.com", "45.2%", "12%", "8%", "60%", "20%", "33%")]
    payload = build_webhook_payload(
        rows=rows,
        dashboard="Auction_Insights_Weekly",
        mcc_account="123-456-7890",
        timestamp="2026-10-17T00:00:00Z",
        scraper_version="auction-insights@2026-10-17.1",
    )

    assert list(payload.keys()) == ["auctionData", "timestamp", "dashboard", "mccAccount", "scraperVersion"]
    assert payload["auctionData"] == [
        {
            "domain": "example.com",
            "imprShare": "45.2%",
            "overlapRate": "12%",
            "aboveRate": "8%",
            "topOfPage": "60%",
            "absTop": "20%",
            "outranking": "33%",
        }
    ]
    assert payload["timestamp"] == "2026-10-17T00:00:00Z"


def test_build_webhook_payload_includes_account_and_omits_missing_version():
    rows = [AuctionRow("example.com", account="Client A")]
    payload = build_webhook_payload(rows=rows, dashboard="d", mcc_account="m")
    assert "scraperVersion" not in payload
    assert payload["auctionData"][0]["account"] == "Client A"
    assert payload["timestamp"].endswith("Z") or "+00:00" in payload["timestamp"]
