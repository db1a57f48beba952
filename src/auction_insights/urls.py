"""URL helpers for the Google Ads web UI."""

from __future__ import annotations

import re
import urllib.parse
from collections.abc import Iterable

from .config import APP_URL_PREFIX, AUTHENTICATED_PREFIX

# Session/account correlation tokens carried by every authenticated Ads URL.
AUTH_PARAM_KEYS = ("ocid", "ascid", "euid", "__u", "uscid", "__c", "authuser")

MARKETING_URL_PATTERNS = (
    "business.google.com",
    "ads.google.com/home",
    "ads.google.com/intl/",
)

ACCOUNT_PICKER_URL_PATTERNS = ("selectaccount", "/nav/select", "accountchooser")

PAGINATION_RE = re.compile(
    r"(\d[\d.,\u00a0\u202f]*)\s*(?:to|bis|\u2013|-)\s*(\d[\d.,\u00a0\u202f]*)\s*(?:of|von)\s*(\d[\d.,\u00a0\u202f]*)",
    re.I,
)


def is_app_url(url: str | None) -> bool:
    return bool(url) and APP_URL_PREFIX in url


def is_authenticated_url(url: str | None) -> bool:
    """True once a tab sits anywhere below ``ads.google.com/aw/``."""

    return bool(url) and AUTHENTICATED_PREFIX in url


def is_consent_url(url: str | None) -> bool:
    return bool(url) and "consent.google.com" in url


def is_marketing_url(url: str | None) -> bool:
    if not url or is_authenticated_url(url):
        return False
    return any(pattern in url for pattern in MARKETING_URL_PATTERNS)


def is_account_picker_url(url: str | None) -> bool:
    if not url:
        return False
    lowered = url.lower()
    return any(pattern in lowered for pattern in ACCOUNT_PICKER_URL_PATTERNS)


def extract_auth_params(urls: Iterable[str | None]) -> dict[str, str]:
    """Return the auth params of the first Ads URL that carries any of them."""

    for url in urls:
        if not is_app_url(url):
            continue
        try:
            qs = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)
        except ValueError:
            continue
        params = {key: qs[key][0] for key in AUTH_PARAM_KEYS if qs.get(key)}
        if params:
            return params
    return {}


def build_ads_url(base: str, auth_params: dict[str, str] | None = None, **extra: str) -> str:
    """Append auth params (and any extra query fields) to an Ads URL."""

    parsed = urllib.parse.urlparse(base)
    query = dict(urllib.parse.parse_qsl(parsed.query))
    query.update(auth_params or {})
    query.update({k: v for k, v in extra.items() if v is not None})
    return urllib.parse.urlunparse(parsed._replace(query=urllib.parse.urlencode(query)))


def _to_int(raw: str) -> int:
    return int(re.sub(r"[^\d]", "", raw))


def parse_pagination_status(text: str | None) -> tuple[int, int, int] | None:
    """Parse ``"<from> to <to> of <total>"`` (or the German form) from page text."""

    if not text:
        return None
    match = PAGINATION_RE.search(text)
    if not match:
        return None
    try:
        start, end, total = (_to_int(g) for g in match.groups())
    except ValueError:
        return None
    if start > end:
        return None
    return start, end, total


__all__ = [
    "AUTH_PARAM_KEYS",
    "build_ads_url",
    "extract_auth_params",
    "is_account_picker_url",
    "is_app_url",
    "is_authenticated_url",
    "is_consent_url",
    "is_marketing_url",
    "parse_pagination_status",
]
