"""Exception hierarchy for the scraper stages."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .runner import RunResult


class ScraperError(RuntimeError):
    """Base class for every error raised by this package."""


class StageError(ScraperError):
    """A run stage failed; the current target is marked failed, siblings continue."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message


class NoLivePageError(StageError):
    def __init__(self, message: str = "no live Google Ads tab found") -> None:
        super().__init__("navigate", message)


class ExportError(StageError):
    """Raised by the UI export flow; ``stage`` names the step that failed."""


class LoginTimeoutError(ScraperError):
    """Nobody completed the manual login before the deadline. Fatal."""


class RunBusyError(ScraperError):
    """A run is already active; overlapping requests are rejected, not queued."""


class RunFailedError(ScraperError):
    """Every target of a run failed. ``result`` keeps whatever was collected."""

    def __init__(self, message: str, result: "RunResult") -> None:
        super().__init__(message)
        self.result = result


__all__ = [
    "ExportError",
    "LoginTimeoutError",
    "NoLivePageError",
    "RunBusyError",
    "RunFailedError",
    "ScraperError",
    "StageError",
]
