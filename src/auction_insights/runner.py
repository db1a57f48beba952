"""Run orchestration: login -> navigate -> extract -> deliver, one target at a time.

``RunnerState`` owns everything that used to be process-global (the
"is a run active" flag, the current phase, the keep-alive task and the
browser context) so the scheduler loop, the keep-alive task and the HTTP
trigger coordinate through one object.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from playwright.async_api import BrowserContext
from playwright.async_api import Error as PlaywrightError

from .alerts import Notifier
from .config import DashboardTarget, Settings
from .debug import capture_last_tab, capture_screenshot
from .delivery import DeliveryOutcome, WebhookDelivery
from .errors import LoginTimeoutError, RunBusyError, RunFailedError, StageError
from .export import ExportFlow, ExportOutcome
from .extractor import AuctionRow, TableExtractor
from .logging import jlog, logging_context, tlog, utcnow_iso
from .navigator import Navigator
from .session import SessionManager


class RunPhase(str, Enum):
    IDLE = "idle"
    LOGGING_IN = "logging_in"
    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    DELIVERING = "delivering"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunnerState:
    context: BrowserContext | None = None
    keepalive_task: asyncio.Task | None = None
    phase: RunPhase = RunPhase.IDLE
    run_id: str | None = None
    started_at: float | None = None
    booted_at: float = field(default_factory=time.monotonic)
    _active: bool = False

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self.booted_at

    def start(self, run_id: str) -> None:
        """Claim the run slot; a second caller gets :class:`RunBusyError` instead of waiting."""

        if self._active:
            raise RunBusyError(f"run {self.run_id} is already in progress")
        self._active = True
        self.run_id = run_id
        self.started_at = time.monotonic()
        self.phase = RunPhase.IDLE

    def set_phase(self, phase: RunPhase) -> None:
        # FAILED is absorbing for the rest of the run.
        if self.phase is RunPhase.FAILED and phase is not RunPhase.IDLE:
            return
        self.phase = phase
        jlog("debug", event="run_phase", phase=phase.value)

    def stop(self) -> None:
        self._active = False
        self.started_at = None

    def stop_keepalive(self) -> None:
        if self.keepalive_task is not None and not self.keepalive_task.done():
            self.keepalive_task.cancel()
        self.keepalive_task = None


@dataclass
class TargetResult:
    name: str
    dashboard_id: str
    ok: bool
    rows: list[AuctionRow] = field(default_factory=list)
    groups: dict[str, list[AuctionRow]] | None = None
    error: str | None = None
    stage: str | None = None
    export: ExportOutcome | None = None
    delivery: DeliveryOutcome | None = None

    @classmethod
    def failed(cls, target: DashboardTarget, stage: str, error: str) -> "TargetResult":
        return cls(name=target.name, dashboard_id=target.dashboard_id, ok=False, stage=stage, error=error)

    @property
    def row_count(self) -> int:
        return len(self.rows) if self.ok else 0

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "dashboardId": self.dashboard_id,
            "ok": self.ok,
            "rowCount": self.row_count,
            "rows": [row.as_payload() for row in self.rows] if self.ok else [],
        }
        if self.groups is not None:
            out["accounts"] = {account: [r.as_payload() for r in rows] for account, rows in self.groups.items()}
        if self.error:
            out["error"] = self.error
            out["stage"] = self.stage
        if self.export is not None:
            out["export"] = self.export.as_dict()
        if self.delivery is not None:
            out["delivery"] = self.delivery.as_dict()
        return out


@dataclass
class RunResult:
    run_id: str
    started_at: str = field(default_factory=utcnow_iso)
    finished_at: str | None = None
    targets: dict[str, TargetResult] = field(default_factory=dict)
    phases: dict[str, str] = field(default_factory=dict)

    @property
    def total_rows(self) -> int:
        return sum(tr.row_count for tr in self.targets.values())

    @property
    def failed_targets(self) -> list[str]:
        return [name for name, tr in self.targets.items() if not tr.ok]

    @property
    def succeeded(self) -> bool:
        return bool(self.targets) and not self.failed_targets

    def finish(self) -> None:
        self.finished_at = utcnow_iso()

    def as_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "success": self.succeeded,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "totalRows": self.total_rows,
            "failedTargets": self.failed_targets,
            "phases": dict(self.phases),
            "targets": {name: tr.as_dict() for name, tr in self.targets.items()},
        }


class Runner:
    def __init__(
        self,
        *,
        settings: Settings,
        state: RunnerState,
        session: SessionManager,
        navigator: Navigator,
        extractor: TableExtractor,
        notifier: Notifier,
        delivery: WebhookDelivery | None = None,
        export_flow: ExportFlow | None = None,
    ) -> None:
        self.settings = settings
        self.state = state
        self.session = session
        self.navigator = navigator
        self.extractor = extractor
        self.notifier = notifier
        self.delivery = delivery
        self.export_flow = export_flow

    @classmethod
    def build(
        cls,
        context: BrowserContext,
        settings: Settings,
        *,
        state: RunnerState | None = None,
        notifier: Notifier | None = None,
    ) -> "Runner":
        state = state or RunnerState()
        state.context = context
        notifier = notifier or Notifier(settings)
        session = SessionManager(context, settings, notifier)
        return cls(
            settings=settings,
            state=state,
            session=session,
            navigator=Navigator(session, settings),
            extractor=TableExtractor(settings),
            notifier=notifier,
            delivery=WebhookDelivery(settings) if settings.delivery_mode == "webhook" else None,
            export_flow=ExportFlow(settings) if settings.delivery_mode == "export" else None,
        )

    async def run(self, targets: Sequence[DashboardTarget] | None = None) -> RunResult:
        """Run every target once. Partial results survive failures of later targets."""

        targets = tuple(targets) if targets is not None else self.settings.targets
        result = RunResult(run_id=uuid.uuid4().hex[:12])
        self.state.start(result.run_id)
        try:
            with logging_context(run_id=result.run_id):
                jlog("info", event="run_start", targets=[t.name for t in targets])
                return await self._run(targets, result)
        finally:
            self.state.stop()

    async def _run(self, targets: tuple[DashboardTarget, ...], result: RunResult) -> RunResult:
        try:
            self.state.set_phase(RunPhase.LOGGING_IN)
            await self.session.ensure_session()
            result.phases["login"] = "ok"
            for idx, target in enumerate(targets):
                with logging_context(target=target.name):
                    result.targets[target.name] = await self._run_target(target, first=idx == 0, result=result)
        except Exception as exc:
            result.phases.setdefault("login", "failed")
            result.finish()
            self.state.set_phase(RunPhase.FAILED)
            jlog("error", event="run_failed", error=str(exc), error_type=type(exc).__name__)
            await capture_last_tab(self.state.context, "error-screenshot")
            await self.notifier.run_failed(exc, result)
            raise

        result.finish()
        if targets and not any(tr.ok for tr in result.targets.values()):
            self.state.set_phase(RunPhase.FAILED)
            message = "all targets failed: " + "; ".join(
                f"{name}: {tr.error}" for name, tr in result.targets.items()
            )
            jlog("error", event="run_failed", error=message)
            await self.notifier.run_failed(message, result)
            raise RunFailedError(message, result)

        self.state.set_phase(RunPhase.DONE)
        jlog(
            "info",
            event="run_done",
            total_rows=result.total_rows,
            failed_targets=result.failed_targets,
        )
        if result.failed_targets:
            await self.notifier.run_failed(f"{len(result.failed_targets)} target(s) failed", result)
        elif self.settings.notify_on_success:
            await self.notifier.run_succeeded(result)
        return result

    def _mark(self, result: RunResult, phase: str, ok: bool) -> None:
        # A phase is "failed" as soon as one target failed in it.
        if not ok or result.phases.get(phase) != "failed":
            result.phases[phase] = "ok" if ok else "failed"

    async def _run_target(self, target: DashboardTarget, *, first: bool, result: RunResult) -> TargetResult:
        stage = "navigate"
        try:
            self.state.set_phase(RunPhase.NAVIGATING)
            page = await self.navigator.open_dashboard(target)
            if page is None:
                self._mark(result, "navigate", False)
                return TargetResult.failed(target, "navigate", f'Dashboard "{target.name}" failed to load')
            self._mark(result, "navigate", True)

            stage = "extract"
            self.state.set_phase(RunPhase.EXTRACTING)
            groups = None
            if target.paginate:
                groups = await self.extractor.scrape_paginated(page, target, first=first)
                rows = [row for rows in groups.values() for row in rows]
            else:
                rows = await self.extractor.scrape_visible(page, target, first=first)
            self._mark(result, "extract", True)
            outcome = TargetResult(
                name=target.name, dashboard_id=target.dashboard_id, ok=True, rows=rows, groups=groups
            )

            stage = "deliver"
            self.state.set_phase(RunPhase.DELIVERING)
            if self.export_flow is not None:
                outcome.export = await self.export_flow.export(page, target)
            elif self.delivery is not None:
                outcome.delivery = await self.delivery.deliver(target, rows)
                self._mark(result, "deliver", outcome.delivery.ok)
            if outcome.delivery is None:
                self._mark(result, "deliver", True)
            tlog("target_done", target=target.name, rows=len(rows))
            return outcome
        except StageError as exc:
            self._mark(result, exc.stage if exc.stage in ("navigate", "extract") else stage, False)
            tlog("target_failed", target=target.name, level="error", stage=exc.stage, error=str(exc))
            await capture_screenshot(self.session.active_page, f"error-{target.dashboard_id}")
            return TargetResult.failed(target, exc.stage, str(exc))
        except PlaywrightError as exc:
            # A dead element or aborted download costs this target only.
            message = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
            self._mark(result, stage, False)
            tlog("target_failed", target=target.name, level="error", stage=stage, error=message)
            await capture_screenshot(self.session.active_page, f"error-{target.dashboard_id}")
            return TargetResult.failed(target, stage, message)

    def start_keepalive(self, on_fatal: Callable[[BaseException], None] | None = None) -> asyncio.Task:
        """Spawn the keep-alive task; a crash in it is reported through ``on_fatal``."""

        task = asyncio.create_task(self.session.keep_alive_forever(self.state), name="keepalive")

        def _done(t: asyncio.Task) -> None:
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                jlog("critical", event="keepalive_crashed", error=str(exc), error_type=type(exc).__name__)
                if on_fatal is not None:
                    on_fatal(exc)

        task.add_done_callback(_done)
        self.state.keepalive_task = task
        return task

    async def run_forever(self, interval_s: float | None = None) -> None:
        """Weekly loop: a failed run is logged and alerted, the next tick still fires."""

        interval_s = interval_s or self.settings.schedule_interval_s
        while True:
            try:
                await self.run()
            except RunBusyError:
                jlog("warning", event="scheduled_run_skipped", reason="run active")
            except LoginTimeoutError:
                raise
            except Exception as exc:
                jlog("error", event="scheduled_run_failed", error=str(exc), next_run_in_s=interval_s)
            jlog("info", event="next_run_scheduled", in_seconds=interval_s)
            await asyncio.sleep(interval_s)


__all__ = ["RunPhase", "RunResult", "Runner", "RunnerState", "TargetResult"]
