"""Command line entry point.

Modes (mutually exclusive)
--------------------------
(default)      start the HTTP trigger server (``/health``, ``/run``, ...)
--once         log in, run every configured target once, exit
--login-only   open the browser, wait for a manual login, persist the profile, exit
--schedule     run now and then every ``AI_SCHEDULE_INTERVAL_S`` (weekly by default)

Usage (examples)
----------------
# First time: sign in by hand so the profile directory keeps the session
auction-insights --login-only

# Single run, post rows to a webhook
AI_DELIVERY_MODE=webhook AI_WEBHOOK_URL=https://hooks.example/ads auction-insights --once

# Server mode on port 3000 with a targets file
AI_TARGETS_FILE=targets.json auction-insights --port 3000
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import os
import signal
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI
from playwright.async_api import async_playwright

from .browser import close_context, launch_context
from .config import DELIVERY_MODES, Settings, load_settings
from .debug import set_debug_dir
from .errors import LoginTimeoutError, RunFailedError
from .logging import configure_logging, jlog, logging_context, set_global_context
from .runner import Runner
from .server import create_app
from .versioning import get_scraper_version

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


@dataclass(frozen=True)
class CliArgs:
    once: bool
    login_only: bool
    schedule: bool
    host: str | None
    port: int | None
    headless: bool | None
    targets_file: str | None
    delivery: str | None
    webhook_url: str | None


def parse_args(argv: list[str] | None = None) -> CliArgs:
    ap = argparse.ArgumentParser(description="Google Ads Auction Insights dashboard scraper")
    mode = ap.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run all targets once and exit")
    mode.add_argument("--login-only", action="store_true", help="Log in manually, persist the session and exit")
    mode.add_argument("--schedule", action="store_true", help="Run now and then on the fixed weekly interval")
    ap.add_argument("--host", help="HTTP bind address in server mode (AI_HOST)")
    ap.add_argument("--port", type=int, help="HTTP port in server mode (AI_PORT)")
    ap.add_argument("--headless", action="store_true", default=None, help="Run Chromium headless (AI_HEADLESS)")
    ap.add_argument("--targets-file", help="JSON list of dashboard targets (AI_TARGETS_FILE)")
    ap.add_argument("--delivery", choices=DELIVERY_MODES, help="Delivery mode (AI_DELIVERY_MODE)")
    ap.add_argument("--webhook-url", help="Webhook endpoint for --delivery webhook (AI_WEBHOOK_URL)")
    ns = ap.parse_args(argv)
    return CliArgs(
        once=ns.once,
        login_only=ns.login_only,
        schedule=ns.schedule,
        host=ns.host,
        port=ns.port,
        headless=ns.headless,
        targets_file=ns.targets_file,
        delivery=ns.delivery,
        webhook_url=ns.webhook_url,
    )


def build_settings(args: CliArgs) -> Settings:
    return load_settings(
        args.targets_file,
        host=args.host,
        port=args.port,
        headless=args.headless,
        webhook_url=args.webhook_url,
        delivery_mode=args.delivery,
    )


def _mode(args: CliArgs) -> str:
    if args.login_only:
        return "login-only"
    if args.once:
        return "once"
    if args.schedule:
        return "schedule"
    return "server"


async def _with_runner(settings: Settings, body: Callable[[Runner, asyncio.Task], Awaitable[int]]) -> int:
    """Launch the browser, run ``body`` and always close the browser, also on signals."""

    task = asyncio.current_task()
    assert task is not None
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, task.cancel)

    async with async_playwright() as pw:
        context = await launch_context(pw, settings)
        runner = Runner.build(context, settings)
        try:
            return await body(runner, task)
        except asyncio.CancelledError:
            jlog("warning", event="shutdown_requested")
            return EXIT_INTERRUPTED
        except LoginTimeoutError as exc:
            jlog("critical", event="login_timeout", error=str(exc))
            return EXIT_FAILED
        finally:
            runner.state.stop_keepalive()
            await close_context(context)


async def _login_only(runner: Runner, _task: asyncio.Task) -> int:
    page = await runner.session.ensure_session()
    jlog("info", event="login_session_saved", profile_dir=str(runner.settings.profile_dir), url=page.url)
    return EXIT_OK


async def _once(runner: Runner, _task: asyncio.Task) -> int:
    try:
        result = await runner.run()
    except RunFailedError as exc:
        jlog("error", event="run_summary", **exc.result.as_dict())
        return EXIT_FAILED
    jlog("info", event="run_summary", **result.as_dict())
    return EXIT_OK if result.succeeded else EXIT_FAILED


async def _scheduled(runner: Runner, task: asyncio.Task) -> int:
    runner.start_keepalive(on_fatal=lambda _exc: task.cancel())
    await runner.run_forever()
    return EXIT_OK


def build_lifespan(settings: Settings) -> Callable[[FastAPI], contextlib.AbstractAsyncContextManager[None]]:
    """Own the browser for the lifetime of the HTTP server."""

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with async_playwright() as pw:
            context = await launch_context(pw, settings)
            runner = Runner.build(context, settings)
            try:
                await runner.session.ensure_session()
                app.state.runner = runner
                # A crashed keep-alive takes the server down so the browser is not orphaned.
                runner.start_keepalive(on_fatal=lambda _exc: os.kill(os.getpid(), signal.SIGTERM))
                yield
            finally:
                app.state.runner = None
                runner.state.stop_keepalive()
                await close_context(context)

    return lifespan


def serve(settings: Settings) -> int:
    app = create_app(lifespan=build_lifespan(settings))
    server = uvicorn.Server(uvicorn.Config(app, host=settings.host, port=settings.port, log_level="info"))
    jlog("info", event="server_starting", host=settings.host, port=settings.port)
    server.run()
    if not server.started:
        jlog("critical", event="server_start_failed", host=settings.host, port=settings.port)
        return EXIT_FAILED
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    set_global_context(app="auction_insights")
    args = parse_args(argv)
    try:
        settings = build_settings(args)
    except (ValueError, OSError) as exc:
        jlog("critical", event="invalid_configuration", error=str(exc))
        return EXIT_FAILED
    set_debug_dir(settings.download_dir)

    mode = _mode(args)
    with logging_context(mode=mode, scraper_version=get_scraper_version(), mcc_account=settings.mcc_account_id):
        jlog("info", event="startup", targets=[t.name for t in settings.targets], delivery=settings.delivery_mode)
        if mode == "server":
            return serve(settings)
        body = {"login-only": _login_only, "once": _once, "schedule": _scheduled}[mode]
        return asyncio.run(_with_runner(settings, body))


if __name__ == "__main__":
    sys.exit(main())
