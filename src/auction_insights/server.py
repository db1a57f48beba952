"""HTTP trigger API.

GET  /health                      -> status, whether a run is active, uptime
GET|POST /run, /scrape-mcc, /run-all -> run synchronously and return the RunResult
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .errors import RunBusyError, RunFailedError
from .logging import jlog, utcnow_iso
from .runner import Runner
from .versioning import get_scraper_version

# route path -> target group (None = every configured target)
RUN_ROUTES: dict[str, str | None] = {
    "/run": "dashboard",
    "/scrape-mcc": "mcc",
    "/run-all": None,
}


def _runner(request: Request) -> Runner:
    runner: Runner | None = getattr(request.app.state, "runner", None)
    if runner is None:
        raise RuntimeError("browser session is not ready")
    return runner


async def _trigger(request: Request, group: str | None) -> JSONResponse:
    try:
        runner = _runner(request)
    except RuntimeError as exc:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": str(exc)})

    targets = runner.settings.targets_for(group)
    if not targets and group == "dashboard":
        # single-tier configurations have no group split
        targets = runner.settings.targets
    if not targets:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": f"no targets configured for group {group!r}"},
        )
    # Reject before doing any work; the runner re-checks atomically.
    if runner.state.is_active:
        return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content={"error": "run already in progress"})

    jlog("info", event="http_run_requested", path=request.url.path, targets=[t.name for t in targets])
    try:
        result = await runner.run(targets)
    except RunBusyError as exc:
        return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content={"error": str(exc)})
    except RunFailedError as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc), "result": exc.result.as_dict()},
        )
    except Exception as exc:
        jlog("error", event="http_run_failed", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc)})
    return JSONResponse(content=result.as_dict())


def _run_endpoint(group: str | None):
    async def endpoint(request: Request) -> JSONResponse:
        return await _trigger(request, group)

    return endpoint


def create_app(
    runner: Runner | None = None,
    *,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = None,
) -> FastAPI:
    """Build the FastAPI app. ``lifespan`` is expected to set ``app.state.runner``."""

    app = FastAPI(title="Auction Insights Scraper", version=get_scraper_version(), lifespan=lifespan)
    app.state.runner = runner

    @app.get("/health")
    async def health(request: Request) -> dict:
        current: Runner | None = getattr(request.app.state, "runner", None)
        return {
            "status": "ok" if current is not None else "starting",
            "running": bool(current and current.state.is_active),
            "uptime": round(current.state.uptime_s, 1) if current else 0.0,
            "timestamp": utcnow_iso(),
            "version": get_scraper_version(),
        }

    for path, group in RUN_ROUTES.items():
        app.add_api_route(path, _run_endpoint(group), methods=["GET", "POST"], name=path.strip("/").replace("-", "_"))

    return app


__all__ = ["RUN_ROUTES", "create_app"]
