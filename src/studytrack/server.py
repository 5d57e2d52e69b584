"""FastMCP server bootstrap for StudyTrack."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import FastMCP

from . import __version__
from .config import StudyTrackSettings, get_settings
from .context import SessionContext, build_context
from .errors import RecordStoreError
from .storage import ChromaRecordStore, ChromaUnavailableError, MemoryRecordStore, RecordStore
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the StudyTrack server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def open_record_store(settings: StudyTrackSettings) -> tuple[RecordStore, dict[str, Any]]:
    """Open the configured record store, falling back to memory when Chroma is missing."""

    metadata: dict[str, Any] = {
        "backend": settings.record_backend,
        "available": False,
        "path": str(settings.chroma_persist_path),
        "error": None,
    }
    if settings.record_backend == "memory":
        metadata["available"] = True
        return MemoryRecordStore(), metadata

    try:
        store = ChromaRecordStore(settings.chroma_persist_path)
        store.ping()
        metadata["available"] = True
        return store, metadata
    except ChromaUnavailableError as exc:
        metadata["error"] = str(exc)
        metadata["backend"] = "memory"
        logging.getLogger(__name__).warning(
            "Chroma unavailable; sessions will only be kept in memory",
            extra={"error": str(exc)},
        )
        return MemoryRecordStore(), metadata


def create_server(
    settings: Optional[StudyTrackSettings] = None,
    app: SessionContext | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the tracker's tools and status resource."""

    settings = settings or (app.settings if app is not None else get_settings())
    log = logging.getLogger(__name__)

    if app is None:
        store, store_metadata = open_record_store(settings)
        app = build_context(settings, store=store)
    else:
        store_metadata = {"backend": type(app.store).__name__, "available": True, "error": None}

    boot: dict[str, Any] = {
        "started_at": datetime.now(timezone.utc).isoformat(),
        "recovered_session": None,
        "profile_ready": False,
        "stats_error": None,
    }

    recovered = app.timer.restore()
    if recovered is not None:
        boot["recovered_session"] = app.timer.status(recovered).as_dict()

    user = app.current_user()
    if user is not None:
        profile = _run_sync(app.accounts.register(user))
        boot["profile_ready"] = profile is not None
        try:
            app.ledger.reconcile(_run_sync(app.aggregates.snapshot(user.id)))
        except RecordStoreError as exc:
            boot["stats_error"] = str(exc)
            log.warning("Failed to load stats", extra={"user_id": user.id, "error": str(exc)})

    server = FastMCP(
        name="StudyTrack MCP",
        version=__version__,
        instructions=(
            "StudyTrack times study sessions from stored timestamps, saves sessions of "
            "at least the minimum length with retry on failure, and reports daily and "
            "weekly totals, streaks, and a weekly leaderboard."
        ),
    )

    handles = register_tools(server, app=app)

    def status_snapshot() -> dict[str, Any]:
        pending = app.pipeline.pending
        current = app.current_user()
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "user": {"id": current.id, "email": current.email} if current else None,
            "storage": {
                "records": store_metadata,
                "state_dir": str(settings.state_dir),
                "history_entries": len(app.history.entries()),
            },
            "timer": app.timer.status().as_dict(),
            "save": {
                "state": app.pipeline.state.value,
                "saving": app.pipeline.saving,
                "pending": pending.as_dict() if pending else None,
            },
            "rollups": app.ledger.view().as_dict(),
            "settings": {
                "min_session_minutes": settings.min_session_minutes,
                "save_timeout_seconds": settings.save_timeout_seconds,
                "timezone": settings.timezone,
                "window_days": settings.window_days,
            },
            "boot": boot,
        }

    @server.resource(
        "resource://studytrack/status",
        name="studytrack_status",
        description="Provides the current runtime status for the StudyTrack MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        return json.dumps(status_snapshot())

    setattr(server, "app", app)
    setattr(server, "store_metadata", store_metadata)
    setattr(server, "boot", boot)
    setattr(server, "status_snapshot", status_snapshot)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the StudyTrack MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching StudyTrack MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "record_backend": getattr(server, "store_metadata", {}).get("backend"),
            "recovered_session": getattr(server, "boot", {}).get("recovered_session") is not None,
        },
    )
    server.run()


if __name__ == "__main__":
    main()
