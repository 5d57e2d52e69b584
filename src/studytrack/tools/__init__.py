"""Tool registration for the StudyTrack MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..context import SessionContext
from ..days import format_minutes
from ..identity import Identity, avatar_for, display_name_for


@dataclass(slots=True)
class ToolHandles:
    start_session: Any
    session_status: Any
    pause_session: Any
    resume_session: Any
    stop_session: Any
    retry_save: Any
    dismiss_save: Any
    study_stats: Any
    leaderboard: Any
    get_profile: Any
    update_profile: Any
    recent_history: Any


def register_tools(server: FastMCP, *, app: SessionContext) -> ToolHandles:
    """Register StudyTrack's MCP tools on the server."""

    timer = app.timer
    pipeline = app.pipeline
    ledger = app.ledger

    def _require_user() -> Identity:
        user = app.current_user()
        if user is None:
            raise RuntimeError("No signed-in user; set STUDYTRACK_USER_ID before using this tool")
        return user

    def _timer_payload() -> dict[str, Any]:
        payload = timer.status().as_dict()
        payload["saving"] = pipeline.saving
        payload["pending_save"] = pipeline.pending.as_dict() if pipeline.pending else None
        return payload

    def _start_session(
        goal_minutes: int | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start a study timer, or report the one already running."""

        if pipeline.saving:
            raise RuntimeError("A session save is in progress; wait for it to finish")
        if goal_minutes is None:
            goal_minutes = app.settings.default_session_minutes
        session = timer.start(goal_minutes)
        _emit_log(
            context,
            "info",
            "Started session",
            extra={"start_epoch_ms": session.start_epoch_ms, "goal_minutes": goal_minutes},
        )
        return _timer_payload()

    def _session_status(context: Context | None = None) -> dict[str, Any]:
        """Report elapsed time recomputed from the stored start timestamp."""

        payload = _timer_payload()
        _emit_log(context, "debug", "Session status", extra={"running": payload["running"]})
        return payload

    def _pause_session(context: Context | None = None) -> dict[str, Any]:
        session = timer.pause()
        _emit_log(context, "info", "Paused session", extra={"running": session is not None})
        return _timer_payload()

    def _resume_session(context: Context | None = None) -> dict[str, Any]:
        session = timer.resume()
        _emit_log(context, "info", "Resumed session", extra={"running": session is not None})
        return _timer_payload()

    tool_start = server.tool(
        name="start_session",
        description="Start a study session timer (optional informational goal in minutes).",
    )(_start_session)

    tool_status = server.tool(
        name="session_status",
        description="Show the running timer, its elapsed time, and any save waiting for retry.",
    )(_session_status)

    tool_pause = server.tool(
        name="pause_session",
        description="Pause the running timer; paused time is excluded from the session length.",
    )(_pause_session)

    tool_resume = server.tool(
        name="resume_session",
        description="Resume a paused timer.",
    )(_resume_session)

    def _outcome_payload(outcome) -> dict[str, Any]:
        payload = outcome.as_dict()
        payload["rollups"] = ledger.view().as_dict()
        payload["timer"] = timer.status().as_dict()
        return payload

    async def _stop_session(context: Context | None = None) -> dict[str, Any]:
        """Stop the timer and save the session if it is long enough."""

        user = _require_user()
        outcome = await pipeline.stop_session(timer.current(), user.id)
        _emit_log(
            context,
            "warning" if outcome.status == "failed" else "info",
            "Stopped session",
            extra={"status": outcome.status, "duration_minutes": outcome.duration_minutes},
        )
        return _outcome_payload(outcome)

    async def _retry_save(context: Context | None = None) -> dict[str, Any]:
        """Retry the pending save with exactly the same payload."""

        outcome = await pipeline.retry()
        _emit_log(context, "info", "Retried save", extra={"status": outcome.status})
        return _outcome_payload(outcome)

    def _dismiss_save(context: Context | None = None) -> dict[str, Any]:
        """Discard the pending save permanently."""

        payload = pipeline.dismiss()
        _emit_log(
            context,
            "warning",
            "Dismissed pending save",
            extra={"session_id": payload.session_id if payload else None},
        )
        return {
            "dismissed": payload.as_dict() if payload else None,
            "state": pipeline.state.value,
        }

    tool_stop = server.tool(
        name="stop_session",
        description=(
            "Stop the running session. Sessions under the minimum length are discarded; "
            "longer ones are saved with a timeout and kept for retry if the save fails."
        ),
    )(_stop_session)

    tool_retry = server.tool(
        name="retry_save",
        description="Retry the last failed or timed-out session save.",
    )(_retry_save)

    tool_dismiss = server.tool(
        name="dismiss_save",
        description="Discard the last failed session save. The session is lost.",
    )(_dismiss_save)

    async def _study_stats(context: Context | None = None) -> dict[str, Any]:
        """Re-read today's and this week's totals and reconcile local rollups."""

        user = _require_user()
        snapshot = await app.aggregates.snapshot(user.id)
        ledger.reconcile(snapshot)
        profile = await app.accounts.get_profile(user.id)
        payload = snapshot.as_dict()
        payload.update(
            {
                "today_display": format_minutes(snapshot.today_minutes),
                "current_streak": profile.current_streak,
                "longest_streak": profile.longest_streak,
                "rollups": ledger.view().as_dict(),
            }
        )
        _emit_log(context, "debug", "Study stats", extra={"user_id": user.id})
        return payload

    async def _leaderboard(context: Context | None = None) -> list[dict[str, Any]]:
        entries = await app.leaderboard.build()
        _emit_log(context, "debug", "Leaderboard", extra={"count": len(entries)})
        return [entry.as_dict() for entry in entries]

    tool_stats = server.tool(
        name="study_stats",
        description="Today's minutes, this week's sessions and minutes, and the current streak.",
    )(_study_stats)

    tool_leaderboard = server.tool(
        name="leaderboard",
        description="Top users by minutes studied over the trailing week, with streaks.",
    )(_leaderboard)

    def _profile_payload(profile) -> dict[str, Any]:
        payload = profile.to_document()
        payload["label"] = display_name_for(profile)
        payload["avatar"] = avatar_for(profile)
        return payload

    async def _get_profile(context: Context | None = None) -> dict[str, Any]:
        user = _require_user()
        profile = await app.accounts.get_profile(user.id)
        if profile.email is None and user.email:
            profile = profile.merged({"email": user.email})
        return _profile_payload(profile)

    async def _update_profile(
        display_name: str,
        avatar: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Change the display name and avatar shown on the leaderboard."""

        user = _require_user()
        profile = await app.accounts.update_profile(
            user, display_name=display_name, avatar=avatar
        )
        _emit_log(context, "info", "Updated profile", extra={"user_id": user.id})
        return _profile_payload(profile)

    def _recent_history(limit: int = 10, context: Context | None = None) -> list[dict[str, Any]]:
        """Sessions saved from this device, newest first, read from local storage."""

        entries = app.history.recent(limit)
        _emit_log(context, "debug", "Recent history", extra={"count": len(entries)})
        return entries

    tool_get_profile = server.tool(
        name="get_profile",
        description="Show the signed-in user's profile and streaks.",
    )(_get_profile)

    tool_update_profile = server.tool(
        name="update_profile",
        description="Set the display name (required) and avatar of the signed-in user.",
    )(_update_profile)

    tool_history = server.tool(
        name="recent_history",
        description="List sessions recently saved from this device.",
    )(_recent_history)

    return ToolHandles(
        start_session=tool_start,
        session_status=tool_status,
        pause_session=tool_pause,
        resume_session=tool_resume,
        stop_session=tool_stop,
        retry_save=tool_retry,
        dismiss_save=tool_dismiss,
        study_stats=tool_stats,
        leaderboard=tool_leaderboard,
        get_profile=tool_get_profile,
        update_profile=tool_update_profile,
        recent_history=tool_history,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
