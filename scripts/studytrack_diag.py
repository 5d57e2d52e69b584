"""StudyTrack diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json

from studytrack.config import StudyTrackSettings
from studytrack.errors import RecordStoreError
from studytrack.sessions import LocalHistory
from studytrack.stats import LeaderboardBuilder, SessionAggregates
from studytrack.storage import ChromaRecordStore, ChromaUnavailableError, FileSlotStore
from studytrack.timer import ActiveSessionStore, StudyTimer


def load_settings() -> StudyTrackSettings:
    settings = StudyTrackSettings()
    settings.state_dir = settings.state_dir.expanduser()
    return settings


def load_store(settings: StudyTrackSettings) -> ChromaRecordStore:
    try:
        store = ChromaRecordStore(settings.chroma_persist_path)
        store.ping()
        return store
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)


def _query(coro):
    try:
        return asyncio.run(coro)
    except ChromaUnavailableError as exc:
        print(f"Chroma unavailable: {exc}")
        raise SystemExit(1)
    except RecordStoreError as exc:
        print(f"Record store error: {exc}")
        raise SystemExit(1)


def cmd_active(args: argparse.Namespace) -> None:
    settings = load_settings()
    timer = StudyTimer(ActiveSessionStore(FileSlotStore(settings.state_dir)))
    status = timer.status()
    if args.json:
        print(json.dumps(status.as_dict(), indent=2))
    elif not status.running:
        print("No active session")
    else:
        state = "paused" if status.paused else "running"
        print(f"{status.display} [{state}] started {status.started_at}")


def cmd_history(args: argparse.Namespace) -> None:
    settings = load_settings()
    history = LocalHistory(FileSlotStore(settings.state_dir), limit=settings.history_limit)
    entries = history.recent(args.limit)
    if args.json:
        print(json.dumps(entries, indent=2))
    else:
        for entry in entries:
            print(f"{entry.get('start')} {entry.get('duration_minutes', 0):.1f} min -> {entry.get('id')}")


def cmd_stats(args: argparse.Namespace) -> None:
    settings = load_settings()
    store = load_store(settings)
    aggregates = SessionAggregates(
        store,
        tz=settings.tz,
        window_days=settings.window_days,
        daily_goal_minutes=settings.daily_goal_minutes,
    )

    async def _collect():
        snapshot = await aggregates.snapshot(args.user_id)
        profile = await store.get_profile(args.user_id)
        return snapshot, profile

    snapshot, profile = _query(_collect())
    payload = snapshot.as_dict()
    payload["current_streak"] = profile.current_streak if profile is not None else 0
    payload["longest_streak"] = profile.longest_streak if profile is not None else 0
    print(json.dumps(payload, indent=2))


def cmd_leaderboard(args: argparse.Namespace) -> None:
    settings = load_settings()
    store = load_store(settings)
    builder = LeaderboardBuilder(
        store,
        tz=settings.tz,
        window_days=settings.window_days,
        size=settings.leaderboard_size,
    )
    entries = _query(builder.build())
    if args.json:
        print(json.dumps([entry.as_dict() for entry in entries], indent=2))
    else:
        for entry in entries:
            print(
                f"{entry.rank:>2}. {entry.label} {entry.weekly_minutes:.0f} min "
                f"(streak {entry.current_streak})"
            )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="StudyTrack diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_active = sub.add_parser("active", help="Show the active session on this device")
    p_active.add_argument("--json", action="store_true", help="Output JSON")
    p_active.set_defaults(func=cmd_active)

    p_history = sub.add_parser("history", help="List sessions saved from this device")
    p_history.add_argument("--limit", type=int, default=10, help="Show only the latest N sessions")
    p_history.add_argument("--json", action="store_true", help="Output JSON")
    p_history.set_defaults(func=cmd_history)

    p_stats = sub.add_parser("stats", help="Show today/week totals and streaks for a user")
    p_stats.add_argument("--user-id", required=True)
    p_stats.set_defaults(func=cmd_stats)

    p_board = sub.add_parser("leaderboard", help="Show the weekly leaderboard")
    p_board.add_argument("--json", action="store_true", help="Output JSON")
    p_board.set_defaults(func=cmd_leaderboard)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
