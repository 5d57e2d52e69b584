"""Per-process wiring of settings, stores and services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from .config import StudyTrackSettings, get_settings
from .identity import AccountService, Identity, IdentityProvider, StaticIdentityProvider
from .sessions import LocalHistory, SessionSavePipeline
from .stats import LeaderboardBuilder, RollupLedger, SessionAggregates, StreakEngine
from .storage import FileSlotStore, RecordStore, SlotStore
from .timer import ActiveSessionStore, StudyTimer


@dataclass(slots=True)
class SessionContext:
    """Everything a request handler needs, built once and passed explicitly."""

    settings: StudyTrackSettings
    store: RecordStore
    identity: IdentityProvider
    slots: SlotStore
    clock: Callable[[], datetime]
    active_store: ActiveSessionStore
    timer: StudyTimer
    history: LocalHistory
    ledger: RollupLedger
    streaks: StreakEngine
    aggregates: SessionAggregates
    leaderboard: LeaderboardBuilder
    accounts: AccountService
    pipeline: SessionSavePipeline

    def current_user(self) -> Identity | None:
        return self.identity.current_user()


def identity_from_settings(settings: StudyTrackSettings) -> StaticIdentityProvider:
    user = Identity(id=settings.user_id, email=settings.user_email) if settings.user_id else None
    return StaticIdentityProvider(user)


def build_context(
    settings: StudyTrackSettings | None = None,
    *,
    store: RecordStore,
    identity: IdentityProvider | None = None,
    slots: SlotStore | None = None,
    clock: Callable[[], datetime] | None = None,
) -> SessionContext:
    settings = settings or get_settings()
    identity = identity or identity_from_settings(settings)
    slots = slots or FileSlotStore(settings.state_dir)
    clock = clock or (lambda: datetime.now(timezone.utc))
    tz = settings.tz

    active_store = ActiveSessionStore(slots, clock=clock)
    history = LocalHistory(slots, limit=settings.history_limit, clock=clock)
    ledger = RollupLedger(tz=tz, clock=clock)
    streaks = StreakEngine(store, tz=tz, clock=clock)
    aggregates = SessionAggregates(
        store,
        tz=tz,
        window_days=settings.window_days,
        daily_goal_minutes=settings.daily_goal_minutes,
        clock=clock,
    )
    leaderboard = LeaderboardBuilder(
        store,
        identity=identity,
        tz=tz,
        window_days=settings.window_days,
        size=settings.leaderboard_size,
        clock=clock,
    )
    pipeline = SessionSavePipeline(
        store=store,
        active_store=active_store,
        streaks=streaks,
        ledger=ledger,
        history=history,
        min_session_minutes=settings.min_session_minutes,
        timeout_seconds=settings.save_timeout_seconds,
    )
    return SessionContext(
        settings=settings,
        store=store,
        identity=identity,
        slots=slots,
        clock=clock,
        active_store=active_store,
        timer=StudyTimer(active_store),
        history=history,
        ledger=ledger,
        streaks=streaks,
        aggregates=aggregates,
        leaderboard=leaderboard,
        accounts=AccountService(store, clock=clock),
        pipeline=pipeline,
    )


__all__ = ["SessionContext", "build_context", "identity_from_settings"]
