"""Identity capability and profile maintenance for the signed-in user."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Protocol

from .errors import IdentityError, ProfileValidationError, RecordStoreError
from .storage.base import RecordStore
from .storage.models import UserProfile

logger = logging.getLogger(__name__)

DEFAULT_AVATAR = "\N{FIRE}"
AVATAR_CHOICES = ("\N{ROCKET}", "\N{RINGED PLANET}", "\N{FIRE}", "\N{NEW MOON SYMBOL}", "\N{SPARKLES}")


@dataclass(slots=True, frozen=True)
class Identity:
    id: str
    email: str | None = None


class IdentityProvider(Protocol):
    """Who is signed in, and optionally who else exists."""

    def current_user(self) -> Identity | None:
        ...

    async def list_users(self) -> list[Identity]:
        ...


class StaticIdentityProvider:
    """Identity fixed at construction, e.g. from settings."""

    def __init__(
        self,
        user: Identity | None = None,
        *,
        directory: Iterable[Identity] | None = None,
    ) -> None:
        self._user = user
        self._directory = list(directory) if directory is not None else None

    def current_user(self) -> Identity | None:
        return self._user

    def sign_in(self, user: Identity) -> None:
        self._user = user

    def sign_out(self) -> None:
        self._user = None

    async def list_users(self) -> list[Identity]:
        if self._directory is None:
            raise IdentityError("User directory is not available")
        return list(self._directory)


def display_name_for(profile: UserProfile | None, email: str | None = None) -> str:
    if profile is not None and profile.display_name:
        return profile.display_name
    address = email or (profile.email if profile is not None else None)
    if address:
        return address.split("@", 1)[0]
    return "Unknown"


def avatar_for(profile: UserProfile | None) -> str:
    if profile is not None and profile.avatar:
        return profile.avatar
    return DEFAULT_AVATAR


class AccountService:
    """Create, read and edit the profile row that streaks and the leaderboard use."""

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def register(self, identity: Identity) -> UserProfile | None:
        """Create the initial zero-streak profile after sign-up.

        Failure is logged and swallowed; sign-up itself already succeeded.
        """

        existing: UserProfile | None = None
        try:
            existing = await self._store.get_profile(identity.id)
            if existing is not None:
                if identity.email and not existing.email:
                    return await self._store.upsert_profile(identity.id, {"email": identity.email})
                return existing
            now = self._clock()
            return await self._store.upsert_profile(
                identity.id,
                {
                    "email": identity.email,
                    "current_streak": 0,
                    "longest_streak": 0,
                    "created_at": now,
                    "updated_at": now,
                },
            )
        except RecordStoreError as exc:
            logger.warning(
                "Failed to create user profile",
                extra={"user_id": identity.id, "error": str(exc)},
            )
            return existing

    async def get_profile(self, user_id: str) -> UserProfile:
        profile = await self._store.get_profile(user_id)
        return profile if profile is not None else UserProfile(user_id=user_id)

    async def update_profile(
        self,
        identity: Identity,
        *,
        display_name: str,
        avatar: str | None = None,
    ) -> UserProfile:
        name = (display_name or "").strip()
        if not name:
            raise ProfileValidationError("Display name cannot be empty")
        if avatar is not None and avatar not in AVATAR_CHOICES:
            raise ProfileValidationError(f"Avatar must be one of {' '.join(AVATAR_CHOICES)}")

        now = self._clock()
        changes = {"display_name": name, "updated_at": now}
        if avatar is not None:
            changes["avatar"] = avatar
        updated = await self._store.update_profile(identity.id, changes)
        if updated is not None:
            logger.info("Profile updated", extra={"user_id": identity.id})
            return updated

        if not identity.email:
            raise ProfileValidationError("User email not found; sign in again before editing")
        logger.info("No profile row found, creating one", extra={"user_id": identity.id})
        return await self._store.upsert_profile(
            identity.id,
            {
                **changes,
                "email": identity.email,
                "current_streak": 0,
                "longest_streak": 0,
                "created_at": now,
            },
        )


__all__ = [
    "AVATAR_CHOICES",
    "AccountService",
    "DEFAULT_AVATAR",
    "Identity",
    "IdentityProvider",
    "StaticIdentityProvider",
    "avatar_for",
    "display_name_for",
]
