"""Streak ledger: turns participation events into per-user streak counters."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Protocol, Sequence

from sessionpool.domain.errors import NotFound, SessionPoolError
from sessionpool.domain.streaks.models import CreditReport, Profile, StreakUpdate, next_streak, reset_cutoff
from sessionpool.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class ProfileRepository(Protocol):
    """Storage contract for the streak fields of user profiles."""

    async def get_profile(self, user_id: str) -> Profile | None:
        ...

    async def get_profiles(self, user_ids: Sequence[str]) -> Dict[str, Profile]:
        ...

    async def save_streak(self, user_id: str, streak: int, last_participation_date: date) -> None:
        ...

    async def reset_stale_streaks(self, before: date) -> int:
        """Zero ``streak`` where ``last_participation_date < before`` and ``streak > 0``."""
        ...


class ParticipantSource(Protocol):
    async def list_credited_user_ids(self, session_id: str) -> List[str]:
        ...


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _error_code(exc: Exception) -> str:
    return exc.code if isinstance(exc, SessionPoolError) else type(exc).__name__


class StreakLedger:
    """Records participation days and enforces the daily reset."""

    def __init__(self, profiles: ProfileRepository, participants: ParticipantSource) -> None:
        self._profiles = profiles
        self._participants = participants

    async def record_participation(self, user_id: str, as_of: date | None = None) -> StreakUpdate:
        """Credit ``user_id`` for participating on ``as_of``; idempotent per day."""
        profile = await self._profiles.get_profile(user_id)
        if profile is None:
            raise NotFound("profile_not_found", message=f"Profile {user_id} not found")
        return await self._apply(profile, as_of or _today())

    async def _apply(self, profile: Profile, as_of: date) -> StreakUpdate:
        update = next_streak(profile, as_of)
        if update.changed:
            await self._profiles.save_streak(profile.user_id, update.streak, update.last_participation_date)
        obs_metrics.inc_streak_update(update.outcome.value)
        return update

    async def daily_streak_reset(self, as_of: date | None = None) -> int:
        """Zero the streak of everyone who missed yesterday. Run before the day's first credit."""
        as_of = as_of or _today()
        count = await self._profiles.reset_stale_streaks(reset_cutoff(as_of))
        obs_metrics.inc_streak_resets(count)
        logger.info("streak_reset", extra={"as_of": as_of.isoformat(), "reset_count": count})
        return count

    async def record_session_participation(self, session_id: str, as_of: date | None = None) -> CreditReport:
        """Credit every matched, in-room or completed participant of a session.

        A member whose profile is missing or whose save fails is reported and
        skipped; the remaining members are still credited.
        """
        as_of = as_of or _today()
        report = CreditReport()
        user_ids = await self._participants.list_credited_user_ids(session_id)
        profiles = await self._profiles.get_profiles(user_ids) if user_ids else {}
        for user_id in user_ids:
            profile = profiles.get(user_id)
            if profile is None:
                logger.warning(
                    "streak_profile_missing",
                    extra={"session_id": session_id, "participant": user_id},
                )
                report.missing.append(user_id)
                continue
            try:
                report.updates.append(await self._apply(profile, as_of))
            except Exception as exc:
                logger.warning(
                    "streak_credit_failed",
                    extra={"session_id": session_id, "participant": user_id},
                    exc_info=True,
                )
                obs_metrics.inc_streak_update("failed")
                report.failed[user_id] = _error_code(exc)
        return report

    async def record_many(self, session_ids: Iterable[str], as_of: date | None = None) -> CreditReport:
        report = CreditReport()
        for session_id in session_ids:
            try:
                report.merge(await self.record_session_participation(session_id, as_of))
            except Exception as exc:
                logger.error("streak_session_credit_failed", extra={"session_id": session_id}, exc_info=True)
                report.failed[session_id] = _error_code(exc)
        return report


class InMemoryProfileRepository(ProfileRepository):
    """Reference repository used in tests and developer environments."""

    def __init__(self) -> None:
        self.profiles: Dict[str, Profile] = {}

    def add(self, profile: Profile) -> Profile:
        self.profiles[profile.user_id] = profile
        return profile

    async def get_profile(self, user_id: str) -> Profile | None:
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        return Profile(
            user_id=profile.user_id,
            display_handle=profile.display_handle,
            streak=profile.streak,
            last_participation_date=profile.last_participation_date,
        )

    async def get_profiles(self, user_ids: Sequence[str]) -> Dict[str, Profile]:
        result: Dict[str, Profile] = {}
        for user_id in user_ids:
            profile = await self.get_profile(user_id)
            if profile is not None:
                result[user_id] = profile
        return result

    async def save_streak(self, user_id: str, streak: int, last_participation_date: date) -> None:
        profile = self.profiles.get(user_id)
        if profile is None:
            return
        profile.streak = streak
        profile.last_participation_date = last_participation_date

    async def reset_stale_streaks(self, before: date) -> int:
        count = 0
        for profile in self.profiles.values():
            last = profile.last_participation_date
            if last is not None and last < before and profile.streak > 0:
                profile.streak = 0
                count += 1
        return count
