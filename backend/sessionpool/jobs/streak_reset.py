"""Daily job that zeroes streaks of users who missed yesterday."""

from __future__ import annotations

from datetime import date, datetime, timezone

from sessionpool.domain.streaks.ledger import StreakLedger
from sessionpool.obs import metrics as obs_metrics

_JOB_NAME = "streaks-daily-reset"


async def run(ledger: StreakLedger, *, as_of: date | None = None) -> int:
	"""Must run before the day's first participation is recorded."""
	started = datetime.now(timezone.utc)
	try:
		reset = await ledger.daily_streak_reset(as_of or started.date())
		obs_metrics.BACKGROUND_RUNS.labels(name=_JOB_NAME, result="success").inc()
		return reset
	except Exception:
		obs_metrics.BACKGROUND_RUNS.labels(name=_JOB_NAME, result="error").inc()
		raise
	finally:
		duration = (datetime.now(timezone.utc) - started).total_seconds()
		obs_metrics.BACKGROUND_DURATION.labels(name=_JOB_NAME).observe(duration)
