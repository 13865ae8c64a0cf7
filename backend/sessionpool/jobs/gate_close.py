"""Scheduler entry point that closes due gates and retires expired sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sessionpool.domain.sessions.gate import GateManager
from sessionpool.domain.sessions.models import SweepResult
from sessionpool.domain.streaks.ledger import StreakLedger
from sessionpool.obs import metrics as obs_metrics
from sessionpool.obs.logging import bind_context, reset_context

_LOG = logging.getLogger(__name__)
_JOB_NAME = "sessions-gate-close"


@dataclass(slots=True)
class GateCloseRun:
	closed: SweepResult
	completed: SweepResult
	streaks_credited: int = 0
	streak_failures: int = 0


async def run(
	manager: GateManager,
	ledger: StreakLedger,
	*,
	now: datetime | None = None,
	as_of: date | None = None,
) -> GateCloseRun:
	"""Close due gates, complete expired sessions and credit their participants."""
	started = datetime.now(timezone.utc)
	tokens = bind_context(job=_JOB_NAME)
	now = now or started
	try:
		closed = await manager.close_due_gates(now)
		completed = await manager.complete_expired_sessions(now)
		credits = await ledger.record_many(completed.processed, as_of or now.date())
	except Exception:
		obs_metrics.record_job_run(_JOB_NAME, result="error")
		_LOG.exception("gate_close.run_failed")
		raise
	finally:
		reset_context(tokens)
	duration = (datetime.now(timezone.utc) - started).total_seconds()
	ok = closed.ok and completed.ok and credits.ok
	obs_metrics.record_job_run(_JOB_NAME, result="success" if ok else "partial", duration_seconds=duration)
	_LOG.info(
		"gate_close.run",
		extra={
			"closed": len(closed.processed),
			"completed": len(completed.processed),
			"streaks_credited": credits.credited,
			"streak_failures": len(credits.failed),
		},
	)
	return GateCloseRun(
		closed=closed,
		completed=completed,
		streaks_credited=credits.credited,
		streak_failures=len(credits.failed),
	)
