"""Scheduler entry point for the instant queue sweep."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sessionpool.domain.sessions.instant import InstantMatcher
from sessionpool.obs import metrics as obs_metrics
from sessionpool.obs.logging import bind_context, reset_context

_LOG = logging.getLogger(__name__)
_JOB_NAME = "sessions-instant-match"


async def run(matcher: InstantMatcher, *, now: datetime | None = None) -> int:
	started = datetime.now(timezone.utc)
	tokens = bind_context(job=_JOB_NAME)
	try:
		matched = await matcher.sweep_instant_queue(now or started)
	except Exception:
		obs_metrics.record_job_run(_JOB_NAME, result="error")
		_LOG.exception("instant_match.run_failed")
		raise
	finally:
		reset_context(tokens)
	duration = (datetime.now(timezone.utc) - started).total_seconds()
	obs_metrics.record_job_run(_JOB_NAME, result="success", duration_seconds=duration)
	return matched
