"""Scheduler entry point that opens gates whose start time has arrived."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sessionpool.domain.sessions.gate import GateManager
from sessionpool.domain.sessions.models import SweepResult
from sessionpool.obs import metrics as obs_metrics
from sessionpool.obs.logging import bind_context, reset_context

_LOG = logging.getLogger(__name__)
_JOB_NAME = "sessions-gate-open"


async def run(manager: GateManager, *, now: datetime | None = None) -> SweepResult:
	started = datetime.now(timezone.utc)
	tokens = bind_context(job=_JOB_NAME)
	try:
		result = await manager.open_due_gates(now or started)
	except Exception:
		obs_metrics.record_job_run(_JOB_NAME, result="error")
		_LOG.exception("gate_open.run_failed")
		raise
	finally:
		reset_context(tokens)
	duration = (datetime.now(timezone.utc) - started).total_seconds()
	obs_metrics.record_job_run(_JOB_NAME, result="success" if result.ok else "partial", duration_seconds=duration)
	_LOG.info("gate_open.run", extra={"opened": len(result.processed), "failed": len(result.failures)})
	return result
