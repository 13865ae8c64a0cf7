"""Entry points invoked by the external scheduler."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sessionpool import container
from sessionpool.domain.sessions import schemas
from sessionpool.infra.auth import require_cron_secret
from sessionpool.jobs import gate_close, gate_open, instant_match, streak_reset

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@router.get("/gate-open", response_model=schemas.SweepResponse)
async def cron_gate_open() -> schemas.SweepResponse:
	result = await gate_open.run(container.get_gate_manager())
	return schemas.SweepResponse.from_result(result)


@router.get("/gate-close", response_model=schemas.GateCloseCronResponse)
async def cron_gate_close() -> schemas.GateCloseCronResponse:
	run = await gate_close.run(container.get_gate_manager(), container.get_streak_ledger())
	return schemas.GateCloseCronResponse(
		closed=schemas.SweepResponse.from_result(run.closed),
		completed=schemas.SweepResponse.from_result(run.completed),
		streaks_credited=run.streaks_credited,
		streak_failures=run.streak_failures,
	)


@router.get("/instant-match", response_model=schemas.InstantMatchResponse)
async def cron_instant_match() -> schemas.InstantMatchResponse:
	matched = await instant_match.run(container.get_instant_matcher())
	return schemas.InstantMatchResponse(matched=matched)


@router.get("/streak-reset", response_model=schemas.StreakResetResponse)
async def cron_streak_reset() -> schemas.StreakResetResponse:
	reset = await streak_reset.run(container.get_streak_ledger())
	return schemas.StreakResetResponse(reset=reset)
