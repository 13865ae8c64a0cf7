"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
    "sessionpool_http_requests_total",
    "Total HTTP requests processed",
    ["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
    "sessionpool_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["route", "method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

GATES_OPENED = Counter(
    "sessionpool_gates_opened_total",
    "Sessions moved from upcoming to gate_open",
)

GATES_CLOSED = Counter(
    "sessionpool_gates_closed_total",
    "Gate closes that ran matching, by outcome",
    ["outcome"],
)

SESSIONS_COMPLETED = Counter(
    "sessionpool_sessions_completed_total",
    "Active sessions finalised after their window elapsed",
)

GROUPS_CREATED = Counter(
    "sessionpool_groups_created_total",
    "Groups persisted with a backing room",
    ["type"],
)

GROUP_FAILURES = Counter(
    "sessionpool_group_failures_total",
    "Group creations that failed, by stage",
    ["stage"],
)

TRANSITION_CONFLICTS = Counter(
    "sessionpool_transition_conflicts_total",
    "Conditional status updates that observed an unexpected prior state",
    ["target"],
)

SWEEP_FAILURES = Counter(
    "sessionpool_sweep_failures_total",
    "Per-session failures isolated by a sweep",
    ["sweep"],
)

STREAK_UPDATES = Counter(
    "sessionpool_streak_updates_total",
    "Participation events applied to the streak ledger",
    ["outcome"],
)

STREAK_RESETS = Counter(
    "sessionpool_streak_resets_total",
    "Profiles zeroed by the daily streak sweep",
)

INSTANT_MATCHED = Counter(
    "sessionpool_instant_matched_total",
    "Users matched out of the instant queue",
)

REDIS_UP = Gauge("sessionpool_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("sessionpool_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("sessionpool_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("sessionpool_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
    "sessionpool_jobs_runs_total",
    "Scheduled job executions",
    ["name", "result"],
)

BACKGROUND_DURATION = Histogram(
    "sessionpool_jobs_duration_seconds",
    "Scheduled job duration in seconds",
    ["name"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
    REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
    REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_gate_opened() -> None:
    GATES_OPENED.inc()


def inc_gate_closed(outcome: str) -> None:
    GATES_CLOSED.labels(outcome=outcome).inc()


def inc_session_completed(count: int = 1) -> None:
    SESSIONS_COMPLETED.inc(count)


def inc_group_created(group_type: str) -> None:
    GROUPS_CREATED.labels(type=group_type).inc()


def inc_group_failure(stage: str) -> None:
    GROUP_FAILURES.labels(stage=stage).inc()


def inc_transition_conflict(target: str) -> None:
    TRANSITION_CONFLICTS.labels(target=target).inc()


def inc_sweep_failure(sweep: str) -> None:
    SWEEP_FAILURES.labels(sweep=sweep).inc()


def inc_streak_update(outcome: str) -> None:
    STREAK_UPDATES.labels(outcome=outcome).inc()


def inc_streak_resets(count: int) -> None:
    if count > 0:
        STREAK_RESETS.inc(count)


def inc_instant_matched(count: int) -> None:
    if count > 0:
        INSTANT_MATCHED.inc(count)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
    REDIS_UP.set(1 if ok else 0)
    if latency_seconds is not None:
        REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
    POSTGRES_UP.set(1 if ok else 0)
    if latency_seconds is not None:
        POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
    BACKGROUND_RUNS.labels(name=name, result=result).inc()
    if duration_seconds is not None:
        BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
