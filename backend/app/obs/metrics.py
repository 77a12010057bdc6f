"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"driftwood_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"driftwood_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

POSTGRES_UP = Gauge(
	"driftwood_postgres_up",
	"Postgres reachability from the API process",
)

FEED_RANK_CANDIDATES = Counter(
	"feed_rank_candidates_total",
	"Candidates considered",
)

FEED_RANK_SOURCE = Counter(
	"feed_rank_source_total",
	"Candidates admitted per source reason",
	["reason"],
)

FEED_RANK_DURATION = Histogram(
	"feed_rank_duration_ms",
	"Feed rank duration",
	buckets=[5, 10, 20, 40, 80, 160, 320, 640, 1280],
)

FEED_RANK_SCORE_AVG = Gauge(
	"feed_rank_score_avg",
	"Average score of top-N",
)

FEED_RANK_FAILURES = Counter(
	"feed_rank_failures_total",
	"Personalized feed requests that failed closed",
	["stage"],
)

FEED_TIMELINE_REQUESTS = Counter(
	"feed_timeline_requests_total",
	"Following timeline requests",
	["result"],
)

TAG_FOLLOWS = Counter(
	"tag_follows_total",
	"Tag follow mutations",
	["action"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1 if ok else 0)


def observe_feed_rank(duration_ms: float, top_scores: list[float]) -> None:
	FEED_RANK_DURATION.observe(duration_ms)
	if top_scores:
		FEED_RANK_SCORE_AVG.set(sum(top_scores) / len(top_scores))


def inc_feed_candidates(reason: str, count: int = 1) -> None:
	FEED_RANK_CANDIDATES.inc(count)
	FEED_RANK_SOURCE.labels(reason=reason).inc(count)


def inc_feed_failure(stage: str) -> None:
	FEED_RANK_FAILURES.labels(stage=stage).inc()


def inc_timeline_request(result: str) -> None:
	FEED_TIMELINE_REQUESTS.labels(result=result).inc()


def inc_tag_follow(action: str) -> None:
	TAG_FOLLOWS.labels(action=action).inc()
