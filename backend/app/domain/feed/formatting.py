"""Display helpers for feed timestamps."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def format_time_ago(value: datetime, now: Optional[datetime] = None) -> str:
	"""Humanize a timestamp: "just now", "5m", "3h", "2d", then "Mar 4"."""

	current = now or datetime.now(timezone.utc)
	if value.tzinfo is None:
		value = value.replace(tzinfo=timezone.utc)
	seconds = int((current - value).total_seconds())
	minutes = seconds // 60
	hours = minutes // 60
	days = hours // 24

	if seconds < 60:
		return "just now"
	if minutes < 60:
		return f"{minutes}m"
	if hours < 24:
		return f"{hours}h"
	if days < 7:
		return f"{days}d"
	return f"{value:%b} {value.day}"


def to_iso(value: datetime) -> str:
	if value.tzinfo is None:
		value = value.replace(tzinfo=timezone.utc)
	return value.isoformat()
