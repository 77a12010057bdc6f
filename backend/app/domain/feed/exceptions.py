"""Domain-level exceptions for feeds and tag following."""

from __future__ import annotations

from fastapi import status

UNAUTHORIZED_MESSAGE = "Unauthorized"
GENERIC_FAILURE_MESSAGE = "An unexpected error occurred"


class FeedError(Exception):
	"""Base class for feed feature errors."""

	reason: str = "unknown"
	status_code: int = status.HTTP_400_BAD_REQUEST
	message: str = GENERIC_FAILURE_MESSAGE

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class FeedUnauthorized(FeedError):
	reason = "unauthorized"
	status_code = status.HTTP_401_UNAUTHORIZED
	message = UNAUTHORIZED_MESSAGE


class FeedUnavailable(FeedError):
	"""Raised when an upstream read fails; the feed is not partially served."""

	reason = "feed_unavailable"
	status_code = status.HTTP_503_SERVICE_UNAVAILABLE

	def __init__(self, stage: str = "unknown") -> None:
		super().__init__()
		self.stage = stage


class TagNotFound(FeedError):
	reason = "tag_not_found"
	status_code = status.HTTP_404_NOT_FOUND
	message = "Tag not found"


class InvalidTagName(FeedError):
	reason = "invalid_tag_name"
	status_code = status.HTTP_400_BAD_REQUEST
	message = "Tag name is empty"
