"""Batch engagement stats for a set of posts."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from app.domain.feed.models import PostStats
from app.domain.feed.repo import FeedRepository


async def _empty_set() -> set[str]:
	return set()


async def _empty_tags() -> dict:
	return {}


async def batch_fetch_post_stats(
	post_ids: Sequence[str],
	viewer_id: Optional[str] = None,
	*,
	include_tags: bool = False,
	repo: Optional[FeedRepository] = None,
) -> PostStats:
	"""Fetch like/comment/reblog counts, viewer interactions and optionally tags.

	All reads run concurrently; any failure propagates to the caller.
	"""

	if not post_ids:
		return PostStats()

	repository = repo or FeedRepository()
	ids = list(post_ids)
	(
		like_counts,
		comment_counts,
		reblog_counts,
		user_likes,
		user_comments,
		user_reblogs,
		tags,
	) = await asyncio.gather(
		repository.count_likes(ids),
		repository.count_comments(ids),
		repository.count_reblogs(ids),
		repository.list_viewer_likes(viewer_id, ids) if viewer_id else _empty_set(),
		repository.list_viewer_comments(viewer_id, ids) if viewer_id else _empty_set(),
		repository.list_viewer_reblogs(viewer_id, ids) if viewer_id else _empty_set(),
		repository.list_tags_for_posts(ids) if include_tags else _empty_tags(),
	)
	return PostStats(
		like_counts=like_counts,
		comment_counts=comment_counts,
		reblog_counts=reblog_counts,
		user_likes=set(user_likes),
		user_comments=set(user_comments),
		user_reblogs=set(user_reblogs),
		tags=tags,
	)


__all__ = ["batch_fetch_post_stats"]
