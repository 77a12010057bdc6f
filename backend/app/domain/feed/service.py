"""Service layer for the personalized and following feeds."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from time import perf_counter
from typing import List, Optional, Tuple

from app.domain.feed import ranking
from app.domain.feed.exceptions import (
	GENERIC_FAILURE_MESSAGE,
	FeedUnauthorized,
	FeedUnavailable,
)
from app.domain.feed.formatting import format_time_ago, to_iso
from app.domain.feed.models import PostRow, PostStats, ScoredCandidate, ViewerPreferences
from app.domain.feed.policy import DEFAULT_POLICY, RankingPolicy
from app.domain.feed.repo import FeedRepository
from app.domain.feed.schemas import (
	AuthorOut,
	FeedPost,
	PersonalizedFeedResponse,
	RankedPost,
	TagOut,
	TimelineResponse,
)
from app.domain.feed.stats import batch_fetch_post_stats
from app.infra.auth import AuthenticatedUser
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
_TOP_N_FOR_METRICS = 20


def _require_viewer(auth_user: Optional[AuthenticatedUser]) -> AuthenticatedUser:
	if auth_user is None or not auth_user.id:
		raise FeedUnauthorized()
	return auth_user


def _normalise_page(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
	page_limit = limit if limit and limit > 0 else DEFAULT_LIMIT
	page_offset = offset if offset and offset > 0 else 0
	return page_limit, page_offset


def _serialize_post(post: PostRow, stats: PostStats, *, viewer_id: Optional[str], now: datetime) -> dict:
	return {
		"id": post.id,
		"author_id": post.author_id,
		"author": AuthorOut(
			username=post.author.username,
			display_name=post.author.display_name,
			avatar_url=post.author.avatar_url,
			role=post.author.role,
		),
		"post_type": post.post_type,
		"content": post.content,
		"is_sensitive": post.is_sensitive,
		"is_pinned": post.is_pinned,
		"is_own": viewer_id is not None and post.author_id == viewer_id,
		"created_at": format_time_ago(post.created_at, now),
		"published_at": to_iso(post.effective_published_at),
		"like_count": stats.like_counts.get(post.id, 0),
		"comment_count": stats.comment_counts.get(post.id, 0),
		"reblog_count": stats.reblog_counts.get(post.id, 0),
		"has_liked": post.id in stats.user_likes,
		"has_commented": post.id in stats.user_comments,
		"has_reblogged": post.id in stats.user_reblogs,
		"tags": [TagOut(id=tag.id, name=tag.name) for tag in stats.tags_for(post.id)],
	}


def _to_ranked_post(item: ScoredCandidate, stats: PostStats, *, viewer_id: str, now: datetime) -> RankedPost:
	return RankedPost(
		**_serialize_post(item.post, stats, viewer_id=viewer_id, now=now),
		score=item.score,
		reason=item.reason,
	)


async def load_viewer_preferences(
	viewer_id: str,
	*,
	repo: FeedRepository,
	policy: RankingPolicy = DEFAULT_POLICY,
) -> ViewerPreferences:
	followed_tag_ids, liked_post_ids, followed_user_ids, show_sensitive = await asyncio.gather(
		repo.list_followed_tag_ids(viewer_id),
		repo.list_recent_liked_post_ids(viewer_id, limit=policy.liked_posts_window),
		repo.list_followed_user_ids(viewer_id),
		repo.get_show_sensitive(viewer_id),
	)
	return ViewerPreferences(
		viewer_id=viewer_id,
		followed_tag_ids=frozenset(followed_tag_ids),
		liked_post_ids=tuple(liked_post_ids),
		followed_user_ids=frozenset(followed_user_ids),
		show_sensitive=bool(show_sensitive),
	)


async def _rank(
	viewer_id: str,
	*,
	limit: int,
	offset: int,
	repo: FeedRepository,
	now: datetime,
	policy: RankingPolicy,
) -> Tuple[List[RankedPost], bool]:
	stage = "preferences"
	try:
		prefs = await load_viewer_preferences(viewer_id, repo=repo, policy=policy)

		stage = "interests"
		liked_pairs, followed_pairs = await asyncio.gather(
			repo.list_tag_pairs_for_posts(list(prefs.liked_post_ids)),
			repo.list_tag_pairs_for_tags(sorted(prefs.followed_tag_ids)),
		)
		interest_weights = ranking.build_interest_weights(prefs.liked_post_ids, liked_pairs, policy)
		extra_tag_ids = ranking.interest_tags_to_expand(interest_weights, prefs.followed_tag_ids)
		interest_pairs = await repo.list_tag_pairs_for_tags(extra_tag_ids) if extra_tag_ids else []
		tagged_post_mapping = ranking.build_tagged_post_mapping(followed_pairs, interest_pairs)

		stage = "candidates"
		tagged_posts, followed_user_posts, popular_posts = await asyncio.gather(
			repo.list_tagged_posts(
				list(tagged_post_mapping)[: policy.tagged_post_id_cap],
				exclude_author=viewer_id,
				since=now - timedelta(days=policy.tagged_window_days),
			),
			repo.list_posts_by_authors(
				sorted(prefs.followed_user_ids),
				exclude_author=viewer_id,
				limit=policy.followed_user_post_cap,
			),
			repo.list_recent_posts(exclude_author=viewer_id, limit=policy.popular_post_cap),
		)
		candidates = ranking.merge_candidates(
			prefs,
			tagged_posts=tagged_posts,
			followed_user_posts=followed_user_posts,
			popular_posts=popular_posts,
			tagged_post_mapping=tagged_post_mapping,
			interest_weights=interest_weights,
			policy=policy,
		)
		if not candidates:
			return [], False

		stage = "stats"
		stats, follower_counts = await asyncio.gather(
			batch_fetch_post_stats(
				[candidate.post.id for candidate in candidates],
				viewer_id,
				include_tags=True,
				repo=repo,
			),
			repo.count_followers(sorted({candidate.post.author_id for candidate in candidates})),
		)
	except Exception as exc:
		logger.exception("personalized_feed_fetch_failed", extra={"stage": stage, "viewer_id": viewer_id})
		obs_metrics.inc_feed_failure(stage)
		raise FeedUnavailable(stage) from exc

	for candidate in candidates:
		obs_metrics.inc_feed_candidates(candidate.reason)

	scored = ranking.score_candidates(
		candidates,
		stats,
		follower_counts,
		prefs.followed_tag_ids,
		now=now,
		policy=policy,
	)
	diverse = ranking.diversify(scored, limit=limit, offset=offset, policy=policy)
	page, has_more = ranking.paginate(diverse, limit=limit, offset=offset)
	return [_to_ranked_post(item, stats, viewer_id=viewer_id, now=now) for item in page], has_more


async def get_personalized_feed(
	auth_user: Optional[AuthenticatedUser],
	*,
	limit: Optional[int] = None,
	offset: Optional[int] = None,
	repo: Optional[FeedRepository] = None,
	now: Optional[datetime] = None,
	policy: RankingPolicy = DEFAULT_POLICY,
) -> PersonalizedFeedResponse:
	"""Rank recommendations for the viewer.

	Never raises: an anonymous caller gets the Unauthorized envelope and any
	failure yields a generic error envelope with no partial results.
	"""

	try:
		viewer = _require_viewer(auth_user)
	except FeedUnauthorized as exc:
		return PersonalizedFeedResponse(success=False, error=exc.message)

	page_limit, page_offset = _normalise_page(limit, offset)
	start = perf_counter()
	try:
		posts, has_more = await _rank(
			viewer.id,
			limit=page_limit,
			offset=page_offset,
			repo=repo or FeedRepository(),
			now=now or datetime.now(timezone.utc),
			policy=policy,
		)
	except FeedUnavailable as exc:
		return PersonalizedFeedResponse(success=False, error=exc.message)
	except Exception:
		logger.exception("personalized_feed_failed", extra={"viewer_id": viewer.id})
		obs_metrics.inc_feed_failure("ranking")
		return PersonalizedFeedResponse(success=False, error=GENERIC_FAILURE_MESSAGE)

	obs_metrics.observe_feed_rank(
		(perf_counter() - start) * 1000.0,
		[post.score for post in posts[:_TOP_N_FOR_METRICS]],
	)
	logger.info(
		"personalized_feed_ranked",
		extra={"viewer_id": viewer.id, "returned": len(posts), "offset": page_offset, "has_more": has_more},
	)
	return PersonalizedFeedResponse(success=True, posts=posts, has_more=has_more)


async def get_following_feed(
	auth_user: Optional[AuthenticatedUser],
	*,
	limit: Optional[int] = None,
	offset: Optional[int] = None,
	repo: Optional[FeedRepository] = None,
	now: Optional[datetime] = None,
) -> TimelineResponse:
	"""Chronological posts from the viewer and everyone they follow.

	Anonymous callers get the global published timeline.
	"""

	repository = repo or FeedRepository()
	page_limit, page_offset = _normalise_page(limit, offset)
	viewer_id = auth_user.id if auth_user is not None else None
	try:
		author_ids: Optional[List[str]] = None
		if viewer_id:
			followed = await repository.list_followed_user_ids(viewer_id)
			author_ids = [*followed, viewer_id]
		# One extra row tells us whether another page exists
		rows = await repository.list_timeline_posts(author_ids, limit=page_limit + 1, offset=page_offset)
		has_more = len(rows) > page_limit
		rows = rows[:page_limit]
		stats = await batch_fetch_post_stats(
			[row.id for row in rows],
			viewer_id,
			include_tags=True,
			repo=repository,
		)
	except Exception as exc:
		logger.exception("following_feed_failed", extra={"viewer_id": viewer_id})
		obs_metrics.inc_timeline_request("error")
		raise FeedUnavailable("timeline") from exc

	obs_metrics.inc_timeline_request("ok")
	current = now or datetime.now(timezone.utc)
	posts = [FeedPost(**_serialize_post(row, stats, viewer_id=viewer_id, now=current)) for row in rows]
	return TimelineResponse(success=True, posts=posts, has_more=has_more)


__all__ = ["get_following_feed", "get_personalized_feed", "load_viewer_preferences"]
