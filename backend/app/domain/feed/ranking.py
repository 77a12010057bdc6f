"""Personalized feed ranking steps.

Each function is synchronous and works on data already fetched for one
request, so the whole pipeline can be exercised without a database.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Sequence, Set, Tuple

from app.domain.feed.models import (
	REASON_FOLLOWED_TAG,
	REASON_FOLLOWED_USER,
	REASON_POPULAR,
	REASON_SIMILAR_INTEREST,
	SOURCE_FOLLOWED_USER,
	SOURCE_POPULAR,
	SOURCE_TAGGED,
	Candidate,
	PostRow,
	PostStats,
	ScoredCandidate,
	ViewerPreferences,
)
from app.domain.feed.policy import DEFAULT_POLICY, RankingPolicy, like_recency_weight, score_candidate

TagPair = Tuple[str, str]  # (post_id, tag_id)


def build_interest_weights(
	liked_post_ids: Sequence[str],
	liked_tag_pairs: Iterable[TagPair],
	policy: RankingPolicy = DEFAULT_POLICY,
) -> Dict[str, float]:
	"""Sum like-recency weights per tag across the viewer's recent likes."""

	position: Dict[str, int] = {}
	for index, post_id in enumerate(liked_post_ids):
		position.setdefault(post_id, index)

	weights: Dict[str, float] = defaultdict(float)
	for post_id, tag_id in liked_tag_pairs:
		index = position.get(post_id)
		if index is None:
			continue
		weights[tag_id] += like_recency_weight(index, policy)
	return dict(weights)


def build_tagged_post_mapping(*pair_groups: Iterable[TagPair]) -> Dict[str, List[str]]:
	"""Merge post/tag memberships into post_id -> [tag_id], keeping first-seen order."""

	mapping: Dict[str, List[str]] = {}
	for pairs in pair_groups:
		for post_id, tag_id in pairs:
			tags = mapping.setdefault(post_id, [])
			if tag_id not in tags:
				tags.append(tag_id)
	return mapping


def interest_tags_to_expand(interest_weights: Mapping[str, float], followed_tag_ids: Iterable[str]) -> List[str]:
	"""Interest tags whose posts were not already fetched through a followed tag."""

	followed = set(followed_tag_ids)
	return [tag_id for tag_id in interest_weights if tag_id not in followed]


def merge_candidates(
	prefs: ViewerPreferences,
	*,
	tagged_posts: Sequence[PostRow],
	followed_user_posts: Sequence[PostRow],
	popular_posts: Sequence[PostRow],
	tagged_post_mapping: Mapping[str, Sequence[str]],
	interest_weights: Mapping[str, float],
	policy: RankingPolicy = DEFAULT_POLICY,
) -> List[Candidate]:
	"""Merge the three sources in precedence order, first occurrence wins."""

	seen: Set[str] = set()
	candidates: List[Candidate] = []
	sources = (
		(SOURCE_TAGGED, tagged_posts),
		(SOURCE_FOLLOWED_USER, followed_user_posts),
		(SOURCE_POPULAR, popular_posts),
	)
	for source, rows in sources:
		for post in rows:
			if post.id in seen:
				continue
			seen.add(post.id)
			if post.author_id == prefs.viewer_id:
				continue
			if post.is_sensitive and not prefs.show_sensitive:
				continue

			post_tags = tagged_post_mapping.get(post.id, ())
			if any(tag_id in prefs.followed_tag_ids for tag_id in post_tags):
				reason = REASON_FOLLOWED_TAG
				relevance = policy.followed_tag_relevance
			elif source == SOURCE_TAGGED:
				reason = REASON_SIMILAR_INTEREST
				relevance = sum(interest_weights.get(tag_id, 0.0) for tag_id in post_tags)
			elif source == SOURCE_FOLLOWED_USER:
				reason = REASON_FOLLOWED_USER
				relevance = 0.0
			else:
				reason = REASON_POPULAR
				relevance = 0.0

			candidates.append(
				Candidate(
					post=post,
					source=source,
					reason=reason,
					tag_relevance=relevance,
					is_from_followed_user=post.author_id in prefs.followed_user_ids,
				)
			)
	return candidates


def score_candidates(
	candidates: Iterable[Candidate],
	stats: PostStats,
	follower_counts: Mapping[str, int],
	followed_tag_ids: Iterable[str],
	*,
	now: datetime,
	policy: RankingPolicy = DEFAULT_POLICY,
) -> List[ScoredCandidate]:
	"""Score candidates against one engagement snapshot."""

	followed = set(followed_tag_ids)
	scored: List[ScoredCandidate] = []
	for candidate in candidates:
		post = candidate.post
		hours_old = (now - post.effective_published_at).total_seconds() / 3600.0

		reason = candidate.reason
		# Upgrade posts that arrived through another source but carry a followed tag
		if reason != REASON_FOLLOWED_TAG and any(tag.id in followed for tag in stats.tags_for(post.id)):
			reason = REASON_FOLLOWED_TAG

		score = score_candidate(
			likes=stats.like_counts.get(post.id, 0),
			comments=stats.comment_counts.get(post.id, 0),
			reblogs=stats.reblog_counts.get(post.id, 0),
			hours_old=hours_old,
			reason=reason,
			tag_relevance=candidate.tag_relevance,
			author_followers=follower_counts.get(post.author_id, 0),
			is_from_followed_user=candidate.is_from_followed_user,
			interacted=stats.has_interacted(post.id),
			policy=policy,
		)
		scored.append(ScoredCandidate(candidate=candidate, score=score, reason=reason))
	return scored


def diversify(
	scored: Iterable[ScoredCandidate],
	*,
	limit: int,
	offset: int,
	policy: RankingPolicy = DEFAULT_POLICY,
) -> List[ScoredCandidate]:
	"""Order by score and cap posts per author.

	The walk stops a few posts past the requested page so has_more can be
	answered without ranking the whole pool.
	"""

	ordered = sorted(scored, key=lambda item: item.score, reverse=True)
	stop_at = offset + limit + policy.lookahead_buffer
	per_author: Dict[str, int] = defaultdict(int)
	diverse: List[ScoredCandidate] = []
	for item in ordered:
		if len(diverse) >= stop_at:
			break
		if per_author[item.author_id] >= policy.max_posts_per_author:
			continue
		per_author[item.author_id] += 1
		diverse.append(item)
	return diverse


def paginate(items: Sequence[ScoredCandidate], *, limit: int, offset: int) -> Tuple[List[ScoredCandidate], bool]:
	return list(items[offset : offset + limit]), len(items) > offset + limit


__all__ = [
	"build_interest_weights",
	"build_tagged_post_mapping",
	"diversify",
	"interest_tags_to_expand",
	"merge_candidates",
	"paginate",
	"score_candidates",
]
