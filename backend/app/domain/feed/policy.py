"""Weighting knobs and scoring functions for the personalized feed.

Score formula per candidate:

  engagement = likes + 2.5 * comments + 4 * reblogs
  score      = (engagement + 1)
               * time_decay        (0.5 ** (hours / 168), one-week half-life)
               * freshness_bonus   (2.0 under 6h, 1.5 under 24h)
               * reason_bonus      (followed_tag 4, similar_interest 2.5, followed_user 2, popular 1)
               * tag_bonus         (1 + 0.1 * tag relevance)
               * creator_boost     (max(1, 2 - followers / 20))
               * followed_bonus    (1.5 when the author is followed)

Posts the viewer already liked, commented on or reblogged keep their place
in the pool but have the final score multiplied by 0.3.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from app.domain.feed.models import (
	REASON_FOLLOWED_TAG,
	REASON_FOLLOWED_USER,
	REASON_POPULAR,
	REASON_SIMILAR_INTEREST,
)


@dataclass(frozen=True, slots=True)
class RankingPolicy:
	# Preference gathering
	liked_posts_window: int = 100
	like_decay_step: float = 0.04
	like_weight_floor: float = 0.2

	# Candidate sourcing
	tagged_post_id_cap: int = 200
	tagged_window_days: int = 14
	followed_user_post_cap: int = 50
	popular_post_cap: int = 30

	# Scoring
	like_weight: float = 1.0
	comment_weight: float = 2.5
	reblog_weight: float = 4.0
	half_life_hours: float = 168.0
	fresh_hours: float = 6.0
	fresh_bonus: float = 2.0
	recent_hours: float = 24.0
	recent_bonus: float = 1.5
	reason_bonuses: Mapping[str, float] = field(
		default_factory=lambda: {
			REASON_FOLLOWED_TAG: 4.0,
			REASON_SIMILAR_INTEREST: 2.5,
			REASON_FOLLOWED_USER: 2.0,
			REASON_POPULAR: 1.0,
		}
	)
	followed_tag_relevance: float = 10.0
	tag_bonus_factor: float = 0.1
	creator_boost_ceiling: float = 2.0
	creator_boost_followers: float = 20.0
	followed_author_bonus: float = 1.5
	interaction_penalty: float = 0.3

	# Diversity and pagination
	max_posts_per_author: int = 2
	lookahead_buffer: int = 10


DEFAULT_POLICY = RankingPolicy()


def like_recency_weight(index: int, policy: RankingPolicy = DEFAULT_POLICY) -> float:
	"""Weight of the index-th most recent like (0 is newest)."""
	return max(policy.like_weight_floor, 1.0 - index * policy.like_decay_step)


def engagement_score(likes: int, comments: int, reblogs: int, policy: RankingPolicy = DEFAULT_POLICY) -> float:
	return likes * policy.like_weight + comments * policy.comment_weight + reblogs * policy.reblog_weight


def time_decay(hours_old: float, policy: RankingPolicy = DEFAULT_POLICY) -> float:
	return 0.5 ** (max(0.0, hours_old) / policy.half_life_hours)


def freshness_bonus(hours_old: float, policy: RankingPolicy = DEFAULT_POLICY) -> float:
	if hours_old < policy.fresh_hours:
		return policy.fresh_bonus
	if hours_old < policy.recent_hours:
		return policy.recent_bonus
	return 1.0


def reason_bonus(reason: str, policy: RankingPolicy = DEFAULT_POLICY) -> float:
	return policy.reason_bonuses.get(reason, policy.reason_bonuses[REASON_POPULAR])


def tag_bonus(tag_relevance: float, policy: RankingPolicy = DEFAULT_POLICY) -> float:
	return 1.0 + tag_relevance * policy.tag_bonus_factor


def creator_boost(author_followers: int, policy: RankingPolicy = DEFAULT_POLICY) -> float:
	# Smaller creators get up to 2x; anyone past 20 followers gets no boost
	return max(1.0, policy.creator_boost_ceiling - author_followers / policy.creator_boost_followers)


def followed_bonus(is_from_followed_user: bool, policy: RankingPolicy = DEFAULT_POLICY) -> float:
	return policy.followed_author_bonus if is_from_followed_user else 1.0


def score_candidate(
	*,
	likes: int,
	comments: int,
	reblogs: int,
	hours_old: float,
	reason: str,
	tag_relevance: float,
	author_followers: int,
	is_from_followed_user: bool,
	interacted: bool = False,
	policy: RankingPolicy = DEFAULT_POLICY,
) -> float:
	"""Return the final score for one candidate."""
	score = (
		(engagement_score(likes, comments, reblogs, policy) + 1)
		* time_decay(hours_old, policy)
		* freshness_bonus(hours_old, policy)
		* reason_bonus(reason, policy)
		* tag_bonus(tag_relevance, policy)
		* creator_boost(author_followers, policy)
		* followed_bonus(is_from_followed_user, policy)
	)
	if interacted:
		score *= policy.interaction_penalty
	return score


__all__ = [
	"DEFAULT_POLICY",
	"RankingPolicy",
	"creator_boost",
	"engagement_score",
	"followed_bonus",
	"freshness_bonus",
	"like_recency_weight",
	"reason_bonus",
	"score_candidate",
	"tag_bonus",
	"time_decay",
]
