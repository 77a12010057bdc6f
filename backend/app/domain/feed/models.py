"""In-memory records used while building a feed.

Everything here lives for a single request; nothing is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Set, Tuple

FeedReason = Literal["followed_tag", "similar_interest", "followed_user", "popular"]

REASON_FOLLOWED_TAG: FeedReason = "followed_tag"
REASON_SIMILAR_INTEREST: FeedReason = "similar_interest"
REASON_FOLLOWED_USER: FeedReason = "followed_user"
REASON_POPULAR: FeedReason = "popular"

# Candidate sources in precedence order; the first source to yield a post wins.
SOURCE_TAGGED = "tagged"
SOURCE_FOLLOWED_USER = "followed_user"
SOURCE_POPULAR = "popular"


def _as_utc(value: datetime) -> datetime:
	return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


@dataclass(slots=True)
class AuthorProfile:
	username: str = "unknown"
	display_name: Optional[str] = None
	avatar_url: Optional[str] = None
	role: int = 0


@dataclass(slots=True)
class PostRow:
	"""Published post as read from the store, with its author joined in."""

	id: str
	author_id: str
	post_type: str
	content: Any
	is_sensitive: bool
	is_pinned: bool
	created_at: datetime
	published_at: Optional[datetime]
	author: AuthorProfile = field(default_factory=AuthorProfile)

	def __post_init__(self) -> None:
		# Columns without a time zone hold UTC
		self.created_at = _as_utc(self.created_at)
		if self.published_at is not None:
			self.published_at = _as_utc(self.published_at)

	@property
	def effective_published_at(self) -> datetime:
		return self.published_at or self.created_at


@dataclass(slots=True)
class TagRef:
	id: str
	name: str


@dataclass(slots=True)
class FollowedTag:
	id: str
	name: str
	post_count: int = 0


@dataclass(slots=True)
class ViewerPreferences:
	viewer_id: str
	followed_tag_ids: FrozenSet[str]
	liked_post_ids: Tuple[str, ...]  # most recent first
	followed_user_ids: FrozenSet[str]
	show_sensitive: bool = False


@dataclass(slots=True)
class Candidate:
	post: PostRow
	source: str
	reason: FeedReason
	tag_relevance: float
	is_from_followed_user: bool


@dataclass(slots=True)
class PostStats:
	"""Engagement snapshot for a batch of posts."""

	like_counts: Dict[str, int] = field(default_factory=dict)
	comment_counts: Dict[str, int] = field(default_factory=dict)
	reblog_counts: Dict[str, int] = field(default_factory=dict)
	user_likes: Set[str] = field(default_factory=set)
	user_comments: Set[str] = field(default_factory=set)
	user_reblogs: Set[str] = field(default_factory=set)
	tags: Dict[str, List[TagRef]] = field(default_factory=dict)

	def has_interacted(self, post_id: str) -> bool:
		return post_id in self.user_likes or post_id in self.user_comments or post_id in self.user_reblogs

	def tags_for(self, post_id: str) -> List[TagRef]:
		return self.tags.get(post_id, [])


@dataclass(slots=True)
class ScoredCandidate:
	candidate: Candidate
	score: float
	reason: FeedReason

	@property
	def post(self) -> PostRow:
		return self.candidate.post

	@property
	def author_id(self) -> str:
		return self.candidate.post.author_id
