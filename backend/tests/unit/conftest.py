"""In-memory stand-in for FeedRepository used by the feed unit tests."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from app.domain.feed.models import AuthorProfile, FollowedTag, PostRow, TagRef

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class StubFeedRepo:
	"""Mirrors the FeedRepository surface over plain Python collections.

	Query semantics follow the SQL: only published posts are returned,
	newest first, with the requested author excluded.
	"""

	def __init__(self) -> None:
		self._ids = itertools.count(1)
		self.posts: Dict[str, PostRow] = {}
		self.status: Dict[str, str] = {}
		self.tags: Dict[str, str] = {}
		self.post_tags: List[Tuple[str, str]] = []
		self.followed_tags: Dict[str, List[str]] = {}
		self.likes: List[Tuple[str, str, datetime]] = []
		self.comments: List[Tuple[str, str]] = []
		self.reblogs: List[Tuple[str, str]] = []
		self.follows: List[Tuple[str, str]] = []
		self.show_sensitive: Dict[str, bool] = {}
		self.fail_on: Set[str] = set()
		self.calls: List[str] = []

	# --- Fixture builders ----------------------------------------------------

	def _next_id(self, prefix: str) -> str:
		return f"{prefix}-{next(self._ids):04d}"

	def add_tag(self, name: str) -> str:
		tag_id = self._next_id("tag")
		self.tags[tag_id] = name
		return tag_id

	def add_post(
		self,
		author_id: str,
		*,
		hours_ago: float = 1.0,
		tags: Sequence[str] = (),
		is_sensitive: bool = False,
		status: str = "published",
		post_id: Optional[str] = None,
	) -> str:
		post_id = post_id or self._next_id("post")
		created = NOW - timedelta(hours=hours_ago)
		self.posts[post_id] = PostRow(
			id=post_id,
			author_id=author_id,
			post_type="text",
			content={"text": f"post {post_id}"},
			is_sensitive=is_sensitive,
			is_pinned=False,
			created_at=created,
			published_at=created,
			author=AuthorProfile(username=author_id),
		)
		self.status[post_id] = status
		for tag_id in tags:
			self.post_tags.append((post_id, tag_id))
		return post_id

	def like(self, user_id: str, post_id: str, *, hours_ago: float = 0.0) -> None:
		self.likes.append((user_id, post_id, NOW - timedelta(hours=hours_ago)))

	def engage(self, post_id: str, *, likes: int = 0, comments: int = 0, reblogs: int = 0) -> None:
		"""Add engagement from anonymous third parties."""
		for index in range(likes):
			self.like(f"fan-like-{post_id}-{index}", post_id, hours_ago=100.0)
		for index in range(comments):
			self.comments.append((f"fan-comment-{post_id}-{index}", post_id))
		for index in range(reblogs):
			self.reblogs.append((f"fan-reblog-{post_id}-{index}", post_id))

	def follow_user(self, follower_id: str, following_id: str) -> None:
		self.follows.append((follower_id, following_id))

	def follow_tag(self, viewer_id: str, tag_id: str) -> None:
		self.followed_tags.setdefault(viewer_id, []).append(tag_id)

	def _record(self, name: str) -> None:
		self.calls.append(name)
		if name in self.fail_on:
			raise RuntimeError(f"{name} unavailable")

	def _published(self) -> List[PostRow]:
		rows = [post for post_id, post in self.posts.items() if self.status[post_id] == "published"]
		return sorted(rows, key=lambda post: post.created_at, reverse=True)

	# --- Viewer preferences -------------------------------------------------

	async def list_followed_tag_ids(self, viewer_id: str) -> List[str]:
		self._record("list_followed_tag_ids")
		return list(self.followed_tags.get(viewer_id, []))

	async def list_recent_liked_post_ids(self, viewer_id: str, *, limit: int) -> List[str]:
		self._record("list_recent_liked_post_ids")
		mine = sorted((like for like in self.likes if like[0] == viewer_id), key=lambda like: like[2], reverse=True)
		return [post_id for _, post_id, _ in mine[:limit]]

	async def list_followed_user_ids(self, viewer_id: str) -> List[str]:
		self._record("list_followed_user_ids")
		return [following for follower, following in self.follows if follower == viewer_id]

	async def get_show_sensitive(self, viewer_id: str) -> bool:
		self._record("get_show_sensitive")
		return self.show_sensitive.get(viewer_id, False)

	async def list_tag_pairs_for_posts(self, post_ids: Sequence[str]) -> List[Tuple[str, str]]:
		self._record("list_tag_pairs_for_posts")
		wanted = set(post_ids)
		return [pair for pair in self.post_tags if pair[0] in wanted]

	async def list_tag_pairs_for_tags(self, tag_ids: Sequence[str]) -> List[Tuple[str, str]]:
		self._record("list_tag_pairs_for_tags")
		wanted = set(tag_ids)
		return [pair for pair in self.post_tags if pair[1] in wanted]

	async def list_tags_for_posts(self, post_ids: Sequence[str]) -> Dict[str, List[TagRef]]:
		self._record("list_tags_for_posts")
		wanted = set(post_ids)
		found: Dict[str, List[TagRef]] = {}
		for post_id, tag_id in self.post_tags:
			if post_id in wanted:
				found.setdefault(post_id, []).append(TagRef(id=tag_id, name=self.tags[tag_id]))
		return found

	# --- Candidate posts ----------------------------------------------------

	async def list_tagged_posts(self, post_ids, *, exclude_author, since) -> List[PostRow]:
		self._record("list_tagged_posts")
		wanted = set(post_ids)
		return [
			post
			for post in self._published()
			if post.id in wanted and post.author_id != exclude_author and post.effective_published_at >= since
		]

	async def list_posts_by_authors(self, author_ids, *, exclude_author, limit) -> List[PostRow]:
		self._record("list_posts_by_authors")
		wanted = set(author_ids)
		rows = [post for post in self._published() if post.author_id in wanted and post.author_id != exclude_author]
		return rows[:limit]

	async def list_recent_posts(self, *, exclude_author, limit) -> List[PostRow]:
		self._record("list_recent_posts")
		return [post for post in self._published() if post.author_id != exclude_author][:limit]

	async def list_timeline_posts(self, author_ids, *, limit, offset) -> List[PostRow]:
		self._record("list_timeline_posts")
		rows = self._published()
		if author_ids is not None:
			wanted = set(author_ids)
			rows = [post for post in rows if post.author_id in wanted]
		return rows[offset : offset + limit]

	async def count_followers(self, author_ids: Sequence[str]) -> Dict[str, int]:
		self._record("count_followers")
		counts: Dict[str, int] = {}
		for _, following in self.follows:
			if following in author_ids:
				counts[following] = counts.get(following, 0) + 1
		return counts

	# --- Engagement ---------------------------------------------------------

	@staticmethod
	def _tally(post_ids: Sequence[str], pairs) -> Dict[str, int]:
		counts: Dict[str, int] = {}
		for post_id in pairs:
			if post_id in post_ids:
				counts[post_id] = counts.get(post_id, 0) + 1
		return counts

	async def count_likes(self, post_ids: Sequence[str]) -> Dict[str, int]:
		self._record("count_likes")
		return self._tally(post_ids, (post_id for _, post_id, _ in self.likes))

	async def count_comments(self, post_ids: Sequence[str]) -> Dict[str, int]:
		self._record("count_comments")
		return self._tally(post_ids, (post_id for _, post_id in self.comments))

	async def count_reblogs(self, post_ids: Sequence[str]) -> Dict[str, int]:
		self._record("count_reblogs")
		return self._tally(post_ids, (post_id for _, post_id in self.reblogs))

	async def list_viewer_likes(self, viewer_id: str, post_ids: Sequence[str]) -> Set[str]:
		self._record("list_viewer_likes")
		return {post_id for user_id, post_id, _ in self.likes if user_id == viewer_id and post_id in post_ids}

	async def list_viewer_comments(self, viewer_id: str, post_ids: Sequence[str]) -> Set[str]:
		self._record("list_viewer_comments")
		return {post_id for user_id, post_id in self.comments if user_id == viewer_id and post_id in post_ids}

	async def list_viewer_reblogs(self, viewer_id: str, post_ids: Sequence[str]) -> Set[str]:
		self._record("list_viewer_reblogs")
		return {post_id for user_id, post_id in self.reblogs if user_id == viewer_id and post_id in post_ids}

	# --- Tags ---------------------------------------------------------------

	async def get_tag(self, tag_id: str) -> Optional[TagRef]:
		self._record("get_tag")
		name = self.tags.get(tag_id)
		return TagRef(id=tag_id, name=name) if name is not None else None

	async def get_or_create_tag(self, name: str) -> TagRef:
		self._record("get_or_create_tag")
		for tag_id, existing in self.tags.items():
			if existing == name:
				return TagRef(id=tag_id, name=name)
		return TagRef(id=self.add_tag(name), name=name)

	async def insert_followed_tag(self, viewer_id: str, tag_id: str) -> bool:
		self._record("insert_followed_tag")
		followed = self.followed_tags.setdefault(viewer_id, [])
		if tag_id in followed:
			return False
		followed.append(tag_id)
		return True

	async def delete_followed_tag(self, viewer_id: str, tag_id: str) -> bool:
		self._record("delete_followed_tag")
		followed = self.followed_tags.get(viewer_id, [])
		if tag_id not in followed:
			return False
		followed.remove(tag_id)
		return True

	async def is_following_tag(self, viewer_id: str, tag_id: str) -> bool:
		self._record("is_following_tag")
		return tag_id in self.followed_tags.get(viewer_id, [])

	async def list_followed_tags(self, viewer_id: str) -> List[FollowedTag]:
		self._record("list_followed_tags")
		result = []
		for tag_id in reversed(self.followed_tags.get(viewer_id, [])):
			post_count = sum(1 for _, pair_tag in self.post_tags if pair_tag == tag_id)
			result.append(FollowedTag(id=tag_id, name=self.tags[tag_id], post_count=post_count))
		return result


@pytest.fixture
def stub_repo() -> StubFeedRepo:
	return StubFeedRepo()


@pytest.fixture
def now() -> datetime:
	return NOW
