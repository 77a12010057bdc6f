"""Async data access for feeds, tags and engagement counts.

Every method acquires its own pooled connection so that independent reads
can be issued together with asyncio.gather.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple

import asyncpg

from app.domain.feed.models import AuthorProfile, FollowedTag, PostRow, TagRef
from app.infra.postgres import get_pool

TagPair = Tuple[str, str]

_POST_COLUMNS = """
	p.id::text AS id,
	p.author_id::text AS author_id,
	p.post_type,
	p.content,
	COALESCE(p.is_sensitive, FALSE) AS is_sensitive,
	COALESCE(p.is_pinned, FALSE) AS is_pinned,
	p.created_at,
	p.published_at,
	a.username AS author_username,
	a.display_name AS author_display_name,
	a.avatar_url AS author_avatar_url,
	COALESCE(a.role, 0) AS author_role
"""

_POST_FROM = """
FROM posts p
LEFT JOIN profiles a ON a.id = p.author_id
"""


def _record_to_post(record: asyncpg.Record) -> PostRow:
	return PostRow(
		id=record["id"],
		author_id=record["author_id"],
		post_type=record["post_type"],
		content=record["content"],
		is_sensitive=bool(record["is_sensitive"]),
		is_pinned=bool(record["is_pinned"]),
		created_at=record["created_at"],
		published_at=record["published_at"],
		author=AuthorProfile(
			username=record["author_username"] or "unknown",
			display_name=record["author_display_name"],
			avatar_url=record["author_avatar_url"],
			role=int(record["author_role"] or 0),
		),
	)


def _pairs(records: Sequence[asyncpg.Record]) -> List[TagPair]:
	return [(record["post_id"], record["tag_id"]) for record in records]


def _counts(records: Sequence[asyncpg.Record], key: str = "post_id") -> Dict[str, int]:
	return {record[key]: int(record["total"]) for record in records}


class FeedRepository:
	"""Thin data-access layer around asyncpg."""

	# --- Viewer preferences -------------------------------------------------

	async def list_followed_tag_ids(self, viewer_id: str) -> List[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT tag_id::text AS tag_id FROM followed_tags WHERE profile_id = $1::uuid",
				viewer_id,
			)
		return [row["tag_id"] for row in rows]

	async def list_recent_liked_post_ids(self, viewer_id: str, *, limit: int) -> List[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT post_id::text AS post_id
				FROM likes
				WHERE user_id = $1::uuid
				ORDER BY created_at DESC NULLS LAST, id DESC
				LIMIT $2
				""",
				viewer_id,
				limit,
			)
		return [row["post_id"] for row in rows]

	async def list_followed_user_ids(self, viewer_id: str) -> List[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT following_id::text AS user_id FROM follows WHERE follower_id = $1::uuid",
				viewer_id,
			)
		return [row["user_id"] for row in rows]

	async def get_show_sensitive(self, viewer_id: str) -> bool:
		pool = await get_pool()
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"SELECT show_sensitive_posts FROM profiles WHERE id = $1::uuid",
				viewer_id,
			)
		return bool(value)

	# --- Tag memberships ----------------------------------------------------

	async def list_tag_pairs_for_posts(self, post_ids: Sequence[str]) -> List[TagPair]:
		if not post_ids:
			return []
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT post_id::text AS post_id, tag_id::text AS tag_id
				FROM post_tags
				WHERE post_id = ANY($1::uuid[])
				""",
				list(post_ids),
			)
		return _pairs(rows)

	async def list_tag_pairs_for_tags(self, tag_ids: Sequence[str]) -> List[TagPair]:
		if not tag_ids:
			return []
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT post_id::text AS post_id, tag_id::text AS tag_id
				FROM post_tags
				WHERE tag_id = ANY($1::uuid[])
				""",
				list(tag_ids),
			)
		return _pairs(rows)

	async def list_tags_for_posts(self, post_ids: Sequence[str]) -> Dict[str, List[TagRef]]:
		if not post_ids:
			return {}
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT pt.post_id::text AS post_id, t.id::text AS tag_id, t.name
				FROM post_tags pt
				JOIN tags t ON t.id = pt.tag_id
				WHERE pt.post_id = ANY($1::uuid[])
				ORDER BY pt.post_id, t.name
				""",
				list(post_ids),
			)
		tags: Dict[str, List[TagRef]] = {}
		for row in rows:
			tags.setdefault(row["post_id"], []).append(TagRef(id=row["tag_id"], name=row["name"]))
		return tags

	# --- Candidate posts ----------------------------------------------------

	async def list_tagged_posts(
		self,
		post_ids: Sequence[str],
		*,
		exclude_author: str,
		since: datetime,
	) -> List[PostRow]:
		if not post_ids:
			return []
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_POST_COLUMNS}
				{_POST_FROM}
				WHERE p.id = ANY($1::uuid[])
				  AND p.status = 'published'
				  AND p.author_id <> $2::uuid
				  AND COALESCE(p.published_at, p.created_at) >= $3
				ORDER BY p.created_at DESC
				""",
				list(post_ids),
				exclude_author,
				since,
			)
		return [_record_to_post(row) for row in rows]

	async def list_posts_by_authors(
		self,
		author_ids: Sequence[str],
		*,
		exclude_author: str,
		limit: int,
	) -> List[PostRow]:
		if not author_ids:
			return []
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_POST_COLUMNS}
				{_POST_FROM}
				WHERE p.author_id = ANY($1::uuid[])
				  AND p.author_id <> $2::uuid
				  AND p.status = 'published'
				ORDER BY p.created_at DESC
				LIMIT $3
				""",
				list(author_ids),
				exclude_author,
				limit,
			)
		return [_record_to_post(row) for row in rows]

	async def list_recent_posts(self, *, exclude_author: str, limit: int) -> List[PostRow]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_POST_COLUMNS}
				{_POST_FROM}
				WHERE p.status = 'published'
				  AND p.author_id <> $1::uuid
				ORDER BY p.created_at DESC
				LIMIT $2
				""",
				exclude_author,
				limit,
			)
		return [_record_to_post(row) for row in rows]

	async def list_timeline_posts(
		self,
		author_ids: Optional[Sequence[str]],
		*,
		limit: int,
		offset: int,
	) -> List[PostRow]:
		"""Published posts newest first, optionally restricted to some authors."""
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_POST_COLUMNS}
				{_POST_FROM}
				WHERE p.status = 'published'
				  AND ($1::uuid[] IS NULL OR p.author_id = ANY($1::uuid[]))
				ORDER BY p.created_at DESC
				LIMIT $2 OFFSET $3
				""",
				list(author_ids) if author_ids is not None else None,
				limit,
				offset,
			)
		return [_record_to_post(row) for row in rows]

	async def count_followers(self, author_ids: Sequence[str]) -> Dict[str, int]:
		if not author_ids:
			return {}
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT following_id::text AS author_id, COUNT(*) AS total
				FROM follows
				WHERE following_id = ANY($1::uuid[])
				GROUP BY following_id
				""",
				list(author_ids),
			)
		return _counts(rows, key="author_id")

	# --- Engagement ---------------------------------------------------------

	async def count_likes(self, post_ids: Sequence[str]) -> Dict[str, int]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT post_id::text AS post_id, COUNT(*) AS total
				FROM likes
				WHERE post_id = ANY($1::uuid[])
				GROUP BY post_id
				""",
				list(post_ids),
			)
		return _counts(rows)

	async def count_comments(self, post_ids: Sequence[str]) -> Dict[str, int]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT post_id::text AS post_id, COUNT(*) AS total
				FROM comments
				WHERE post_id = ANY($1::uuid[])
				GROUP BY post_id
				""",
				list(post_ids),
			)
		return _counts(rows)

	async def count_reblogs(self, post_ids: Sequence[str]) -> Dict[str, int]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT reblogged_from_id::text AS post_id, COUNT(*) AS total
				FROM posts
				WHERE reblogged_from_id = ANY($1::uuid[])
				  AND status = 'published'
				GROUP BY reblogged_from_id
				""",
				list(post_ids),
			)
		return _counts(rows)

	async def list_viewer_likes(self, viewer_id: str, post_ids: Sequence[str]) -> Set[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT DISTINCT post_id::text AS post_id
				FROM likes
				WHERE user_id = $1::uuid AND post_id = ANY($2::uuid[])
				""",
				viewer_id,
				list(post_ids),
			)
		return {row["post_id"] for row in rows}

	async def list_viewer_comments(self, viewer_id: str, post_ids: Sequence[str]) -> Set[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT DISTINCT post_id::text AS post_id
				FROM comments
				WHERE user_id = $1::uuid AND post_id = ANY($2::uuid[])
				""",
				viewer_id,
				list(post_ids),
			)
		return {row["post_id"] for row in rows}

	async def list_viewer_reblogs(self, viewer_id: str, post_ids: Sequence[str]) -> Set[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT DISTINCT reblogged_from_id::text AS post_id
				FROM posts
				WHERE author_id = $1::uuid
				  AND reblogged_from_id = ANY($2::uuid[])
				  AND status <> 'deleted'
				""",
				viewer_id,
				list(post_ids),
			)
		return {row["post_id"] for row in rows}

	# --- Tags ---------------------------------------------------------------

	async def get_tag(self, tag_id: str) -> Optional[TagRef]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT id::text AS id, name FROM tags WHERE id = $1::uuid", tag_id)
		return TagRef(id=row["id"], name=row["name"]) if row else None

	async def get_or_create_tag(self, name: str) -> TagRef:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow("SELECT id::text AS id, name FROM tags WHERE name = $1", name)
				if row is None:
					row = await conn.fetchrow(
						"""
						INSERT INTO tags (name, post_count)
						VALUES ($1, 0)
						ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
						RETURNING id::text AS id, name
						""",
						name,
					)
		return TagRef(id=row["id"], name=row["name"])

	async def insert_followed_tag(self, viewer_id: str, tag_id: str) -> bool:
		"""Return True when a new follow row was written."""
		pool = await get_pool()
		async with pool.acquire() as conn:
			status = await conn.execute(
				"""
				INSERT INTO followed_tags (profile_id, tag_id)
				VALUES ($1::uuid, $2::uuid)
				ON CONFLICT (profile_id, tag_id) DO NOTHING
				""",
				viewer_id,
				tag_id,
			)
		return status.endswith(" 1")

	async def delete_followed_tag(self, viewer_id: str, tag_id: str) -> bool:
		pool = await get_pool()
		async with pool.acquire() as conn:
			status = await conn.execute(
				"DELETE FROM followed_tags WHERE profile_id = $1::uuid AND tag_id = $2::uuid",
				viewer_id,
				tag_id,
			)
		return not status.endswith(" 0")

	async def is_following_tag(self, viewer_id: str, tag_id: str) -> bool:
		pool = await get_pool()
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"""
				SELECT EXISTS(
					SELECT 1 FROM followed_tags WHERE profile_id = $1::uuid AND tag_id = $2::uuid
				)
				""",
				viewer_id,
				tag_id,
			)
		return bool(value)

	async def list_followed_tags(self, viewer_id: str) -> List[FollowedTag]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT t.id::text AS id, t.name, COALESCE(t.post_count, 0) AS post_count
				FROM followed_tags ft
				JOIN tags t ON t.id = ft.tag_id
				WHERE ft.profile_id = $1::uuid
				ORDER BY ft.created_at DESC NULLS LAST, t.name
				""",
				viewer_id,
			)
		return [FollowedTag(id=row["id"], name=row["name"], post_count=int(row["post_count"])) for row in rows]


__all__ = ["FeedRepository"]
