"""Tag following: the viewer-side inputs to personalized ranking."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from app.domain.feed.exceptions import InvalidTagName, TagNotFound
from app.domain.feed.repo import FeedRepository
from app.domain.feed.schemas import (
	FollowedTagOut,
	FollowedTagsResponse,
	FollowTagResponse,
	PostTagsBatchResponse,
	TagOut,
)
from app.infra.auth import AuthenticatedUser
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)
_repository = FeedRepository()


def normalize_tag_name(name: str) -> str:
	"""Lowercase, trim and drop a single leading '#'."""
	normalized = name.lower().strip()
	if normalized.startswith("#"):
		normalized = normalized[1:]
	if not normalized:
		raise InvalidTagName()
	return normalized


async def follow_tag(
	auth_user: AuthenticatedUser,
	tag_id: str,
	*,
	repo: Optional[FeedRepository] = None,
) -> FollowTagResponse:
	"""Follow an existing tag; following it twice is not an error."""
	repository = repo or _repository
	tag = await repository.get_tag(tag_id)
	if tag is None:
		raise TagNotFound()
	created = await repository.insert_followed_tag(auth_user.id, tag.id)
	obs_metrics.inc_tag_follow("follow" if created else "noop")
	if created:
		logger.info("tag_followed", extra={"viewer_id": auth_user.id, "tag_id": tag.id})
	return FollowTagResponse(success=True, tag_id=tag.id)


async def follow_tag_by_name(
	auth_user: AuthenticatedUser,
	name: str,
	*,
	repo: Optional[FeedRepository] = None,
) -> FollowTagResponse:
	"""Follow a tag by name, creating the tag when nobody has used it yet."""
	repository = repo or _repository
	tag = await repository.get_or_create_tag(normalize_tag_name(name))
	return await follow_tag(auth_user, tag.id, repo=repository)


async def unfollow_tag(
	auth_user: AuthenticatedUser,
	tag_id: str,
	*,
	repo: Optional[FeedRepository] = None,
) -> FollowTagResponse:
	repository = repo or _repository
	removed = await repository.delete_followed_tag(auth_user.id, tag_id)
	obs_metrics.inc_tag_follow("unfollow" if removed else "noop")
	return FollowTagResponse(success=True, tag_id=tag_id)


async def is_following_tag(
	auth_user: Optional[AuthenticatedUser],
	tag_id: str,
	*,
	repo: Optional[FeedRepository] = None,
) -> bool:
	if auth_user is None:
		return False
	return await (repo or _repository).is_following_tag(auth_user.id, tag_id)


async def list_followed_tags(
	auth_user: AuthenticatedUser,
	*,
	repo: Optional[FeedRepository] = None,
) -> FollowedTagsResponse:
	tags = await (repo or _repository).list_followed_tags(auth_user.id)
	return FollowedTagsResponse(
		tags=[FollowedTagOut(id=tag.id, name=tag.name, post_count=tag.post_count) for tag in tags],
	)


async def get_post_tags(
	post_id: str,
	*,
	repo: Optional[FeedRepository] = None,
) -> List[TagOut]:
	found = await (repo or _repository).list_tags_for_posts([post_id])
	return [TagOut(id=tag.id, name=tag.name) for tag in found.get(post_id, [])]


async def get_post_tags_batch(
	post_ids: Sequence[str],
	*,
	repo: Optional[FeedRepository] = None,
) -> PostTagsBatchResponse:
	"""Tags for several posts; every requested id is present in the result."""
	if not post_ids:
		return PostTagsBatchResponse(tags_by_post_id={})
	found = await (repo or _repository).list_tags_for_posts(post_ids)
	return PostTagsBatchResponse(
		tags_by_post_id={
			post_id: [TagOut(id=tag.id, name=tag.name) for tag in found.get(post_id, [])]
			for post_id in post_ids
		},
	)


__all__ = [
	"follow_tag",
	"follow_tag_by_name",
	"get_post_tags",
	"get_post_tags_batch",
	"is_following_tag",
	"list_followed_tags",
	"normalize_tag_name",
	"unfollow_tag",
]
