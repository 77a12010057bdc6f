"""Tag follow endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from app.domain.feed import tags as tag_service
from app.domain.feed.schemas import (
	FollowedTagsResponse,
	FollowingTagResponse,
	FollowTagByNamePayload,
	FollowTagResponse,
	PostTagsBatchPayload,
	PostTagsBatchResponse,
	PostTagsResponse,
)
from app.infra.auth import AuthenticatedUser, get_current_user, get_optional_user

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("/followed", response_model=FollowedTagsResponse)
async def followed_tags(auth_user: AuthenticatedUser = Depends(get_current_user)) -> FollowedTagsResponse:
	return await tag_service.list_followed_tags(auth_user)


@router.post("/follow", response_model=FollowTagResponse)
async def follow_tag_by_name(
	payload: FollowTagByNamePayload,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> FollowTagResponse:
	return await tag_service.follow_tag_by_name(auth_user, payload.name)


@router.post("/batch", response_model=PostTagsBatchResponse)
async def post_tags_batch(payload: PostTagsBatchPayload) -> PostTagsBatchResponse:
	return await tag_service.get_post_tags_batch([str(post_id) for post_id in payload.post_ids])


@router.get("/posts/{post_id}", response_model=PostTagsResponse)
async def post_tags(post_id: UUID) -> PostTagsResponse:
	return PostTagsResponse(tags=await tag_service.get_post_tags(str(post_id)))


@router.post("/{tag_id}/follow", response_model=FollowTagResponse)
async def follow_tag(
	tag_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> FollowTagResponse:
	return await tag_service.follow_tag(auth_user, str(tag_id))


@router.delete("/{tag_id}/follow", response_model=FollowTagResponse)
async def unfollow_tag(
	tag_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> FollowTagResponse:
	return await tag_service.unfollow_tag(auth_user, str(tag_id))


@router.get("/{tag_id}/following", response_model=FollowingTagResponse)
async def following_tag(
	tag_id: UUID,
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> FollowingTagResponse:
	return FollowingTagResponse(following=await tag_service.is_following_tag(auth_user, str(tag_id)))
