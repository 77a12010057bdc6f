"""Response and request schemas for feed and tag endpoints."""

from __future__ import annotations

from typing import Any, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthorOut(_CamelModel):
	username: str = "unknown"
	display_name: Optional[str] = None
	avatar_url: Optional[str] = None
	role: int = 0


class TagOut(_CamelModel):
	id: str
	name: str


class FeedPost(_CamelModel):
	id: str
	author_id: str
	author: AuthorOut
	post_type: str
	content: Any = None
	is_sensitive: bool = False
	is_pinned: bool = False
	is_own: bool = False
	created_at: str
	published_at: Optional[str] = None
	like_count: int = 0
	comment_count: int = 0
	reblog_count: int = 0
	has_liked: bool = False
	has_commented: bool = False
	has_reblogged: bool = False
	tags: List[TagOut] = Field(default_factory=list)


class RankedPost(FeedPost):
	score: float
	reason: Literal["followed_tag", "similar_interest", "popular", "followed_user"]


class PersonalizedFeedResponse(_CamelModel):
	success: bool
	posts: Optional[List[RankedPost]] = None
	has_more: Optional[bool] = None
	error: Optional[str] = None


class TimelineResponse(_CamelModel):
	success: bool = True
	posts: List[FeedPost] = Field(default_factory=list)
	has_more: bool = False


class FollowedTagOut(_CamelModel):
	id: str
	name: str
	post_count: int = 0


class FollowedTagsResponse(_CamelModel):
	success: bool = True
	tags: List[FollowedTagOut] = Field(default_factory=list)


class FollowTagByNamePayload(BaseModel):
	name: str = Field(min_length=1, max_length=140)


class FollowTagResponse(_CamelModel):
	success: bool = True
	tag_id: Optional[str] = None


class FollowingTagResponse(_CamelModel):
	following: bool


class PostTagsBatchPayload(BaseModel):
	post_ids: List[UUID] = Field(default_factory=list, max_length=500)


class PostTagsResponse(_CamelModel):
	success: bool = True
	tags: List[TagOut] = Field(default_factory=list)


class PostTagsBatchResponse(_CamelModel):
	success: bool = True
	tags_by_post_id: dict[str, List[TagOut]] = Field(default_factory=dict)
