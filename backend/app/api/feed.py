"""Feed endpoints: personalized recommendations and the following timeline."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from app.domain.feed import service
from app.domain.feed.exceptions import UNAUTHORIZED_MESSAGE
from app.domain.feed.schemas import PersonalizedFeedResponse, TimelineResponse
from app.infra.auth import AuthenticatedUser, get_optional_user
from app.settings import settings

router = APIRouter(prefix="/feed", tags=["feed"])


@router.get("/for-you", response_model=PersonalizedFeedResponse, response_model_exclude_none=True)
async def personalized_feed(
	*,
	limit: int = Query(default=service.DEFAULT_LIMIT, ge=1, le=settings.feed_max_limit),
	offset: int = Query(default=0, ge=0),
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
):
	result = await service.get_personalized_feed(auth_user, limit=limit, offset=offset)
	if result.success:
		return result
	status_code = (
		status.HTTP_401_UNAUTHORIZED
		if result.error == UNAUTHORIZED_MESSAGE
		else status.HTTP_503_SERVICE_UNAVAILABLE
	)
	return JSONResponse(
		status_code=status_code,
		content=result.model_dump(by_alias=True, exclude_none=True),
	)


@router.get("/following", response_model=TimelineResponse)
async def following_feed(
	*,
	limit: int = Query(default=service.DEFAULT_LIMIT, ge=1, le=settings.feed_max_limit),
	offset: int = Query(default=0, ge=0),
	auth_user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> TimelineResponse:
	return await service.get_following_feed(auth_user, limit=limit, offset=offset)
