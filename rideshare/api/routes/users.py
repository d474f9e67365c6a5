"""
User endpoints
==============

GET /api/v1/users/{user_id}/stats -- rides hosted / joined and cancellations
"""

from fastapi import APIRouter, Depends, Request

from rideshare.api.dependencies import get_ride_queries
from rideshare.api.middleware import RATE_LIMIT, limiter
from rideshare.api.schemas import ErrorResponse, UserStatsResponse
from rideshare.services.queries import RideQueries

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "/{user_id}/stats",
    response_model=UserStatsResponse,
    summary="Ride statistics for a user",
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit(RATE_LIMIT)
async def get_user_stats(
    request: Request,
    user_id: int,
    queries: RideQueries = Depends(get_ride_queries),
):
    stats = await queries.user_stats(user_id)
    return UserStatsResponse.model_validate(stats)
