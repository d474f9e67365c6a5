"""
Ride endpoints
==============

POST /api/v1/rides                        -- host a ride
GET  /api/v1/rides/search                 -- open rides by location / date
GET  /api/v1/rides/mine                   -- hosted and joined rides
GET  /api/v1/rides/{ride_id}              -- ride details
GET  /api/v1/rides/{ride_id}/participants -- join records
POST /api/v1/rides/{ride_id}/join         -- book a seat
POST /api/v1/rides/{ride_id}/cancel       -- cancel as driver or rider
POST /api/v1/rides/{ride_id}/start        -- driver starts the ride
POST /api/v1/rides/{ride_id}/complete     -- driver completes the ride

The caller is identified by the ``X-User-Id`` header.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request

from rideshare.api.dependencies import (
    get_booking_engine,
    get_cancellation_engine,
    get_current_user_id,
    get_ride_queries,
    get_ride_service,
)
from rideshare.api.middleware import RATE_LIMIT, limiter
from rideshare.api.schemas import (
    CancellationResponse,
    ErrorResponse,
    JoinedRideResponse,
    MyRidesResponse,
    ParticipantDetail,
    ParticipantResponse,
    RideCreateRequest,
    RideDetailResponse,
    RideResponse,
    RideSummary,
)
from rideshare.services.booking import BookingEngine
from rideshare.services.cancellation import CancellationEngine
from rideshare.services.queries import RideQueries
from rideshare.services.rides import RideDraft, RideService

router = APIRouter(prefix="/rides", tags=["rides"])

_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse, "description": "Concurrent update; retry."},
}


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Host a ride",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    user_id: int = Depends(get_current_user_id),
    service: RideService = Depends(get_ride_service),
):
    return await service.create(user_id, RideDraft(**body.model_dump()))


@router.get(
    "/search",
    response_model=list[RideSummary],
    summary="Search open rides",
)
@limiter.limit(RATE_LIMIT)
async def search_rides(
    request: Request,
    start: Optional[str] = None,
    end: Optional[str] = None,
    date: Optional[date] = None,
    queries: RideQueries = Depends(get_ride_queries),
):
    return await queries.search(start=start, end=end, on_date=date)


@router.get(
    "/mine",
    response_model=MyRidesResponse,
    summary="Rides I host and upcoming rides I joined",
)
@limiter.limit(RATE_LIMIT)
async def my_rides(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    queries: RideQueries = Depends(get_ride_queries),
):
    mine = await queries.mine(user_id)
    joined = [
        JoinedRideResponse(
            **RideSummary.model_validate(p.ride).model_dump(),
            participation_status=p.status,
            share_fare=p.share_fare,
        )
        for p in mine.joined
    ]
    return MyRidesResponse(
        hosted=[RideSummary.model_validate(r) for r in mine.hosted],
        joined=joined,
    )


@router.get(
    "/{ride_id}",
    response_model=RideDetailResponse,
    summary="Ride details",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def get_ride(
    request: Request,
    ride_id: int,
    queries: RideQueries = Depends(get_ride_queries),
):
    return await queries.details(ride_id)


@router.get(
    "/{ride_id}/participants",
    response_model=list[ParticipantDetail],
    summary="Participants of a ride",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def get_participants(
    request: Request,
    ride_id: int,
    queries: RideQueries = Depends(get_ride_queries),
):
    return await queries.participants(ride_id)


@router.post(
    "/{ride_id}/join",
    status_code=201,
    response_model=ParticipantResponse,
    summary="Book a seat",
    description=(
        "Books a seat on an open ride.  The share is the total fare split "
        "by the headcount including the new rider, frozen at booking time."
    ),
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def join_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: BookingEngine = Depends(get_booking_engine),
):
    return await engine.join(ride_id, user_id)


@router.post(
    "/{ride_id}/cancel",
    response_model=CancellationResponse,
    summary="Cancel a ride or a seat",
    description=(
        "A participant gives up their seat; the ride reopens if nobody is "
        "left.  A driver cancelling hands the ride to the earliest-booked "
        "rider, or cancels it outright when nobody is booked."
    ),
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def cancel_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: CancellationEngine = Depends(get_cancellation_engine),
):
    outcome = await engine.cancel(ride_id, user_id)
    return CancellationResponse.model_validate(outcome)


@router.post(
    "/{ride_id}/start",
    response_model=RideResponse,
    summary="Start a ride (driver only)",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def start_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    service: RideService = Depends(get_ride_service),
):
    return await service.start(ride_id, user_id)


@router.post(
    "/{ride_id}/complete",
    response_model=RideResponse,
    summary="Complete a ride (driver only)",
    responses=_ERRORS,
)
@limiter.limit(RATE_LIMIT)
async def complete_ride(
    request: Request,
    ride_id: int,
    user_id: int = Depends(get_current_user_id),
    service: RideService = Depends(get_ride_service),
):
    return await service.complete(ride_id, user_id)
