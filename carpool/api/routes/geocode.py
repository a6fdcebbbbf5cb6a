"""
Address lookup
==============

GET /api/v1/geocode?q=... -- candidate addresses with coordinates
"""

from fastapi import APIRouter, Depends, Query, Request

from carpool.api.dependencies import get_current_user_id, get_geocoder
from carpool.api.middleware import limiter
from carpool.api.schemas import AddressCandidateResponse
from carpool.config import settings
from carpool.infrastructure.geocoding import MapboxGeocoder

router = APIRouter(
    prefix="/geocode",
    tags=["geocode"],
    dependencies=[Depends(get_current_user_id)],
)


@router.get(
    "",
    response_model=list[AddressCandidateResponse],
    summary="Search addresses",
)
@limiter.limit(settings.rate_limit)
async def geocode(
    request: Request,
    q: str = Query(""),
    geocoder: MapboxGeocoder = Depends(get_geocoder),
):
    return await geocoder.search(q)
