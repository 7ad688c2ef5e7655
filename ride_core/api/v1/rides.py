from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from ride_core.api.dependencies import get_ride_service
from ride_core.core.exceptions import RideCoreException, http_exception_from
from ride_core.schemas import (
    CancelRideRequest,
    EndRideRequest,
    Location,
    RideHistoryResponse,
    RideResponse,
    RideStatsResponse,
    StartRideRequest,
)
from ride_core.services.ride import RideService

router = APIRouter()


@router.post("/rides/start", response_model=RideResponse, status_code=201)
def start_ride(
    request: StartRideRequest,
    ride_service: RideService = Depends(get_ride_service),
):
    try:
        return ride_service.start_ride(
            request.rider_id,
            request.bike_id,
            Location(latitude=request.latitude, longitude=request.longitude),
        )
    except RideCoreException as e:
        raise http_exception_from(e)
    except Exception as e:
        logger.exception(f"Error starting ride: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/rides/{ride_id}/end", response_model=RideResponse)
def end_ride(
    ride_id: str,
    request: EndRideRequest,
    ride_service: RideService = Depends(get_ride_service),
):
    try:
        return ride_service.end_ride(
            ride_id, Location(latitude=request.latitude, longitude=request.longitude)
        )
    except RideCoreException as e:
        raise http_exception_from(e)
    except Exception as e:
        logger.exception(f"Error ending ride {ride_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/rides/{ride_id}/cancel", response_model=RideResponse)
def cancel_ride(
    ride_id: str,
    request: CancelRideRequest,
    ride_service: RideService = Depends(get_ride_service),
):
    try:
        return ride_service.cancel_ride(ride_id, request.rider_id)
    except RideCoreException as e:
        raise http_exception_from(e)
    except Exception as e:
        logger.exception(f"Error cancelling ride {ride_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/rides/{ride_id}", response_model=RideResponse)
def get_ride(
    ride_id: str,
    ride_service: RideService = Depends(get_ride_service),
):
    try:
        return ride_service.get_ride(ride_id)
    except RideCoreException as e:
        raise http_exception_from(e)


@router.get("/riders/{rider_id}/rides", response_model=RideHistoryResponse)
def get_rider_rides(
    rider_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ride_service: RideService = Depends(get_ride_service),
):
    return ride_service.get_rider_rides(rider_id, page, limit)


@router.get("/riders/{rider_id}/rides/active", response_model=Optional[RideResponse])
def get_active_ride(
    rider_id: str,
    ride_service: RideService = Depends(get_ride_service),
):
    return ride_service.get_active_ride(rider_id)


@router.get("/riders/{rider_id}/rides/stats", response_model=RideStatsResponse)
def get_ride_stats(
    rider_id: str,
    ride_service: RideService = Depends(get_ride_service),
):
    return ride_service.get_ride_stats(rider_id)
