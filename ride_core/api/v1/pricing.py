from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.orm import Session

from ride_core.api.dependencies import get_pricing_service, get_session
from ride_core.core.exceptions import RideCoreException, http_exception_from
from ride_core.schemas import PricingSnapshot, PromotionUsageResponse
from ride_core.services.pricing import PricingService

router = APIRouter()


@router.get("/pricing/current", response_model=PricingSnapshot)
def get_current_pricing(
    date: Optional[datetime] = Query(None),
    hour: Optional[int] = Query(None, ge=0, le=23),
    pricing_service: PricingService = Depends(get_pricing_service),
):
    try:
        return pricing_service.resolve_pricing(date, hour)
    except RideCoreException as e:
        raise http_exception_from(e)


@router.post(
    "/pricing/promotions/{promotion_id}/redeem", response_model=PromotionUsageResponse
)
def redeem_promotion(
    promotion_id: str,
    pricing_service: PricingService = Depends(get_pricing_service),
    session: Session = Depends(get_session),
):
    try:
        response = pricing_service.redeem_promotion(promotion_id)
        session.commit()
        return response
    except RideCoreException as e:
        session.rollback()
        raise http_exception_from(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error redeeming promotion {promotion_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
