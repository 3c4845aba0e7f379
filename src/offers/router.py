from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from src.database import get_db
from src.auth.dependencies import get_current_user, require_admin
from src.offers.schemas import (
    Offer, OfferCreate, OfferUpdate, OfferValidationRequest, OfferValidationResponse
)
from src.offers.service import OfferEvaluator, OfferService, rejection_error
from src.schemas import MessageResponse

router = APIRouter()

@router.get("", response_model=List[Offer])
def list_active_offers(db: Session = Depends(get_db)):
    """Offers currently running"""
    return OfferService(db).list_active_offers()

@router.get("/admin/all", response_model=List[Offer])
def list_all_offers(db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Every offer, including inactive and expired ones (admin only)"""
    return OfferService(db).list_all_offers()

@router.post("/validate", response_model=OfferValidationResponse)
def validate_offer(
    request: OfferValidationRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Check an offer code against a prospective booking"""
    route = request.route.model_dump(by_alias=True) if request.route else None
    evaluation = OfferEvaluator(db).validate_and_apply(
        request.code, request.booking_amount, request.bus_id, route, current_user.id
    )
    if not evaluation.applied:
        raise rejection_error(evaluation)

    offer = OfferService(db).get_active_offer(evaluation.code)
    return OfferValidationResponse(
        message=evaluation.message,
        code=offer.code,
        title=offer.title,
        discount_type=offer.discount_type,
        discount_value=offer.discount_value,
        discount=evaluation.discount,
        original_amount=evaluation.original_amount,
        final_amount=evaluation.final_amount
    )

@router.get("/{code}", response_model=Offer)
def get_offer(code: str, db: Session = Depends(get_db)):
    """Get an active offer by its code"""
    return OfferService(db).get_active_offer(code)

@router.post("", response_model=Offer, status_code=status.HTTP_201_CREATED)
def create_offer(offer: OfferCreate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Create an offer (admin only)"""
    return OfferService(db).create_offer(offer, admin)

@router.put("/{offer_id}", response_model=Offer)
def update_offer(offer_id: int, offer: OfferUpdate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Update an offer (admin only)"""
    return OfferService(db).update_offer(offer_id, offer)

@router.delete("/{offer_id}", response_model=MessageResponse)
def delete_offer(offer_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Delete an offer (admin only)"""
    OfferService(db).delete_offer(offer_id)
    return {"message": "Offer deleted successfully"}
