from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.database import get_db
from src.auth.dependencies import require_admin
from src.buses.schemas import (
    Bus, BusCreate, BusUpdate, BusDetail, BusSearchResult, BusRoutes, SeatAvailability
)
from src.buses.service import BusService
from src.schemas import MessageResponse

router = APIRouter()

@router.get("", response_model=List[Bus])
def list_buses(
    from_city: Optional[str] = Query(None, alias="from", description="Origin contains"),
    to_city: Optional[str] = Query(None, alias="to", description="Destination contains"),
    bus_type: Optional[str] = Query(None, alias="busType"),
    status_filter: Optional[str] = Query(None, alias="status", description="Defaults to active"),
    db: Session = Depends(get_db)
):
    """List buses"""
    return BusService(db).list_buses(from_city, to_city, bus_type, status_filter)

@router.get("/search", response_model=List[BusSearchResult])
def search_buses(
    from_city: Optional[str] = Query(None, alias="from"),
    to_city: Optional[str] = Query(None, alias="to"),
    journey_date: Optional[str] = Query(None, alias="date", description="Travel date (YYYY-MM-DD)"),
    db: Session = Depends(get_db)
):
    """Search active buses on a route"""
    return BusService(db).search_buses(from_city, to_city, journey_date)

@router.get("/routes/all", response_model=BusRoutes)
def get_all_routes(db: Session = Depends(get_db)):
    """Get every origin and destination served"""
    return BusService(db).get_routes()

@router.get("/{bus_id}", response_model=BusDetail)
def get_bus(bus_id: int, db: Session = Depends(get_db)):
    """Get bus details with rating"""
    return BusService(db).get_bus_detail(bus_id)

@router.get("/{bus_id}/seats/{journey_date}", response_model=SeatAvailability)
def get_bus_seats(bus_id: int, journey_date: str, db: Session = Depends(get_db)):
    """Seat map of a bus for one travel date"""
    return BusService(db).get_seat_availability(bus_id, journey_date)

# Admin endpoints
@router.post("", response_model=Bus, status_code=status.HTTP_201_CREATED)
def create_bus(bus: BusCreate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Create a new bus (admin only)"""
    return BusService(db).create_bus(bus)

@router.put("/{bus_id}", response_model=Bus)
def update_bus(bus_id: int, bus: BusUpdate, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Update a bus (admin only)"""
    return BusService(db).update_bus(bus_id, bus)

@router.delete("/{bus_id}", response_model=MessageResponse)
def delete_bus(bus_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Delete or retire a bus (admin only)"""
    return {"message": BusService(db).delete_bus(bus_id)}
