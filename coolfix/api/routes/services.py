"""
Services API routes.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session
from pydantic import BaseModel

from coolfix.lib.db import get_db
from coolfix.models.services import Service, ServiceCategory


# Pydantic schemas
class ServiceResponse(BaseModel):
    """Catalog entry as shown on the booking form."""
    id: UUID
    name: str
    category: str
    description: Optional[str] = None
    icon: str
    base_price: float
    is_emergency: bool = False
    active: bool = True

    model_config = {"from_attributes": True}


# Router
router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=List[ServiceResponse])
def list_services(
    category: Optional[ServiceCategory] = Query(None, description="Filter by category"),
    active_only: bool = Query(True, description="Show only active services"),
    db: Session = Depends(get_db),
) -> List[ServiceResponse]:
    """
    List bookable services.

    Query parameters:
    - category: Filter by appliance category (ac, refrigerator, washing-machine, stove, general)
    - active_only: Show only active services (default: true)
    """
    stmt = select(Service)

    if active_only:
        stmt = stmt.where(Service.active == True)  # noqa: E712

    if category:
        stmt = stmt.where(Service.category == category)

    stmt = stmt.order_by(Service.category, Service.name)
    services = db.execute(stmt).scalars().all()

    return [
        ServiceResponse(
            id=s.id,
            name=s.name,
            category=s.category.value,
            description=s.description,
            icon=s.icon,
            base_price=float(s.base_price),
            is_emergency=s.is_emergency,
            active=s.active,
        )
        for s in services
    ]
