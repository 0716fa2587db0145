# routes/orders.py
from fastapi import APIRouter, Depends, HTTPException

from app.container import Services
from deps.services import get_services
from schemas import OrderStatusOut

router = APIRouter(prefix="/v1/orders", tags=["orders"])


@router.get("/{reference}", response_model=OrderStatusOut)
def get_order_status(reference: str, services: Services = Depends(get_services)):
    view = services.poller.get_status(reference.strip())
    if view is None:
        raise HTTPException(status_code=404, detail={"error": "ORDER_NOT_FOUND"})
    return view.as_dict()
