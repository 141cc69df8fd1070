from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from binwahab.core.database import get_db
from binwahab.schemas.ecommerce import ShippingQuoteOut, ShippingQuoteRequest
from binwahab.services.pricing import PricingService


shipping_router = APIRouter(prefix="/shipping", tags=["Shipping"])


@shipping_router.post("/calculate", response_model=ShippingQuoteOut)
def calculate_shipping(data: ShippingQuoteRequest, db: Session = Depends(get_db)):
    """
    Preview the shipping cost for a destination state and order value.
    Sabah, Sarawak and Labuan ship at East Malaysia rates.
    """
    zone, cost = PricingService.shipping_cost(db, data.state, data.order_value)
    return ShippingQuoteOut(zone=zone, cost=cost)
