from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from binwahab.core.auth_dependencies import get_current_user
from binwahab.core.database import get_db
from binwahab.models.users import User
from binwahab.schemas.ecommerce import AddressCreate, AddressOut
from binwahab.services.address_service import AddressService


address_router = APIRouter(prefix="/addresses", tags=["Addresses"])


@address_router.get("", response_model=list[AddressOut])
def list_addresses(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return AddressService.list(db, current_user)


@address_router.post("", response_model=AddressOut, status_code=status.HTTP_201_CREATED)
def create_address(
    payload: AddressCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Save a shipping address. The first one saved becomes the default.
    """
    return AddressService.create(db, current_user, payload)
