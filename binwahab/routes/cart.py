from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session

from binwahab.core.auth_dependencies import get_current_user
from binwahab.core.database import get_db
from binwahab.models.users import User
from binwahab.schemas.ecommerce import CartItemCreate, CartItemUpdate, CartOut
from binwahab.services.cart_service import CartService


cart_router = APIRouter(prefix="/cart", tags=["Cart"])


@cart_router.get("", response_model=CartOut)
def get_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return CartService.to_out(CartService.get_cart(db, current_user))


@cart_router.post("/items", response_model=CartOut, status_code=status.HTTP_201_CREATED)
def add_cart_item(
    data: CartItemCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Add a product (or variant) to the cart.

    - Adding the same product/variant again increases the existing line
    - Tracked products are checked against available stock
    """
    return CartService.to_out(CartService.add_item(db, current_user, data))


@cart_router.patch("/items/{item_id}", response_model=CartOut)
def update_cart_item(
    data: CartItemUpdate,
    item_id: int = Path(..., description="Cart item ID"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Set a line's quantity; 0 removes it."""
    return CartService.to_out(CartService.update_item(db, current_user, item_id, data))


@cart_router.delete("/items/{item_id}", response_model=CartOut)
def remove_cart_item(
    item_id: int = Path(..., description="Cart item ID"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return CartService.to_out(CartService.remove_item(db, current_user, item_id))
