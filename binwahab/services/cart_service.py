# binwahab/services/cart_service.py
from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy.orm import Session

from binwahab.core.exceptions import (
    InsufficientStockException, NotFoundException, ValidationException
)
from binwahab.models.catalog import Product, ProductVariant
from binwahab.models.ecommerce import Cart, CartItem
from binwahab.models.users import User
from binwahab.schemas.ecommerce import CartItemCreate, CartItemOut, CartItemUpdate, CartOut
from binwahab.services.pricing import quantize

logger = logging.getLogger(__name__)


class CartService:

    @staticmethod
    def get_cart(db: Session, user: User) -> Optional[Cart]:
        return db.query(Cart).filter(Cart.user_id == user.id).first()

    @staticmethod
    def get_or_create_cart(db: Session, user: User) -> Cart:
        cart = CartService.get_cart(db, user)
        if not cart:
            cart = Cart(user_id=user.id)
            db.add(cart)
            db.flush()
        return cart

    @staticmethod
    def to_out(cart: Optional[Cart]) -> CartOut:
        if not cart:
            return CartOut()

        items = [CartItemOut.model_validate(item) for item in cart.items]
        subtotal = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
        return CartOut(id=cart.id, items=items, subtotal=quantize(subtotal))

    @staticmethod
    def _check_available(product: Product, variant: Optional[ProductVariant], quantity: int):
        if not product.inventory_tracking:
            return
        available = variant.available_stock if variant else product.available_stock
        if quantity > available:
            raise InsufficientStockException(
                f"Only {available} units of {product.name} available"
            )

    @staticmethod
    def add_item(db: Session, user: User, data: CartItemCreate) -> Cart:
        product = db.get(Product, data.product_id)
        if not product or not product.is_active:
            raise NotFoundException("Product not found")

        variant = None
        if data.variant_id is not None:
            variant = db.get(ProductVariant, data.variant_id)
            if not variant or variant.product_id != product.id:
                raise NotFoundException("Variant not found")
        elif product.variants:
            raise ValidationException("A variant must be selected for this product")

        cart = CartService.get_or_create_cart(db, user)

        # Same product and variant merge into one line
        existing = next(
            (
                item for item in cart.items
                if item.product_id == product.id and item.variant_id == data.variant_id
            ),
            None,
        )
        quantity = data.quantity + (existing.quantity if existing else 0)
        CartService._check_available(product, variant, quantity)

        if existing:
            existing.quantity = quantity
        else:
            cart.items.append(
                CartItem(product_id=product.id, variant_id=data.variant_id, quantity=quantity)
            )

        db.commit()
        db.refresh(cart)
        return cart

    @staticmethod
    def _owned_item(db: Session, user: User, item_id: int) -> CartItem:
        item = (
            db.query(CartItem)
            .join(Cart)
            .filter(CartItem.id == item_id, Cart.user_id == user.id)
            .first()
        )
        if not item:
            raise NotFoundException("Cart item not found")
        return item

    @staticmethod
    def update_item(db: Session, user: User, item_id: int, data: CartItemUpdate) -> Cart:
        item = CartService._owned_item(db, user, item_id)
        cart = item.cart

        if data.quantity == 0:
            cart.items.remove(item)
        else:
            CartService._check_available(item.product, item.variant, data.quantity)
            item.quantity = data.quantity

        db.commit()
        db.refresh(cart)
        return cart

    @staticmethod
    def remove_item(db: Session, user: User, item_id: int) -> Cart:
        item = CartService._owned_item(db, user, item_id)
        cart = item.cart
        cart.items.remove(item)
        db.commit()
        db.refresh(cart)
        return cart
