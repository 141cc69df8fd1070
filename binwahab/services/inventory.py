# binwahab/services/inventory.py
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
import logging

from binwahab.core.exceptions import (
    InsufficientStockException, NotFoundException, ValidationException
)
from binwahab.models.catalog import Product, ProductVariant
from binwahab.models.inventory import InventoryTransaction, InventoryTransactionType
from binwahab.schemas.inventory import StockAdjustmentRequest, StockLevelOut
from binwahab.schemas.users import PaginationParams

logger = logging.getLogger(__name__)


# ================================
# INVENTORY SERVICE
# ================================
class InventoryService:
    """
    Every stock mutation is one conditional UPDATE whose affected-row
    count decides success; nothing here reads a level and writes it back.

    The stock-moving helpers only flush work into the caller's session.
    The caller owns the transaction and commits or rolls back once.
    """

    @staticmethod
    def _target(db: Session, product_id: int, variant_id: Optional[int]):
        product = db.get(Product, product_id)
        if not product:
            raise NotFoundException(f"Product {product_id} not found")

        if variant_id is None:
            return product, Product, product_id

        variant = db.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product_id:
            raise NotFoundException(f"Variant {variant_id} not found for product {product_id}")
        return product, ProductVariant, variant_id

    @staticmethod
    def _guarded_update(db: Session, model, row_id: int, condition, values: dict) -> bool:
        query = db.query(model).filter(model.id == row_id)
        if condition is not None:
            query = query.filter(condition)
        rows = query.update(values, synchronize_session=False)

        instance = db.identity_map.get(db.identity_key(model, row_id))
        if instance is not None:
            db.expire(instance, ["stock", "reserved_stock"])

        return rows == 1

    @staticmethod
    def record_transaction(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        tx_type: InventoryTransactionType,
        quantity: int,
        reason: str,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> InventoryTransaction:
        tx = InventoryTransaction(
            product_id=product_id,
            variant_id=variant_id,
            type=tx_type,
            quantity=quantity,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            created_by=created_by,
        )
        db.add(tx)
        return tx

    # ================================
    # STOCK OPERATIONS
    # ================================

    @staticmethod
    def reserve(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        quantity: int,
        reference_type: str = "order",
        reference_id: Optional[int] = None,
    ) -> bool:
        """Hold stock against a pending order. Returns False for untracked products."""
        if quantity <= 0:
            raise ValidationException("Quantity must be positive")

        product, model, row_id = InventoryService._target(db, product_id, variant_id)
        if not product.inventory_tracking:
            return False

        reserved = InventoryService._guarded_update(
            db, model, row_id,
            model.stock - model.reserved_stock >= quantity,
            {model.reserved_stock: model.reserved_stock + quantity},
        )
        if not reserved:
            raise InsufficientStockException(
                f"Insufficient stock for product {product_id}"
                + (f" variant {variant_id}" if variant_id else "")
                + f". Required: {quantity}"
            )

        InventoryService.record_transaction(
            db, product_id, variant_id, InventoryTransactionType.RESERVED, quantity,
            f"Reserved for {reference_type} {reference_id}", reference_type, reference_id,
        )
        logger.debug(f"Reserved {quantity} of product {product_id} variant {variant_id} ({reference_type}: {reference_id})")
        return True

    @staticmethod
    def release(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        quantity: int,
        reference_type: str = "order",
        reference_id: Optional[int] = None,
    ) -> bool:
        """Give a reservation back without touching on-hand stock."""
        product, model, row_id = InventoryService._target(db, product_id, variant_id)
        if not product.inventory_tracking:
            return False

        released = InventoryService._guarded_update(
            db, model, row_id,
            model.reserved_stock >= quantity,
            {model.reserved_stock: model.reserved_stock - quantity},
        )
        if not released:
            # Reservation already gone; on-hand stock is still right
            logger.warning(
                f"Reservation drift: could not release {quantity} of product {product_id} "
                f"variant {variant_id} for {reference_type} {reference_id}"
            )
            return False

        InventoryService.record_transaction(
            db, product_id, variant_id, InventoryTransactionType.RELEASED, quantity,
            f"Released from {reference_type} {reference_id}", reference_type, reference_id,
        )
        return True

    @staticmethod
    def commit_sale(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        quantity: int,
        reference_type: str = "order",
        reference_id: Optional[int] = None,
    ) -> bool:
        """Turn a reservation into a sale: on-hand and reserved both drop by quantity."""
        product, model, row_id = InventoryService._target(db, product_id, variant_id)
        if not product.inventory_tracking:
            return False

        sold = InventoryService._guarded_update(
            db, model, row_id,
            (model.stock >= quantity) & (model.reserved_stock >= quantity),
            {
                model.stock: model.stock - quantity,
                model.reserved_stock: model.reserved_stock - quantity,
            },
        )
        if not sold:
            raise InsufficientStockException(
                f"Cannot settle {quantity} units of product {product_id}"
                + (f" variant {variant_id}" if variant_id else "")
            )

        InventoryService.record_transaction(
            db, product_id, variant_id, InventoryTransactionType.SALE, -quantity,
            f"Sold on {reference_type} {reference_id}", reference_type, reference_id,
        )
        return True

    @staticmethod
    def restock(
        db: Session,
        product_id: int,
        variant_id: Optional[int],
        quantity: int,
        tx_type: InventoryTransactionType,
        reason: str,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> bool:
        """Put units back on hand (returns, cancellations of paid orders)."""
        if quantity <= 0:
            raise ValidationException("Quantity must be positive")

        product, model, row_id = InventoryService._target(db, product_id, variant_id)
        if not product.inventory_tracking:
            return False

        InventoryService._guarded_update(
            db, model, row_id, None, {model.stock: model.stock + quantity}
        )
        InventoryService.record_transaction(
            db, product_id, variant_id, tx_type, quantity, reason,
            reference_type, reference_id, created_by,
        )
        return True

    # ================================
    # ADMIN
    # ================================

    @staticmethod
    def adjust_stock(db: Session, data: StockAdjustmentRequest, actor_id: int) -> StockLevelOut:
        """Manual correction of on-hand stock; never drops below what is reserved"""
        try:
            product, model, row_id = InventoryService._target(db, data.product_id, data.variant_id)
            if not product.inventory_tracking:
                raise ValidationException(f"Product {product.id} does not track inventory")

            condition = None
            if data.quantity < 0:
                condition = model.stock + data.quantity >= model.reserved_stock

            adjusted = InventoryService._guarded_update(
                db, model, row_id, condition, {model.stock: model.stock + data.quantity}
            )
            if not adjusted:
                raise InsufficientStockException(
                    f"Adjustment of {data.quantity} would drop stock below reserved quantity"
                )

            InventoryService.record_transaction(
                db, data.product_id, data.variant_id, InventoryTransactionType.ADJUSTMENT,
                data.quantity, data.reason, "manual", None, actor_id,
            )
            db.commit()

            logger.info(f"Stock adjusted by {data.quantity} for product {data.product_id} variant {data.variant_id}")
            return InventoryService.stock_level(db, data.product_id, data.variant_id)

        except Exception:
            db.rollback()
            raise

    @staticmethod
    def stock_level(db: Session, product_id: int, variant_id: Optional[int] = None) -> StockLevelOut:
        _, model, row_id = InventoryService._target(db, product_id, variant_id)
        row = db.get(model, row_id)
        return StockLevelOut(
            product_id=product_id,
            variant_id=variant_id,
            stock=row.stock,
            reserved_stock=row.reserved_stock,
            available=row.stock - row.reserved_stock,
        )

    @staticmethod
    def list_transactions(
        db: Session,
        pagination: PaginationParams,
        product_id: Optional[int] = None,
        tx_type: Optional[InventoryTransactionType] = None,
    ) -> Tuple[List[InventoryTransaction], int]:
        query = db.query(InventoryTransaction)

        if product_id:
            query = query.filter(InventoryTransaction.product_id == product_id)

        if tx_type:
            query = query.filter(InventoryTransaction.type == tx_type)

        total = query.count()
        items = (
            query.order_by(InventoryTransaction.id.desc())
            .offset(pagination.offset)
            .limit(pagination.page_size)
            .all()
        )
        return items, total
