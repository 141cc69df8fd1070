import logging
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from binwahab.core.config import settings
from binwahab.models.catalog import Product, ProductVariant
from binwahab.models.ecommerce import Order, OrderStatus, PaymentStatus
from binwahab.models.returns import Return, ReturnStatus
from binwahab.schemas.inventory import DashboardOut
from binwahab.services.pricing import quantize

logger = logging.getLogger(__name__)


class DashboardService:

    @staticmethod
    def summary(db: Session) -> DashboardOut:
        """Headline numbers for the admin home page. Degrades to zeros on database errors."""
        try:
            total_orders = db.query(func.count(Order.id)).scalar()
            paid_revenue = (
                db.query(func.coalesce(func.sum(Order.total), 0))
                .filter(Order.payment_status == PaymentStatus.PAID)
                .scalar()
            )
            pending_orders = (
                db.query(func.count(Order.id))
                .filter(Order.status == OrderStatus.PENDING)
                .scalar()
            )
            pending_returns = (
                db.query(func.count(Return.id))
                .filter(Return.status == ReturnStatus.PENDING)
                .scalar()
            )

            threshold = settings.LOW_STOCK_THRESHOLD
            low_products = (
                db.query(func.count(Product.id))
                .filter(
                    Product.inventory_tracking.is_(True),
                    Product.is_active.is_(True),
                    ~Product.variants.any(),
                    Product.stock - Product.reserved_stock <= threshold,
                )
                .scalar()
            )
            low_variants = (
                db.query(func.count(ProductVariant.id))
                .join(Product, ProductVariant.product_id == Product.id)
                .filter(
                    Product.inventory_tracking.is_(True),
                    Product.is_active.is_(True),
                    ProductVariant.stock - ProductVariant.reserved_stock <= threshold,
                )
                .scalar()
            )

            return DashboardOut(
                total_orders=total_orders,
                paid_revenue=quantize(Decimal(str(paid_revenue))),
                pending_orders=pending_orders,
                pending_returns=pending_returns,
                low_stock_items=low_products + low_variants,
            )

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Dashboard query failed: {e}")
            return DashboardOut(error="Dashboard data is temporarily unavailable")
