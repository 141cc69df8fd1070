from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Numeric, Enum, DateTime, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from binwahab.core.database import Base
import enum


# ---------------- ENUMS ----------------

class ZoneType(str, enum.Enum):
    WEST_MALAYSIA = "WEST_MALAYSIA"
    EAST_MALAYSIA = "EAST_MALAYSIA"


# ---------------- PRODUCT ----------------

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_products_reserved_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    stock = Column(Integer, nullable=False, default=0)
    reserved_stock = Column(Integer, nullable=False, default=0)
    inventory_tracking = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan"
    )

    @property
    def available_stock(self):
        """Quantity available for sale (on hand - reserved)"""
        return self.stock - self.reserved_stock

    def __repr__(self):
        return f"<Product {self.name}>"


# ---------------- PRODUCT VARIANT ----------------

class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_variants_stock_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_variants_reserved_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    sku = Column(String(120), unique=True, nullable=False)
    name = Column(String(255))

    # Falls back to the product price when empty
    price = Column(Numeric(12, 2), nullable=True)

    stock = Column(Integer, nullable=False, default=0)
    reserved_stock = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="variants")

    @property
    def effective_price(self):
        return self.price if self.price is not None else self.product.price

    @property
    def available_stock(self):
        return self.stock - self.reserved_stock

    def __repr__(self):
        return f"<Variant {self.sku}>"


# ---------------- SHIPPING ----------------

class ShippingZone(Base):
    __tablename__ = "shipping_zones"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    type = Column(Enum(ZoneType), nullable=False, index=True)
    is_active = Column(Boolean, default=True)

    rates = relationship(
        "ShippingRate",
        back_populates="zone",
        cascade="all, delete-orphan"
    )


class ShippingRate(Base):
    __tablename__ = "shipping_rates"

    id = Column(Integer, primary_key=True)
    zone_id = Column(Integer, ForeignKey("shipping_zones.id"), nullable=False)
    name = Column(String(120), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    # Open bound when NULL
    min_order_value = Column(Numeric(12, 2), nullable=True)
    max_order_value = Column(Numeric(12, 2), nullable=True)

    is_active = Column(Boolean, default=True)

    zone = relationship("ShippingZone", back_populates="rates")
