from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Numeric, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from binwahab.core.database import Base
import enum


class ReturnStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ItemCondition(str, enum.Enum):
    NEW = "NEW"
    LIKE_NEW = "LIKE_NEW"
    USED = "USED"
    DAMAGED = "DAMAGED"


class RefundMethod(str, enum.Enum):
    CREDIT_CARD = "CREDIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    STORE_CREDIT = "STORE_CREDIT"
    E_WALLET = "E_WALLET"


class RefundStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Return(Base):
    __tablename__ = "returns"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    status = Column(
        Enum(ReturnStatus),
        nullable=False,
        default=ReturnStatus.PENDING,
        index=True,
    )
    reason = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)

    decided_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="returns")
    items = relationship(
        "ReturnItem",
        back_populates="return_request",
        cascade="all, delete-orphan",
    )
    refund = relationship(
        "Refund",
        back_populates="return_request",
        uselist=False,
        cascade="all, delete-orphan",
    )


class ReturnItem(Base):
    __tablename__ = "return_items"

    id = Column(Integer, primary_key=True)
    return_id = Column(
        Integer,
        ForeignKey("returns.id", ondelete="CASCADE"),
        nullable=False
    )
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    quantity = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=False)
    condition = Column(Enum(ItemCondition), nullable=False, default=ItemCondition.NEW)

    return_request = relationship("Return", back_populates="items")
    order_item = relationship("OrderItem")


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True)
    return_id = Column(
        Integer,
        ForeignKey("returns.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(Enum(RefundMethod), nullable=True)
    status = Column(Enum(RefundStatus), nullable=False, default=RefundStatus.PENDING)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    return_request = relationship("Return", back_populates="refund")
