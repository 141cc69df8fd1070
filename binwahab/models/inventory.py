from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from binwahab.core.database import Base
import enum


class InventoryTransactionType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    RETURN = "RETURN"
    ADJUSTMENT = "ADJUSTMENT"
    RESERVED = "RESERVED"
    RELEASED = "RELEASED"


class InventoryTransaction(Base):
    """Append-only ledger of every stock mutation."""
    __tablename__ = "inventory_transactions"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    type = Column(Enum(InventoryTransactionType), nullable=False)
    # Signed change to on-hand stock; RESERVED/RELEASED rows carry the units held
    quantity = Column(Integer, nullable=False)
    reason = Column(String(255))

    reference_type = Column(String(50))  # 'order', 'return', 'manual'
    reference_id = Column(Integer)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product")
    variant = relationship("ProductVariant")

    __table_args__ = (
        Index("idx_inventory_tx_product", "product_id", "variant_id"),
        Index("idx_inventory_tx_reference", "reference_type", "reference_id"),
    )
