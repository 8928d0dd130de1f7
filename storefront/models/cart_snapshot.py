"""Cart snapshot model - durable copy of a serialized cart."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from storefront.database import Base


class CartSnapshot(Base):
    """
    Cart Snapshot - Serialized cart lines keyed by cart id.

    Lets a cart survive a session reload. The cart itself never reads
    this table; it only produces and consumes the serialized payload.

    One snapshot per cart id (enforced by UNIQUE constraint).
    """

    __tablename__ = 'cart_snapshot'

    # SQLite only autoincrements INTEGER primary keys
    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    cart_id = Column(String(64), nullable=False, unique=True, index=True)
    payload = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<CartSnapshot(id={self.id}, cart_id='{self.cart_id}')>"
