"""Cart Persistence Service - durable cart snapshots (survive session reloads)."""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.models.cart_snapshot import CartSnapshot

logger = logging.getLogger(__name__)


def save_cart_snapshot(session: Session, cart_id: str, payload: Dict[str, Any]) -> CartSnapshot:
    """
    Store the serialized cart for ``cart_id``, replacing any previous one.
    One snapshot per cart.
    """
    body = json.dumps(payload)
    try:
        snapshot = session.query(CartSnapshot).filter(CartSnapshot.cart_id == cart_id).first()
        if snapshot:
            snapshot.payload = body
            snapshot.updated_at = datetime.now()
        else:
            snapshot = CartSnapshot(cart_id=cart_id, payload=body)
            session.add(snapshot)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[CART] Could not save snapshot for cart {cart_id}: {e}")
        raise
    return snapshot


def load_cart_snapshot(session: Session, cart_id: str) -> Optional[Dict[str, Any]]:
    """Serialized cart for ``cart_id``, or None when nothing usable is stored."""
    snapshot = session.query(CartSnapshot).filter(CartSnapshot.cart_id == cart_id).first()
    if not snapshot:
        return None
    try:
        return json.loads(snapshot.payload)
    except json.JSONDecodeError as e:
        logger.warning(f"[CART] Discarding unreadable snapshot for cart {cart_id}: {e}")
        return None


def delete_cart_snapshot(session: Session, cart_id: str) -> None:
    """Remove the stored cart (order placed)."""
    try:
        session.query(CartSnapshot).filter(CartSnapshot.cart_id == cart_id).delete()
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[CART] Could not delete snapshot for cart {cart_id}: {e}")
        raise
