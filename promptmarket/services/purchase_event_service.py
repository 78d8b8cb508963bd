from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlmodel import Session, select

from promptmarket.models.purchase_event import PurchaseEvent


def log_purchase_event(
    session: Session,
    purchase_id: int,
    event_type: str,
    label: str,
    created_by: str = "system",
    meta: Optional[dict] = None,
):
    """
    Append-only event log for the purchase timeline
    """

    event = PurchaseEvent(
        id=str(uuid4()),
        purchase_id=purchase_id,
        event_type=event_type,
        label=label,
        meta=meta,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )

    session.add(event)


def purchase_timeline(session: Session, purchase_id: int) -> List[PurchaseEvent]:
    return session.exec(
        select(PurchaseEvent)
        .where(PurchaseEvent.purchase_id == purchase_id)
        .order_by(PurchaseEvent.created_at)
    ).all()
