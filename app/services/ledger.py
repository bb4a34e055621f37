"""
Payment ledger: append-only storage of completed payments.

A record is written at most once per ``(order_id, payment_type)``. The
read-check-then-write in ``record_payment`` handles sequential replays; the
partial unique index on settled records catches concurrent duplicates, whose
losing insert is rolled back and reported as not created.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..errors import PersistenceError
from ..models import PaymentRecord, PaymentType

logger = logging.getLogger(__name__)


async def find_record(session: AsyncSession, order_id: str, payment_type: PaymentType) -> Optional[PaymentRecord]:
    q = (
        select(PaymentRecord)
        .where(PaymentRecord.order_id == order_id)
        .where(PaymentRecord.payment_type == payment_type)
        .order_by(PaymentRecord.created_at.desc())
    )
    try:
        res = await session.exec(q)
        return res.first()
    except SQLAlchemyError as e:
        logger.exception("Ledger lookup failed for %s order %s", payment_type.value, order_id)
        raise PersistenceError("Failed to read payment ledger", details=str(e))


async def latest_for_trip(session: AsyncSession, trip_name: str, payment_type: PaymentType) -> Optional[PaymentRecord]:
    q = (
        select(PaymentRecord)
        .where(PaymentRecord.trip_name == trip_name)
        .where(PaymentRecord.payment_type == payment_type)
        .order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc())
    )
    try:
        res = await session.exec(q)
        return res.first()
    except SQLAlchemyError as e:
        logger.exception("Ledger lookup failed for trip %r", trip_name)
        raise PersistenceError("Failed to read payment ledger", details=str(e))


async def record_payment(session: AsyncSession, record: PaymentRecord) -> Tuple[PaymentRecord, bool]:
    """
    Persist ``record`` unless one already exists for its order.

    Returns ``(record, created)``; when ``created`` is False the returned
    record is the one already in the ledger.
    """
    existing = await find_record(session, record.order_id, record.payment_type)
    if existing:
        logger.info("%s order %s already recorded (status=%s)",
                    record.payment_type.value, record.order_id, existing.status.value)
        return existing, False

    session.add(record)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        winner = await find_record(session, record.order_id, record.payment_type)
        if winner is None:
            logger.exception("Failed to save %s payment %s", record.payment_type.value, record.order_id)
            raise PersistenceError("Failed to save payment", details=str(e))
        logger.warning("Concurrent duplicate for %s order %s discarded",
                       record.payment_type.value, record.order_id)
        return winner, False
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Failed to save %s payment %s", record.payment_type.value, record.order_id)
        raise PersistenceError("Failed to save payment", details=str(e))

    await session.refresh(record)
    logger.info("Recorded %s payment %s (status=%s, amount=%s %s)",
                record.payment_type.value, record.order_id, record.status.value,
                record.amount, record.currency)
    return record, True
