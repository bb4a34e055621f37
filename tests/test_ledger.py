import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.db import async_session
from app.models import PaymentRecord, PaymentStatus, PaymentType
from app.services import ledger


def _record(order_id="ORDER_1", payment_type=PaymentType.PayHere, status=PaymentStatus.success, **kw):
    return PaymentRecord(
        payment_type=payment_type,
        order_id=order_id,
        amount=Decimal("25.99"),
        currency="USD",
        status=status,
        **kw,
    )


async def _count(session, order_id):
    res = await session.exec(select(PaymentRecord).where(PaymentRecord.order_id == order_id))
    return len(res.all())


async def test_record_payment_writes_once(db_session):
    first, created = await ledger.record_payment(db_session, _record(transaction_id="t1"))
    assert created
    assert first.id is not None
    assert first.created_at is not None

    again, created = await ledger.record_payment(db_session, _record(transaction_id="t2"))
    assert not created
    assert again.id == first.id
    assert again.transaction_id == "t1"
    assert await _count(db_session, "ORDER_1") == 1


async def test_same_order_id_different_processor_is_separate(db_session):
    _, created_payhere = await ledger.record_payment(db_session, _record())
    _, created_paypal = await ledger.record_payment(
        db_session, _record(payment_type=PaymentType.PayPal, status=PaymentStatus.completed)
    )
    assert created_payhere and created_paypal
    assert await _count(db_session, "ORDER_1") == 2


async def test_storage_rejects_second_settled_record(db_session):
    db_session.add(_record())
    await db_session.commit()

    db_session.add(_record())
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


async def test_storage_allows_unsettled_duplicates(db_session):
    db_session.add(_record(status=PaymentStatus.pending))
    db_session.add(_record(status=PaymentStatus.pending))
    await db_session.commit()
    assert await _count(db_session, "ORDER_1") == 2


async def test_concurrent_duplicates_leave_one_record():
    async def deliver():
        async with async_session() as session:
            _, created = await ledger.record_payment(session, _record(order_id="ORDER_RACE"))
            return created

    results = await asyncio.gather(deliver(), deliver(), deliver())
    assert results.count(True) == 1

    async with async_session() as session:
        assert await _count(session, "ORDER_RACE") == 1


async def test_latest_for_trip_returns_newest(db_session):
    assert await ledger.latest_for_trip(db_session, "Ella Hike", PaymentType.PayPal) is None

    await ledger.record_payment(db_session, _record(
        order_id="A", payment_type=PaymentType.PayPal, status=PaymentStatus.approved, trip_name="Ella Hike"))
    await ledger.record_payment(db_session, _record(
        order_id="B", payment_type=PaymentType.PayPal, status=PaymentStatus.completed, trip_name="Ella Hike"))
    await ledger.record_payment(db_session, _record(
        order_id="C", payment_type=PaymentType.PayHere, status=PaymentStatus.success, trip_name="Ella Hike"))

    latest = await ledger.latest_for_trip(db_session, "Ella Hike", PaymentType.PayPal)
    assert latest.order_id == "B"
    assert latest.status is PaymentStatus.completed


async def test_created_at_is_timezone_aware(db_session):
    pending = _record(order_id="ORDER_TZ")
    assert pending.created_at.tzinfo is not None
    assert pending.created_at.utcoffset().total_seconds() == 0

    _, created = await ledger.record_payment(db_session, pending)
    assert created
    assert await _count(db_session, "ORDER_TZ") == 1


async def test_storage_rejects_second_paypal_record_of_any_status(db_session):
    db_session.add(_record(payment_type=PaymentType.PayPal, status=PaymentStatus.approved))
    await db_session.commit()

    db_session.add(_record(payment_type=PaymentType.PayPal, status=PaymentStatus.approved))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


async def test_concurrent_approved_paypal_captures_leave_one_record():
    async def capture():
        async with async_session() as session:
            _, created = await ledger.record_payment(session, _record(
                order_id="ORDER_APPROVED_RACE", payment_type=PaymentType.PayPal, status=PaymentStatus.approved))
            return created

    results = await asyncio.gather(capture(), capture(), capture())
    assert results.count(True) == 1

    async with async_session() as session:
        assert await _count(session, "ORDER_APPROVED_RACE") == 1
