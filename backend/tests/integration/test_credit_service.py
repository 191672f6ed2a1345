"""Integration tests for the credit ledger service."""
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wellness.exceptions import CreditValidationError, InsufficientCreditError
from wellness.models.credit import Credit, CreditType
from wellness.models.credit_transaction import CreditTransaction, TransactionType
from wellness.services.credit_service import CreditService
from utils.factories import CreditFactory

NOW = datetime(2025, 9, 1, 12, 0)


async def _ledger_sum(db: AsyncSession, user_id) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(CreditTransaction.user_id == user_id)
    )
    return int(result.scalar_one())


async def _ledger(db: AsyncSession, user_id) -> list[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at, CreditTransaction.balance_before.desc())
    )
    return list(result.scalars().all())


async def _issue(service: CreditService, user_id, amount: int, at: datetime, **kwargs):
    return await service.create_cancellation_credit(
        user_id=user_id,
        appointment_id=uuid4(),
        amount=amount,
        now=at,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_cancellation_credit_creates_credit_and_earned_entry(db_session: AsyncSession) -> None:
    """Issuing a credit writes one unused row and one earned ledger entry."""
    service = CreditService(db_session)
    user_id = uuid4()
    appointment_id = uuid4()

    credit_id = await service.create_cancellation_credit(
        user_id=user_id,
        appointment_id=appointment_id,
        amount=75000,
        current_user={"sub": str(uuid4()), "role": "staff"},
        now=NOW,
    )
    await db_session.commit()

    credit = await db_session.get(Credit, credit_id)
    assert credit.amount == 75000
    assert credit.credit_type == CreditType.CANCELLATION
    assert credit.is_used is False
    assert credit.source_appointment_id == appointment_id
    assert credit.created_by is not None

    ledger = await _ledger(db_session, user_id)
    assert len(ledger) == 1
    assert ledger[0].transaction_type == TransactionType.EARNED
    assert ledger[0].credit_id == credit_id
    assert (ledger[0].balance_before, ledger[0].amount, ledger[0].balance_after) == (0, 75000, 75000)

    assert await service.get_user_credit_balance(user_id, now=NOW) == 75000


@pytest.mark.asyncio
async def test_zero_amount_credit_is_recorded(db_session: AsyncSession) -> None:
    service = CreditService(db_session)
    user_id = uuid4()

    await _issue(service, user_id, 0, NOW)

    assert await service.get_user_credit_balance(user_id, now=NOW) == 0
    assert len(await _ledger(db_session, user_id)) == 1


@pytest.mark.asyncio
async def test_negative_amount_is_rejected_without_writes(db_session: AsyncSession) -> None:
    service = CreditService(db_session)
    user_id = uuid4()

    with pytest.raises(CreditValidationError):
        await _issue(service, user_id, -100, NOW)

    assert await _ledger(db_session, user_id) == []


@pytest.mark.asyncio
async def test_failed_balance_read_leaves_no_partial_credit(db_session: AsyncSession, monkeypatch) -> None:
    """If issuing fails midway, neither the credit nor its ledger entry exists."""
    service = CreditService(db_session)
    user_id = uuid4()

    async def broken_balance(*args, **kwargs):
        raise RuntimeError("connection lost")

    monkeypatch.setattr(service, "get_user_credit_balance", broken_balance)

    with pytest.raises(RuntimeError):
        await _issue(service, user_id, 50000, NOW)
    await db_session.rollback()

    credits = await db_session.execute(select(Credit).where(Credit.user_id == user_id))
    assert credits.scalars().all() == []
    assert await _ledger(db_session, user_id) == []


@pytest.mark.asyncio
async def test_rejected_ledger_insert_rolls_back_credit(db_session: AsyncSession) -> None:
    """A ledger row that fails its balance check takes the credit row down with it."""
    service = CreditService(db_session)
    user_id = uuid4()

    def corrupt_balance(mapper, connection, target):
        target.balance_after = target.balance_before + target.amount + 1

    event.listen(CreditTransaction, "before_insert", corrupt_balance)
    try:
        with pytest.raises(IntegrityError):
            await _issue(service, user_id, 50000, NOW)
    finally:
        event.remove(CreditTransaction, "before_insert", corrupt_balance)
    await db_session.rollback()

    credits = await db_session.execute(select(Credit).where(Credit.user_id == user_id))
    assert credits.scalars().all() == []
    assert await _ledger(db_session, user_id) == []


@pytest.mark.asyncio
async def test_balance_ignores_used_and_expired_credits(db_session: AsyncSession) -> None:
    user_id = uuid4()
    db_session.add_all(
        [
            Credit(**CreditFactory.create({"user_id": user_id, "amount": 10000, "expires_at": None})),
            Credit(**CreditFactory.create({"user_id": user_id, "amount": 20000, "expires_at": NOW + timedelta(days=1)})),
            Credit(**CreditFactory.create({"user_id": user_id, "amount": 40000, "expires_at": NOW})),
            Credit(**CreditFactory.create({"user_id": user_id, "amount": 80000, "is_used": True, "used_at": NOW})),
        ]
    )
    await db_session.commit()

    service = CreditService(db_session)

    # Expired exactly at now counts as expired
    assert await service.get_user_credit_balance(user_id, now=NOW) == 30000
    assert len(await service.get_user_credits(user_id, now=NOW)) == 2
    assert await service.get_user_credit_balance(uuid4(), now=NOW) == 0


@pytest.mark.asyncio
async def test_credit_history_includes_used_and_expired_credits(db_session: AsyncSession) -> None:
    """History lists spent and expired credits next to live ones, newest first."""
    service = CreditService(db_session)
    user_id = uuid4()
    spent = await _issue(service, user_id, 10000, NOW - timedelta(days=3))
    lapsed = await _issue(service, user_id, 20000, NOW - timedelta(days=2), expires_at=NOW - timedelta(hours=1))
    live = await _issue(service, user_id, 30000, NOW - timedelta(days=1))
    await service.use_credits_for_appointment(user_id, uuid4(), 10000, now=NOW)
    await service.expire_old_credits(now=NOW)
    await db_session.commit()

    history = await service.get_user_credits_history(user_id)

    assert [credit.id for credit in history] == [live, lapsed, spent]
    assert [credit.is_used for credit in history] == [False, True, True]
    assert [credit.id for credit in await service.get_user_credits(user_id, now=NOW)] == [live]


@pytest.mark.asyncio
async def test_insufficient_credit_leaves_balance_unchanged(db_session: AsyncSession) -> None:
    """Redeeming 60000 against a 50000 balance fails and changes nothing."""
    service = CreditService(db_session)
    user_id = uuid4()
    await _issue(service, user_id, 50000, NOW)
    await db_session.commit()

    with pytest.raises(InsufficientCreditError) as exc_info:
        await service.use_credits_for_appointment(user_id, uuid4(), 60000, now=NOW)

    assert exc_info.value.requested == 60000
    assert exc_info.value.available == 50000
    assert str(exc_info.value) == "Insufficient credit: requested 60000, available 50000"
    assert await service.get_user_credit_balance(user_id, now=NOW) == 50000
    assert len(await _ledger(db_session, user_id)) == 1


@pytest.mark.asyncio
async def test_use_credits_consumes_oldest_first_and_reissues_remainder(db_session: AsyncSession) -> None:
    service = CreditService(db_session)
    user_id = uuid4()
    oldest = await _issue(service, user_id, 30000, NOW - timedelta(days=3))
    middle = await _issue(service, user_id, 30000, NOW - timedelta(days=2))
    newest = await _issue(service, user_id, 30000, NOW - timedelta(days=1))
    await db_session.commit()

    appointment_id = uuid4()
    assert await service.use_credits_for_appointment(user_id, appointment_id, 45000, now=NOW) is True
    await db_session.commit()

    assert (await db_session.get(Credit, oldest)).is_used is True
    assert (await db_session.get(Credit, middle)).is_used is True
    assert (await db_session.get(Credit, middle)).used_in_appointment_id == appointment_id
    assert (await db_session.get(Credit, newest)).is_used is False

    remaining = await service.get_user_credits(user_id, now=NOW)
    assert sorted(credit.amount for credit in remaining) == [15000, 30000]

    # The remainder sorts ahead of later-issued credits
    remainder = next(credit for credit in remaining if credit.amount == 15000)
    assert remainder.created_at == NOW - timedelta(days=2)
    assert remaining[0].id == remainder.id

    assert await service.get_user_credit_balance(user_id, now=NOW) == 45000

    used = [tx for tx in await _ledger(db_session, user_id) if tx.transaction_type == TransactionType.USED]
    assert len(used) == 1
    assert (used[0].balance_before, used[0].amount, used[0].balance_after) == (90000, -45000, 45000)
    assert used[0].appointment_id == appointment_id
    assert used[0].credit_id is None


@pytest.mark.asyncio
async def test_use_credits_exact_single_credit_links_ledger_entry(db_session: AsyncSession) -> None:
    service = CreditService(db_session)
    user_id = uuid4()
    credit_id = await _issue(service, user_id, 25000, NOW - timedelta(hours=1))

    await service.use_credits_for_appointment(user_id, uuid4(), 25000, now=NOW)
    await db_session.commit()

    assert await service.get_user_credit_balance(user_id, now=NOW) == 0
    assert await service.get_user_credits(user_id, now=NOW) == []
    used = (await service.get_credit_transactions(user_id))[0]
    assert used.transaction_type == TransactionType.USED
    assert used.credit_id == credit_id


@pytest.mark.asyncio
async def test_use_credits_rejects_non_positive_amount(db_session: AsyncSession) -> None:
    service = CreditService(db_session)

    with pytest.raises(CreditValidationError):
        await service.use_credits_for_appointment(uuid4(), uuid4(), 0, now=NOW)


@pytest.mark.asyncio
async def test_expire_old_credits_is_idempotent(db_session: AsyncSession) -> None:
    service = CreditService(db_session)
    user_id = uuid4()
    await _issue(service, user_id, 10000, NOW - timedelta(days=10), expires_at=NOW - timedelta(days=1))
    await _issue(service, user_id, 20000, NOW - timedelta(days=9), expires_at=NOW - timedelta(hours=1))
    await _issue(service, user_id, 40000, NOW - timedelta(days=8), expires_at=NOW + timedelta(days=30))
    await _issue(service, user_id, 5000, NOW - timedelta(days=7))
    await db_session.commit()

    assert await service.expire_old_credits(now=NOW) == 2
    await db_session.commit()
    assert await service.expire_old_credits(now=NOW) == 0

    assert await service.get_user_credit_balance(user_id, now=NOW) == 45000

    expired = [tx for tx in await _ledger(db_session, user_id) if tx.transaction_type == TransactionType.EXPIRED]
    assert len(expired) == 2
    assert sorted(tx.amount for tx in expired) == [-20000, -10000]
    assert min(tx.balance_after for tx in expired) == 45000
    for tx in expired:
        assert tx.balance_after == tx.balance_before + tx.amount


@pytest.mark.asyncio
async def test_ledger_reconciles_with_available_balance(db_session: AsyncSession) -> None:
    """Sum of all ledger entries equals the balance after earn, use and expiry."""
    service = CreditService(db_session)
    user_id = uuid4()
    await _issue(service, user_id, 100000, NOW - timedelta(days=5))
    await _issue(service, user_id, 30000, NOW - timedelta(days=4), expires_at=NOW - timedelta(days=1))
    await service.create_manual_credit(
        user_id=user_id,
        amount=15000,
        credit_type=CreditType.PROMOTION,
        description="Welcome promotion",
        now=NOW - timedelta(days=3),
    )
    await service.use_credits_for_appointment(user_id, uuid4(), 70000, now=NOW - timedelta(days=2))
    await service.expire_old_credits(now=NOW)
    await db_session.commit()

    balance = await service.get_user_credit_balance(user_id, now=NOW)
    assert balance == 100000 + 15000 - 70000
    assert await _ledger_sum(db_session, user_id) == balance


@pytest.mark.asyncio
async def test_manual_credit_defaults_expiry_and_records_adjustment(db_session: AsyncSession) -> None:
    from wellness.config import settings

    service = CreditService(db_session)
    user_id = uuid4()

    credit_id = await service.create_manual_credit(
        user_id=user_id,
        amount=12000,
        credit_type=CreditType.ADMIN_ADJUSTMENT,
        description="Goodwill after late start",
        now=NOW,
    )
    await db_session.commit()

    credit = await db_session.get(Credit, credit_id)
    assert credit.expires_at == NOW + timedelta(days=settings.credit_expiration_days)
    ledger = await _ledger(db_session, user_id)
    assert ledger[0].transaction_type == TransactionType.ADJUSTMENT

    with pytest.raises(CreditValidationError):
        await service.create_manual_credit(
            user_id=user_id,
            amount=0,
            credit_type=CreditType.PROMOTION,
            description="Nothing",
            now=NOW,
        )


@pytest.mark.asyncio
async def test_credit_summaries(db_session: AsyncSession) -> None:
    service = CreditService(db_session)
    big_user, small_user = uuid4(), uuid4()
    await _issue(service, big_user, 80000, NOW - timedelta(days=5))
    await _issue(service, big_user, 10000, NOW - timedelta(days=4), expires_at=NOW - timedelta(days=1))
    await service.use_credits_for_appointment(big_user, uuid4(), 30000, now=NOW - timedelta(days=3))
    await _issue(service, small_user, 5000, NOW - timedelta(days=1))
    await service.expire_old_credits(now=NOW)
    await db_session.commit()

    summary = await service.get_user_credits_summary(big_user, now=NOW)
    assert summary.available_balance == 50000
    assert summary.total_earned == 90000
    assert summary.total_used == 30000
    assert summary.total_expired == 10000
    assert summary.active_credits_count == 1

    summaries = await service.list_credit_summaries(now=NOW)
    assert [s.user_id for s in summaries] == [big_user, small_user]
