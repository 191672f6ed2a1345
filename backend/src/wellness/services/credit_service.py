"""Service for issuing, redeeming and expiring user credits."""
from datetime import datetime, timedelta
from itertools import groupby
from operator import attrgetter
from typing import Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from wellness.config import settings
from wellness.exceptions import CreditValidationError, InsufficientCreditError
from wellness.metrics import (
    credit_amount_issued_total,
    credit_amount_redeemed_total,
    credits_expired_total,
    credits_issued_total,
    insufficient_credit_total,
)
from wellness.models.credit import Credit, CreditType
from wellness.models.credit_transaction import CreditTransaction, TransactionType
from wellness.schemas.credit import CreditsSummary

logger = structlog.get_logger(__name__)


def actor_id(current_user: Optional[dict]) -> Optional[UUID]:
    """Extract the caller's user id from JWT claims, if it is a UUID."""
    if not current_user or not current_user.get("sub"):
        return None
    try:
        return UUID(str(current_user["sub"]))
    except ValueError:
        return None


class CreditService:
    """
    Service for the credit ledger.

    Every balance-affecting operation writes its Credit mutation and exactly one
    CreditTransaction in the caller's database transaction. The service flushes
    but never commits; the caller commits or rolls back the unit of work.
    """

    def __init__(self, db: AsyncSession):
        """Initialize credit service with database session."""
        self.db = db

    @staticmethod
    def _available(user_id: UUID, now: datetime):
        """Filter for credits that can still be spent."""
        return and_(
            Credit.user_id == user_id,
            Credit.is_used.is_(False),
            # Expired once expires_at <= now
            or_(Credit.expires_at.is_(None), Credit.expires_at > now),
        )

    async def get_user_credit_balance(self, user_id: UUID, now: Optional[datetime] = None) -> int:
        """
        Sum of unused, unexpired credits for a user.

        Args:
            user_id: Owner of the credits
            now: Reference instant for expiry (defaults to current UTC time)

        Returns:
            Available balance in minor units (0 if none)
        """
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(func.coalesce(func.sum(Credit.amount), 0)).where(self._available(user_id, now))
        )
        return int(result.scalar_one())

    async def get_user_credits(self, user_id: UUID, now: Optional[datetime] = None) -> list[Credit]:
        """
        Get all spendable credits for a user.

        Returns:
            List of available credits, ordered by creation date (oldest first)
        """
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(Credit).where(self._available(user_id, now)).order_by(Credit.created_at, Credit.id)
        )
        return list(result.scalars().all())

    async def get_user_credits_history(self, user_id: UUID, limit: int = 100) -> list[Credit]:
        """
        Get every credit a user has held, spent and expired ones included.

        Returns:
            List of credits, newest first
        """
        result = await self.db.execute(
            select(Credit)
            .where(Credit.user_id == user_id)
            .order_by(Credit.created_at.desc(), Credit.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_credit_transactions(self, user_id: UUID, limit: int = 50) -> list[CreditTransaction]:
        """Ledger entries for a user, newest first."""
        result = await self.db.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def create_cancellation_credit(
        self,
        user_id: UUID,
        appointment_id: UUID,
        amount: int,
        description: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        current_user: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> UUID:
        """
        Issue the credit earned by cancelling an appointment.

        The Credit row and its ``earned`` transaction are added together and
        written in a single flush, so either both exist or neither does.

        Args:
            user_id: User receiving the credit
            appointment_id: Cancelled appointment (source of the credit)
            amount: Credit amount in minor units
            description: Optional free-text description
            expires_at: Optional expiration; cancellation credits do not expire by default
            current_user: JWT claims of the caller, recorded as creator

        Returns:
            The new credit's id

        Raises:
            CreditValidationError: If amount is negative or identifiers are missing
        """
        if user_id is None or appointment_id is None:
            raise CreditValidationError("user_id and appointment_id are required")
        if amount < 0:
            raise CreditValidationError(f"Credit amount must be non-negative, got {amount}")

        now = now or datetime.utcnow()
        created_by = actor_id(current_user)
        description = description or "Credit for cancelled appointment"

        balance = await self.get_user_credit_balance(user_id, now=now)

        credit = Credit(
            id=uuid4(),
            user_id=user_id,
            amount=amount,
            credit_type=CreditType.CANCELLATION,
            description=description,
            expires_at=expires_at,
            is_used=False,
            source_appointment_id=appointment_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        transaction = CreditTransaction(
            user_id=user_id,
            credit_id=credit.id,
            transaction_type=TransactionType.EARNED,
            amount=amount,
            balance_before=balance,
            balance_after=balance + amount,
            description=description,
            appointment_id=appointment_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )

        self.db.add_all([credit, transaction])
        await self.db.flush()

        credits_issued_total.labels(credit_type=CreditType.CANCELLATION.value).inc()
        credit_amount_issued_total.labels(credit_type=CreditType.CANCELLATION.value).inc(amount)

        logger.info(
            "cancellation_credit_created",
            user_id=str(user_id),
            appointment_id=str(appointment_id),
            credit_id=str(credit.id),
            amount=amount,
            balance_after=balance + amount,
        )

        return credit.id

    async def create_manual_credit(
        self,
        user_id: UUID,
        amount: int,
        credit_type: CreditType,
        description: str,
        expires_at: Optional[datetime] = None,
        current_user: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> UUID:
        """
        Grant a credit by hand (admin adjustments, promotions, migrations).

        Manual credits expire after ``settings.credit_expiration_days`` unless an
        explicit expiry is given. Admin adjustments are recorded as
        ``adjustment`` transactions, everything else as ``earned``.

        Raises:
            CreditValidationError: If amount is not positive
        """
        if user_id is None:
            raise CreditValidationError("user_id is required")
        if amount <= 0:
            raise CreditValidationError(f"Manual credit amount must be positive, got {amount}")

        now = now or datetime.utcnow()
        created_by = actor_id(current_user)
        if expires_at is None:
            expires_at = now + timedelta(days=settings.credit_expiration_days)

        balance = await self.get_user_credit_balance(user_id, now=now)

        credit = Credit(
            id=uuid4(),
            user_id=user_id,
            amount=amount,
            credit_type=credit_type,
            description=description,
            expires_at=expires_at,
            is_used=False,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        transaction_type = (
            TransactionType.ADJUSTMENT if credit_type == CreditType.ADMIN_ADJUSTMENT else TransactionType.EARNED
        )
        transaction = CreditTransaction(
            user_id=user_id,
            credit_id=credit.id,
            transaction_type=transaction_type,
            amount=amount,
            balance_before=balance,
            balance_after=balance + amount,
            description=description,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )

        self.db.add_all([credit, transaction])
        await self.db.flush()

        credits_issued_total.labels(credit_type=credit_type.value).inc()
        credit_amount_issued_total.labels(credit_type=credit_type.value).inc(amount)

        logger.info(
            "manual_credit_created",
            user_id=str(user_id),
            credit_id=str(credit.id),
            credit_type=credit_type.value,
            amount=amount,
            created_by=str(created_by) if created_by else None,
        )

        return credit.id

    async def use_credits_for_appointment(
        self,
        user_id: UUID,
        appointment_id: UUID,
        amount_to_use: int,
        current_user: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Redeem credits against an appointment.

        Credits are consumed in FIFO order (oldest first) and each consumed row is
        marked used in full. When the last credit is larger than needed, the
        remainder is reissued as a new unused credit that keeps the original's
        type, expiry, source and creation time, so it sorts ahead of every credit
        issued later. Among credits sharing that exact creation time the order
        falls back to the random id.

        The available rows are locked (SELECT ... FOR UPDATE) before the balance
        check, so concurrent redemptions for the same user serialize.

        Args:
            user_id: Owner of the credits
            appointment_id: Appointment being paid
            amount_to_use: Amount to redeem in minor units

        Returns:
            True on success

        Raises:
            CreditValidationError: If amount_to_use is not positive
            InsufficientCreditError: If the available balance is lower than
                amount_to_use (nothing is modified)
        """
        if user_id is None or appointment_id is None:
            raise CreditValidationError("user_id and appointment_id are required")
        if amount_to_use <= 0:
            raise CreditValidationError(f"Amount to use must be positive, got {amount_to_use}")

        now = now or datetime.utcnow()

        result = await self.db.execute(
            select(Credit)
            .where(self._available(user_id, now))
            .order_by(Credit.created_at, Credit.id)
            .with_for_update()
        )
        available_credits = list(result.scalars().all())
        balance = sum(credit.amount for credit in available_credits)

        if amount_to_use > balance:
            insufficient_credit_total.inc()
            logger.warning(
                "insufficient_credit",
                user_id=str(user_id),
                appointment_id=str(appointment_id),
                requested=amount_to_use,
                available=balance,
            )
            raise InsufficientCreditError(requested=amount_to_use, available=balance)

        remaining = amount_to_use
        consumed: list[Credit] = []

        for credit in available_credits:
            if remaining <= 0:
                break

            credit.is_used = True
            credit.used_at = now
            credit.used_in_appointment_id = appointment_id
            consumed.append(credit)

            if credit.amount > remaining:
                # Reissue what was not needed
                self.db.add(
                    Credit(
                        id=uuid4(),
                        user_id=user_id,
                        amount=credit.amount - remaining,
                        credit_type=credit.credit_type,
                        description=f"Remaining balance of credit {credit.id}",
                        expires_at=credit.expires_at,
                        is_used=False,
                        source_appointment_id=credit.source_appointment_id,
                        created_by=credit.created_by,
                        created_at=credit.created_at,
                        updated_at=now,
                    )
                )
                remaining = 0
            else:
                remaining -= credit.amount

        self.db.add(
            CreditTransaction(
                user_id=user_id,
                credit_id=consumed[0].id if len(consumed) == 1 else None,
                transaction_type=TransactionType.USED,
                amount=-amount_to_use,
                balance_before=balance,
                balance_after=balance - amount_to_use,
                description=f"Credits applied to appointment {appointment_id}",
                appointment_id=appointment_id,
                created_by=actor_id(current_user),
                created_at=now,
                updated_at=now,
            )
        )
        await self.db.flush()

        credit_amount_redeemed_total.inc(amount_to_use)

        logger.info(
            "credits_used",
            user_id=str(user_id),
            appointment_id=str(appointment_id),
            amount=amount_to_use,
            credits_consumed=len(consumed),
            balance_after=balance - amount_to_use,
        )

        return True

    async def expire_old_credits(self, now: Optional[datetime] = None) -> int:
        """
        Sweep unused credits whose expiry has passed.

        Each expired credit gets an ``expired`` transaction for its full amount
        and is marked used at ``now``. Already swept credits are used, so a
        second run finds nothing.

        Returns:
            Number of credits expired
        """
        now = now or datetime.utcnow()

        result = await self.db.execute(
            select(Credit)
            .where(
                and_(
                    Credit.is_used.is_(False),
                    Credit.expires_at.is_not(None),
                    Credit.expires_at <= now,
                )
            )
            .order_by(Credit.user_id, Credit.created_at, Credit.id)
            .with_for_update()
        )
        expired_credits = list(result.scalars().all())

        if not expired_credits:
            logger.info("no_credits_to_expire", now=now.isoformat())
            return 0

        for user_id, group in groupby(expired_credits, key=attrgetter("user_id")):
            user_credits = list(group)

            # Available balance already excludes these credits; walk the ledger
            # down from the pre-sweep total so the last entry lands on it.
            balance_after_sweep = await self.get_user_credit_balance(user_id, now=now)
            running_balance = balance_after_sweep + sum(credit.amount for credit in user_credits)

            for credit in user_credits:
                self.db.add(
                    CreditTransaction(
                        user_id=user_id,
                        credit_id=credit.id,
                        transaction_type=TransactionType.EXPIRED,
                        amount=-credit.amount,
                        balance_before=running_balance,
                        balance_after=running_balance - credit.amount,
                        description=f"Credit expired on {credit.expires_at:%Y-%m-%d}",
                        created_at=now,
                        updated_at=now,
                    )
                )
                running_balance -= credit.amount
                credit.is_used = True
                credit.used_at = now

        await self.db.flush()

        credits_expired_total.inc(len(expired_credits))

        logger.info(
            "credits_expired",
            expired_count=len(expired_credits),
            now=now.isoformat(),
        )

        return len(expired_credits)

    async def get_user_credits_summary(self, user_id: UUID, now: Optional[datetime] = None) -> CreditsSummary:
        """
        Credit totals for one user.

        Earned is the sum of positive ledger entries; used and expired are
        reported as positive magnitudes.
        """
        now = now or datetime.utcnow()

        totals_result = await self.db.execute(
            select(
                func.coalesce(
                    func.sum(case((CreditTransaction.amount > 0, CreditTransaction.amount), else_=0)), 0
                ),
                func.coalesce(
                    func.sum(
                        case(
                            (CreditTransaction.transaction_type == TransactionType.USED, CreditTransaction.amount),
                            else_=0,
                        )
                    ),
                    0,
                ),
                func.coalesce(
                    func.sum(
                        case(
                            (CreditTransaction.transaction_type == TransactionType.EXPIRED, CreditTransaction.amount),
                            else_=0,
                        )
                    ),
                    0,
                ),
            ).where(CreditTransaction.user_id == user_id)
        )
        total_earned, total_used, total_expired = totals_result.one()

        active_result = await self.db.execute(
            select(func.count(Credit.id), func.coalesce(func.sum(Credit.amount), 0)).where(
                self._available(user_id, now)
            )
        )
        active_count, available_balance = active_result.one()

        return CreditsSummary(
            user_id=user_id,
            available_balance=int(available_balance),
            total_earned=int(total_earned),
            total_used=-int(total_used),
            total_expired=-int(total_expired),
            active_credits_count=int(active_count),
        )

    async def list_credit_summaries(self, now: Optional[datetime] = None) -> list[CreditsSummary]:
        """Summaries for every user holding credits, largest available balance first."""
        now = now or datetime.utcnow()

        result = await self.db.execute(select(Credit.user_id).distinct())
        user_ids = [row[0] for row in result.all()]

        summaries = [await self.get_user_credits_summary(user_id, now=now) for user_id in user_ids]
        summaries.sort(key=attrgetter("available_balance"), reverse=True)
        return summaries
