"""Credit management API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from wellness.api.deps import get_current_user, get_db
from wellness.auth.rbac import Role, ensure_self_or_staff, require_roles
from wellness.schemas.credit import (
    CancellationCreditCreate,
    CancellationQuote,
    CancellationQuoteResult,
    Credit,
    CreditBalance,
    CreditCreated,
    CreditsSummary,
    CreditTransaction,
    CreditUse,
    CreditUseResult,
    ExpirySweepResult,
    ManualCreditCreate,
)
from wellness.services.credit_service import CreditService
from wellness.utils.cancellation import calculate_cancellation_credit, clinic_now, to_clinic_time

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/users/{user_id}/balance", response_model=CreditBalance)
async def get_balance(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditBalance:
    """Get the spendable credit balance of a user."""
    ensure_self_or_staff(current_user, user_id)
    balance = await CreditService(db).get_user_credit_balance(user_id)
    return CreditBalance(user_id=user_id, balance=balance)


@router.get("/users/{user_id}", response_model=list[Credit])
async def list_available_credits(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> list[Credit]:
    """List a user's spendable credits, oldest first."""
    ensure_self_or_staff(current_user, user_id)
    credits = await CreditService(db).get_user_credits(user_id)
    return [Credit.model_validate(credit) for credit in credits]


@router.get("/users/{user_id}/history", response_model=list[Credit])
async def list_credit_history(
    user_id: UUID,
    limit: int = Query(100, ge=1, le=500, description="Maximum number of credits"),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> list[Credit]:
    """List every credit of a user, including used and expired ones, newest first."""
    ensure_self_or_staff(current_user, user_id)
    credits = await CreditService(db).get_user_credits_history(user_id, limit=limit)
    return [Credit.model_validate(credit) for credit in credits]


@router.get("/users/{user_id}/transactions", response_model=list[CreditTransaction])
async def list_transactions(
    user_id: UUID,
    limit: int = Query(50, ge=1, le=500, description="Maximum number of entries"),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> list[CreditTransaction]:
    """List a user's ledger entries, newest first."""
    ensure_self_or_staff(current_user, user_id)
    transactions = await CreditService(db).get_credit_transactions(user_id, limit=limit)
    return [CreditTransaction.model_validate(tx) for tx in transactions]


@router.get("/users/{user_id}/summary", response_model=CreditsSummary)
async def get_summary(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditsSummary:
    """Lifetime credit totals for one user."""
    ensure_self_or_staff(current_user, user_id)
    return await CreditService(db).get_user_credits_summary(user_id)


@router.get("/summaries", response_model=list[CreditsSummary])
@require_roles(Role.ADMIN)
async def list_summaries(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> list[CreditsSummary]:
    """Credit totals for every user holding credits, largest balance first."""
    return await CreditService(db).list_credit_summaries()


@router.post("/quote", response_model=CancellationQuoteResult)
async def quote_cancellation(
    quote: CancellationQuote,
    current_user: dict = Depends(get_current_user),
) -> CancellationQuoteResult:
    """
    Preview the credit a cancellation would earn.

    Nothing is written. Timestamps with an offset are converted to clinic
    wall-clock time; naive ones are taken as clinic time already.
    """
    cancelled_at = to_clinic_time(quote.cancelled_at) if quote.cancelled_at else clinic_now()
    result = calculate_cancellation_credit(
        quote.appointment_amount,
        to_clinic_time(quote.appointment_at),
        cancelled_at,
    )
    return CancellationQuoteResult.model_validate(result)


@router.post("/cancellation", response_model=CreditCreated, status_code=status.HTTP_201_CREATED)
@require_roles(Role.STAFF)
async def create_cancellation_credit(
    credit_data: CancellationCreditCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditCreated:
    """
    Issue a credit for a cancelled appointment.

    The amount is normally the output of the cancellation tier schedule.
    """
    credit_service = CreditService(db)

    try:
        credit_id = await credit_service.create_cancellation_credit(
            user_id=credit_data.user_id,
            appointment_id=credit_data.appointment_id,
            amount=credit_data.amount,
            description=credit_data.description,
            expires_at=credit_data.expires_at,
            current_user=current_user,
        )
        await db.commit()
        return CreditCreated(credit_id=credit_id)
    except Exception:
        await db.rollback()
        raise


@router.post("/manual", response_model=CreditCreated, status_code=status.HTTP_201_CREATED)
@require_roles(Role.ADMIN)
async def create_manual_credit(
    credit_data: ManualCreditCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditCreated:
    """
    Grant a credit by hand.

    Credits can be granted for:
    - Goodwill after a service problem
    - Refunds processed outside the booking flow
    - Promotions
    - Balances migrated from the previous system
    """
    credit_service = CreditService(db)

    try:
        credit_id = await credit_service.create_manual_credit(
            user_id=credit_data.user_id,
            amount=credit_data.amount,
            credit_type=credit_data.credit_type,
            description=credit_data.description,
            expires_at=credit_data.expires_at,
            current_user=current_user,
        )
        await db.commit()
        return CreditCreated(credit_id=credit_id)
    except Exception:
        await db.rollback()
        raise


@router.post("/use", response_model=CreditUseResult)
async def use_credits(
    use_data: CreditUse,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> CreditUseResult:
    """
    Redeem credits against an appointment, oldest credits first.

    Fails with 402 and leaves the balance untouched when the user holds
    less than the requested amount.
    """
    ensure_self_or_staff(current_user, use_data.user_id)
    credit_service = CreditService(db)

    try:
        success = await credit_service.use_credits_for_appointment(
            user_id=use_data.user_id,
            appointment_id=use_data.appointment_id,
            amount_to_use=use_data.amount,
            current_user=current_user,
        )
        balance = await credit_service.get_user_credit_balance(use_data.user_id)
        await db.commit()
        return CreditUseResult(success=success, balance=balance)
    except Exception:
        await db.rollback()
        raise


@router.post("/expire", response_model=ExpirySweepResult)
@require_roles(Role.ADMIN)
async def expire_credits(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> ExpirySweepResult:
    """Run the expiry sweep now instead of waiting for the daily job."""
    credit_service = CreditService(db)

    try:
        expired_count = await credit_service.expire_old_credits()
        await db.commit()
        return ExpirySweepResult(expired_count=expired_count)
    except Exception:
        await db.rollback()
        raise
