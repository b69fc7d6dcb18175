"""Credit ledger: the only writer of user credit balances."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import get_credit_config
from database import async_session_maker
from models.credit_transaction import ADDITION_TYPES, CHARGE_TYPES, REFUND_TYPE, CreditTransaction
from models.user import User

logger = logging.getLogger(__name__)

MAX_LEDGER_ATTEMPTS = 3
FREE_TIER = "free"


class CreditLedgerError(Exception):
    """Base class for ledger failures."""


class InsufficientCreditsError(CreditLedgerError):
    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits. Required: {required}, available: {available}.")


class UserNotFoundError(CreditLedgerError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User not found.")


class LedgerConflictError(CreditLedgerError):
    """Balance kept changing underneath a write; the caller may retry later."""


def _reference_key(prefix: str, job_id: Optional[str], derived_job_id: Optional[str]) -> Optional[str]:
    if job_id:
        return f"{prefix}:job:{job_id}"
    if derived_job_id:
        return f"{prefix}:derived:{derived_job_id}"
    return None


def _serialize_entry(entry: CreditTransaction, *, replayed: bool = False) -> Dict[str, Any]:
    return {
        "transaction_id": entry.id,
        "type": entry.type,
        "amount": int(entry.amount),
        "balance_before": int(entry.user_credits_before),
        "balance_after": int(entry.user_credits_after),
        "replayed": replayed,
    }


async def _find_by_key(db: AsyncSession, key: Optional[str]) -> Optional[CreditTransaction]:
    if not key:
        return None
    result = await db.execute(select(CreditTransaction).where(CreditTransaction.idempotency_key == key))
    return result.scalar_one_or_none()


async def _apply_balance_change(
    db: AsyncSession,
    user_id: str,
    *,
    kind: str,
    next_balance: Callable[[int, str], int],
    amount: Callable[[int, int], int],
    job_id: Optional[str] = None,
    derived_job_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    description: Optional[str] = None,
    minutes: Optional[int] = None,
    user_values: Optional[Callable[[int, int], Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Move a balance and append its audit row in one transaction.

    The balance write is a compare-and-set on the value read, so a concurrent
    writer makes the UPDATE match zero rows and the whole attempt is retried.
    A duplicate idempotency key aborts the transaction and returns the row
    that already exists.
    """
    for attempt in range(1, MAX_LEDGER_ATTEMPTS + 1):
        existing = await _find_by_key(db, idempotency_key)
        if existing is not None:
            return _serialize_entry(existing, replayed=True)

        row = (
            await db.execute(select(User.credit_balance, User.subscription_tier).where(User.id == user_id))
        ).one_or_none()
        if row is None:
            raise UserNotFoundError(user_id)
        before = int(row.credit_balance or 0)
        after = next_balance(before, row.subscription_tier)
        if after < 0:
            raise InsufficientCreditsError(required=before - after, available=before)

        values: Dict[str, Any] = {"credit_balance": after}
        if user_values is not None:
            values.update(user_values(before, after))
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.credit_balance == before)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.info("Credit balance for user %s changed concurrently (attempt %s)", user_id, attempt)
            continue

        entry = CreditTransaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            job_id=job_id,
            derived_job_id=derived_job_id,
            idempotency_key=idempotency_key,
            amount=amount(before, after),
            type=kind,
            description=description,
            video_length_minutes_charged=minutes,
            user_credits_before=before,
            user_credits_after=after,
        )
        db.add(entry)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            existing = await _find_by_key(db, idempotency_key)
            if existing is None:
                raise
            return _serialize_entry(existing, replayed=True)
        return _serialize_entry(entry)

    logger.critical("Credit ledger write for user %s lost %s races", user_id, MAX_LEDGER_ATTEMPTS)
    raise LedgerConflictError(f"Could not update credits for user {user_id}; retry later.")


async def get_credit_balance(user_id: str, db: AsyncSession) -> int:
    result = await db.execute(select(User.credit_balance).where(User.id == user_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise UserNotFoundError(user_id)
    return int(balance)


async def reserve_credits(
    user_id: str,
    amount: int,
    kind: str,
    db: AsyncSession,
    *,
    job_id: Optional[str] = None,
    derived_job_id: Optional[str] = None,
    minutes: Optional[int] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Charge credits for a job.

    Charging the same job twice returns the original charge. Raises
    InsufficientCreditsError without touching the balance when it is short.
    """
    if kind not in CHARGE_TYPES:
        raise ValueError(f"{kind!r} is not a charge type")
    charge = int(amount)
    if charge < 0:
        raise ValueError("amount must be >= 0")

    return await _apply_balance_change(
        db,
        user_id,
        kind=kind,
        next_balance=lambda before, _tier: before - charge,
        amount=lambda _before, _after: charge,
        job_id=job_id,
        derived_job_id=derived_job_id,
        idempotency_key=_reference_key(f"charge:{kind}", job_id, derived_job_id),
        description=description,
        minutes=minutes,
    )


async def _charged_for_reference(
    db: AsyncSession, user_id: str, job_id: Optional[str], derived_job_id: Optional[str]
) -> int:
    query = select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
        CreditTransaction.user_id == user_id,
        CreditTransaction.type.in_(CHARGE_TYPES),
    )
    if job_id:
        query = query.where(CreditTransaction.job_id == job_id)
    else:
        query = query.where(CreditTransaction.derived_job_id == derived_job_id)
    result = await db.execute(query)
    return int(result.scalar() or 0)


async def refund_credits(
    user_id: str,
    amount: int,
    db: AsyncSession,
    *,
    job_id: Optional[str] = None,
    derived_job_id: Optional[str] = None,
    description: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Return a job's charge after it failed.

    At most one refund is written per job and it never exceeds what the job
    was charged. Returns None when there is nothing to refund.
    """
    if not job_id and not derived_job_id:
        raise ValueError("refund requires job_id or derived_job_id")

    charged = await _charged_for_reference(db, user_id, job_id, derived_job_id)
    refund = min(max(int(amount), 0), charged)
    if refund <= 0:
        logger.warning(
            "Refund skipped for user %s job %s: requested=%s charged=%s",
            user_id,
            job_id or derived_job_id,
            amount,
            charged,
        )
        return None

    return await _apply_balance_change(
        db,
        user_id,
        kind=REFUND_TYPE,
        next_balance=lambda before, _tier: before + refund,
        amount=lambda _before, _after: refund,
        job_id=job_id,
        derived_job_id=derived_job_id,
        idempotency_key=_reference_key("refund", job_id, derived_job_id),
        description=description or f"Refund for failed job {job_id or derived_job_id}",
    )


async def grant_credits(
    user_id: str,
    amount: int,
    kind: str,
    db: AsyncSession,
    *,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Add credits to a balance.

    Free-tier refreshes are capped at FREE_TIER_MAX_CREDITS: a user already at
    the cap receives a zero-amount grant that is still written to the log.
    """
    if kind not in ADDITION_TYPES or kind in (REFUND_TYPE, "paid_tier_renewal"):
        raise ValueError(f"{kind!r} is not a grant type")
    grant = int(amount)
    if grant < 0:
        raise ValueError("amount must be >= 0")

    is_refresh = kind == "free_tier_refresh"
    max_credits = get_credit_config().FREE_TIER_MAX_CREDITS

    def _next_balance(before: int, tier: str) -> int:
        if is_refresh and (tier or FREE_TIER) == FREE_TIER:
            return max(before, min(before + grant, max_credits))
        return before + grant

    def _user_values(before: int, after: int) -> Dict[str, Any]:
        if kind == "initial_allocation" or (is_refresh and after > before):
            return {"credits_refreshed_at": datetime.now(timezone.utc)}
        return {}

    return await _apply_balance_change(
        db,
        user_id,
        kind=kind,
        next_balance=_next_balance,
        amount=lambda before, after: after - before,
        description=description,
        user_values=_user_values,
    )


async def set_to_tier_allowance(
    user_id: str,
    amount: int,
    db: AsyncSession,
    *,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Paid-tier renewal: the balance becomes exactly the allowance, without carry-over."""
    allowance = int(amount)
    if allowance < 0:
        raise ValueError("amount must be >= 0")
    return await _apply_balance_change(
        db,
        user_id,
        kind="paid_tier_renewal",
        next_balance=lambda _before, _tier: allowance,
        amount=lambda _before, _after: allowance,
        description=description or "Paid tier renewal",
        user_values=lambda _before, _after: {"credits_refreshed_at": datetime.now(timezone.utc)},
    )


async def adjust_credits(
    user_id: str,
    amount: int,
    db: AsyncSession,
    *,
    deduct: bool = False,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    delta = int(amount)
    if delta <= 0:
        raise ValueError("amount must be greater than 0")
    if deduct:
        return await _apply_balance_change(
            db,
            user_id,
            kind="manual_adjustment_deduct",
            next_balance=lambda before, _tier: before - delta,
            amount=lambda _before, _after: delta,
            description=description or "Manual adjustment",
        )
    return await _apply_balance_change(
        db,
        user_id,
        kind="manual_adjustment_add",
        next_balance=lambda before, _tier: before + delta,
        amount=lambda _before, _after: delta,
        description=description or "Manual adjustment",
    )


async def ensure_user_account(user_id: str, db: AsyncSession, *, email: Optional[str] = None) -> User:
    """Return the user, creating it with its initial free-tier allocation on first sight."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        id=user_id,
        email=email or f"{user_id}@local.invalid",
        credit_balance=0,
        subscription_tier=FREE_TIER,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one()

    await grant_credits(
        user_id,
        get_credit_config().FREE_TIER_INITIAL_CREDITS,
        "initial_allocation",
        db,
        description="Initial free tier allocation",
    )
    await db.refresh(user)
    return user


async def get_credit_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    config = get_credit_config()
    user_result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = user_result.scalar_one_or_none()
    if not user:
        raise UserNotFoundError(user_id)

    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc())
        .limit(30)
    )
    entries = result.scalars().all()
    return {
        "balance": int(user.credit_balance or 0),
        "subscription_tier": user.subscription_tier,
        "credits_refreshed_at": user.credits_refreshed_at.isoformat() if user.credits_refreshed_at else None,
        "costs": {
            "caption_first": config.CREDITS_CAPTION_FIRST_FIXED,
            "standard_per_10_min": config.CREDITS_PER_10_MIN_STANDARD,
            "premium_per_10_min": config.CREDITS_PER_10_MIN_PREMIUM,
            "basic_summary": config.CREDITS_BASIC_SUMMARY_FIXED,
            "extended_summary": config.CREDITS_EXTENDED_SUMMARY_FIXED,
            "content_idea_normal": config.CONTENT_IDEA_NORMAL_CREDIT_COST,
        },
        "recent_entries": [
            {
                "id": entry.id,
                "type": entry.type,
                "amount": entry.amount,
                "signed_amount": entry.signed_amount,
                "balance_before": entry.user_credits_before,
                "balance_after": entry.user_credits_after,
                "job_id": entry.job_id or entry.derived_job_id,
                "description": entry.description,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }


async def refresh_free_tier_credits(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Scheduled free-tier refresh for users below the cap whose last refresh is old enough."""
    config = get_credit_config()
    current = now or datetime.now(timezone.utc)
    cutoff = current - timedelta(days=config.FREE_TIER_REFRESH_INTERVAL_DAYS)

    async with async_session_maker() as db:
        result = await db.execute(
            select(User.id).where(
                User.subscription_tier == FREE_TIER,
                User.credit_balance < config.FREE_TIER_MAX_CREDITS,
                or_(User.credits_refreshed_at.is_(None), User.credits_refreshed_at <= cutoff),
            )
        )
        user_ids = [row[0] for row in result.all()]

    refreshed = 0
    skipped = 0
    errors = []
    for user_id in user_ids:
        try:
            async with async_session_maker() as db:
                entry = await grant_credits(
                    user_id,
                    config.FREE_TIER_REFRESH_CREDITS,
                    "free_tier_refresh",
                    db,
                    description="Scheduled free tier refresh",
                )
            if entry["amount"] > 0:
                refreshed += 1
            else:
                skipped += 1
        except Exception as exc:
            logger.exception("Free tier refresh failed for user %s", user_id)
            errors.append({"user_id": user_id, "error": str(exc)})

    return {"eligible": len(user_ids), "refreshed": refreshed, "skipped": skipped, "errors": errors}
