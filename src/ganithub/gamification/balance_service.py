"""Denormalized coin balances kept in step with the transaction log.

Every coin-moving unit locks the user's ``user_coins`` row first
(``SELECT ... FOR UPDATE``). Same-user updates serialize on that lock;
different users never contend.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ganithub.config import get_settings
from ganithub.db.models import UserCoins
from ganithub.gamification.errors import InsufficientBalance
from ganithub.gamification.ledger_service import (
    Direction,
    append_transaction,
    recent_transactions,
    sum_by_direction,
    validate_amount,
)
from ganithub.gamification.schemas import (
    BalanceSnapshot,
    CoinTransactionResponse,
    ReconciliationReport,
    UserCoinsResponse,
)

logger = structlog.get_logger()


def _snapshot(row: UserCoins | None) -> BalanceSnapshot:
    if row is None:
        return BalanceSnapshot()
    return BalanceSnapshot(
        total_earned=row.total_earned,
        total_spent=row.total_spent,
        current_balance=row.current_balance,
    )


async def lock_balance(db: AsyncSession, user_id: int, *, create: bool = False) -> UserCoins | None:
    """Lock the user's balance row, optionally creating it at zero."""
    result = await db.execute(
        select(UserCoins)
        .where(UserCoins.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None and create:
        row = UserCoins(
            user_id=user_id,
            total_earned=0,
            total_spent=0,
            current_balance=0,
            updated_at=datetime.now(timezone.utc),
        )
        db.add(row)
        await db.flush()
    return row


async def apply_delta(
    db: AsyncSession,
    user_id: int,
    direction: Direction | str,
    amount: int,
) -> BalanceSnapshot:
    """Apply one earned or spent amount to the locked balance row."""
    amount = validate_amount(amount)
    direction = Direction(direction)
    row = await lock_balance(db, user_id, create=direction is Direction.EARNED)
    # Only a spend can find no row: earning creates it.
    if row is None:
        raise InsufficientBalance(user_id, 0, amount)

    if direction is Direction.SPENT:
        if row.current_balance < amount:
            raise InsufficientBalance(user_id, row.current_balance, amount)
        row.total_spent += amount
        row.current_balance -= amount
    else:
        row.total_earned += amount
        row.current_balance += amount

    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return _snapshot(row)


async def post_transaction(
    db: AsyncSession,
    user_id: int,
    direction: Direction | str,
    amount: int,
    reason: str,
    source_kind: str,
    source_ref: str | int | None = None,
) -> BalanceSnapshot:
    """Append a transaction and move the balance with it.

    Must run inside an atomic unit. Validation and the balance check happen
    before anything is written, so a rejected spend leaves no trace.
    """
    amount = validate_amount(amount)
    direction = Direction(direction)

    row = await lock_balance(db, user_id, create=direction is Direction.EARNED)
    if direction is Direction.SPENT:
        balance = row.current_balance if row is not None else 0
        if balance < amount:
            raise InsufficientBalance(user_id, balance, amount)

    await append_transaction(db, user_id, direction, amount, reason, source_kind, source_ref)
    snapshot = await apply_delta(db, user_id, direction, amount)

    logger.info(
        "coins_posted",
        user_id=user_id,
        direction=direction.value,
        amount=amount,
        source_kind=source_kind,
        balance=snapshot.current_balance,
    )
    return snapshot


async def get_balance_snapshot(db: AsyncSession, user_id: int) -> BalanceSnapshot:
    """Current balance without locking; zeros when the user never earned."""
    result = await db.execute(
        select(UserCoins).where(UserCoins.user_id == user_id).execution_options(populate_existing=True)
    )
    return _snapshot(result.scalar_one_or_none())


async def reconcile_balance(db: AsyncSession, user_id: int) -> ReconciliationReport:
    """Compare the cached balance with sums over the transaction log.

    Mismatches are reported and logged, never corrected here.
    """
    stored = await get_balance_snapshot(db, user_id)
    earned, spent = await sum_by_direction(db, user_id)
    computed = BalanceSnapshot(total_earned=earned, total_spent=spent, current_balance=earned - spent)

    issues: list[str] = []
    if stored.total_earned != computed.total_earned:
        issues.append("total_earned_mismatch")
    if stored.total_spent != computed.total_spent:
        issues.append("total_spent_mismatch")
    if stored.current_balance != computed.current_balance:
        issues.append("balance_mismatch")
    if stored.current_balance < 0:
        issues.append("negative_balance")

    if issues:
        logger.warning(
            "coin_balance_anomaly",
            user_id=user_id,
            issues=issues,
            stored_balance=stored.current_balance,
            computed_balance=computed.current_balance,
        )

    return ReconciliationReport(
        user_id=user_id,
        stored=stored,
        computed=computed,
        consistent=not issues,
        issues=issues,
    )


async def get_user_coins(db: AsyncSession, user_id: int, limit: int | None = None) -> UserCoinsResponse:
    """Balance snapshot plus the most recent transactions, newest first."""
    if limit is None:
        limit = get_settings().recent_transactions_limit
    transactions = await recent_transactions(db, user_id, limit)
    return UserCoinsResponse(
        user_id=user_id,
        balance=await get_balance_snapshot(db, user_id),
        recent_transactions=[CoinTransactionResponse.model_validate(t) for t in transactions],
    )
