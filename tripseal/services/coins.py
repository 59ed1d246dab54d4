from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tripseal.core.config import get_settings
from tripseal.core.errors import (
    ConflictError,
    DatabaseError,
    InsufficientCoinsError,
    NotFoundError,
    ValidationFailedError,
)
from tripseal.domain.models import CoinTransaction, User
from tripseal.domain.vocabulary import ACTION_ALLOCATE, REASON_COIN_ALLOCATION, RESOURCE_USER
from tripseal.persistence.db import SerializableSessionLocal
from tripseal.services.audit import record_activity
from tripseal.services.authz.arbiter import Actor, decide_allocation, enforce


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationResult:
    transaction_id: str
    sender_balance: int
    receiver_balance: int


async def debit_coins(session: AsyncSession, *, user_id: str, amount: int) -> None:
    """Conditionally debit a balance inside the caller's transaction.

    The WHERE clause keeps balances non-negative even under concurrent debits;
    zero matched rows means the balance was too low.
    """
    result = await session.execute(
        update(User)
        .where(User.id == user_id, User.coins >= amount)
        .values(coins=User.coins - amount)
    )
    if result.rowcount != 1:
        raise InsufficientCoinsError("Insufficient coins")


async def credit_coins(session: AsyncSession, *, user_id: str, amount: int) -> None:
    await session.execute(
        update(User)
        .where(User.id == user_id)
        .values(coins=User.coins + amount)
    )


async def _balance(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(select(User.coins).where(User.id == user_id))
    return int(result.scalar_one())


async def _transfer(
    *,
    sender: Actor,
    to_user_id: str,
    amount: int,
    reason_text: str | None,
    request: Request | None,
) -> AllocationResult:
    settings = get_settings()
    async with SerializableSessionLocal() as session:
        try:
            # Bound the wait for a connection separately from the overall transfer.
            await asyncio.wait_for(session.connection(), timeout=settings.coin_transfer_max_wait_s)
        except asyncio.TimeoutError as exc:
            raise DatabaseError("Coin transfer could not start in time", code="COIN_TRANSFER_BUSY") from exc

        sender_row = await session.get(User, sender.user_id)
        if sender_row is None:
            raise NotFoundError("Sender not found")
        receiver = await session.get(User, to_user_id)
        if receiver is None:
            raise NotFoundError("Recipient not found")
        enforce(decide_allocation(sender, receiver), "You are not allowed to allocate coins to this user")
        if sender_row.coins < amount:
            raise InsufficientCoinsError("Insufficient coins")

        transaction_id = uuid4().hex
        # Serialization failures surface on any statement, not only at commit.
        try:
            await debit_coins(session, user_id=sender.user_id, amount=amount)
            await credit_coins(session, user_id=to_user_id, amount=amount)
            session.add(
                CoinTransaction(
                    id=transaction_id,
                    from_user_id=sender.user_id,
                    to_user_id=to_user_id,
                    amount=amount,
                    reason=REASON_COIN_ALLOCATION,
                    reason_text=reason_text,
                )
            )
            await record_activity(
                session=session,
                user_id=sender.user_id,
                action=ACTION_ALLOCATE,
                target_resource_id=to_user_id,
                target_resource_type=RESOURCE_USER,
                details={
                    "recipientName": receiver.name,
                    "amount": amount,
                    "reason": REASON_COIN_ALLOCATION,
                    "reasonText": reason_text,
                },
                request=request,
            )
            await session.commit()
        except DBAPIError as exc:
            await session.rollback()
            logger.warning("coin_transfer_conflict sender=%s receiver=%s", sender.user_id, to_user_id, exc_info=exc)
            raise ConflictError("Concurrent balance update; retry the allocation", code="COIN_TRANSFER_CONFLICT") from exc

        sender_balance = await _balance(session, sender.user_id)
        receiver_balance = await _balance(session, to_user_id)
    return AllocationResult(
        transaction_id=transaction_id,
        sender_balance=sender_balance,
        receiver_balance=receiver_balance,
    )


async def allocate_coins(
    *,
    sender: Actor,
    to_user_id: str | None,
    amount: int | None,
    reason_text: str | None = None,
    request: Request | None = None,
) -> AllocationResult:
    """Move coins between users in one SERIALIZABLE transaction.

    The transfer either commits debit, credit, ledger row and activity log
    together or leaves both balances untouched.
    """
    if not to_user_id:
        raise ValidationFailedError("Recipient is required")
    if amount is None or isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationFailedError("Amount must be a positive integer")
    timeout_s = get_settings().coin_transfer_timeout_s
    try:
        result = await asyncio.wait_for(
            _transfer(sender=sender, to_user_id=to_user_id, amount=amount, reason_text=reason_text, request=request),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError as exc:
        logger.warning("coin_transfer_timed_out sender=%s receiver=%s", sender.user_id, to_user_id)
        raise DatabaseError("Coin transfer timed out", code="COIN_TRANSFER_TIMEOUT") from exc
    logger.info(
        "coins_allocated sender=%s receiver=%s amount=%s transaction_id=%s",
        sender.user_id,
        to_user_id,
        amount,
        result.transaction_id,
    )
    return result
