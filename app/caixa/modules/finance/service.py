from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import case, func

from app.caixa.constants import (
    DECISION_STATUSES,
    DESCRIPTION_MAX,
    TRANSACTION_TYPES,
    TX_APPROVED,
    TX_EXPENSE,
    TX_INCOME,
    TX_PENDING,
)
from app.caixa.modules.categories.models import Category
from app.caixa.modules.finance.models import Transaction
from app.caixa.rbac import user_has_permission
from app.caixa.utils import format_brl, parse_amount, sanitize_text

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.caixa.models import User

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class FinanceError(ValueError):
    """A transaction rule was violated; the message is safe to show to the user."""


class InsufficientBalanceError(FinanceError):
    def __init__(self, available: Decimal, requested: Decimal):
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient balance. Available balance: {format_brl(available)}")


@dataclass(frozen=True)
class ChartPoint:
    date: str  # YYYY-MM-DD
    income: Decimal
    expense: Decimal
    balance: Decimal

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "income": float(self.income),
            "expense": float(self.expense),
            "balance": float(self.balance),
        }


def _to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(Decimal("0.01"))


def _signed_amount():
    return case(
        (Transaction.type == TX_INCOME, Transaction.amount),
        (Transaction.type == TX_EXPENSE, -Transaction.amount),
        else_=0,
    )


def _month_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = datetime(now.year, now.month, 1)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1)
    else:
        end = datetime(now.year, now.month + 1, 1)
    return start, end


# ---------- Read side ----------
def approved_balance(s: "Session", user_id: int | None = None) -> Decimal:
    """
    Cash on hand: APPROVED income minus APPROVED expense, as one SQL aggregate.

    With `user_id`, only that user's own transactions are summed.
    """
    q = s.query(func.coalesce(func.sum(_signed_amount()), 0)).filter(Transaction.status == TX_APPROVED)
    if user_id is not None:
        q = q.filter(Transaction.created_by_user_id == user_id)
    return _to_decimal(q.scalar())


def month_totals(s: "Session", now: datetime | None = None) -> tuple[Decimal, Decimal]:
    """(approved income, approved expense) for the calendar month containing `now`."""
    start, end = _month_bounds(now or datetime.utcnow())
    rows = (
        s.query(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
        .filter(Transaction.status == TX_APPROVED)
        .filter(Transaction.created_at >= start)
        .filter(Transaction.created_at < end)
        .group_by(Transaction.type)
        .all()
    )
    sums = {tx_type: _to_decimal(total) for tx_type, total in rows}
    return sums.get(TX_INCOME, ZERO), sums.get(TX_EXPENSE, ZERO)


def pending_count(s: "Session", user: "User") -> int:
    """Admins see every pending transaction; other users only their own."""
    q = s.query(func.count(Transaction.id)).filter(Transaction.status == TX_PENDING)
    if not user.is_admin:
        q = q.filter(Transaction.created_by_user_id == user.id)
    return int(q.scalar() or 0)


def pending_transactions(s: "Session") -> list[Transaction]:
    return (
        s.query(Transaction)
        .filter(Transaction.status == TX_PENDING)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .all()
    )


def list_transactions(s: "Session", *, status: str | None = None, tx_type: str | None = None) -> list[Transaction]:
    q = s.query(Transaction)
    if status:
        q = q.filter(Transaction.status == status)
    if tx_type:
        q = q.filter(Transaction.type == tx_type)
    return q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()


def chart_data(s: "Session", days: int = 90, now: datetime | None = None) -> list[ChartPoint]:
    """
    Daily APPROVED income/expense over the last `days` days, with the running
    balance carried in from everything approved before the window.
    """
    now = now or datetime.utcnow()
    start = now - timedelta(days=days)

    opening = (
        s.query(func.coalesce(func.sum(_signed_amount()), 0))
        .filter(Transaction.status == TX_APPROVED)
        .filter(Transaction.created_at < start)
        .scalar()
    )
    running = _to_decimal(opening)

    rows = (
        s.query(Transaction.created_at, Transaction.type, Transaction.amount)
        .filter(Transaction.status == TX_APPROVED)
        .filter(Transaction.created_at >= start)
        .filter(Transaction.created_at <= now)
        .order_by(Transaction.created_at.asc())
        .all()
    )

    by_day: OrderedDict[str, list[Decimal]] = OrderedDict()
    for created_at, tx_type, amount in rows:
        day = created_at.strftime("%Y-%m-%d")
        bucket = by_day.setdefault(day, [ZERO, ZERO])
        if tx_type == TX_INCOME:
            bucket[0] += _to_decimal(amount)
        elif tx_type == TX_EXPENSE:
            bucket[1] += _to_decimal(amount)

    if not by_day:
        return [ChartPoint(date=start.strftime("%Y-%m-%d"), income=ZERO, expense=ZERO, balance=running)]

    points = []
    for day in sorted(by_day):
        income, expense = by_day[day]
        running += income - expense
        points.append(ChartPoint(date=day, income=income, expense=expense, balance=running))
    return points


# ---------- Write side ----------
def validate_transaction_payload(payload: dict) -> list[str]:
    """Validate a new-transaction form. Returns list of errors."""
    errors = []
    tx_type = (payload.get("type") or "").strip().upper()
    if tx_type not in TRANSACTION_TYPES:
        errors.append(f"Invalid type. Must be one of: {', '.join(TRANSACTION_TYPES)}")
    try:
        parse_amount(payload.get("amount"))
    except ValueError as e:
        errors.append(str(e))
    if not str(payload.get("category_id") or "").strip():
        errors.append("Category is required.")
    return errors


def create_transaction(
    s: "Session",
    user: "User",
    *,
    tx_type: str,
    amount: str | Decimal,
    category_id: int | str,
    description: str | None = None,
) -> Transaction:
    """
    Record a new PENDING transaction.

    Expenses are checked against the creator's own APPROVED balance at
    creation time only; pending expenses are not reserved against it.
    """
    tx_type = (tx_type or "").strip().upper()
    if tx_type not in TRANSACTION_TYPES:
        raise FinanceError(f"Invalid type. Must be one of: {', '.join(TRANSACTION_TYPES)}")

    try:
        value = parse_amount(str(amount) if amount is not None else None)
    except ValueError as e:
        raise FinanceError(str(e)) from None

    try:
        cat_id = int(str(category_id).strip())
    except (TypeError, ValueError):
        raise FinanceError("Category is required.") from None

    category = (
        s.query(Category)
        .filter(Category.id == cat_id)
        .filter(Category.created_by_user_id == user.id)
        .one_or_none()
    )
    if not category:
        raise FinanceError("Category not found or does not belong to you.")

    if tx_type == TX_EXPENSE:
        available = approved_balance(s, user_id=user.id)
        if available < value:
            logger.info(
                "Expense rejected: insufficient balance user_id=%s requested=%s available=%s",
                user.id,
                value,
                available,
            )
            raise InsufficientBalanceError(available, value)

    now = datetime.utcnow()
    tx = Transaction(
        type=tx_type,
        status=TX_PENDING,
        amount=value,
        description=sanitize_text(description, DESCRIPTION_MAX) or None,
        category_id=category.id,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(tx)
    s.flush()
    logger.info("Transaction created id=%s type=%s amount=%s user_id=%s", tx.id, tx.type, tx.amount, user.id)
    return tx


def update_transaction_status(s: "Session", actor: "User", transaction_id: int, status: str) -> Transaction:
    """
    Admin decision on a PENDING transaction. APPROVED and REJECTED are terminal.
    """
    if not user_has_permission(actor, "transactions.approve"):
        raise PermissionError("Only administrators can approve or reject transactions.")

    status = (status or "").strip().upper()
    if status not in DECISION_STATUSES:
        raise FinanceError("Invalid status.")

    tx = s.get(Transaction, transaction_id)
    if not tx:
        raise FinanceError("Transaction not found.")
    if tx.status != TX_PENDING:
        raise FinanceError("Only pending transactions can be approved or rejected.")

    tx.status = status
    tx.updated_at = datetime.utcnow()
    s.flush()
    logger.info("Transaction id=%s -> %s by user_id=%s", tx.id, status, actor.id)
    return tx
