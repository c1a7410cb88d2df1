from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.caixa.constants import TX_PENDING
from app.caixa.models import Base

if TYPE_CHECKING:
    from app.caixa.models import User
    from app.caixa.modules.categories.models import Category


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_status", "status"),
        Index("idx_transactions_created_at", "created_at"),
        Index("idx_transactions_created_by", "created_by_user_id"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    type: Mapped[str] = mapped_column(String(16), nullable=False)  # INCOME | EXPENSE
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=TX_PENDING)  # PENDING -> APPROVED | REJECTED
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)  # always positive; sign comes from type
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)

    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    category: Mapped["Category"] = relationship("Category", back_populates="transactions", lazy="selectin")
    created_by: Mapped["User"] = relationship("User", lazy="selectin")
