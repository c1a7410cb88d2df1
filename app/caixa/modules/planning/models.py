from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.caixa.constants import PLAN_PAID, PLAN_PENDING
from app.caixa.models import Base

if TYPE_CHECKING:
    from app.caixa.models import User


class PaymentPlan(Base):
    __tablename__ = "payment_plans"
    __table_args__ = (
        Index("idx_payment_plans_owner_due", "created_by_user_id", "due_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Required
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PLAN_PENDING)  # PENDING, PAID, OVERDUE

    # Optional metadata
    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)
    event: Mapped[str | None] = mapped_column(String(200), nullable=True)
    responsible: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Proof of payment: an external link, or a file kept in object storage.
    proof_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    proof_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    proof_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    proof_content_type: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    created_by: Mapped["User"] = relationship("User", lazy="selectin")

    @property
    def has_proof(self) -> bool:
        return bool(self.proof_url or self.proof_storage_key)

    def is_past_due(self, today: date | None = None) -> bool:
        """Still unpaid after its due date (display hint; status is not changed automatically)."""
        today = today or date.today()
        return self.status != PLAN_PAID and self.due_date < today
