from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.caixa.models import Base

if TYPE_CHECKING:
    from app.caixa.models import User
    from app.caixa.modules.finance.models import Transaction


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        Index("idx_categories_created_by", "created_by_user_id"),
        Index("idx_categories_name", "name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Unique per creator, case-insensitive; enforced in service.create_category.
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    created_by: Mapped["User"] = relationship("User", lazy="selectin")
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="category",
        lazy="select",
        passive_deletes=True,
    )
