from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.caixa.constants import CATEGORY_NAME_MAX
from app.caixa.modules.categories.models import Category
from app.caixa.modules.finance.models import Transaction
from app.caixa.utils import sanitize_text

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.caixa.models import User

logger = logging.getLogger(__name__)


class CategoryError(ValueError):
    pass


def list_categories(s: "Session") -> list[Category]:
    return s.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()


def categories_for_user(s: "Session", user: "User") -> list[Category]:
    """Categories a user may book transactions against (their own)."""
    return (
        s.query(Category)
        .filter(Category.created_by_user_id == user.id)
        .order_by(Category.name.asc())
        .all()
    )


def transaction_counts(s: "Session") -> dict[int, int]:
    rows = s.query(Transaction.category_id, func.count(Transaction.id)).group_by(Transaction.category_id).all()
    return {cat_id: int(n) for cat_id, n in rows}


def create_category(s: "Session", user: "User", name: str | None) -> Category:
    raw = (name or "").strip()
    if not raw:
        raise CategoryError("Category name is required.")
    if len(raw) > CATEGORY_NAME_MAX:
        raise CategoryError(f"Category name is too long (maximum {CATEGORY_NAME_MAX} characters).")

    clean = sanitize_text(raw, CATEGORY_NAME_MAX)
    if not clean:
        raise CategoryError("Category name is required.")

    existing = (
        s.query(Category)
        .filter(Category.created_by_user_id == user.id)
        .filter(func.lower(Category.name) == clean.lower())
        .first()
    )
    if existing:
        raise CategoryError("A category with this name already exists.")

    category = Category(name=clean, created_by_user_id=user.id, created_at=datetime.utcnow())
    s.add(category)
    s.flush()
    logger.info("Category created id=%s user_id=%s", category.id, user.id)
    return category


def delete_category(s: "Session", user: "User", category_id: int) -> None:
    category = s.get(Category, category_id)
    if not category:
        raise CategoryError("Category not found.")
    if category.created_by_user_id != user.id:
        raise PermissionError("You do not have permission to delete this category.")

    in_use = s.query(Transaction.id).filter(Transaction.category_id == category.id).first()
    if in_use:
        raise CategoryError("Cannot delete a category that has transactions linked to it.")

    s.delete(category)
    logger.info("Category deleted id=%s user_id=%s", category_id, user.id)
