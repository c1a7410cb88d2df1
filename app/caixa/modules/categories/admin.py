from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.caixa.db import db_session
from app.caixa.models import User
from app.caixa.modules.categories.service import (
    CategoryError,
    create_category,
    delete_category,
    list_categories,
    transaction_counts,
)
from app.caixa.rbac import require_permission

bp = Blueprint("categories", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/categories")
@require_permission("categories.manage")
def categories_list():
    s = db_session()
    return render_template(
        "categories/list.html",
        categories=list_categories(s),
        counts=transaction_counts(s),
    )


@bp.post("/categories/new")
@require_permission("categories.manage")
def categories_new_post():
    s = db_session()
    u = _current_user()
    try:
        category = create_category(s, u, request.form.get("name"))
    except CategoryError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("categories.categories_list"))
    s.commit()
    flash(f"Category “{category.name}” created.", "success")
    return redirect(url_for("categories.categories_list"))


@bp.post("/categories/<int:category_id>/delete")
@require_permission("categories.manage")
def categories_delete_post(category_id: int):
    s = db_session()
    u = _current_user()
    try:
        delete_category(s, u, category_id)
    except PermissionError:
        abort(403)
    except CategoryError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("categories.categories_list"))
    s.commit()
    flash("Category deleted.", "success")
    return redirect(url_for("categories.categories_list"))
