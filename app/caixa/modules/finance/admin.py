from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, current_app, flash, g, jsonify, redirect, render_template, request, url_for

from app.caixa.constants import TRANSACTION_STATUSES, TRANSACTION_TYPES
from app.caixa.db import db_session
from app.caixa.models import User
from app.caixa.modules.categories.service import categories_for_user
from app.caixa.modules.finance.service import (
    FinanceError,
    approved_balance,
    chart_data,
    create_transaction,
    list_transactions,
    month_totals,
    pending_count,
    pending_transactions,
    update_transaction_status,
    validate_transaction_payload,
)
from app.caixa.rbac import require_permission, user_has_permission

bp = Blueprint("finance", __name__)

_CHART_DAYS = (7, 30, 90)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _chart_days() -> int:
    try:
        days = int(request.args.get("days") or 90)
    except ValueError:
        days = 90
    return days if days in _CHART_DAYS else 90


# ---------- Dashboard ----------
@bp.get("/")
@require_permission("dashboard.view")
def dashboard():
    s = db_session()
    u = _current_user()

    status_filter = (request.args.get("status") or "").strip().upper()
    type_filter = (request.args.get("type") or "").strip().upper()
    if status_filter not in TRANSACTION_STATUSES:
        status_filter = ""
    if type_filter not in TRANSACTION_TYPES:
        type_filter = ""

    now = datetime.utcnow()
    income_month, expense_month = month_totals(s, now)
    days = _chart_days()
    points = chart_data(s, days=days, now=now)

    return render_template(
        "finance/dashboard.html",
        balance=approved_balance(s),
        income_month=income_month,
        expense_month=expense_month,
        pending_total=pending_count(s, u),
        transactions=list_transactions(s, status=status_filter or None, tx_type=type_filter or None),
        categories=categories_for_user(s, u),
        chart_points=[p.to_dict() for p in points],
        chart_days=days,
        status_filter=status_filter,
        type_filter=type_filter,
        can_approve=user_has_permission(u, "transactions.approve"),
    )


@bp.get("/chart-data")
@require_permission("dashboard.view")
def dashboard_chart_data():
    s = db_session()
    points = chart_data(s, days=_chart_days())
    return jsonify([p.to_dict() for p in points])


# ---------- New transaction ----------
@bp.post("/transactions/new")
@require_permission("transactions.create")
def transaction_new_post():
    s = db_session()
    u = _current_user()

    payload = {
        "type": request.form.get("type"),
        "amount": request.form.get("amount"),
        "category_id": request.form.get("category_id"),
        "description": request.form.get("description"),
    }

    errors = validate_transaction_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("finance.dashboard"))

    try:
        create_transaction(
            s,
            u,
            tx_type=payload["type"] or "",
            amount=payload["amount"] or "",
            category_id=payload["category_id"] or "",
            description=payload["description"],
        )
    except FinanceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("finance.dashboard"))
    s.commit()

    flash("Transaction submitted for approval.", "success")
    return redirect(url_for("finance.dashboard"))


# ---------- Approvals (admin) ----------
@bp.get("/approvals")
@require_permission("transactions.approve")
def approvals_list():
    s = db_session()
    return render_template("finance/approvals.html", transactions=pending_transactions(s))


@bp.get("/approvals/pending.json")
@require_permission("transactions.approve")
def approvals_pending_json():
    s = db_session()
    data = [
        {
            "id": tx.id,
            "type": tx.type,
            "amount": float(tx.amount),
            "description": tx.description or "",
            "created_at": tx.created_at.isoformat(),
            "category": tx.category.name,
            "created_by": tx.created_by.name,
            "created_by_email": tx.created_by.email,
        }
        for tx in pending_transactions(s)
    ]
    return jsonify({"success": True, "data": data})


@bp.post("/transactions/<int:transaction_id>/status")
@require_permission("transactions.approve")
def transaction_status_post(transaction_id: int):
    s = db_session()
    u = _current_user()
    status = request.form.get("status") or ""

    try:
        tx = update_transaction_status(s, u, transaction_id, status)
    except PermissionError:
        abort(403)
    except FinanceError as e:
        s.rollback()
        current_app.logger.info("Status change refused tx=%s status=%s: %s", transaction_id, status, e)
        flash(str(e), "danger")
        return redirect(url_for("finance.approvals_list"))
    s.commit()

    flash(f"Transaction #{tx.id} {tx.status.lower()}.", "success")
    return redirect(url_for("finance.approvals_list"))
