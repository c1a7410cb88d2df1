from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, send_file, url_for

from app.caixa.constants import PLAN_STATUSES
from app.caixa.db import db_session
from app.caixa.models import User
from app.caixa.modules.planning.service import (
    PaymentPlanError,
    attach_proof,
    create_payment_plan,
    delete_payment_plan,
    discard_proof_objects,
    get_payment_plan,
    list_payment_plans,
    plan_totals,
    update_payment_plan,
    update_payment_plan_status,
)
from app.caixa.rbac import require_permission
from app.caixa.storage import StorageError, storage_from_config

bp = Blueprint("planning", __name__)

_PLAN_FIELDS = ("name", "supplier", "event", "value", "due_date", "responsible", "status", "proof_url")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload_from_form() -> dict:
    return {field: request.form.get(field) for field in _PLAN_FIELDS}


def _owned_plan_or_404(s, u: User, plan_id: int):
    try:
        return get_payment_plan(s, u, plan_id)
    except PermissionError:
        abort(404)


# ---------- List ----------
@bp.get("/")
@require_permission("planning.manage")
def plans_list():
    s = db_session()
    u = _current_user()
    plans = list_payment_plans(s, u)
    return render_template(
        "planning/list.html",
        plans=plans,
        totals=plan_totals(plans),
        statuses=PLAN_STATUSES,
        today=date.today(),
    )


# ---------- New ----------
@bp.post("/new")
@require_permission("planning.manage")
def plans_new_post():
    s = db_session()
    u = _current_user()
    try:
        create_payment_plan(s, u, _payload_from_form())
    except PaymentPlanError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("planning.plans_list"))
    s.commit()
    flash("Payment plan created.", "success")
    return redirect(url_for("planning.plans_list"))


# ---------- Edit ----------
@bp.get("/<int:plan_id>/edit")
@require_permission("planning.manage")
def plans_edit_get(plan_id: int):
    s = db_session()
    plan = _owned_plan_or_404(s, _current_user(), plan_id)
    return render_template("planning/edit.html", plan=plan, statuses=PLAN_STATUSES)


@bp.post("/<int:plan_id>/edit")
@require_permission("planning.manage")
def plans_edit_post(plan_id: int):
    s = db_session()
    u = _current_user()
    try:
        update_payment_plan(s, u, plan_id, _payload_from_form())
    except PermissionError:
        abort(404)
    except PaymentPlanError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("planning.plans_edit_get", plan_id=plan_id))
    s.commit()
    flash("Payment plan updated.", "success")
    return redirect(url_for("planning.plans_list"))


@bp.post("/<int:plan_id>/status")
@require_permission("planning.manage")
def plans_status_post(plan_id: int):
    s = db_session()
    u = _current_user()
    try:
        update_payment_plan_status(s, u, plan_id, request.form.get("status") or "")
    except PermissionError:
        abort(404)
    except PaymentPlanError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("planning.plans_list"))
    s.commit()
    flash("Status updated.", "success")
    return redirect(url_for("planning.plans_list"))


@bp.post("/<int:plan_id>/delete")
@require_permission("planning.manage")
def plans_delete_post(plan_id: int):
    s = db_session()
    u = _current_user()
    try:
        stale_key = delete_payment_plan(s, u, plan_id)
    except PermissionError:
        abort(404)
    s.commit()
    discard_proof_objects(storage_from_config(current_app.config), [stale_key])
    flash("Payment plan deleted.", "success")
    return redirect(url_for("planning.plans_list"))


# ---------- Proof of payment ----------
@bp.post("/<int:plan_id>/proof")
@require_permission("planning.manage")
def plans_proof_upload(plan_id: int):
    s = db_session()
    u = _current_user()

    f = request.files.get("file")
    if not f or not f.filename:
        flash("Please select a file to upload.", "danger")
        return redirect(url_for("planning.plans_edit_get", plan_id=plan_id))

    storage = storage_from_config(current_app.config)
    try:
        replaced_key = attach_proof(
            s,
            u,
            plan_id,
            file_bytes=f.read(),
            filename=f.filename,
            content_type=(f.mimetype or "application/octet-stream"),
            storage=storage,
        )
    except PermissionError:
        abort(404)
    except PaymentPlanError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("planning.plans_edit_get", plan_id=plan_id))
    s.commit()
    discard_proof_objects(storage, [replaced_key])
    flash("Proof of payment uploaded.", "success")
    return redirect(url_for("planning.plans_edit_get", plan_id=plan_id))


@bp.get("/<int:plan_id>/proof")
@require_permission("planning.manage")
def plans_proof_download(plan_id: int):
    s = db_session()
    plan = _owned_plan_or_404(s, _current_user(), plan_id)
    if not plan.proof_storage_key:
        if plan.proof_url:
            return redirect(plan.proof_url)
        abort(404)

    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(plan.proof_storage_key)
    except StorageError:
        current_app.logger.warning("Proof missing in storage plan_id=%s key=%s", plan.id, plan.proof_storage_key)
        abort(404)
    return send_file(
        fobj,
        mimetype=plan.proof_content_type or "application/octet-stream",
        as_attachment=True,
        download_name=plan.proof_filename or "proof.bin",
    )
