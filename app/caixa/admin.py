from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.caixa.constants import ROLE_KEYS
from app.caixa.db import db_session
from app.caixa.models import User
from app.caixa.modules.planning.service import discard_proof_objects
from app.caixa.modules.users.service import (
    AccountError,
    create_user,
    delete_user,
    list_users,
    set_user_active,
    update_my_profile,
    update_user,
)
from app.caixa.rbac import permission_keys, require_permission
from app.caixa.storage import storage_from_config

bp = Blueprint("admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ============================================================================
# OWN PROFILE
# ============================================================================

@bp.get("/me")
@require_permission("dashboard.view")
def me():
    user = _current_user()
    perm_keys = sorted(permission_keys(user))
    return render_template("admin/me.html", user=user, perm_keys=perm_keys)


@bp.post("/me")
@require_permission("dashboard.view")
def me_update():
    s = db_session()
    user = _current_user()
    try:
        update_my_profile(
            s,
            user,
            name=request.form.get("name"),
            email=request.form.get("email"),
            current_password=request.form.get("current_password") or None,
            new_password=request.form.get("new_password") or None,
        )
    except AccountError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.me"))
    s.commit()
    flash("Profile updated.", "success")
    return redirect(url_for("admin.me"))


# ============================================================================
# ACCOUNT MANAGEMENT (Admin Only)
# ============================================================================

@bp.get("/users")
@require_permission("users.manage")
def users_list():
    s = db_session()
    return render_template("admin/users/list.html", users=list_users(s, _current_user()), role_keys=ROLE_KEYS)


@bp.post("/users/new")
@require_permission("users.manage")
def users_new_post():
    s = db_session()
    u = _current_user()

    password = request.form.get("password") or ""
    if password != (request.form.get("password_confirm") or ""):
        flash("Passwords do not match.", "danger")
        return redirect(url_for("admin.users_list"))

    try:
        new_user = create_user(
            s,
            u,
            name=request.form.get("name"),
            email=request.form.get("email"),
            password=password,
            role=request.form.get("role"),
        )
    except PermissionError:
        abort(403)
    except AccountError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.users_list"))
    s.commit()
    flash(f"Account created for {new_user.email}.", "success")
    return redirect(url_for("admin.users_list"))


@bp.get("/users/<int:user_id>")
@require_permission("users.manage")
def users_detail(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    return render_template("admin/users/detail.html", account=user, role_keys=ROLE_KEYS)


@bp.post("/users/<int:user_id>/update")
@require_permission("users.manage")
def users_update(user_id: int):
    s = db_session()
    u = _current_user()
    try:
        user = update_user(
            s,
            u,
            user_id,
            name=request.form.get("name"),
            email=request.form.get("email"),
            password=request.form.get("password") or None,
            role=request.form.get("role") or None,
        )
        if "is_active" in request.form:
            set_user_active(s, u, user_id, request.form.get("is_active") == "1")
    except PermissionError:
        abort(403)
    except AccountError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.users_detail", user_id=user_id))
    s.commit()
    flash(f"Account updated for {user.email}.", "success")
    return redirect(url_for("admin.users_detail", user_id=user_id))


@bp.post("/users/<int:user_id>/delete")
@require_permission("users.manage")
def users_delete(user_id: int):
    s = db_session()
    u = _current_user()
    try:
        proof_keys = delete_user(s, u, user_id)
    except PermissionError:
        abort(403)
    except AccountError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("admin.users_list"))
    s.commit()
    discard_proof_objects(storage_from_config(current_app.config), proof_keys)
    flash("User deleted.", "success")
    return redirect(url_for("admin.users_list"))
