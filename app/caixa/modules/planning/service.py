from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from werkzeug.utils import secure_filename

from app.caixa.config import MAX_UPLOAD_BYTES
from app.caixa.constants import PLAN_PENDING, PLAN_RESPONSIBLE_MAX, PLAN_STATUSES, PLAN_TEXT_MAX
from app.caixa.modules.planning.models import PaymentPlan
from app.caixa.storage import StorageError
from app.caixa.utils import parse_amount, parse_date, sanitize_text

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.caixa.models import User
    from app.caixa.storage import Storage

logger = logging.getLogger(__name__)

PROOF_CONTENT_TYPES = frozenset({"application/pdf", "image/png", "image/jpeg", "image/webp"})
PROOF_MAX_BYTES = MAX_UPLOAD_BYTES


class PaymentPlanError(ValueError):
    pass


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_payment_plan_payload(payload: dict) -> list[str]:
    """Validate payment plan create/update payload. Returns list of errors."""
    errors = []
    name = (payload.get("name") or "").strip()
    if not name:
        errors.append("Name is required.")
    elif len(name) > PLAN_TEXT_MAX:
        errors.append(f"Name is too long (maximum {PLAN_TEXT_MAX} characters).")

    for field, label in (("supplier", "Supplier"), ("event", "Event")):
        if len((payload.get(field) or "").strip()) > PLAN_TEXT_MAX:
            errors.append(f"{label} is too long (maximum {PLAN_TEXT_MAX} characters).")
    if len((payload.get("responsible") or "").strip()) > PLAN_RESPONSIBLE_MAX:
        errors.append(f"Responsible is too long (maximum {PLAN_RESPONSIBLE_MAX} characters).")

    try:
        parse_amount(payload.get("value"))
    except ValueError as e:
        errors.append(str(e).replace("Amount", "Value"))

    raw_due = (payload.get("due_date") or "").strip()
    if not raw_due:
        errors.append("Due date is required.")
    else:
        try:
            parse_date(raw_due)
        except ValueError:
            errors.append("Due date must be YYYY-MM-DD.")

    status = (payload.get("status") or "").strip().upper()
    if status and status not in PLAN_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(PLAN_STATUSES)}")

    proof_url = (payload.get("proof_url") or "").strip()
    if proof_url and (len(proof_url) > 1024 or not _is_http_url(proof_url)):
        errors.append("Proof link must be an http(s) URL.")
    return errors


def _apply_payload(plan: PaymentPlan, payload: dict) -> None:
    plan.name = sanitize_text(payload.get("name"), PLAN_TEXT_MAX)
    plan.supplier = sanitize_text(payload.get("supplier"), PLAN_TEXT_MAX) or None
    plan.event = sanitize_text(payload.get("event"), PLAN_TEXT_MAX) or None
    plan.responsible = sanitize_text(payload.get("responsible"), PLAN_RESPONSIBLE_MAX) or None
    plan.value = parse_amount(payload.get("value"))
    plan.due_date = parse_date(payload.get("due_date"))  # type: ignore[assignment]
    plan.status = (payload.get("status") or PLAN_PENDING).strip().upper()
    plan.proof_url = (payload.get("proof_url") or "").strip() or None


def _get_owned_plan(s: "Session", user: "User", plan_id: int) -> PaymentPlan:
    plan = s.get(PaymentPlan, plan_id)
    if not plan or plan.created_by_user_id != user.id:
        # Same answer for "missing" and "not yours" so ids cannot be probed.
        raise PermissionError("Access denied.")
    return plan


def list_payment_plans(s: "Session", user: "User") -> list[PaymentPlan]:
    return (
        s.query(PaymentPlan)
        .filter(PaymentPlan.created_by_user_id == user.id)
        .order_by(PaymentPlan.due_date.asc(), PaymentPlan.id.asc())
        .all()
    )


def plan_totals(plans: list[PaymentPlan]) -> dict[str, Decimal]:
    totals = {status: Decimal("0.00") for status in PLAN_STATUSES}
    for p in plans:
        totals[p.status] = totals.get(p.status, Decimal("0.00")) + Decimal(p.value)
    return totals


def get_payment_plan(s: "Session", user: "User", plan_id: int) -> PaymentPlan:
    return _get_owned_plan(s, user, plan_id)


def create_payment_plan(s: "Session", user: "User", payload: dict) -> PaymentPlan:
    errors = validate_payment_plan_payload(payload)
    if errors:
        raise PaymentPlanError(errors[0])

    now = datetime.utcnow()
    plan = PaymentPlan(created_by_user_id=user.id, created_at=now, updated_at=now)
    _apply_payload(plan, payload)
    s.add(plan)
    s.flush()
    logger.info("Payment plan created id=%s user_id=%s", plan.id, user.id)
    return plan


def update_payment_plan(s: "Session", user: "User", plan_id: int, payload: dict) -> PaymentPlan:
    plan = _get_owned_plan(s, user, plan_id)
    errors = validate_payment_plan_payload(payload)
    if errors:
        raise PaymentPlanError(errors[0])

    _apply_payload(plan, payload)
    plan.updated_at = datetime.utcnow()
    s.flush()
    logger.info("Payment plan updated id=%s user_id=%s", plan.id, user.id)
    return plan


def update_payment_plan_status(s: "Session", user: "User", plan_id: int, status: str) -> PaymentPlan:
    status = (status or "").strip().upper()
    if status not in PLAN_STATUSES:
        raise PaymentPlanError("Invalid data.")
    plan = _get_owned_plan(s, user, plan_id)
    plan.status = status
    plan.updated_at = datetime.utcnow()
    s.flush()
    return plan


def delete_payment_plan(s: "Session", user: "User", plan_id: int) -> str | None:
    """
    Delete an owned plan. Returns the proof storage key, if any, so the caller
    can remove the object once the delete is committed.
    """
    plan = _get_owned_plan(s, user, plan_id)
    key = plan.proof_storage_key
    s.delete(plan)
    s.flush()
    logger.info("Payment plan deleted id=%s user_id=%s", plan_id, user.id)
    return key


def discard_proof_objects(storage: "Storage", keys) -> None:
    """Best-effort removal of stored proofs whose rows are already gone or replaced."""
    for key in keys:
        if not key:
            continue
        try:
            storage.delete(key)
        except StorageError:
            logger.warning("Could not delete proof object key=%s", key, exc_info=True)


def build_proof_storage_key(plan_id: int, filename: str, upload_date: date | None = None) -> str:
    """Deterministic storage key for a payment plan's proof file."""
    if upload_date is None:
        upload_date = date.today()
    safe_filename = secure_filename(filename) or "proof.bin"
    return f"payment-plans/{plan_id}/{upload_date.isoformat()}/{safe_filename}"


def attach_proof(
    s: "Session",
    user: "User",
    plan_id: int,
    *,
    file_bytes: bytes,
    filename: str,
    content_type: str,
    storage: "Storage",
) -> str | None:
    """
    Store a proof file for an owned plan. Returns the key of the proof it
    replaced (None when there was none or the key was overwritten in place).
    """
    plan = _get_owned_plan(s, user, plan_id)
    content_type = (content_type or "").split(";")[0].strip().lower()
    if content_type not in PROOF_CONTENT_TYPES:
        raise PaymentPlanError("Proof must be a PDF or an image (PNG, JPEG, WEBP).")
    if not file_bytes:
        raise PaymentPlanError("The uploaded file is empty.")
    if len(file_bytes) > PROOF_MAX_BYTES:
        raise PaymentPlanError("File too large. Maximum size is 10MB.")

    key = build_proof_storage_key(plan.id, filename)
    previous = plan.proof_storage_key
    try:
        storage.put_bytes(key, file_bytes, content_type=content_type)
    except StorageError:
        logger.exception("Proof upload failed plan_id=%s key=%s", plan.id, key)
        raise PaymentPlanError("Could not store the file. Please try again.") from None

    plan.proof_storage_key = key
    plan.proof_filename = secure_filename(filename) or "proof.bin"
    plan.proof_content_type = content_type
    plan.updated_at = datetime.utcnow()
    s.flush()
    logger.info("Proof attached plan_id=%s key=%s size=%s", plan.id, key, len(file_bytes))
    return previous if previous and previous != key else None
