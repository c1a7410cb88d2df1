from __future__ import annotations

import re
from datetime import date
from decimal import Decimal

from app.caixa.constants import MAX_AMOUNT

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^<]*(?:(?!</\1>)<[^<]*)*</\1>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_ENTITY_RE = re.compile(r"&[#\w]+;")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_UNSAFE_CHARS_RE = re.compile(r"[<>{}\[\]]")
_AMOUNT_RE = re.compile(r"-?\d+(?:\.\d+)?", re.ASCII)
_EMAIL_RE = re.compile(
    r"^[a-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$"
)


def sanitize_html(value: str | None) -> str:
    """Strip script/style blocks, tags, entities and control characters."""
    if not value:
        return ""
    out = _SCRIPT_STYLE_RE.sub("", value)
    out = _TAG_RE.sub("", out)
    out = _ENTITY_RE.sub("", out)
    out = _CONTROL_RE.sub("", out)
    return out.strip()


def sanitize_text(value: str | None, max_length: int | None = None) -> str:
    """
    Clean free text from forms: HTML removed, `<>{}[]` dropped, trimmed and
    cut to max_length.
    """
    if not value:
        return ""
    out = sanitize_html(value.strip())
    out = _UNSAFE_CHARS_RE.sub("", out)
    if max_length and len(out) > max_length:
        out = out[:max_length]
    return out


def is_valid_email(email: str | None) -> bool:
    if not email:
        return False
    e = email.strip().lower()
    if len(e) > 254 or not _EMAIL_RE.match(e):
        return False
    local, _, domain = e.partition("@")
    if not local or not domain or len(local) > 64 or len(domain) > 253:
        return False
    if "." not in domain or domain[0] in ".-" or domain[-1] in ".-":
        return False
    return True


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD (HTML <input type="date">). Raises ValueError on bad input."""
    if not s:
        return None
    s = s.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def parse_amount(raw: str | None, *, max_amount: Decimal = MAX_AMOUNT) -> Decimal:
    """
    Parse a money amount typed into a form.

    Accepts plain ASCII digits with an optional "." or "," decimal part, e.g.
    "1234.56" or "1234,56". Rejects digit separators, scientific notation,
    zero/negatives, more than two decimal places and anything above
    max_amount. Raises ValueError with a user-facing message.
    """
    s = (raw or "").strip()
    if not s:
        raise ValueError("Amount is required.")
    if "e" in s.lower():
        raise ValueError("Scientific notation is not allowed. Use plain numbers only.")
    if "," in s and "." not in s:
        s = s.replace(",", ".")
    if not _AMOUNT_RE.fullmatch(s):
        raise ValueError("Amount must be a number.")
    value = Decimal(s)
    if value <= 0:
        raise ValueError("Amount must be greater than zero.")
    if value > max_amount:
        raise ValueError("Amount is too large.")
    if value.as_tuple().exponent < -2:
        raise ValueError("Amount can have at most 2 decimal places.")
    return value.quantize(Decimal("0.01"))


def format_brl(value: Decimal | int | float | None) -> str:
    """Format as Brazilian reais, e.g. R$ 1.234,56 / -R$ 10,00."""
    amount = Decimal(str(value or 0)).quantize(Decimal("0.01"))
    sign = "-" if amount < 0 else ""
    us = f"{abs(amount):,.2f}"  # 1,234.56
    br = us.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {br}"
