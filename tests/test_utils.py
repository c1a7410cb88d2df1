from decimal import Decimal

import pytest

from app.caixa.storage import LocalStorage, StorageError, storage_from_config
from app.caixa.utils import format_brl, is_valid_email, parse_amount, parse_date, sanitize_text


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("10", Decimal("10.00")),
        ("10.5", Decimal("10.50")),
        ("1234,56", Decimal("1234.56")),
        (" 0.01 ", Decimal("0.01")),
        ("999999999.99", Decimal("999999999.99")),
    ],
)
def test_parse_amount_ok(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "0", "-1", "1E5", "NaN", "Infinity", "12abc", "1.234", "1000000000.00"])
def test_parse_amount_rejects(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


@pytest.mark.parametrize("raw", ["1_000", "1 000", "1.000,50", "1,234.56", "+5", "\u0661\u0662", "\uff15"])
def test_parse_amount_rejects_separators_and_non_ascii_digits(raw):
    with pytest.raises(ValueError, match="must be a number"):
        parse_amount(raw)


def test_parse_date():
    assert parse_date("2026-03-01").isoformat() == "2026-03-01"
    assert parse_date("") is None
    with pytest.raises(ValueError):
        parse_date("01/03/2026")


def test_sanitize_text():
    assert sanitize_text("  <i>Hello</i> [world] ", 100) == "Hello world"
    assert sanitize_text("a\x00b\x07c") == "abc"
    assert sanitize_text("x" * 300, 200) == "x" * 200
    assert sanitize_text(None) == ""


@pytest.mark.parametrize(
    "email,ok",
    [
        ("someone@example.com", True),
        ("first.last+tag@sub.example.org", True),
        ("no-at-sign.example.com", False),
        ("two@@example.com", False),
        ("trailing@example.", False),
        ("nodot@localhost", False),
        ("", False),
    ],
)
def test_is_valid_email(email, ok):
    assert is_valid_email(email) is ok


def test_format_brl():
    assert format_brl(Decimal("1234.56")) == "R$ 1.234,56"
    assert format_brl(Decimal("-10")) == "-R$ 10,00"
    assert format_brl(0) == "R$ 0,00"
    assert format_brl(Decimal("1000000")) == "R$ 1.000.000,00"


def test_local_storage_roundtrip_and_guard(tmp_path):
    storage = LocalStorage(root=tmp_path)
    storage.put_bytes("a/b/file.txt", b"hello", content_type="text/plain")
    assert storage.exists("a/b/file.txt")
    with storage.open("a/b/file.txt") as f:
        assert f.read() == b"hello"

    storage.delete("a/b/file.txt")
    assert not storage.exists("a/b/file.txt")
    storage.delete("a/b/file.txt")

    with pytest.raises(StorageError):
        storage.open("a/b/file.txt")
    with pytest.raises(StorageError):
        storage.put_bytes("../escape.txt", b"x")


def test_storage_from_config_defaults_to_local(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    storage = storage_from_config({"STORAGE_BACKEND": ""})
    assert isinstance(storage, LocalStorage)
    assert storage.root.resolve() == (tmp_path / "storage").resolve()
