import threading
from datetime import date
from decimal import Decimal

import pytest

from tally.assembler import assemble
from tally.errors import Cancelled, UnparseableDocument, UnsupportedBank
from tally.parser import canonicalize, parse, split_lines
from tally.banks import galicia


def test_parse_single_account(galicia_text):
    statement, stats = parse("galicia", galicia_text)
    assert statement.bank == "galicia"
    assert len(statement.accounts) == 1

    account = statement.accounts[0]
    assert account.account == "4049044-1 028-3"
    assert account.opening_balance == Decimal("1000.00")
    assert account.closing_balance == Decimal("5750.00")
    assert [t.amount for t in account.transactions] == [Decimal("-250.00"), Decimal("5000.00")]
    assert account.transactions[0].description == "PAGO TARJETA VISA"
    assert account.transactions[0].balance == Decimal("750.00")

    assert stats.rows_decoded == 2
    assert stats.rows_skipped == 0
    assert stats.lines_skipped == 2
    assert statement.period == (date(2024, 1, 2), date(2024, 1, 3))


def test_parse_keeps_source_order_for_reversed_dates():
    text = (
        "N° 4049044-1 028-3\n"
        "05/01/24 CUARTO -1,00 96,00\n"
        "04/01/24 TERCERO -1,00 97,00\n"
        "03/01/24 SEGUNDO -1,00 98,00\n"
        "02/01/24 PRIMERO -1,00 99,00\n"
    )
    statement, _ = parse("galicia", text)
    descriptions = [t.description for t in statement.accounts[0].transactions]
    assert descriptions == ["CUARTO", "TERCERO", "SEGUNDO", "PRIMERO"]
    assert statement.period == (date(2024, 1, 2), date(2024, 1, 5))


def test_rows_before_header_open_implicit_account():
    statement, _ = parse("galicia", "02/01/24 PAGO -10,00 90,00\n")
    assert statement.accounts[0].account == "Cuenta no detectada"
    assert len(statement.accounts[0].transactions) == 1


def test_new_header_starts_new_account():
    text = (
        "N° 4049044-1 028-3\n"
        "02/01/24 UNO -10,00 90,00\n"
        "Saldo final $ 90,00\n"
        "Texto suelto al pie\n"
        "N° 1111111-1 111-1\n"
        "03/01/24 DOS 20,00 20,00\n"
    )
    statement, _ = parse("galicia", text)
    assert [a.account for a in statement.accounts] == ["4049044-1 028-3", "1111111-1 111-1"]
    assert [len(a.transactions) for a in statement.accounts] == [1, 1]


def test_rows_after_closing_balance_are_ignored():
    text = (
        "N° 4049044-1 028-3\n"
        "02/01/24 UNO -10,00 90,00\n"
        "Saldo final $ 90,00\n"
        "03/01/24 FUERA -5,00 85,00\n"
    )
    statement, stats = parse("galicia", text)
    assert len(statement.accounts[0].transactions) == 1
    assert stats.lines_skipped == 1


def test_malformed_rows_are_skipped_and_counted():
    rows = [f"{d:02d}/01/24 MOVIMIENTO -1,00 {100 - d},00" for d in range(1, 10)]
    rows.append("10/01/24 SIN IMPORTE")
    statement, stats = parse("galicia", "\n".join(rows))
    assert stats.rows_decoded == 9
    assert stats.rows_skipped == 1
    assert stats.skip_ratio == pytest.approx(0.1)
    assert len(statement.accounts[0].transactions) == 9


def test_skip_ratio_above_threshold_fails():
    text = "\n".join([
        "02/01/24 BIEN -1,00 99,00",
        "03/01/24 MAL",
        "04/01/2024 TAMBIEN MAL -1,00 98,00",
    ])
    with pytest.raises(UnparseableDocument) as exc_info:
        parse("galicia", text)
    assert exc_info.value.stats.rows_skipped == 2
    assert exc_info.value.details["rows_decoded"] == 1


def test_skip_ratio_threshold_is_configurable():
    text = "02/01/24 BIEN -1,00 99,00\n03/01/24 MAL\n"
    _, stats = parse("galicia", text, max_skip_ratio=0.5)
    assert stats.skip_ratio == 0.5
    with pytest.raises(UnparseableDocument):
        parse("galicia", text, max_skip_ratio=0.4)


def test_no_transactions_in_non_empty_document_fails():
    with pytest.raises(UnparseableDocument):
        parse("galicia", "Este documento no es un resumen\nOtra linea\n")


def test_empty_document_returns_empty_statement():
    statement, stats = parse("galicia", "\n  \n")
    assert statement.accounts == []
    assert statement.period is None
    assert stats.rows_decoded == 0


def test_unsupported_bank():
    with pytest.raises(UnsupportedBank):
        parse("patagonia", "02/01/24 X -1,00 1,00")


def test_pages_are_joined_in_order():
    pages = [
        "N° 4049044-1 028-3\nSaldo inicial $ 100,00\n02/01/24 UNO -10,00 90,00",
        "03/01/24 DOS -10,00 80,00\nSaldo final $ 80,00",
    ]
    statement, _ = parse("galicia", pages)
    account = statement.accounts[0]
    assert [t.description for t in account.transactions] == ["UNO", "DOS"]
    assert account.closing_balance == Decimal("80.00")


def test_repeated_page_header_continues_the_account():
    pages = [
        "Resumen de Cuenta Corriente en Pesos Página 1 / 2\nN° 4049044-1 028-3\n"
        "Saldo inicial $ 100,00\n02/01/24 UNO -10,00 90,00",
        "Resumen de Cuenta Corriente en Pesos Página 2 / 2\nN° 4049044-1 028-3\n"
        "03/01/24 DOS -10,00 80,00\nSaldo final $ 80,00",
    ]
    statement, _ = parse("galicia", pages)
    assert len(statement.accounts) == 1
    account = statement.accounts[0]
    assert account.opening_balance == Decimal("100.00")
    assert account.closing_balance == Decimal("80.00")
    assert [t.description for t in account.transactions] == ["UNO", "DOS"]

    result = assemble(statement, "ana")
    assert result.statement.accounts[0].reconciled is True


def test_split_lines_handles_form_feeds():
    assert split_lines("a\fb\r\nc") == ["a", "b", "c"]


def test_canonicalize_applies_bank_map():
    assert canonicalize(galicia.GRAMMAR, "PAGO   VISA EMPRESA 123") == "PAGO TARJETA VISA 123"


def test_original_description_is_kept():
    statement, _ = parse("galicia", "02/01/24 PAGO VISA EMPRESA -10,00 90,00")
    txn = statement.accounts[0].transactions[0]
    assert txn.description == "PAGO TARJETA VISA"
    assert txn.original_description == "02/01/24 PAGO VISA EMPRESA -10,00 90,00"


def test_cancelled_parse_raises():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(Cancelled):
        parse("galicia", "02/01/24 UNO -10,00 90,00", cancel=cancel)
