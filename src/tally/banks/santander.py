"""Banco Santander: fixed-width columns.

    0        9                                       49               66               83
    dd/mm/yy DESCRIPTION                             DEBIT            CREDIT           BALANCE

A value in the debit column is a negative amount; exactly one of debit and
credit is filled on each row.
"""

import re

from tally.amounts import parse_amount, parse_date_dmy
from tally.errors import MalformedLine
from tally.models import LineGrammar, RawRow

DATE_COL = (0, 9)
DESCRIPTION_COL = (9, 49)
DEBIT_COL = (49, 66)
CREDIT_COL = (66, 83)
BALANCE_COL = (83, None)

MONEY = r"[-+]?\s*(?:U\$S|\$)?\s*[-+]?\s*\d{1,3}(?:\.\d{3})*,\d{2}"

CANON = (
    (re.compile(r"\bCOMPRA\s+CON\s+TARJETA\s+DE\s+DEBITO\b", re.I), "COMPRA TARJETA DEBITO"),
    (re.compile(r"\bTRANSFERENCIA\s+REALIZADA\b", re.I), "TRANSFERENCIA ENVIADA"),
    (re.compile(r"\bIMPUESTO\s+LEY\s+25\.?413\b", re.I), "IMPUESTO LEY 25413"),
)


def _column(line: str, bounds: tuple[int, int | None]) -> str:
    start, end = bounds
    return line[start:end].strip()


def decode_row(line: str) -> RawRow:
    if len(line) <= BALANCE_COL[0]:
        raise MalformedLine(f"Santander row shorter than its columns: {line!r}")
    debit = _column(line, DEBIT_COL)
    credit = _column(line, CREDIT_COL)
    if bool(debit) == bool(credit):
        raise MalformedLine(f"Expected exactly one of debit/credit: {line!r}")
    amount = -abs(parse_amount(debit)) if debit else abs(parse_amount(credit))
    balance = _column(line, BALANCE_COL)
    return RawRow(
        date=parse_date_dmy(_column(line, DATE_COL)),
        description=_column(line, DESCRIPTION_COL),
        amount=amount,
        balance=parse_amount(balance) if balance else None,
    )


GRAMMAR = LineGrammar(
    header=re.compile(r"Cuenta\s+Corriente\s+N[º°o]\.?\s*(?P<account>\d{3}-\d{6}/\d)", re.I),
    row=re.compile(r"^\d{2}/\d{2}/\d{2}\b"),
    decode_row=decode_row,
    opening=re.compile(rf"^Saldo\s+Inicial\s+(?P<amount>{MONEY})$", re.I),
    closing=re.compile(rf"^Saldo\s+total\s+(?P<amount>{MONEY})$", re.I),
    noise=re.compile(
        r"^(?:Movimientos\s+en\s+(?:pesos|d[oó]lares)|Fecha\s+Descripci[oó]n\b.*|Desde:.*|Detalle\s+impositivo.*)$",
        re.I,
    ),
    canon=CANON,
)
