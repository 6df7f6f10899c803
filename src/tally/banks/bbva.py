"""BBVA: ``dd/mm/yyyy``, an origin code column and parenthesized negatives."""

import re

from tally.amounts import parse_amount, parse_date_dmy
from tally.errors import MalformedLine
from tally.models import LineGrammar, RawRow

MONEY = r"\(?-?\d{1,3}(?:\.\d{3})*,\d{2}\)?"

ROW = re.compile(
    rf"^(?P<date>\d{{2}}/\d{{2}}/\d{{4}})\s+(?:[DC]\s*)?(?P<origin>\d{{3}})\s+(?P<description>.*?)\s+"
    rf"(?P<amount>{MONEY})\s+(?P<balance>{MONEY})$"
)

CANON = (
    (re.compile(r"\bIMP\.?\s*LEY\s*25\.?413\b", re.I), "IMPUESTO LEY 25413"),
    (re.compile(r"\bTRANSF\.?\s+RECIB(?:\.|\b)", re.I), "TRANSFERENCIA RECIBIDA"),
    (re.compile(r"\bPAGO\s+TARJ\.?\s+VISA\b", re.I), "PAGO TARJETA VISA"),
)


def decode_row(line: str) -> RawRow:
    m = ROW.match(line)
    if m is None:
        raise MalformedLine(f"Unrecognized BBVA row: {line!r}")
    return RawRow(
        date=parse_date_dmy(m.group("date")),
        description=m.group("description"),
        amount=parse_amount(m.group("amount")),
        balance=parse_amount(m.group("balance")),
    )


GRAMMAR = LineGrammar(
    header=re.compile(
        r"(?:Cuenta\s+Corriente|Caja\s+de\s+Ahorros?)\s+en\s+(?:U\$S|\$)\s+Nro\.?\s*(?P<account>\d[\d\-/]*)",
        re.I,
    ),
    row=re.compile(r"^\d{2}/\d{2}/\d{2,4}\b"),
    decode_row=decode_row,
    opening=re.compile(rf"^SALDO\s+ANTERIOR\s+(?P<amount>{MONEY})$", re.I),
    closing=re.compile(
        rf"^SALDO\s+AL\s+\d{{1,2}}\s+DE\s+\w+(?:\s+DE\s+\d{{4}})?\s+(?P<amount>{MONEY})$", re.I
    ),
    noise=re.compile(r"^(?:MOVIMIENTOS\s+EN\s+CUENTAS|FECHA\s+ORIGEN\s+CONCEPTO\b.*)$", re.I),
    canon=CANON,
)
