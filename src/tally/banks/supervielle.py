"""Banco Supervielle: trailing-sign negatives (``250,00-``), several accounts per document."""

import re

from tally.amounts import parse_amount, parse_date_dmy
from tally.errors import MalformedLine
from tally.models import LineGrammar, RawRow

MONEY = r"-?\d{1,3}(?:\.\d{3})*,\d{2}-?"

ROW = re.compile(
    rf"^(?P<date>\d{{2}}/\d{{2}}/(?:\d{{4}}|\d{{2}}))\s+(?P<description>.*?)\s+"
    rf"(?P<amount>{MONEY})\s+(?P<balance>{MONEY})$"
)

CANON = (
    (re.compile(r"\bCRED\s+BCA\s+ELECTR\s+INTERBANC\s+EXEN\b", re.I), "CREDITO INTERBANCARIO"),
    (re.compile(r"\bD[ée]bitos?\s+varios\b", re.I), "DEBITOS VARIOS"),
    (re.compile(r"\bD[ée]bito\s+por\s+Pago\s+Sueldos\b", re.I), "PAGO SUELDOS"),
    (re.compile(r"\bImpuesto\s+D[ée]bitos?\s+y\s+Cr[ée]ditos?/DB\b", re.I), "IMPUESTO DEBITOS Y CREDITOS (DB)"),
    (re.compile(r"\bEmbargo\s+Judicial\b", re.I), "EMBARGO JUDICIAL"),
    (re.compile(r"\bCobranzas\s+ResumenVisa\b", re.I), "COBRANZAS VISA"),
    (re.compile(r"\bTrf\.\s+Masivas\s+PagoProveedores\b", re.I), "TRANSFERENCIA MASIVA PROVEEDORES"),
)


def decode_row(line: str) -> RawRow:
    m = ROW.match(line)
    if m is None:
        raise MalformedLine(f"Unrecognized Supervielle row: {line!r}")
    return RawRow(
        date=parse_date_dmy(m.group("date")),
        description=m.group("description"),
        amount=parse_amount(m.group("amount")),
        balance=parse_amount(m.group("balance")),
    )


GRAMMAR = LineGrammar(
    header=re.compile(r"NUMERO\s+DE\s+CUENTA\s+(?P<account>\d[\d\-/]*)", re.I),
    row=re.compile(r"^\d{2}/\d{2}/\d{2,4}\b"),
    decode_row=decode_row,
    opening=re.compile(rf"^Saldo\s+del\s+per[ií]odo\s+anterior\s+\$?\s*(?P<amount>{MONEY})$", re.I),
    closing=re.compile(rf"^SALDO\s+PERIODO\s+ACTUAL\s+\$?\s*(?P<amount>{MONEY})$", re.I),
    noise=re.compile(
        r"^(?:Detalle\s+de\s+Movimientos|Fecha\s+Concepto\b.*|IMPORTANTE:.*|Canales\s+de\s+atenci[oó]n.*)$",
        re.I,
    ),
    canon=CANON,
)
