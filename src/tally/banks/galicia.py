"""Banco Galicia: whitespace-delimited rows, ``dd/mm/yy``, leading minus on debits.

    N° 4049044-1 028-3
    Saldo inicial $ 1.000,00
    02/01/24 PAGO VISA EMPRESA -250,00 750,00
    Saldo final $ 750,00
"""

import re

from tally.amounts import parse_amount, parse_date_dmy
from tally.errors import MalformedLine
from tally.models import LineGrammar, RawRow

MONEY = r"-?\d{1,3}(?:\.\d{3})*,\d{2}"

ROW = re.compile(
    rf"^(?P<date>\d{{2}}/\d{{2}}/\d{{2}})\s+(?P<description>.*?)\s+"
    rf"(?P<amount>{MONEY})\s+(?P<balance>{MONEY})$"
)

CANON = (
    (re.compile(r"\bTRANSFERENCIA\s+DE\s+CUENTA\s*PROPIA\b", re.I), "TRANSFERENCIA ENTRE CUENTAS PROPIAS"),
    (re.compile(r"\bSERVICIO\s+ACREDITAMIENTO\s+DE\s*HABERES\b", re.I), "ACREDITACION HABERES"),
    (re.compile(r"\bIMP\.\s*DEB\.\s*LEY\s*25413\s*GRAL\.", re.I), "IMPUESTO DEBITOS LEY 25413"),
    (re.compile(r"\bIMP\.\s*CRE\.\s*LEY\s*25413\b", re.I), "IMPUESTO CREDITOS LEY 25413"),
    (re.compile(r"\bCOMISION\s+SERVICIO\s+DE\s+CUENTA\b", re.I), "COMISION MANTENIMIENTO CUENTA"),
    (re.compile(r"\bPERCEP\.\s*IVA\b", re.I), "PERCEPCION IVA"),
    (re.compile(r"\bPAGO\s+VISA\s+EMPRESA\b", re.I), "PAGO TARJETA VISA"),
    (re.compile(r"\bDEB\.\s*AUTOM\.\s*DE\s*SERV\.", re.I), "DEBITO AUTOMATICO"),
    (re.compile(r"\bTRF\s+INMED\s+PROVEED\b", re.I), "TRANSFERENCIA INMEDIATA PROVEEDOR"),
)


def decode_row(line: str) -> RawRow:
    m = ROW.match(line)
    if m is None:
        raise MalformedLine(f"Unrecognized Galicia row: {line!r}")
    description = re.sub(r"\s*\d{10,}$", "", m.group("description"))
    return RawRow(
        date=parse_date_dmy(m.group("date")),
        description=description,
        amount=parse_amount(m.group("amount")),
        balance=parse_amount(m.group("balance")),
    )


GRAMMAR = LineGrammar(
    header=re.compile(r"^N[°º]?\s*(?P<account>\d{7}-\d\s+\d{3}-\d)\b"),
    row=re.compile(r"^\d{2}/\d{2}/\d{2,4}\b"),
    decode_row=decode_row,
    opening=re.compile(rf"^Saldo\s+inicial\s+\$?\s*(?P<amount>{MONEY})$", re.I),
    closing=re.compile(rf"^(?:Saldo\s+final|Total)\s+\$?\s*(?P<amount>{MONEY})$", re.I),
    noise=re.compile(
        r"^(?:Resumen de Cuenta Corriente.*P[aá]gina\s+\d+\s*/\s*\d+|\d{10,}P|Fecha\s+Descripci[oó]n\b.*)$",
        re.I,
    ),
    canon=CANON,
    default_account="Cuenta no detectada",
)
