"""Line classification for statement text.

Every line of a statement is recognized as one of four kinds using the
recognizers of the bank's ``LineGrammar``. Classification never raises:
anything unrecognized is ``NOISE``.
"""

from dataclasses import dataclass
from enum import Enum

from tally.models import LineGrammar


class LineKind(str, Enum):
    ACCOUNT_HEADER = "account-header"
    TRANSACTION_ROW = "transaction-row"
    BALANCE_FOOTER = "balance-footer"
    NOISE = "noise"


@dataclass
class Classified:
    kind: LineKind
    text: str
    account: str | None = None  # ACCOUNT_HEADER
    role: str | None = None  # BALANCE_FOOTER: "opening" or "closing"
    amount_text: str | None = None  # BALANCE_FOOTER


def classify(grammar: LineGrammar, line: str) -> Classified:
    text = line.strip() if isinstance(line, str) else ""
    if not text:
        return Classified(LineKind.NOISE, text)
    if grammar.noise is not None and grammar.noise.search(text):
        return Classified(LineKind.NOISE, text)

    m = grammar.header.search(text)
    if m:
        return Classified(LineKind.ACCOUNT_HEADER, text, account=m.group("account").strip())

    for role, pattern in (("opening", grammar.opening), ("closing", grammar.closing)):
        if pattern is None:
            continue
        m = pattern.search(text)
        if m:
            return Classified(LineKind.BALANCE_FOOTER, text, role=role, amount_text=m.group("amount"))

    if grammar.row.search(text):
        return Classified(LineKind.TRANSACTION_ROW, text)
    return Classified(LineKind.NOISE, text)


def classify_line(bank: str, line: str) -> Classified:
    """Classify ``line`` with the grammar registered for ``bank``."""
    from tally.parser import get_parser

    return classify(get_parser(bank).grammar, line)
