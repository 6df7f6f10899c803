"""Statement parsing state machine.

Lines are classified with the bank's grammar and folded into accounts:

    BEFORE_ACCOUNT --header--> IN_ACCOUNT --closing balance--> ACCOUNT_CLOSED
          ^                        |  ^                              |
          |                        +--+ rows, opening balance        |
          +------------------- header (new account) <----------------+

A row or balance seen before any header opens an implicit account. Rows
that cannot be decoded are counted, not raised; the whole parse fails only
when nothing was recovered or the skip ratio crosses ``max_skip_ratio``.
"""

import logging
import threading
from enum import Enum
from typing import Sequence

from tally import banks  # noqa: F401  registers the bundled parsers
from tally.amounts import collapse_spaces, normalize_text, parse_amount
from tally.classifier import LineKind, classify
from tally.errors import Cancelled, MalformedLine, UnparseableDocument
from tally.models import (
    AccountStatement,
    BankStatement,
    LineGrammar,
    ParserInfo,
    ParseStats,
    Transaction,
)
from tally.registry import registry

logger = logging.getLogger(__name__)

DEFAULT_MAX_SKIP_RATIO = 0.25


class State(Enum):
    BEFORE_ACCOUNT = "before-account"
    IN_ACCOUNT = "in-account"
    ACCOUNT_CLOSED = "account-closed"


def get_parser(bank: str) -> ParserInfo:
    return registry.get(bank)


def split_lines(text: str | Sequence[str]) -> list[str]:
    """Join page texts in order and split into normalized lines."""
    if not isinstance(text, str):
        text = "\n".join(text)
    return normalize_text(text).split("\n")


def canonicalize(grammar: LineGrammar, description: str) -> str:
    cleaned = collapse_spaces(description)
    for rx, canon in grammar.canon:
        cleaned = rx.sub(canon, cleaned)
    return cleaned


def _decode_row(grammar: LineGrammar, text: str, line_no: int) -> Transaction | None:
    try:
        raw = grammar.decode_row(text)
    except MalformedLine as exc:
        logger.debug("Skipping row at line %d: %s", line_no, exc)
        return None
    return Transaction(
        date=raw.date,
        description=canonicalize(grammar, raw.description) or "Movimiento",
        amount=raw.amount,
        balance=raw.balance,
        original_description=text,
        position=line_no,
    )


def _decode_balance(grammar: LineGrammar, amount_text: str):
    decode = grammar.parse_balance or parse_amount
    try:
        return decode(amount_text)
    except MalformedLine:
        return None


def parse_text(
    info: ParserInfo,
    text: str | Sequence[str],
    max_skip_ratio: float = DEFAULT_MAX_SKIP_RATIO,
    cancel: threading.Event | None = None,
) -> tuple[BankStatement, ParseStats]:
    grammar = info.grammar
    lines = split_lines(text)
    stats = ParseStats(lines_total=len(lines))
    statement = BankStatement(bank=info.key)
    state = State.BEFORE_ACCOUNT
    account: AccountStatement | None = None

    for line_no, line in enumerate(lines, 1):
        if cancel is not None and cancel.is_set():
            raise Cancelled("parsing")

        c = classify(grammar, line)
        if c.kind is LineKind.NOISE:
            if c.text:
                stats.lines_skipped += 1
            continue

        if c.kind is LineKind.ACCOUNT_HEADER:
            # statements repeat the header on every page
            if account is not None and account.account == c.account:
                continue
            account = AccountStatement(account=c.account)
            statement.accounts.append(account)
            state = State.IN_ACCOUNT
            continue

        if state is State.ACCOUNT_CLOSED:
            stats.lines_skipped += 1
            continue

        if state is State.BEFORE_ACCOUNT:
            account = AccountStatement(account=grammar.default_account)
            statement.accounts.append(account)
            state = State.IN_ACCOUNT

        if c.kind is LineKind.BALANCE_FOOTER:
            amount = _decode_balance(grammar, c.amount_text)
            if amount is None:
                stats.lines_skipped += 1
            elif c.role == "opening":
                account.opening_balance = amount
            else:
                account.closing_balance = amount
                state = State.ACCOUNT_CLOSED
            continue

        txn = _decode_row(grammar, c.text, line_no)
        if txn is None:
            stats.rows_skipped += 1
        else:
            account.transactions.append(txn)
            stats.rows_decoded += 1

    if not any(line.strip() for line in lines):
        return BankStatement(bank=info.key), stats

    if stats.rows_decoded == 0:
        raise UnparseableDocument(f"No transactions recognized in {info.name} statement", stats)
    if stats.skip_ratio > max_skip_ratio:
        logger.warning(
            "%s: %d of %d rows could not be decoded",
            info.key, stats.rows_skipped, stats.rows_decoded + stats.rows_skipped,
        )
        raise UnparseableDocument(
            f"Too many undecodable rows ({stats.skip_ratio:.0%}) in {info.name} statement", stats
        )

    dates = [t.date for a in statement.accounts for t in a.transactions]
    statement.period = (min(dates), max(dates))
    return statement, stats


def parse(
    bank: str,
    text: str | Sequence[str],
    max_skip_ratio: float = DEFAULT_MAX_SKIP_RATIO,
    cancel: threading.Event | None = None,
) -> tuple[BankStatement, ParseStats]:
    """Parse statement text with the parser registered for ``bank``."""
    return parse_text(get_parser(bank), text, max_skip_ratio=max_skip_ratio, cancel=cancel)
