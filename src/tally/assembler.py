from datetime import datetime, timezone
from decimal import Decimal

from tally.models import AccountStatement, BankStatement, ParseResult, ParseStats

CURRENCY_UNIT = Decimal("0.01")


def reconciliation_tolerance(account: AccountStatement) -> Decimal:
    """One currency unit per transaction, to absorb per-row rounding."""
    return CURRENCY_UNIT * len(account.transactions)


def reconcile_account(account: AccountStatement) -> bool | None:
    """Check opening + sum(amounts) against closing. ``None`` if a balance is missing."""
    if account.opening_balance is None or account.closing_balance is None:
        return None
    calculated = account.opening_balance + sum((t.amount for t in account.transactions), Decimal("0"))
    return abs(calculated - account.closing_balance) <= reconciliation_tolerance(account)


def count_ledger_breaks(account: AccountStatement) -> int:
    """Rows whose running balance does not follow from the previous one."""
    breaks = 0
    previous = account.opening_balance
    for txn in account.transactions:
        if txn.balance is None:
            previous = None
            continue
        if previous is not None and abs(previous + txn.amount - txn.balance) > CURRENCY_UNIT:
            breaks += 1
        previous = txn.balance
    return breaks


def assemble(
    statement: BankStatement,
    user_id: str,
    stats: ParseStats | None = None,
    now: datetime | None = None,
) -> ParseResult:
    """Finalize a provisional statement into a ParseResult.

    Transactions keep source order (never re-sorted by date). Mismatched
    balances are flagged on the account and in ``warnings``, not corrected.
    Category fields are left untouched.
    """
    warnings: list[str] = []
    for account in statement.accounts:
        account.transactions.sort(key=lambda t: t.position)
        account.reconciled = reconcile_account(account)
        account.ledger_breaks = count_ledger_breaks(account)

        label = account.account or "(sin numero)"
        if account.reconciled is False:
            calculated = account.opening_balance + sum((t.amount for t in account.transactions), Decimal("0"))
            warnings.append(
                f"[balance-mismatch] {label}: calculated {calculated} vs closing {account.closing_balance}"
            )
        if account.ledger_breaks:
            warnings.append(f"[ledger] {label}: {account.ledger_breaks} rows with inconsistent running balance")

    return ParseResult(
        statement=statement,
        bank=statement.bank,
        user_id=user_id,
        parsed_at=now or datetime.now(timezone.utc),
        stats=stats or ParseStats(),
        warnings=warnings,
    )
