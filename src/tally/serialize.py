"""Plain-dict renderings of results and rules with stable camelCase keys."""

from datetime import date
from decimal import Decimal

from tally.models import IdFormat, ParseResult, ParseStats, Rule, Transaction
from tally.store import decode_id, encode_id, utc_stamp


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _date(value: date | None) -> str | None:
    return None if value is None else value.isoformat()


def transaction_to_dict(txn: Transaction) -> dict:
    return {
        "date": _date(txn.date),
        "description": txn.description,
        "amount": _money(txn.amount),
        "balance": _money(txn.balance),
        "category": txn.category,
        "subcategory": txn.subcategory,
        "categorySource": txn.category_source.value,
    }


def stats_to_dict(stats: ParseStats) -> dict:
    return {
        "linesTotal": stats.lines_total,
        "linesSkipped": stats.lines_skipped,
        "rowsDecoded": stats.rows_decoded,
        "rowsSkipped": stats.rows_skipped,
        "skipRatio": round(stats.skip_ratio, 4),
    }


def result_to_dict(result: ParseResult) -> dict:
    period = result.statement.period
    return {
        "bank": result.bank,
        "user": result.user_id,
        "parsedAt": utc_stamp(result.parsed_at),
        "period": {"start": _date(period[0]), "end": _date(period[1])} if period else None,
        "accounts": [
            {
                "account": account.account,
                "openingBalance": _money(account.opening_balance),
                "closingBalance": _money(account.closing_balance),
                "reconciled": account.reconciled,
                "ledgerBreaks": account.ledger_breaks,
                "transactions": [transaction_to_dict(t) for t in account.transactions],
            }
            for account in result.statement.accounts
        ],
        "warnings": list(result.warnings),
        "stats": stats_to_dict(result.stats),
    }


def rule_to_dict(rule: Rule, id_format: IdFormat = IdFormat.STANDARD) -> dict:
    """User rule ids are rendered in ``id_format``; bank rule ids stay numeric."""
    rule_id = rule.id
    if rule.is_user_rule and rule_id:
        rule_id = encode_id(decode_id(rule_id), id_format)
    return {
        "id": rule_id,
        "bank": rule.bank,
        "userId": rule.user_id,
        "pattern": rule.pattern,
        "patternType": rule.pattern_type.value,
        "category": rule.category,
        "subcategory": rule.subcategory,
        "priority": rule.priority,
        "active": rule.active,
        "origin": rule.origin.value,
        "hitCount": rule.hit_count,
        "lastHitAt": rule.last_hit_at,
    }
