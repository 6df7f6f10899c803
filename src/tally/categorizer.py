"""Rule engine: assigns categories to parsed transactions and learns user rules.

Candidates are ordered once per pass. User rules beat bank rules whenever
both match; inside each class the lowest priority wins, then the longest
pattern, then the smallest normalized pattern, then registration order.
"""

import logging
import sqlite3
import threading
from collections import Counter

from tally import store
from tally.errors import Cancelled, InvalidRulePattern, RuleValidationError
from tally.matching import Matcher, build_matcher, normalize, parse_pattern_type
from tally.models import (
    BankStatement,
    CategorySource,
    IdFormat,
    LearnRequest,
    PatternType,
    Rule,
    RuleOrigin,
    Transaction,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_PRIORITY = 100


def _precedence(matcher: Matcher, order: int) -> tuple:
    rule = matcher.rule
    pattern = normalize(rule.pattern)
    return (0 if rule.is_user_rule else 1, rule.priority, -len(pattern), pattern, order)


def build_matchers(rules: list[Rule]) -> list[Matcher]:
    """Compile usable rules into precedence order; invalid ones are logged and dropped."""
    ranked = []
    for order, rule in enumerate(rules):
        if not rule.active:
            continue
        try:
            matcher = build_matcher(rule)
        except InvalidRulePattern as exc:
            logger.warning("Skipping rule %s (%s): %s", rule.id, rule.bank, exc.message)
            continue
        ranked.append((_precedence(matcher, order), matcher))
    ranked.sort(key=lambda pair: pair[0])
    return [m for _, m in ranked]


def select_rule(matchers: list[Matcher], description: str) -> Rule | None:
    text = normalize(description)
    for matcher in matchers:
        if matcher.matches(text):
            return matcher.rule
    return None


def categorize(
    statement: BankStatement,
    rules: list[Rule],
    cancel: threading.Event | None = None,
) -> dict:
    """Fill in categories for every uncategorized transaction. Returns counts."""
    matchers = build_matchers(rules)
    counts = {"categorized": 0, "uncategorized": 0, "errors": 0}
    hits: Counter = Counter()

    for account in statement.accounts:
        for txn in account.transactions:
            if cancel is not None and cancel.is_set():
                raise Cancelled("categorization")
            if txn.category:
                continue
            try:
                rule = select_rule(matchers, txn.description)
            except Exception:
                logger.exception("Rule evaluation failed for %r", txn.description)
                counts["errors"] += 1
                continue
            if rule is None:
                counts["uncategorized"] += 1
                continue
            _assign(txn, rule)
            counts["categorized"] += 1
            if rule.is_user_rule:
                hits[rule.id] += 1

    counts["hits"] = dict(hits)
    return counts


def _assign(txn: Transaction, rule: Rule) -> None:
    source = CategorySource.USER_RULE if rule.is_user_rule else CategorySource.BANK_RULE
    txn.assign(rule.category, rule.subcategory, source)


def apply(
    conn: sqlite3.Connection,
    statement: BankStatement,
    bank: str,
    user_id: str,
    cancel: threading.Event | None = None,
    record_hits: bool = True,
) -> dict:
    """Categorize ``statement`` in place with the stored rules for ``bank`` and ``user_id``.

    With ``record_hits=False`` the caller persists ``counts["hits"]`` itself.
    """
    rules = store.get_user_rules(conn, user_id, bank, only_active=True)
    rules += store.get_bank_rules(conn, bank, enabled_only=True)
    counts = categorize(statement, rules, cancel=cancel)
    if record_hits:
        store.record_rule_hits(conn, counts["hits"])
    logger.debug(
        "Categorized %d, left %d uncategorized for %s/%s",
        counts["categorized"], counts["uncategorized"], user_id, bank,
    )
    return counts


def validate_request(request: LearnRequest) -> Rule:
    """Turn a learn request into a user rule, rejecting incomplete input."""
    fields = {
        "user_id": request.user_id,
        "bank": request.bank,
        "pattern": request.pattern,
        "category": request.category,
    }
    missing = [name for name, value in fields.items() if not value or not str(value).strip()]
    if missing:
        raise RuleValidationError(
            f"Missing required fields: {', '.join(missing)}", {"missing": missing}
        )

    pattern_type = parse_pattern_type(request.pattern_type)
    rule = Rule(
        id=None,
        bank=request.bank.strip(),
        pattern=request.pattern.strip(),
        pattern_type=pattern_type,
        category=request.category.strip(),
        subcategory=(request.subcategory or "").strip() or None,
        priority=request.priority or DEFAULT_USER_PRIORITY,
        active=True,
        origin=RuleOrigin.LEARNED,
        user_id=request.user_id.strip(),
    )
    if pattern_type is PatternType.REGEX:
        build_matcher(rule)
    return rule


def learn(
    conn: sqlite3.Connection,
    request: LearnRequest,
    id_format: IdFormat = IdFormat.STANDARD,
) -> Rule:
    """Create or update the user rule keyed by (user, bank, pattern, pattern type)."""
    rule = store.upsert_user_rule(conn, validate_request(request), id_format)
    logger.info("Learned rule %s: %s -> %s", rule.id, rule.pattern, rule.category)
    return rule
