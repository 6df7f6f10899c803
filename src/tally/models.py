import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Callable


class PatternType(str, Enum):
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EQUALS = "equals"
    REGEX = "regex"


class CategorySource(str, Enum):
    NONE = "none"
    BANK_RULE = "bank-rule"
    USER_RULE = "user-rule"
    USER_LEARNED = "user-learned"  # accepted on input, never emitted by matching


class RuleOrigin(str, Enum):
    SYSTEM = "system"
    MANUAL = "manual"
    LEARNED = "learned"


class IdFormat(str, Enum):
    STANDARD = "standard"  # 8-4-4-4-12 hyphenated
    HEX = "hex"  # 32 hex digits


@dataclass
class Transaction:
    date: date
    description: str
    amount: Decimal  # negative = debit, positive = credit
    balance: Decimal | None = None
    original_description: str | None = None
    position: int = 0  # source line number, statement order
    category: str | None = None
    subcategory: str | None = None
    category_source: CategorySource = CategorySource.NONE

    def assign(self, category: str, subcategory: str | None, source: CategorySource) -> None:
        """Set the category fields together so source and category never disagree."""
        self.category = category
        self.subcategory = subcategory
        self.category_source = source if category else CategorySource.NONE


@dataclass
class AccountStatement:
    account: str
    transactions: list[Transaction] = field(default_factory=list)
    opening_balance: Decimal | None = None
    closing_balance: Decimal | None = None
    reconciled: bool | None = None  # None when a balance is missing
    ledger_breaks: int = 0


@dataclass
class BankStatement:
    bank: str
    accounts: list[AccountStatement] = field(default_factory=list)
    period: tuple[date, date] | None = None


@dataclass
class ParseStats:
    lines_total: int = 0
    lines_skipped: int = 0  # noise
    rows_decoded: int = 0
    rows_skipped: int = 0  # malformed rows

    @property
    def skip_ratio(self) -> float:
        candidates = self.rows_decoded + self.rows_skipped
        return self.rows_skipped / candidates if candidates else 0.0


@dataclass
class ParseResult:
    statement: BankStatement
    bank: str
    user_id: str
    parsed_at: datetime
    stats: ParseStats = field(default_factory=ParseStats)
    warnings: list[str] = field(default_factory=list)


@dataclass
class Rule:
    id: str | None  # integer rowid for bank rules, UUID text for user rules
    bank: str
    pattern: str
    category: str
    pattern_type: PatternType = PatternType.CONTAINS
    subcategory: str | None = None
    priority: int = 0  # lower wins
    active: bool = True
    origin: RuleOrigin = RuleOrigin.SYSTEM
    built_in: bool = False  # bank rules only
    user_id: str | None = None  # user rules only
    hit_count: int = 0
    last_hit_at: str | None = None

    @property
    def is_user_rule(self) -> bool:
        return self.user_id is not None


@dataclass
class LearnRequest:
    user_id: str
    bank: str
    pattern: str
    category: str
    pattern_type: str | PatternType | None = None
    subcategory: str | None = None
    priority: int | None = None


@dataclass
class UsageRecord:
    user_id: str
    bank: str
    parsed_at: str  # ISO 8601 UTC


@dataclass
class RawRow:
    """Fields a bank decoder pulls out of one transaction row."""
    date: date
    description: str
    amount: Decimal
    balance: Decimal | None = None


@dataclass
class LineGrammar:
    """Per-bank recognizers consumed by the line classifier."""
    header: re.Pattern  # group "account"
    row: re.Pattern  # anchor: a line that looks like a transaction row
    decode_row: Callable[[str], RawRow]
    opening: re.Pattern | None = None  # group "amount"
    closing: re.Pattern | None = None  # group "amount"
    noise: re.Pattern | None = None
    canon: tuple[tuple[re.Pattern, str], ...] = ()
    parse_balance: Callable[[str], Decimal] | None = None
    default_account: str = ""


@dataclass
class ParserInfo:
    """A bank statement parser: grammar plus metadata, keyed by bank code."""
    key: str
    name: str
    grammar: LineGrammar
    version: str = "1.0"
