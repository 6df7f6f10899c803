"""
Error taxonomy for statement parsing, categorization and quota checks.

    TallyError
    ├── UnsupportedBank
    ├── UnparseableDocument
    ├── MalformedLine            (also ValueError; recovered per row)
    ├── InvalidRulePattern
    ├── RuleValidationError
    ├── RuleNotFound
    ├── QuotaExceeded
    ├── PersistenceFailure
    └── Cancelled
"""


class TallyError(Exception):
    """Base exception; ``details`` carries structured context for callers."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class UnsupportedBank(TallyError):
    def __init__(self, bank: str):
        super().__init__(f"No parser registered for bank: {bank}", {"bank": bank})
        self.bank = bank


class UnparseableDocument(TallyError):
    """No usable transactions, or too many rows failed to decode."""

    def __init__(self, reason: str, stats=None):
        details = {}
        if stats is not None:
            details = {
                "rows_decoded": stats.rows_decoded,
                "rows_skipped": stats.rows_skipped,
                "skip_ratio": round(stats.skip_ratio, 3),
            }
        super().__init__(reason, details)
        self.reason = reason
        self.stats = stats


class MalformedLine(TallyError, ValueError):
    pass


class InvalidRulePattern(TallyError):
    def __init__(self, pattern: str, error: str):
        super().__init__(f"Invalid rule pattern {pattern!r}: {error}", {"pattern": pattern})
        self.pattern = pattern


class RuleValidationError(TallyError):
    pass


class RuleNotFound(TallyError):
    pass


class QuotaExceeded(TallyError):
    def __init__(self, limit: int):
        super().__init__(f"Monthly usage limit reached ({limit})", {"limit": limit})
        self.limit = limit


class PersistenceFailure(TallyError):
    pass


class Cancelled(TallyError):
    def __init__(self, stage: str = ""):
        super().__init__(f"Cancelled during {stage}" if stage else "Cancelled")
        self.stage = stage
