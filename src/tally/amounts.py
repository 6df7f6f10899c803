import re
from datetime import date
from decimal import Decimal, InvalidOperation

from tally.errors import MalformedLine

CURRENCY_SYMBOLS = ("U$S", "US$", "$")

_DATE = re.compile(r"^(\d{1,2})\s*/\s*(\d{1,2})(?:\s*/\s*(\d{2}|\d{4}))?$")


def normalize_text(text: str) -> str:
    """Normalize spacing, dashes and line breaks of extracted PDF text."""
    text = text.replace("\u00a0", " ").replace("\u202f", " ")
    for dash in ("\u2212", "\u2012", "\u2013", "\u2014"):
        text = text.replace(dash, "-")
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\f", "\n")
    return text.replace("@@@", "")


def parse_amount(raw: str, decimal_sep: str = ",", thousands_sep: str = ".") -> Decimal:
    """Parse a localized amount into a signed Decimal.

    Accepts a leading or trailing sign, parentheses for negatives and an
    optional currency symbol on either side of the sign.
    """
    text = raw.strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()
    for symbol in CURRENCY_SYMBOLS:
        text = text.replace(symbol, "")
    text = text.replace(" ", "")
    if text.endswith("-"):
        negative = not negative
        text = text[:-1]
    elif text.endswith("+"):
        text = text[:-1]
    if text.startswith("-"):
        negative = not negative
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]

    if not text or not text[0].isdigit():
        raise MalformedLine(f"Not an amount: {raw!r}")
    text = text.replace(thousands_sep, "").replace(decimal_sep, ".")
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise MalformedLine(f"Not an amount: {raw!r}") from None
    return -value if negative else value


def expand_year(yy: int) -> int:
    """Two-digit years: 70-99 belong to the 1900s, the rest to the 2000s."""
    return 1900 + yy if yy >= 70 else 2000 + yy


def parse_date_dmy(raw: str, default_year: int | None = None) -> date:
    """Parse dd/mm/yy, dd/mm/yyyy or dd/mm (with ``default_year``)."""
    m = _DATE.match(raw.strip())
    if m is None:
        raise MalformedLine(f"Not a date: {raw!r}")
    day, month, year = m.group(1), m.group(2), m.group(3)
    if year is None:
        if default_year is None:
            raise MalformedLine(f"Date without year: {raw!r}")
        full_year = default_year
    elif len(year) == 2:
        full_year = expand_year(int(year))
    else:
        full_year = int(year)
    try:
        return date(full_year, int(month), int(day))
    except ValueError:
        raise MalformedLine(f"Not a date: {raw!r}") from None


def collapse_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()
