"""Pattern primitives shared by bank rules and user rules."""

import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache

from tally.errors import InvalidRulePattern
from tally.models import PatternType, Rule


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", stripped)


def normalize(text: str | None) -> str:
    """Strip accents, upper-case and trim, for case-insensitive comparisons."""
    if not text:
        return ""
    return strip_accents(text).upper().strip()


def parse_pattern_type(value: str | PatternType | None) -> PatternType:
    """Lenient parse: ``StartsWith``, ``starts-with`` and ``starts_with`` are equal; unknown means contains."""
    if isinstance(value, PatternType):
        return value
    if not value:
        return PatternType.CONTAINS
    key = re.sub(r"[\s_\-]", "", value).lower()
    for member in PatternType:
        if member.value.replace("_", "") == key:
            return member
    return PatternType.CONTAINS


@lru_cache(maxsize=1024)
def compile_regex(pattern: str) -> re.Pattern:
    try:
        return re.compile(strip_accents(pattern), re.IGNORECASE)
    except re.error as exc:
        raise InvalidRulePattern(pattern, str(exc)) from None


@dataclass(frozen=True)
class Matcher:
    rule: Rule
    needle: str
    regex: re.Pattern | None = None

    def matches(self, text: str) -> bool:
        """``text`` must already be normalized."""
        kind = self.rule.pattern_type
        if kind is PatternType.REGEX:
            return self.regex.search(text) is not None
        if kind is PatternType.EQUALS:
            return text == self.needle
        if kind is PatternType.STARTS_WITH:
            return text.startswith(self.needle)
        if kind is PatternType.ENDS_WITH:
            return text.endswith(self.needle)
        return self.needle in text


def build_matcher(rule: Rule) -> Matcher:
    """Prepare a rule for matching; raises InvalidRulePattern for bad regexes."""
    if rule.pattern_type is PatternType.REGEX:
        return Matcher(rule=rule, needle=rule.pattern, regex=compile_regex(rule.pattern))
    needle = normalize(rule.pattern)
    if not needle:
        raise InvalidRulePattern(rule.pattern, "empty pattern")
    return Matcher(rule=rule, needle=needle)
