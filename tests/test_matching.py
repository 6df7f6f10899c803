import pytest

from tally.errors import InvalidRulePattern
from tally.matching import build_matcher, compile_regex, normalize, parse_pattern_type, strip_accents
from tally.models import PatternType, Rule


def _rule(pattern, pattern_type=PatternType.CONTAINS):
    return Rule(id="1", bank="galicia", pattern=pattern, category="X", pattern_type=pattern_type)


def _matches(pattern, pattern_type, description):
    return build_matcher(_rule(pattern, pattern_type)).matches(normalize(description))


def test_normalize_strips_accents_and_case():
    assert normalize("  Débito  automático ") == "DEBITO  AUTOMATICO"
    assert normalize(None) == ""
    assert strip_accents("Ñandú") == "Nandu"


@pytest.mark.parametrize("value, expected", [
    ("contains", PatternType.CONTAINS),
    ("StartsWith", PatternType.STARTS_WITH),
    ("starts-with", PatternType.STARTS_WITH),
    ("ends_with", PatternType.ENDS_WITH),
    ("Equals", PatternType.EQUALS),
    ("REGEX", PatternType.REGEX),
    (None, PatternType.CONTAINS),
    ("fuzzy", PatternType.CONTAINS),
])
def test_parse_pattern_type(value, expected):
    assert parse_pattern_type(value) is expected


def test_contains_is_case_and_accent_insensitive():
    assert _matches("pago tarjeta", PatternType.CONTAINS, "PAGO TARJETA VISA")
    assert _matches("debito", PatternType.CONTAINS, "Débito automático")
    assert not _matches("haberes", PatternType.CONTAINS, "PAGO TARJETA VISA")


def test_starts_and_ends_with():
    assert _matches("pago", PatternType.STARTS_WITH, "PAGO TARJETA VISA")
    assert not _matches("visa", PatternType.STARTS_WITH, "PAGO TARJETA VISA")
    assert _matches("visa", PatternType.ENDS_WITH, "PAGO TARJETA VISA")


def test_equals_is_full_match():
    assert _matches("pago tarjeta visa", PatternType.EQUALS, "PAGO TARJETA VISA")
    assert not _matches("pago tarjeta", PatternType.EQUALS, "PAGO TARJETA VISA")


def test_regex_search_is_case_insensitive():
    assert _matches(r"tarjeta\s+(visa|master)", PatternType.REGEX, "PAGO TARJETA VISA")
    assert _matches(r"^pago\b", PatternType.REGEX, "pago de servicios")
    assert not _matches(r"^visa", PatternType.REGEX, "PAGO TARJETA VISA")


def test_regex_digit_escapes_survive():
    assert _matches(r"LEY \d{5}", PatternType.REGEX, "IMPUESTO DEBITOS LEY 25413")


def test_invalid_regex_raises():
    with pytest.raises(InvalidRulePattern):
        build_matcher(_rule("([unclosed", PatternType.REGEX))


def test_empty_pattern_raises():
    with pytest.raises(InvalidRulePattern):
        build_matcher(_rule("   "))


def test_compiled_regex_is_cached():
    assert compile_regex(r"PAGO\s+\w+") is compile_regex(r"PAGO\s+\w+")
