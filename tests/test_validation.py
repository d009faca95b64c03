import pytest

from validation import normalize_full_name, normalize_phone, parse_name_list, validate_name


@pytest.mark.parametrize("raw", ["", "A", "A" * 51, "John123", None, "   "])
def test_validate_name_rejects(raw):
    check = validate_name(raw)
    assert check.ok is False
    assert check.error


def test_validate_name_normalizes_to_upper_and_trims():
    assert validate_name("john o'neil-smith").value == "JOHN O'NEIL-SMITH"
    assert validate_name("  anna  ").value == "ANNA"


def test_validate_name_accepts_extended_alphabets():
    assert validate_name("Алишер").value == "АЛИШЕР"
    assert validate_name("Gülnora").value == "GÜLNORA"


def test_validate_name_length_bounds():
    assert validate_name("Al").ok
    assert validate_name("A" * 50).ok


def test_normalize_phone():
    assert normalize_phone("998 90 123 45 67") == "+998901234567"
    assert normalize_phone("+1 (555) 000-1111") == "+15550001111"
    assert normalize_phone("+998901234567") == "+998901234567"


def test_normalize_phone_rejects_short_numbers():
    assert normalize_phone("12345678") is None
    assert normalize_phone("+1 234-567") is None
    assert normalize_phone("") is None


def test_parse_name_list_skips_blank_lines():
    assert parse_name_list("JOHN DOE\n\n  jane smith  \n") == ["JOHN DOE", "jane smith"]
    assert parse_name_list("") == []


def test_normalize_full_name_collapses_whitespace():
    assert normalize_full_name("  john   doe ") == "JOHN DOE"
