"""
Тесты построения и разбора фильтров
"""
import pytest

from crm.services import filters
from crm.services.filters import FilterSyntaxError, parse_filter, parse_sort


def test_quote_escapes_quotes_and_literals():
    assert filters.quote("O'Brien") == "'O\\'Brien'"
    assert filters.quote(True) == "true"
    assert filters.quote(False) == "false"
    assert filters.quote(5) == "5"


def test_one_of_builds_or_group():
    assert filters.one_of("slot", ["a"]) == "slot = 'a'"
    assert filters.one_of("slot", ["a", "b"]) == "(slot = 'a' || slot = 'b')"


def test_one_of_rejects_empty_list():
    with pytest.raises(ValueError):
        filters.one_of("slot", [])


def test_join_all_skips_empty_conditions():
    assert filters.join_all("", filters.eq("date", "2025-03-10"), "") == "date = '2025-03-10'"
    assert filters.join_all() == ""


def test_parse_built_filter():
    expression = filters.join_all(
        filters.any_field_contains(["surname", "tel"], "Mül"),
        filters.eq("deaktif", False)
    )
    assert parse_filter(expression) == (
        "and",
        [
            ("or", [("cmp", "surname", "~", "Mül"), ("cmp", "tel", "~", "Mül")]),
            ("cmp", "deaktif", "=", False),
        ]
    )


def test_parse_filter_unescapes_strings():
    assert parse_filter(filters.eq("surname", "O'Brien")) == ("cmp", "surname", "=", "O'Brien")


def test_parse_filter_numbers_and_null():
    assert parse_filter("space >= 30") == ("cmp", "space", ">=", 30)
    assert parse_filter("customer != null") == ("cmp", "customer", "!=", None)


def test_parse_empty_filter():
    assert parse_filter("") is None
    assert parse_filter("   ") is None


@pytest.mark.parametrize("expression", [
    "status =",
    "(status = 'empty'",
    "status = 'empty' extra",
    "= 'empty'",
    "status # 'x'",
])
def test_parse_invalid_filter(expression):
    with pytest.raises(FilterSyntaxError):
        parse_filter(expression)


def test_parse_sort():
    assert parse_sort("-date,created") == [("date", True), ("created", False)]
    assert parse_sort("") == []
    assert parse_sort(" +time , ") == [("time", False)]
