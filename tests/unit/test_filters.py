from clients.filters import (
    and_clause,
    build_database_filter,
    build_schema_filter,
    matches_filter,
    where_clause,
)
from clients.models import Filter


def test_empty_filter_builds_nothing():
    assert build_schema_filter(None) == ""
    assert build_schema_filter({}) == ""
    assert build_database_filter({"only": [], "ignore": None}) == ""


def test_only_filter_is_case_insensitive_and_sorted():
    fragment = build_schema_filter({"only": ["Sales", "hr"]}, "table_schema")
    assert fragment == "LOWER(table_schema) IN ('hr', 'sales')"


def test_names_differing_only_in_case_collapse():
    fragment = build_schema_filter({"only": ["Public", "public", "PUBLIC", "Archive"]})
    assert fragment == "LOWER(schema_name) IN ('archive', 'public')"


def test_ignore_filter_uses_not_in():
    fragment = build_database_filter({"ignore": ["template0", "template1"]})
    assert fragment == "LOWER(database_name) NOT IN ('template0', 'template1')"


def test_only_wins_over_ignore():
    fragment = build_schema_filter(Filter(only=frozenset({"public"}), ignore=frozenset({"x"})))
    assert fragment == "LOWER(schema_name) IN ('public')"


def test_filter_literals_are_escaped():
    assert build_schema_filter("o'neil") == "LOWER(schema_name) IN ('o''neil')"


def test_clause_helpers_skip_empty_fragments():
    assert where_clause("") == ""
    assert and_clause("") == ""
    assert where_clause("a = 1") == "WHERE a = 1"
    assert and_clause("a = 1") == "AND a = 1"


def test_filter_coerce_shapes():
    assert Filter.coerce(None).is_empty
    assert Filter.coerce("public").only == frozenset({"public"})
    assert Filter.coerce(["a", "b"]).only == frozenset({"a", "b"})
    assert Filter.coerce({"ignore": "tmp"}).ignore == frozenset({"tmp"})


def test_matches_filter_in_python():
    assert matches_filter("System", None)
    assert matches_filter("Shop", {"only": ["shop"]})
    assert not matches_filter("system", {"only": ["shop"]})
    assert not matches_filter("System_Auth", {"ignore": ["system_auth"]})
