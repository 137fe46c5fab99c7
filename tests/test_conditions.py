import pytest

from nodeflow import (
    AllOf,
    Always,
    AnyOf,
    ComparisonOperator,
    InMemoryStore,
    KeyEquals,
    KeyExists,
    Never,
    Not,
    NumericCompare,
    Predicate,
)


@pytest.fixture
def store():
    return InMemoryStore({"count": 5, "name": "alice", "flag": True, "text": "abc", "ratio": "2.5"})


def test_constant_conditions(store):
    assert Always().evaluate(store)
    assert not Never().evaluate(store)


def test_key_exists_and_equals(store):
    assert KeyExists("name").evaluate(store)
    assert not KeyExists("missing").evaluate(store)
    assert KeyEquals("name", "alice").evaluate(store)
    assert not KeyEquals("name", "bob").evaluate(store)
    assert not KeyEquals("missing", None).evaluate(store)


@pytest.mark.parametrize(
    "op, value, expected",
    [
        ("==", 5, True),
        ("!=", 5, False),
        (">", 4, True),
        (">=", 5, True),
        ("<", 5, False),
        ("<=", 5, True),
    ],
)
def test_numeric_compare_operators(store, op, value, expected):
    assert NumericCompare("count", op, value).evaluate(store) is expected


def test_numeric_compare_accepts_numeric_strings(store):
    assert NumericCompare("ratio", ComparisonOperator.GT, 2).evaluate(store)


def test_numeric_compare_is_false_for_missing_or_non_numeric(store):
    assert not NumericCompare("missing", ">", 0).evaluate(store)
    assert not NumericCompare("text", ">", 0).evaluate(store)
    assert not NumericCompare("flag", "==", 1).evaluate(store)


def test_unknown_operator_is_rejected():
    with pytest.raises(ValueError):
        NumericCompare("count", "~", 1)


def test_composition_operators(store):
    both = KeyExists("name") & NumericCompare("count", ">", 3)
    either = KeyExists("missing") | KeyEquals("name", "alice")
    negated = ~KeyExists("missing")
    assert isinstance(both, AllOf) and both.evaluate(store)
    assert isinstance(either, AnyOf) and either.evaluate(store)
    assert isinstance(negated, Not) and negated.evaluate(store)
    assert not (both & Never()).evaluate(store)


def test_empty_groups(store):
    assert AllOf(()).evaluate(store)
    assert not AnyOf(()).evaluate(store)


def test_predicate_wraps_callable(store):
    condition = Predicate(lambda s: len(s.keys()) == 5, label="five_keys")
    assert condition.evaluate(store)
    assert str(condition) == "five_keys()"


def test_condition_rendering():
    condition = KeyExists("a") & ~NumericCompare("b", ">=", 2)
    assert str(condition) == "(exists(a) && !(b >= 2))"
