"""
Tests for condition composition.

Tests cover:
- Parsing "column op ?" expressions into tagged predicates
- Rejection of anything outside the expression grammar
- Merge order and last-writer-wins override
- Compilation to SQLAlchemy clauses
"""

import logging

import pytest
from hypothesis import given, settings, strategies as st

from record_access.conditions import ConditionSet, Predicate, canonical_key, compose
from shared.utils.exceptions import InvalidPredicateError
from tests.models import User


class TestPredicateParse:
    """Tests for Predicate.parse()"""

    @pytest.mark.parametrize(
        "expression, column, operator",
        [
            ("id = ?", "id", "="),
            ("id>?", "id", ">"),
            ("  user_name   LIKE ?", "user_name", "LIKE"),
            ("user_id not in (?)", "user_id", "NOT IN"),
            ("user_id <> ?", "user_id", "<>"),
            ("user_name IS NOT NULL", "user_name", "IS NOT NULL"),
            ("user_name is null", "user_name", "IS NULL"),
        ],
    )
    def test_accepts_grammar(self, expression, column, operator):
        value = [1] if "IN" in operator else (None if "NULL" in operator else 1)
        predicate = Predicate.parse(expression, value)

        assert predicate.column == column
        assert predicate.operator == operator

    @pytest.mark.parametrize(
        "expression",
        [
            "id = ? OR 1=1",
            "id",
            "1id = ?",
            "id = ?; DROP TABLE app_user",
            "id > 5",
            "id BETWEEN ? AND ?",
            "user_name IS NULL ?",
            "app_user.id = ?",
            "",
        ],
    )
    def test_rejects_everything_else(self, expression):
        with pytest.raises(InvalidPredicateError):
            Predicate.parse(expression, 1)

    def test_invalid_predicate_is_value_error(self):
        with pytest.raises(ValueError):
            Predicate.parse("id ==== ?", 1)

    def test_bare_operator_refuses_value(self):
        with pytest.raises(InvalidPredicateError):
            Predicate("user_name", "IS NULL", "x")

    def test_in_needs_sequence(self):
        with pytest.raises(InvalidPredicateError):
            Predicate("user_name", "IN", "abc")

    def test_ordering_operator_needs_value(self):
        with pytest.raises(InvalidPredicateError):
            Predicate.parse("id > ?", None)

    def test_key_is_canonical(self):
        assert Predicate.parse("id>?", 1).key == "id > ?"
        assert Predicate.parse("user_name is not null").key == "user_name IS NOT NULL"
        assert canonical_key("user_id   in ?") == "user_id IN ?"


class TestConditionSet:
    """Tests for ConditionSet"""

    def test_from_mapping_parses_every_key(self):
        conditions = ConditionSet.from_mapping({"id > ?": 5, "user_name IS NOT NULL": None})

        assert len(conditions) == 2
        assert conditions["id > ?"].value == 5
        assert conditions["user_name IS NOT NULL"].is_bare

    def test_equivalent_spellings_collide(self):
        conditions = ConditionSet.from_mapping({"id > ?": 1, "id>?": 2})

        assert len(conditions) == 1
        assert conditions["id > ?"].value == 2

    def test_lookup_accepts_any_spelling(self):
        conditions = ConditionSet.from_mapping({"id >= ?": 1})

        assert "id>=?" in conditions
        assert conditions["id>=?"].value == 1
        assert "id <= ?" not in conditions
        assert "not an expression" not in conditions

    def test_membership_of_malformed_key_logs_nothing(self, caplog):
        conditions = ConditionSet.from_mapping({"id = ?": 1})

        with caplog.at_level(logging.DEBUG, logger="shared.utils.exceptions"):
            assert "id = ? OR 1=1" not in conditions
            assert "user_name IS NULL ?" not in conditions
            assert 42 not in conditions

        assert caplog.records == []

    def test_from_mapping_accepts_predicates_and_none(self):
        assert len(ConditionSet.from_mapping(None)) == 0
        assert len(ConditionSet.from_mapping([Predicate("id", "=", 1)])) == 1
        assert len(ConditionSet.from_mapping(Predicate("id", "=", 1))) == 1

    def test_from_mapping_copies(self):
        original = ConditionSet.from_mapping({"id = ?": 1})
        copy = ConditionSet.from_mapping(original)
        copy.add(Predicate("id", "=", 2))

        assert original["id = ?"].value == 1

    def test_from_mapping_rejects_strings(self):
        with pytest.raises(TypeError):
            ConditionSet.from_mapping("id = 1")

    def test_to_dict_round_trips_keys(self):
        conditions = ConditionSet.from_mapping({"id>?": 3})
        assert conditions.to_dict() == {"id > ?": 3}

    def test_without_column(self):
        conditions = ConditionSet.from_mapping({"id > ?": 3, "is_deleted = ?": "N"})

        assert conditions.references("is_deleted")
        assert not conditions.without_column("is_deleted").references("is_deleted")


class TestCompose:
    """Tests for compose()"""

    def test_caller_overrides_default(self):
        effective = compose({"is_deleted = ?": "N"}, {"is_deleted = ?": "Y", "id > ?": 10})

        assert effective["is_deleted = ?"].value == "Y"
        assert effective["id > ?"].value == 10
        assert len(effective) == 2

    def test_later_caller_sets_win(self):
        effective = compose(None, {"id = ?": 1}, {"id = ?": 2}, {"id = ?": 3})
        assert effective["id = ?"].value == 3

    def test_order_is_defaults_first(self):
        effective = compose({"is_deleted = ?": "N"}, {"id > ?": 1})
        assert effective.keys() == ["is_deleted = ?", "id > ?"]

    def test_default_is_not_mutated(self):
        default = ConditionSet.from_mapping({"is_deleted = ?": "N"})
        compose(default, {"is_deleted = ?": "Y"})

        assert default["is_deleted = ?"].value == "N"

    def test_different_operators_do_not_collide(self):
        effective = compose({"id > ?": 1}, {"id < ?": 9})
        assert len(effective) == 2

    @given(
        column=st.from_regex(r"[a-z_][a-z0-9_]{0,12}", fullmatch=True),
        v1=st.integers(),
        v2=st.integers(),
    )
    @settings(max_examples=50)
    def test_override_wins_for_any_column(self, column, v1, v2):
        """Property: applying k -> v2 after default k -> v1 yields v2."""
        expression = f"{column} = ?"
        effective = compose({expression: v1}, {expression: v2})

        assert len(effective) == 1
        assert effective[expression].value == v2


class TestCompile:
    """Tests for compiling predicates to SQLAlchemy clauses"""

    def test_bound_value(self):
        clause = Predicate("id", ">", 5).compile(User.__table__)
        compiled = clause.compile()

        assert str(clause) == "app_user.id > :id_1"
        assert compiled.params == {"id_1": 5}

    def test_bare_expressions(self):
        assert str(Predicate("user_name", "IS NOT NULL").compile(User.__table__)) == (
            "app_user.user_name IS NOT NULL"
        )
        assert str(Predicate("user_name", "IS NULL").compile(User.__table__)) == (
            "app_user.user_name IS NULL"
        )

    def test_equality_with_none_is_null_check(self):
        clause = Predicate.parse("user_name = ?", None).compile(User.__table__)
        assert str(clause) == "app_user.user_name IS NULL"

    def test_in_list(self):
        clause = Predicate("id", "IN", (1, 2, 3)).compile(User.__table__)
        assert "IN" in str(clause)

    def test_like(self):
        clause = Predicate("user_name", "LIKE", "user%").compile(User.__table__)
        assert "LIKE" in str(clause)

    def test_unknown_column_rejected(self):
        with pytest.raises(InvalidPredicateError):
            Predicate("password", "=", "x").compile(User.__table__)

    def test_unqualified_without_table(self):
        assert str(Predicate("t", ">", 0).compile()) == "t > :t_1"

    def test_condition_set_compiles_every_predicate(self):
        clauses = ConditionSet.from_mapping({"id > ?": 1, "user_id = ?": 2}).compile(User.__table__)
        assert len(clauses) == 2
