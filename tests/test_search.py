"""
Tests for free-form search and count.

Tests cover:
- Pagination with an unpaginated total
- Grouping with HAVING on a labelled aggregate
- Searching a table addressed by name
- Option validation
"""

import pytest
from sqlalchemy import func

from record_access import SearchOptions, SearchResult
from shared.config.settings import get_settings
from shared.utils.exceptions import InvalidOptionsError, InvalidPredicateError, PrimaryKeyNotBlankError
from tests.models import Tag, User


class TestSearchAll:
    """Tests for search_all()"""

    def test_page_with_total(self, accessor, seed_users):
        result = accessor.search_all(
            User,
            {"id > ?": 5},
            SearchOptions(fields="id", order_by="id", limit=2, with_total=True),
        )

        assert isinstance(result, SearchResult)
        assert result.rows == [{"id": 6}, {"id": 7}]
        assert result.total == 5

    def test_limit_above_thousand(self, accessor, seed_users):
        result = accessor.search_all(User, None, SearchOptions(limit=5000, with_total=True))

        assert len(result) == 10
        assert result.total == 10

    def test_offset(self, accessor, seed_users):
        result = accessor.search_all(
            User, {"id > ?": 5}, SearchOptions(fields="id", order_by="id", offset=3)
        )

        assert [row["id"] for row in result] == [9, 10]
        assert result.total is None

    def test_total_ignores_pagination(self, accessor, seed_users):
        result = accessor.search_all(
            User, None, SearchOptions(order_by="id", offset=8, limit=5, with_total=True)
        )

        assert len(result) == 2
        assert result.total == 10

    def test_group_by_with_having(self, accessor, seed_users):
        result = accessor.search_all(
            User,
            None,
            SearchOptions(
                fields=["user_id", func.count().label("t")],
                group_by="user_id",
                having={"t > ?": 3},
            ),
        )

        assert result.rows == [{"user_id": 1, "t": 4}]

    def test_group_by_total_counts_groups(self, accessor, seed_users):
        result = accessor.search_all(
            User,
            None,
            SearchOptions(
                fields=["user_id", func.count().label("t")],
                group_by="user_id",
                order_by="user_id",
                limit=1,
                with_total=True,
            ),
        )

        assert result.rows == [{"user_id": 0, "t": 3}]
        assert result.total == 3

    def test_search_by_table_name(self, accessor, seed_users):
        result = accessor.search_all(
            "app_user", {"user_id = ?": 2}, SearchOptions(fields="id, user_name", order_by="id desc")
        )

        assert [row["user_name"] for row in result] == ["user8", "user5", "user2"]

    def test_search_hides_soft_deleted(self, accessor, seed_users):
        accessor.delete_by_condition(User, {"id > ?": 8})

        assert len(accessor.search_all(User)) == 8
        assert len(accessor.search_all(User, None, SearchOptions(include_deleted=True))) == 10

    def test_table_without_flag(self, accessor, seed_tags):
        result = accessor.search_all(Tag, {"name LIKE ?": "%e%"}, SearchOptions(fields="name", order_by="name"))

        assert [row["name"] for row in result] == ["blue", "green", "red"]

    def test_no_match_is_empty(self, accessor, seed_users):
        result = accessor.search_all(User, {"id < ?": 0}, SearchOptions(with_total=True))

        assert result.rows == []
        assert result.total == 0

    def test_unknown_field_rejected(self, accessor, seed_users):
        with pytest.raises(InvalidPredicateError):
            accessor.search_all(User, None, SearchOptions(fields="password"))


class TestSearchOne:
    """Tests for search_one()"""

    def test_first_row_as_dict(self, accessor, seed_users):
        row = accessor.search_one("app_user", {"user_id = ?": 1}, SearchOptions(fields="id", order_by="id"))

        assert row == {"id": 1}

    def test_no_match_returns_none(self, accessor, seed_users):
        destination = {"id": -1}

        assert accessor.search_one("app_user", {"id = ?": 0}, into=destination) is None
        assert destination == {"id": -1}

    def test_into_dict(self, accessor, seed_users):
        destination = {}

        result = accessor.search_one(User, {"id = ?": 3}, SearchOptions(fields="user_name"), into=destination)

        assert result is destination
        assert destination == {"user_name": "user3"}

    def test_into_blank_entity(self, accessor, seed_users):
        destination = User()

        accessor.search_one(User, {"id = ?": 3}, SearchOptions(fields="user_id, user_name"), into=destination)

        assert destination.user_id == 0
        assert destination.user_name == "user3"

    def test_keyed_destination_rejected(self, accessor, seed_users):
        with pytest.raises(PrimaryKeyNotBlankError):
            accessor.search_one(User, {"id = ?": 3}, into=User(id=3))


class TestCount:
    """Tests for count()"""

    def test_count_with_conditions(self, accessor, seed_users):
        assert accessor.count(User, {"id > ?": 5}) == 5
        assert accessor.count("app_user", {"user_id IN ?": [1, 2]}) == 7

    def test_count_groups(self, accessor, seed_users):
        assert accessor.count(User, group_by="user_id") == 3

    def test_count_groups_with_having(self, accessor, seed_users):
        assert accessor.count(User, group_by="user_id", having=func.count() > 3) == 1

    def test_count_groups_with_mapping_having_on_group_column(self, accessor, seed_users):
        assert accessor.count(User, group_by="user_id", having={"user_id > ?": 0}) == 2

    def test_having_requires_group_by(self, accessor, seed_users):
        with pytest.raises(InvalidOptionsError):
            accessor.count(User, having=func.count() > 3)


class TestSearchOptions:
    """Tests for SearchOptions validation"""

    def test_negative_offset(self):
        with pytest.raises(InvalidOptionsError):
            SearchOptions(offset=-1)

    def test_negative_limit(self):
        with pytest.raises(InvalidOptionsError):
            SearchOptions(limit=-5)

    def test_zero_limit_means_unlimited(self):
        assert SearchOptions(limit=0).limit is None

    def test_large_limit_accepted(self):
        assert SearchOptions(limit=1_000_000).limit == 1_000_000

    def test_configured_page_cap(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_page_size", 100)

        with pytest.raises(InvalidOptionsError, match="limit exceeds max page size"):
            SearchOptions(limit=101)
        assert SearchOptions(limit=100).limit == 100

    def test_having_without_group_by(self):
        with pytest.raises(InvalidOptionsError, match="having requires group_by"):
            SearchOptions(having={"t > ?": 1})

    def test_invalid_options_is_value_error(self):
        with pytest.raises(ValueError):
            SearchOptions(offset=-1)
