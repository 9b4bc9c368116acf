"""
Tests for the list query parser and executor.
"""
from datetime import datetime

import pytest

from app.core.errors import InvalidQuery
from app.models import Category, Plant
from app.services.query_builder import (
    FilterClause,
    QueryOptions,
    SortClause,
    execute_query,
    parse_query_params,
)
from app.services.repository import Repository
from app.routes.plants import PLANT_QUERY_OPTIONS


OPTIONS = QueryOptions(
    model=Category,
    default_limit=5,
    max_limit=20,
    default_sort="createdAt",
    allowed_sort_fields=("createdAt", "name"),
    allowed_filter_fields=("name", "parentId"),
    search_fields=("name", "description"),
    date_field="createdAt",
)


class TestParseQueryParams:
    """Test turning raw query params into a descriptor."""

    def test_defaults(self):
        descriptor = parse_query_params({}, OPTIONS)
        assert descriptor.page == 1
        assert descriptor.limit == 5
        assert descriptor.sort == SortClause("createdAt", descending=True)
        assert descriptor.filters == ()
        assert descriptor.search is None
        assert descriptor.date_range is None
        assert descriptor.skip == 0

    def test_page_and_limit(self):
        descriptor = parse_query_params({"page": "3", "limit": "7"}, OPTIONS)
        assert descriptor.page == 3
        assert descriptor.limit == 7
        assert descriptor.skip == 14

    def test_limit_is_clamped_to_max(self):
        descriptor = parse_query_params({"limit": "500"}, OPTIONS)
        assert descriptor.limit == 20

    @pytest.mark.parametrize("params", [
        {"page": "abc"},
        {"limit": "1.5"},
        {"page": "0"},
        {"limit": "-3"},
        {"limit": "1_000"},
        {"page": "99999999999999999999"},
    ])
    def test_malformed_pagination_is_rejected(self, params):
        with pytest.raises(InvalidQuery):
            parse_query_params(params, OPTIONS)

    def test_sort_direction_prefix(self):
        assert parse_query_params({"sort": "name"}, OPTIONS).sort == SortClause("name", descending=False)
        assert parse_query_params({"sort": "+name"}, OPTIONS).sort == SortClause("name", descending=False)
        assert parse_query_params({"sort": "-name"}, OPTIONS).sort == SortClause("name", descending=True)

    def test_unknown_sort_field_falls_back_to_default(self):
        descriptor = parse_query_params({"sort": "-password"}, OPTIONS)
        assert descriptor.sort == SortClause("createdAt", descending=True)

    def test_unknown_filters_are_dropped(self):
        descriptor = parse_query_params({"name": "Ferns", "secret": "x", "icon": "leaf"}, OPTIONS)
        assert descriptor.filters == (FilterClause("name", "Ferns"),)

    def test_null_filter_value(self):
        descriptor = parse_query_params({"parentId": "null"}, OPTIONS)
        assert descriptor.filters == (FilterClause("parentId", None),)

    def test_blank_search_is_ignored(self):
        assert parse_query_params({"search": "   "}, OPTIONS).search is None
        search = parse_query_params({"search": " fern "}, OPTIONS).search
        assert search.term == "fern"
        assert search.fields == ("name", "description")

    def test_date_only_range_is_inclusive(self):
        descriptor = parse_query_params({"dateFrom": "2024-01-01", "dateTo": "2024-01-31"}, OPTIONS)
        assert descriptor.date_range.field == "createdAt"
        assert descriptor.date_range.start == datetime(2024, 1, 1, 0, 0, 0)
        assert descriptor.date_range.end == datetime(2024, 1, 31, 23, 59, 59, 999999)

    def test_timezone_aware_dates_become_naive_utc(self):
        descriptor = parse_query_params({"dateFrom": "2024-01-01T10:00:00+02:00"}, OPTIONS)
        assert descriptor.date_range.start == datetime(2024, 1, 1, 8, 0, 0)
        assert descriptor.date_range.end is None
        descriptor = parse_query_params({"dateTo": "2024-01-01T10:00:00Z"}, OPTIONS)
        assert descriptor.date_range.end == datetime(2024, 1, 1, 10, 0, 0)

    @pytest.mark.parametrize("params", [
        {"dateFrom": "yesterday"},
        {"dateTo": "2024-13-01"},
        {"dateFrom": "2024-02-01", "dateTo": "2024-01-01"},
    ])
    def test_malformed_dates_are_rejected(self, params):
        with pytest.raises(InvalidQuery):
            parse_query_params(params, OPTIONS)


class TestExecuteQuery:
    """Test executing descriptors against the database."""

    @pytest.fixture
    def categories(self, make_category):
        return [
            make_category(f"Category {i:02d}", created_at=datetime(2024, 1, i + 1), description="tropical" if i % 2 else "desert")
            for i in range(12)
        ]

    def _run(self, db_session, params, options=OPTIONS, model=Category):
        descriptor = parse_query_params(params, options)
        return execute_query(Repository(db_session, model), descriptor, options)

    def test_pages_slice_the_sorted_set(self, db_session, categories):
        expected = sorted(categories, key=lambda c: c.createdAt, reverse=True)
        collected = []
        for page_number in (1, 2, 3):
            page = self._run(db_session, {"page": str(page_number)})
            assert len(page.items) <= 5
            assert [c.id for c in page.items] == [c.id for c in expected[(page_number - 1) * 5:page_number * 5]]
            collected.extend(page.items)
        assert len(collected) == 12

    def test_pagination_metadata(self, db_session, categories):
        page = self._run(db_session, {"page": "2"})
        assert page.pagination() == {
            "page": 2,
            "limit": 5,
            "total": 12,
            "totalPages": 3,
            "hasNext": True,
            "hasPrev": True,
        }
        last = self._run(db_session, {"page": "3"})
        assert len(last.items) == 2
        assert last.hasNext is False

    def test_empty_result_metadata(self, db_session):
        page = self._run(db_session, {})
        assert page.items == []
        assert page.pagination() == {
            "page": 1,
            "limit": 5,
            "total": 0,
            "totalPages": 0,
            "hasNext": False,
            "hasPrev": False,
        }

    def test_page_past_the_end_is_empty(self, db_session, categories):
        page = self._run(db_session, {"page": "9"})
        assert page.items == []
        assert page.total == 12

    def test_total_ignores_pagination(self, db_session, categories):
        first = self._run(db_session, {"search": "tropical", "limit": "2"})
        second = self._run(db_session, {"search": "tropical", "limit": "4", "page": "2"})
        assert first.total == second.total == 6

    def test_search_is_case_insensitive_substring(self, db_session, categories):
        page = self._run(db_session, {"search": "TROPIC", "limit": "20"})
        assert page.total == 6
        assert all(c.description == "tropical" for c in page.items)

    def test_search_escapes_like_wildcards(self, db_session, make_category):
        make_category("100% Organic")
        make_category("Other")
        page = self._run(db_session, {"search": "%"})
        assert [c.name for c in page.items] == ["100% Organic"]

    def test_unknown_filter_does_not_change_results(self, db_session, categories):
        plain = self._run(db_session, {"limit": "20"})
        noisy = self._run(db_session, {"limit": "20", "colour": "green"})
        assert [c.id for c in plain.items] == [c.id for c in noisy.items]
        assert plain.total == noisy.total

    def test_exact_filter_and_null_filter(self, db_session, make_category):
        root = make_category("Trees")
        make_category("Conifers", parent_id=root.id)
        make_category("Palms", parent_id=root.id)

        children = self._run(db_session, {"parentId": root.id, "sort": "name"})
        assert [c.name for c in children.items] == ["Conifers", "Palms"]

        roots = self._run(db_session, {"parentId": "null"})
        assert [c.name for c in roots.items] == ["Trees"]

    def test_date_range_is_inclusive(self, db_session, categories):
        page = self._run(db_session, {"dateFrom": "2024-01-03", "dateTo": "2024-01-05", "sort": "createdAt"})
        assert [c.createdAt.day for c in page.items] == [3, 4, 5]

    def test_ascending_sort(self, db_session, categories):
        page = self._run(db_session, {"sort": "name", "limit": "3"})
        assert [c.name for c in page.items] == ["Category 00", "Category 01", "Category 02"]

    def test_custom_membership_filter(self, db_session, make_category, make_plant):
        herbs = make_category("Herbs")
        shrubs = make_category("Shrubs")
        make_plant("Basil", [herbs.id])
        make_plant("Rosemary", [herbs.id, shrubs.id])
        make_plant("Boxwood", [shrubs.id])

        page = self._run(db_session, {"categoryId": herbs.id, "sort": "name"}, PLANT_QUERY_OPTIONS, Plant)
        assert [p.name for p in page.items] == ["Basil", "Rosemary"]
        assert page.total == 2
