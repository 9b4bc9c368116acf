"""
Tests for deleting a category and invalidating its plants.
"""
import pytest

from app.core.errors import CascadeIncompleteError, NotFound, StorageFailure
from app.models import Category, Plant
from app.services import category_cascade
from app.services.category_cascade import delete_category_with_cascade


class TestCategoryCascade:
    """Test the delete-then-deactivate protocol."""

    def test_plants_become_inactive_and_keep_memberships(self, db_session, make_category, make_plant):
        a = make_category("A")
        b = make_category("B")
        p1 = make_plant("p1", [a.id])
        p2 = make_plant("p2", [a.id, b.id])
        p3 = make_plant("p3", [b.id])

        result = delete_category_with_cascade(db_session, a.id)

        assert result.modifiedCount == 2
        assert result.name == "A"
        assert db_session.get(Category, a.id) is None

        db_session.expire_all()
        assert db_session.get(Plant, p1.id).status == "inactive"
        assert db_session.get(Plant, p2.id).status == "inactive"
        assert db_session.get(Plant, p2.id).categoryIds == [a.id, b.id]
        assert db_session.get(Plant, p3.id).status == "active"

    def test_category_without_plants(self, db_session, make_category, make_plant):
        a = make_category("A")
        b = make_category("B")
        p = make_plant("p", [b.id])

        result = delete_category_with_cascade(db_session, a.id)

        assert result.modifiedCount == 0
        db_session.expire_all()
        assert db_session.get(Plant, p.id).status == "active"

    def test_already_inactive_plants_are_not_counted(self, db_session, make_category, make_plant):
        a = make_category("A")
        make_plant("active", [a.id])
        make_plant("dormant", [a.id], status="inactive")

        assert delete_category_with_cascade(db_session, a.id).modifiedCount == 1

    def test_missing_category_skips_cascade(self, db_session, make_plant, monkeypatch):
        calls = []
        monkeypatch.setattr(category_cascade, "deactivate_plants_in_category", lambda db, cid: calls.append(cid))

        with pytest.raises(NotFound):
            delete_category_with_cascade(db_session, "does-not-exist")
        assert calls == []

    def test_failed_cascade_is_partial_completion(self, db_session, make_category, make_plant, monkeypatch):
        a = make_category("A")
        p = make_plant("p", [a.id])

        def _fail(db, category_id):
            raise StorageFailure()

        monkeypatch.setattr(category_cascade, "deactivate_plants_in_category", _fail)

        with pytest.raises(CascadeIncompleteError) as exc_info:
            delete_category_with_cascade(db_session, a.id)

        assert exc_info.value.category_id == a.id
        assert exc_info.value.to_payload()["partial"] is True
        assert db_session.get(Category, a.id) is None
        db_session.expire_all()
        assert db_session.get(Plant, p.id).status == "active"
