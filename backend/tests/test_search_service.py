"""
Search facade tests: filters, visibility, pagination, overdue listing.
"""

from datetime import date, timedelta

import pytest

from docregistry.errors import ValidationFailed
from docregistry.services import document_service, search_service, workflow_service


@pytest.fixture()
def documents(db_session, config, clerk):
    """Three registered documents of the clerk's parish."""
    rows = [
        {"document_type": "incoming", "subject": "Baptism certificate request", "priority": "high",
         "sender_name": "Jane Roe"},
        {"document_type": "outgoing", "subject": "Reply to the diocese", "content": "Budget 50% approved",
         "registration_year": 2024},
        {"document_type": "internal", "subject": "Cleaning schedule", "due_date": "2000-01-01"},
    ]
    created = []
    for row in rows:
        payload = {"configuration_id": config.id, **row}
        created.append(document_service.register_document(payload, clerk))
    return created


def _ids(result):
    return [item["id"] for item in result["items"]]


class TestFilters:
    def test_no_filters_returns_all_visible(self, db_session, documents, clerk):
        result = search_service.search_documents({}, clerk)

        assert result["total"] == 3
        assert result["page"] == 1
        assert result["page_size"] == 20
        assert result["total_pages"] == 1

    @pytest.mark.parametrize("filters,expected", [
        ({"document_type": "outgoing"}, [1]),
        ({"priority": "high"}, [0]),
        ({"status": "registered"}, [0, 1, 2]),
        ({"status": "resolved"}, []),
        ({"registration_year": 2024}, [1]),
        ({"text": "baptism"}, [0]),
        ({"text": "ROE"}, [0]),
        ({"text": "50%"}, [1]),
        ({"text": "%"}, [1]),
        ({"overdue": True}, [2]),
    ])
    def test_single_filter(self, db_session, documents, clerk, filters, expected):
        result = search_service.search_documents(filters, clerk)

        assert sorted(_ids(result)) == sorted(documents[i].id for i in expected)

    def test_date_range(self, db_session, documents, clerk):
        today = date.today()
        inside = {"date_from": (today - timedelta(days=2)).isoformat(),
                  "date_to": (today + timedelta(days=2)).isoformat()}
        outside = {"date_from": (today + timedelta(days=5)).isoformat()}

        assert search_service.search_documents(inside, clerk)["total"] == 3
        assert search_service.search_documents(outside, clerk)["total"] == 0

    def test_assignee_filter(self, db_session, documents, clerk, user_a):
        workflow_service.route_document(documents[0].id, clerk, to_user_id=user_a.id)

        result = search_service.search_documents({"assigned_to_user_id": user_a.id}, clerk)

        assert _ids(result) == [documents[0].id]

    def test_invalid_filters_are_reported_together(self, db_session, clerk):
        with pytest.raises(ValidationFailed) as exc_info:
            search_service.search_documents(
                {"status": "lost", "registration_year": "soon", "date_from": "yesterday", "color": "red"},
                clerk,
            )

        assert set(exc_info.value.field_errors) == {"status", "registration_year", "date_from", "color"}


class TestVisibility:
    def test_other_parish_sees_nothing(self, db_session, documents, outsider):
        assert search_service.search_documents({}, outsider)["total"] == 0

    def test_recipient_sees_routed_documents(self, db_session, documents, clerk, user_a):
        workflow_service.route_document(documents[1].id, clerk, to_user_id=user_a.id)

        assert _ids(search_service.search_documents({}, user_a)) == [documents[1].id]

    def test_soft_deleted_documents_are_hidden(self, db_session, documents, clerk):
        document_service.delete_document(documents[0].id, clerk)

        assert search_service.search_documents({}, clerk)["total"] == 2


class TestPagination:
    def test_pages(self, db_session, documents, clerk):
        first = search_service.search_documents({}, clerk, page=1, page_size=2)
        second = search_service.search_documents({}, clerk, page=2, page_size=2)

        assert first["total"] == 3
        assert first["total_pages"] == 2
        assert len(first["items"]) == 2
        assert len(second["items"]) == 1
        assert set(_ids(first)).isdisjoint(_ids(second))

    def test_newest_first(self, db_session, documents, clerk):
        result = search_service.search_documents({}, clerk)
        assert _ids(result) == sorted(_ids(result), reverse=True)

    @pytest.mark.parametrize("page,page_size", [(0, 20), (1, 0), (1, 101), ("x", 20)])
    def test_invalid_paging(self, db_session, clerk, page, page_size):
        with pytest.raises(ValidationFailed):
            search_service.search_documents({}, clerk, page=page, page_size=page_size)


class TestSorting:
    @pytest.mark.parametrize("sort_by,sort_dir,expected", [
        ("registration_number", "asc", [1, 0, 2]),
        ("registration_number", "desc", [2, 0, 1]),
        ("priority", "desc", [0, 2, 1]),
        ("priority", "asc", [1, 2, 0]),
        ("created_at", "asc", [0, 1, 2]),
    ])
    def test_sort_options(self, db_session, documents, clerk, sort_by, sort_dir, expected):
        result = search_service.search_documents({}, clerk, sort_by=sort_by, sort_dir=sort_dir)

        assert _ids(result) == [documents[i].id for i in expected]

    def test_drafts_sort_last_in_both_directions(self, db_session, documents, config, clerk):
        draft = document_service.create_draft(
            {"document_type": "internal", "configuration_id": config.id, "subject": "Unfinished"}, clerk
        )

        for sort_dir in ("asc", "desc"):
            result = search_service.search_documents(
                {}, clerk, sort_by="registration_number", sort_dir=sort_dir
            )
            assert _ids(result)[-1] == draft.id

    def test_invalid_sort_is_rejected(self, db_session, clerk):
        with pytest.raises(ValidationFailed) as exc_info:
            search_service.search_documents({}, clerk, sort_by="subject; drop table", sort_dir="sideways")

        assert set(exc_info.value.field_errors) == {"sort_by", "sort_dir"}


def test_list_overdue_documents(db_session, documents, parish, other_parish):
    overdue = search_service.list_overdue_documents()
    assert [d.id for d in overdue] == [documents[2].id]

    assert search_service.list_overdue_documents(parish_id=other_parish.id) == []
    assert search_service.list_overdue_documents(today=date(1999, 1, 1)) == []
