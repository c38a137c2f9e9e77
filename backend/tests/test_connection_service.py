"""
Document connection tests.

Verifies:
- Links are typed, stored once per pair and read in both directions
- Only the source document's creator may link it, and only while it is live
- Invisible or deleted documents never show up through a link
"""

import pytest

from docregistry.errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from docregistry.models import DocumentConnection
from docregistry.services import (
    cancellation_service,
    connection_service,
    document_service,
    register_config_service,
    workflow_service,
)


def _register(config, user, subject="Reply"):
    return document_service.register_document(
        {"document_type": "outgoing", "configuration_id": config.id, "subject": subject},
        user,
    )


@pytest.fixture()
def reply(db_session, config, clerk):
    """A second document of the clerk's parish."""
    return _register(config, clerk)


class TestLinking:
    def test_link_reads_both_directions(self, db_session, document, reply, clerk):
        connection = connection_service.link_documents(reply.id, document.id, "response", clerk)

        assert connection.connection_type == "response"
        assert connection.created_by_user_id == clerk.id

        outgoing = connection_service.list_connections(reply.id, clerk)
        incoming = connection_service.list_connections(document.id, clerk)

        assert [(c["direction"], c["connected_document"]["id"]) for c in outgoing] == [("outgoing", document.id)]
        assert [(c["direction"], c["connected_document"]["id"]) for c in incoming] == [("incoming", reply.id)]

    @pytest.mark.parametrize("first,second", [("forward", "forward"), ("forward", "reverse")])
    def test_pair_is_linked_once(self, db_session, document, reply, clerk, first, second):
        pairs = {"forward": (reply.id, document.id), "reverse": (document.id, reply.id)}
        connection_service.link_documents(*pairs[first], "related", clerk)

        with pytest.raises(ValidationFailed) as exc_info:
            connection_service.link_documents(*pairs[second], "amendment", clerk)

        assert "connected_document_id" in exc_info.value.field_errors
        assert db_session.query(DocumentConnection).count() == 1

    def test_self_link_is_rejected(self, db_session, document, clerk):
        with pytest.raises(ValidationFailed):
            connection_service.link_documents(document.id, document.id, "related", clerk)

    def test_invalid_input_is_reported_together(self, db_session, document, clerk):
        with pytest.raises(ValidationFailed) as exc_info:
            connection_service.link_documents(document.id, "abc", "sequel", clerk)

        assert set(exc_info.value.field_errors) == {"connected_document_id", "connection_type"}

    def test_invisible_target_is_not_found(self, db_session, document, clerk, user_a, other_parish, admin):
        foreign_config = register_config_service.create_configuration(
            {"name": "St. John mail", "parish_id": other_parish.id}, user_id=admin.id
        )
        foreign = _register(foreign_config, user_a, subject="Foreign")

        with pytest.raises(ValidationFailed) as exc_info:
            connection_service.link_documents(document.id, foreign.id, "related", clerk)

        assert exc_info.value.field_errors == {"connected_document_id": "document not found"}

    def test_recipient_cannot_link_someone_elses_document(self, db_session, document, clerk, user_a):
        workflow_service.route_document(document.id, clerk, to_user_id=user_a.id)
        own = _register_own(user_a)

        with pytest.raises(Forbidden):
            connection_service.link_documents(document.id, own.id, "related", user_a)

        # Linking from the own document to the routed one is fine
        connection = connection_service.link_documents(own.id, document.id, "response", user_a)
        assert connection.document_id == own.id

    def test_cancelled_source_is_read_only(self, db_session, document, reply, clerk):
        cancellation_service.cancel_all(document.id, clerk)

        with pytest.raises(InvalidTransition):
            connection_service.link_documents(document.id, reply.id, "related", clerk)

        # A cancelled document may still be the target of a link
        connection_service.link_documents(reply.id, document.id, "related", clerk)


def _register_own(user):
    """A document registered in a register of the user's own parish."""
    config = register_config_service.create_configuration(
        {"name": "Own register", "parish_id": user.parish_id}, user_id=None
    )
    return _register(config, user, subject="Own letter")


class TestListing:
    def test_unknown_document(self, db_session, clerk):
        with pytest.raises(NotFound):
            connection_service.list_connections(999, clerk)

    def test_deleted_documents_drop_out(self, db_session, document, reply, clerk):
        connection_service.link_documents(reply.id, document.id, "response", clerk)

        document_service.delete_document(document.id, clerk)

        assert connection_service.list_connections(reply.id, clerk) == []

    def test_links_to_invisible_documents_are_hidden(self, db_session, document, clerk, user_a):
        workflow_service.route_document(document.id, clerk, to_user_id=user_a.id)
        own = _register_own(user_a)
        connection_service.link_documents(own.id, document.id, "response", user_a)

        # clerk sees the incoming letter but not user_a's reply
        assert connection_service.list_connections(document.id, clerk) == []
        assert len(connection_service.list_connections(document.id, user_a)) == 1


class TestUnlinking:
    def test_creator_removes_link(self, db_session, document, reply, clerk):
        connection = connection_service.link_documents(reply.id, document.id, "related", clerk)

        result = connection_service.unlink_documents(document.id, connection.id, clerk)

        assert result == {"id": connection.id, "deleted": True}
        assert db_session.query(DocumentConnection).count() == 0

    def test_link_must_belong_to_the_document(self, db_session, document, reply, config, clerk):
        third = _register(config, clerk, subject="Third")
        connection = connection_service.link_documents(reply.id, document.id, "related", clerk)

        with pytest.raises(NotFound):
            connection_service.unlink_documents(third.id, connection.id, clerk)

    def test_other_users_cannot_remove_link(self, db_session, document, reply, clerk, user_a):
        connection = connection_service.link_documents(reply.id, document.id, "related", clerk)
        workflow_service.route_document(document.id, clerk, to_user_id=user_a.id)

        with pytest.raises(Forbidden):
            connection_service.unlink_documents(document.id, connection.id, user_a)

    def test_hard_deleted_draft_takes_its_links_along(self, db_session, document, config, clerk):
        draft = document_service.create_draft(
            {"document_type": "outgoing", "configuration_id": config.id, "subject": "Draft reply"}, clerk
        )
        connection_service.link_documents(draft.id, document.id, "response", clerk)

        result = document_service.delete_document(draft.id, clerk)

        assert result["soft_deleted"] is False
        assert db_session.query(DocumentConnection).count() == 0
        assert connection_service.list_connections(document.id, clerk) == []

    def test_cancelled_source_keeps_its_links(self, db_session, document, reply, clerk):
        connection = connection_service.link_documents(document.id, reply.id, "related", clerk)
        cancellation_service.cancel_all(document.id, clerk)

        # Reached through either end of the link
        for document_id in (document.id, reply.id):
            with pytest.raises(InvalidTransition):
                connection_service.unlink_documents(document_id, connection.id, clerk)

        assert db_session.query(DocumentConnection).count() == 1
