"""
Cancellation coordinator tests.

Verifies:
- Cancel-all is creator-only and forces the document to cancelled
- Cancel-own-branch touches only the caller's pending steps
- Cancelling the last open branch cancels the document as a side effect
- Cancellation and completion of one step have exactly one winner
"""

import pytest

from docregistry.errors import Forbidden, InvalidTransition, NoPendingSteps, NotFound
from docregistry.models import Document, WorkflowStep
from docregistry.services import cancellation_service, workflow_service


def _route(document, sender, user):
    return workflow_service.route_document(document.id, sender, to_user_id=user.id)


class TestCancelAll:
    def test_scenario_creator_cancels_everything(self, db_session, document, clerk, user_a):
        step = _route(document, clerk, user_a)

        result = cancellation_service.cancel_document(document.id, clerk, cancel_all_steps=True)

        assert result == {
            "document_id": document.id,
            "cancelled_all": True,
            "steps_cancelled": 1,
            "status": "cancelled",
        }
        reloaded = db_session.get(WorkflowStep, step.id)
        assert (reloaded.step_status, reloaded.action) == ("completed", "cancelled")
        assert db_session.get(Document, document.id).cancelled_at is not None

    def test_forces_cancelled_even_with_resolved_branches(self, db_session, document, clerk, user_a, user_b):
        step_a = _route(document, clerk, user_a)
        step_b = _route(document, clerk, user_b)
        workflow_service.complete_step(step_a.id, user_a, "resolved")

        count = cancellation_service.cancel_all(document.id, clerk)

        assert count == 1
        assert db_session.get(WorkflowStep, step_a.id).action == "resolved"
        assert db_session.get(WorkflowStep, step_b.id).action == "cancelled"
        assert db_session.get(Document, document.id).status == "cancelled"

    def test_document_without_steps_can_be_cancelled(self, db_session, document, clerk):
        result = cancellation_service.cancel_document(document.id, clerk, cancel_all_steps=True)

        assert result["steps_cancelled"] == 0
        assert result["status"] == "cancelled"

    def test_non_creator_is_forbidden(self, db_session, document, clerk, user_a, registrar):
        step = _route(document, clerk, user_a)

        with pytest.raises(Forbidden):
            cancellation_service.cancel_all(document.id, user_a)
        with pytest.raises(Forbidden):
            cancellation_service.cancel_all(document.id, registrar)

        assert db_session.get(WorkflowStep, step.id).step_status == "pending"
        assert db_session.get(Document, document.id).status == "in_work"

    def test_invisible_document_is_not_found(self, db_session, document, outsider):
        with pytest.raises(NotFound):
            cancellation_service.cancel_all(document.id, outsider)

    def test_already_cancelled(self, db_session, document, clerk):
        cancellation_service.cancel_all(document.id, clerk)

        with pytest.raises(InvalidTransition):
            cancellation_service.cancel_all(document.id, clerk)

    def test_cancelled_step_can_no_longer_be_completed(self, db_session, document, clerk, user_a):
        step = _route(document, clerk, user_a)
        cancellation_service.cancel_all(document.id, clerk)

        with pytest.raises(InvalidTransition):
            workflow_service.complete_step(step.id, user_a, "resolved")

        assert db_session.get(WorkflowStep, step.id).action == "cancelled"


class TestCancelOwnBranch:
    def test_scenario_one_branch_cancelled_other_stays_pending(self, db_session, document, clerk, user_a, user_b):
        step_a = _route(document, clerk, user_a)
        step_b = _route(document, clerk, user_b)

        result = cancellation_service.cancel_document(document.id, user_a, cancel_all_steps=False)

        assert result["cancelled_all"] is False
        assert result["steps_cancelled"] == 1
        assert result["status"] == "in_work"
        assert db_session.get(WorkflowStep, step_a.id).action == "cancelled"
        assert db_session.get(WorkflowStep, step_b.id).step_status == "pending"

    def test_last_open_branch_cancels_the_document(self, db_session, document, clerk, user_a, user_b):
        _route(document, clerk, user_a)
        _route(document, clerk, user_b)

        cancellation_service.cancel_own_branch(document.id, user_a)
        result = cancellation_service.cancel_document(document.id, user_b)

        assert result["status"] == "cancelled"

    def test_remaining_resolution_resolves_the_document(self, db_session, document, clerk, user_a, user_b):
        step_a = _route(document, clerk, user_a)
        _route(document, clerk, user_b)
        workflow_service.complete_step(step_a.id, user_a, "approved")

        result = cancellation_service.cancel_document(document.id, user_b)

        assert result["status"] == "resolved"

    def test_cancels_every_pending_step_of_the_caller(self, db_session, document, clerk, user_a):
        _route(document, clerk, user_a)
        _route(document, clerk, user_a)

        assert cancellation_service.cancel_own_branch(document.id, user_a) == 2

    def test_nothing_pending_for_caller(self, db_session, document, clerk, user_a, user_b):
        _route(document, clerk, user_a)

        with pytest.raises(NoPendingSteps):
            cancellation_service.cancel_own_branch(document.id, clerk)

        step_b = _route(document, clerk, user_b)
        workflow_service.complete_step(step_b.id, user_b, "resolved")
        with pytest.raises(NoPendingSteps):
            cancellation_service.cancel_own_branch(document.id, user_b)

    def test_department_steps_are_not_own_branches(self, db_session, document, clerk, user_b, department):
        workflow_service.route_document(document.id, clerk, to_department_id=department.id)

        with pytest.raises(NoPendingSteps):
            cancellation_service.cancel_own_branch(document.id, user_b)
