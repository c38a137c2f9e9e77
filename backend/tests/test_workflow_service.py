"""
Workflow routing engine tests.

Verifies:
- Parallel branches are independent and drive the aggregate status
- Only recipients (user or department member) complete or forward steps
- A step is completed exactly once
- Routing authority and routable states
- Inbox and history read models
"""

import pytest

from docregistry.constants import StepAction
from docregistry.errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from docregistry.models import Document, WorkflowStep
from docregistry.services import document_service, workflow_service


def _route(document, sender, **target):
    return workflow_service.route_document(document.id, sender, **target)


class TestParallelBranches:
    def test_scenario_two_branches_resolve_the_document(self, db_session, document, clerk, user_a, user_b):
        step_a = _route(document, clerk, to_user_id=user_a.id)
        step_b = _route(document, clerk, to_user_id=user_b.id)

        assert step_a.step_status == "pending"
        assert step_b.step_status == "pending"
        assert db_session.get(Document, document.id).status == "in_work"

        _, doc = workflow_service.complete_step(step_a.id, user_a, "resolved")
        assert doc.status == "in_work"

        _, doc = workflow_service.complete_step(step_b.id, user_b, "approved", resolution="Certificate issued")
        assert doc.status == "resolved"
        assert doc.resolved_at is not None
        assert doc.resolution == "Certificate issued"

    def test_completing_one_branch_leaves_the_other_pending(self, db_session, document, clerk, user_a, user_b):
        step_a = _route(document, clerk, to_user_id=user_a.id)
        step_b = _route(document, clerk, to_user_id=user_b.id)

        workflow_service.complete_step(step_a.id, user_a, "resolved")

        assert db_session.get(WorkflowStep, step_a.id).step_status == "completed"
        assert db_session.get(WorkflowStep, step_b.id).step_status == "pending"
        assert db_session.get(WorkflowStep, step_b.id).action is None
        assert db_session.get(Document, document.id).status == "in_work"

    def test_rejection_keeps_document_in_work(self, db_session, document, clerk, user_a):
        step = _route(document, clerk, to_user_id=user_a.id)

        step, doc = workflow_service.complete_step(step.id, user_a, "rejected", notes="Missing signature")

        assert step.action == "rejected"
        assert step.notes == "Missing signature"
        assert step.completed_by_user_id == user_a.id
        assert doc.status == "in_work"

    def test_rerouting_a_resolved_document_reopens_it(self, db_session, document, clerk, user_a, user_b):
        step = _route(document, clerk, to_user_id=user_a.id)
        workflow_service.complete_step(step.id, user_a, "resolved")

        _route(document, clerk, to_user_id=user_b.id)

        reloaded = db_session.get(Document, document.id)
        assert reloaded.status == "in_work"
        assert reloaded.resolved_at is None

    def test_routing_follows_latest_target(self, db_session, document, clerk, user_a, department):
        _route(document, clerk, to_user_id=user_a.id)
        _route(document, clerk, to_department_id=department.id)

        reloaded = db_session.get(Document, document.id)
        assert reloaded.assigned_to_user_id == user_a.id
        assert reloaded.department_id == department.id


class TestCompletion:
    def test_only_recipient_may_complete(self, db_session, document, clerk, user_a, user_b):
        step = _route(document, clerk, to_user_id=user_a.id)

        with pytest.raises(Forbidden):
            workflow_service.complete_step(step.id, user_b, "resolved")
        with pytest.raises(Forbidden):
            workflow_service.complete_step(step.id, clerk, "resolved")

    def test_department_member_may_complete(self, db_session, document, clerk, user_a, user_b, department):
        step = _route(document, clerk, to_department_id=department.id)

        with pytest.raises(Forbidden):
            workflow_service.complete_step(step.id, user_a, "resolved")

        _, doc = workflow_service.complete_step(step.id, user_b, "resolved")
        assert doc.status == "resolved"

    def test_second_completion_is_invalid(self, db_session, document, clerk, user_a):
        step = _route(document, clerk, to_user_id=user_a.id)
        workflow_service.complete_step(step.id, user_a, "received")

        with pytest.raises(InvalidTransition):
            workflow_service.complete_step(step.id, user_a, "resolved")

        assert db_session.get(WorkflowStep, step.id).action == "received"

    @pytest.mark.parametrize("action", ["cancelled", "closed", None, 3])
    def test_action_must_be_a_completion_action(self, db_session, document, clerk, user_a, action):
        step = _route(document, clerk, to_user_id=user_a.id)

        with pytest.raises(ValidationFailed) as exc_info:
            workflow_service.complete_step(step.id, user_a, action)

        assert "action" in exc_info.value.field_errors
        assert db_session.get(WorkflowStep, step.id).step_status == "pending"

    def test_unknown_step(self, db_session, user_a):
        with pytest.raises(NotFound):
            workflow_service.complete_step(4242, user_a, "resolved")

    def test_closing_a_completed_step_loses_the_race(self, db_session, document, clerk, user_a):
        step = _route(document, clerk, to_user_id=user_a.id)
        workflow_service.complete_step(step.id, user_a, "resolved")

        stale = db_session.get(WorkflowStep, step.id)
        with pytest.raises(InvalidTransition):
            workflow_service.close_step(stale, clerk, StepAction.CANCELLED)
        db_session.rollback()

        assert db_session.get(WorkflowStep, step.id).action == "resolved"


class TestForward:
    def test_forward_completes_and_opens_next_step(self, db_session, document, clerk, user_a, user_b):
        step = _route(document, clerk, to_user_id=user_a.id)

        completed, next_step = workflow_service.forward_step(
            step.id, user_a, to_user_id=user_b.id, notes="Please handle"
        )

        assert completed.action == "sent"
        assert completed.step_status == "completed"
        assert next_step.step_status == "pending"
        assert next_step.from_user_id == user_a.id
        assert next_step.to_user_id == user_b.id

        _, doc = workflow_service.complete_step(next_step.id, user_b, "resolved")
        assert doc.status == "resolved"

    def test_only_recipient_may_forward(self, db_session, document, clerk, user_a, user_b):
        step = _route(document, clerk, to_user_id=user_a.id)

        with pytest.raises(Forbidden):
            workflow_service.forward_step(step.id, user_b, to_user_id=clerk.id)


class TestRouting:
    def test_draft_cannot_be_routed(self, db_session, config, clerk, user_a):
        draft = document_service.create_draft(
            {"document_type": "internal", "configuration_id": config.id, "subject": "Memo"}, clerk
        )

        with pytest.raises(InvalidTransition):
            workflow_service.route_document(draft.id, clerk, to_user_id=user_a.id)

    def test_cancelled_document_cannot_be_routed(self, db_session, document, clerk, user_a):
        document.status = "cancelled"
        db_session.commit()

        with pytest.raises(InvalidTransition):
            _route(document, clerk, to_user_id=user_a.id)

    def test_target_is_required(self, db_session, document, clerk):
        with pytest.raises(ValidationFailed):
            _route(document, clerk)

    def test_target_must_exist(self, db_session, document, clerk):
        with pytest.raises(ValidationFailed) as exc_info:
            _route(document, clerk, to_user_id=999, to_department_id=999)

        assert set(exc_info.value.field_errors) == {"to_user_id", "to_department_id"}

    def test_pending_recipient_may_route_further(self, db_session, document, clerk, user_a, user_b):
        _route(document, clerk, to_user_id=user_a.id)

        step = _route(document, user_a, to_user_id=user_b.id)

        assert step.from_user_id == user_a.id

    def test_former_recipient_may_not_route(self, db_session, document, clerk, user_a, user_b):
        step = _route(document, clerk, to_user_id=user_a.id)
        workflow_service.complete_step(step.id, user_a, "received")

        with pytest.raises(Forbidden):
            _route(document, user_a, to_user_id=user_b.id)

    def test_unrelated_user_does_not_see_the_document(self, db_session, document, outsider, user_a):
        with pytest.raises(NotFound):
            _route(document, outsider, to_user_id=user_a.id)

    def test_registrar_may_route_any_visible_document(self, db_session, document, registrar, user_a):
        step = _route(document, registrar, to_user_id=user_a.id)
        assert step.from_user_id == registrar.id


class TestReadModels:
    def test_history_newest_first(self, db_session, document, clerk, user_a, user_b):
        first = _route(document, clerk, to_user_id=user_a.id)
        second = _route(document, clerk, to_user_id=user_b.id)

        steps = workflow_service.list_steps(document.id, clerk)

        assert [s.id for s in steps] == [second.id, first.id]

    def test_recipient_sees_history(self, db_session, document, clerk, user_a):
        _route(document, clerk, to_user_id=user_a.id)
        assert len(workflow_service.list_steps(document.id, user_a)) == 1

    def test_inbox(self, db_session, document, clerk, user_a, user_b, department):
        step = _route(document, clerk, to_user_id=user_a.id)
        _route(document, clerk, to_department_id=department.id)

        inbox_a = workflow_service.list_pending_for_user(user_a)
        inbox_b = workflow_service.list_pending_for_user(user_b)
        assert [d["id"] for d in inbox_a["items"]] == [document.id]
        assert [d["id"] for d in inbox_b["items"]] == [document.id]

        workflow_service.complete_step(step.id, user_a, "resolved")

        assert workflow_service.list_pending_for_user(user_a)["total"] == 0
        assert workflow_service.list_pending_for_user(user_b)["total"] == 1
