"""
Numbering service tests.

Verifies:
- First number of a scope is starting_number, then contiguous
- Annual reset and the never-reset scope
- Unknown / deleted configurations and invalid years
- Concurrent allocation yields distinct, contiguous numbers (file database)
"""

import os
import threading

import pytest

from docregistry import create_app
from docregistry.errors import ConfigurationNotFound, ValidationFailed
from docregistry.extensions import db
from docregistry.models import RegisterConfiguration, RegisterCounter
from docregistry.services import numbering_service, register_config_service


def _config(session, **kwargs) -> RegisterConfiguration:
    config = RegisterConfiguration(name=kwargs.pop("name", "Register"), **kwargs)
    session.add(config)
    session.commit()
    return config


class TestSequentialAllocation:
    def test_scenario_first_numbers_of_a_scope(self, db_session):
        config = _config(db_session, starting_number=1, resets_annually=True)

        assert numbering_service.next_number(config.id, 2025) == 1
        assert numbering_service.next_number(config.id, 2025) == 2

    def test_starts_at_starting_number(self, db_session):
        config = _config(db_session, starting_number=100)

        numbers = [numbering_service.next_number(config.id, 2025) for _ in range(3)]

        assert numbers == [100, 101, 102]

    def test_annual_reset(self, db_session):
        config = _config(db_session, starting_number=5, resets_annually=True)

        assert numbering_service.next_number(config.id, 2024) == 5
        assert numbering_service.next_number(config.id, 2024) == 6
        assert numbering_service.next_number(config.id, 2025) == 5
        assert numbering_service.next_number(config.id, 2024) == 7

    def test_no_reset_shares_one_counter_across_years(self, db_session):
        config = _config(db_session, starting_number=1, resets_annually=False)

        assert numbering_service.next_number(config.id, 2024) == 1
        assert numbering_service.next_number(config.id, 2025) == 2

        counters = db_session.query(RegisterCounter).filter_by(configuration_id=config.id).all()
        assert [c.scope_year for c in counters] == [0]

    def test_configurations_are_independent(self, db_session):
        first = _config(db_session, name="Incoming")
        second = _config(db_session, name="Outgoing")

        assert numbering_service.next_number(first.id, 2025) == 1
        assert numbering_service.next_number(first.id, 2025) == 2
        assert numbering_service.next_number(second.id, 2025) == 1

    def test_year_accepted_as_digit_string(self, db_session):
        config = _config(db_session)
        assert numbering_service.next_number(config.id, "2025") == 1


class TestPeekAndFormat:
    def test_peek_does_not_allocate(self, db_session):
        config = _config(db_session, starting_number=10)

        assert numbering_service.peek_next_number(config.id, 2025) == 10
        assert numbering_service.peek_next_number(config.id, 2025) == 10
        assert numbering_service.next_number(config.id, 2025) == 10
        assert numbering_service.peek_next_number(config.id, 2025) == 11

    def test_format_number(self):
        assert numbering_service.format_number(17, 2025) == "17/2025"

    def test_changed_starting_number_only_affects_new_scopes(self, db_session, admin):
        config = _config(db_session, starting_number=1)
        numbering_service.next_number(config.id, 2025)

        register_config_service.update_configuration(
            config.id, {"starting_number": 50}, user_id=admin.id
        )

        assert numbering_service.next_number(config.id, 2025) == 2
        assert numbering_service.next_number(config.id, 2026) == 50


class TestResetPolicyChanges:
    @pytest.mark.parametrize("resets_annually", [True, False])
    def test_reset_policy_is_frozen_once_numbers_exist(self, db_session, admin, resets_annually):
        config = _config(db_session, starting_number=1, resets_annually=resets_annually)
        numbering_service.next_number(config.id, 2025)

        with pytest.raises(ValidationFailed) as exc_info:
            register_config_service.update_configuration(
                config.id, {"resets_annually": not resets_annually}, user_id=admin.id
            )

        assert "resets_annually" in exc_info.value.field_errors
        assert db_session.get(RegisterConfiguration, config.id).resets_annually is resets_annually
        assert numbering_service.next_number(config.id, 2025) == 2

    def test_reset_policy_is_frozen_once_documents_reference_it(self, db_session, document, config, admin):
        with pytest.raises(ValidationFailed):
            register_config_service.update_configuration(
                config.id, {"resets_annually": False}, user_id=admin.id
            )

    def test_unused_register_may_change_policy(self, db_session, admin):
        config = _config(db_session, resets_annually=True)

        updated = register_config_service.update_configuration(
            config.id, {"resets_annually": False}, user_id=admin.id
        )

        assert updated.resets_annually is False

    def test_repeating_the_current_policy_is_allowed(self, db_session, admin):
        config = _config(db_session, resets_annually=True)
        numbering_service.next_number(config.id, 2025)

        updated = register_config_service.update_configuration(
            config.id, {"resets_annually": True, "notes": "unchanged"}, user_id=admin.id
        )

        assert updated.notes == "unchanged"


class TestErrors:
    def test_unknown_configuration(self, db_session):
        with pytest.raises(ConfigurationNotFound):
            numbering_service.next_number(999, 2025)

    def test_deleted_configuration(self, db_session, admin):
        config = _config(db_session)
        register_config_service.delete_configuration(config.id, user_id=admin.id)

        with pytest.raises(ConfigurationNotFound):
            numbering_service.next_number(config.id, 2025)

    @pytest.mark.parametrize("year", [None, "abc", 1899, 10000, 2025.5, True])
    def test_invalid_year(self, db_session, year):
        config = _config(db_session)

        with pytest.raises(ValidationFailed) as exc_info:
            numbering_service.next_number(config.id, year)

        assert "year" in exc_info.value.field_errors

    def test_failed_registration_does_not_burn_a_number(self, db_session):
        config = _config(db_session)
        numbering_service.next_number(config.id, 2025)

        # Reserve inside a transaction that is then abandoned
        assert numbering_service.reserve_number(config.id, 2025) == 2
        db_session.rollback()

        assert numbering_service.next_number(config.id, 2025) == 2


class TestConcurrentAllocation:
    """Threads against a file database, each with its own session."""

    @pytest.fixture()
    def file_app(self, tmp_path):
        db_path = os.path.join(tmp_path, "numbering.db")
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "NUMBERING_RETRY_ATTEMPTS": 10,
            "NUMBERING_RETRY_BACKOFF": 0.01,
        })
        with app.app_context():
            db.create_all()
        yield app
        with app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()

    def test_concurrent_next_number_is_unique_and_contiguous(self, file_app):
        with file_app.app_context():
            config = RegisterConfiguration(name="Hot register", starting_number=1, resets_annually=True)
            db.session.add(config)
            db.session.commit()
            config_id = config.id
            db.session.remove()

        threads_count = 8
        per_thread = 5
        issued = []
        errors = []
        lock = threading.Lock()

        def worker():
            with file_app.app_context():
                try:
                    for _ in range(per_thread):
                        number = numbering_service.next_number(config_id, 2025)
                        with lock:
                            issued.append(number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        total = threads_count * per_thread
        assert sorted(issued) == list(range(1, total + 1))
