"""
Pytest fixtures for docregistry backend tests.

Provides the test database, directory fixtures (parish, users, department),
register configurations, documents and an authenticated test client.
"""

import pytest
from docregistry import create_app
from docregistry.extensions import db
from docregistry.models import Department, DepartmentMember, Parish, User
from docregistry.services import document_service, register_config_service, session_service
from docregistry.services.auth_service import hash_password


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'NUMBERING_RETRY_BACKOFF': 0.0,
}

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(session, username: str, role: str = "clerk", parish_id=None) -> User:
    user = User(
        parish_id=parish_id,
        username=username,
        email=f"{username}@registry.test",
        password_hash=hash_password(PASSWORD),
        role=role,
        is_active=True,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def parish(db_session):
    parish = Parish(name="St. Mary", code="STM", is_active=True)
    db_session.add(parish)
    db_session.commit()
    return parish


@pytest.fixture(scope='function')
def other_parish(db_session):
    parish = Parish(name="St. John", code="STJ", is_active=True)
    db_session.add(parish)
    db_session.commit()
    return parish


@pytest.fixture(scope='function')
def admin(db_session):
    """Global administrator (no parish)."""
    return make_user(db_session, "admin", role="admin")


@pytest.fixture(scope='function')
def registrar(db_session, parish):
    return make_user(db_session, "registrar", role="registrar", parish_id=parish.id)


@pytest.fixture(scope='function')
def clerk(db_session, parish):
    """Document creator in most tests."""
    return make_user(db_session, "clerk", role="clerk", parish_id=parish.id)


@pytest.fixture(scope='function')
def user_a(db_session, other_parish):
    """Recipient outside the creator's parish."""
    return make_user(db_session, "user_a", role="clerk", parish_id=other_parish.id)


@pytest.fixture(scope='function')
def user_b(db_session, other_parish):
    return make_user(db_session, "user_b", role="clerk", parish_id=other_parish.id)


@pytest.fixture(scope='function')
def outsider(db_session, other_parish):
    """Clerk with no relation to the test documents."""
    return make_user(db_session, "outsider", role="clerk", parish_id=other_parish.id)


@pytest.fixture(scope='function')
def department(db_session, other_parish, user_b):
    """Department in the other parish with user_b as its only member."""
    department = Department(parish_id=other_parish.id, name="Chancery", code="CH", is_active=True)
    db_session.add(department)
    db_session.commit()
    db_session.add(DepartmentMember(department_id=department.id, user_id=user_b.id))
    db_session.commit()
    return department


@pytest.fixture(scope='function')
def config(db_session, parish, admin):
    """Annually-resetting register starting at 1."""
    return register_config_service.create_configuration(
        {"name": "Incoming mail", "parish_id": parish.id},
        user_id=admin.id,
    )


@pytest.fixture(scope='function')
def document(db_session, config, clerk):
    """A registered document created by ``clerk``."""
    return document_service.register_document(
        {
            "document_type": "incoming",
            "configuration_id": config.id,
            "subject": "Request for a baptism certificate",
            "sender_name": "Jane Roe",
        },
        clerk,
    )


def auth_headers_for(user: User) -> dict:
    """Authorization headers for a fresh session of ``user``."""
    _session, token = session_service.create_session(user.id)
    return auth_headers(token)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory fixture: headers_for(user) -> Authorization headers."""
    return auth_headers_for
