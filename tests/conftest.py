from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.users.models import User
from app.api.users.schemas import UserRole
from app.api.visitors.models import Visitor
from app.api.visitors.schemas import VisitorStatus
from app.api.visits.dependencies import get_lifecycle
from app.api.visits.lifecycle import VisitLifecycle
from app.core.config import Environment, settings
from app.core.database import Base, get_db
from app.core.security import TokenData, create_access_token
from main import app

# Wednesday. The reporting week around it runs Sunday 2025-06-29 to Saturday 2025-07-05
NOW = datetime(2025, 7, 2, 10, 0)


@pytest.fixture(scope='session', autouse=True)
def check_test_environment():
    if settings.ENVIRONMENT != Environment.TEST:
        raise RuntimeError(
            f'Tests can only be executed in test environment. Current environment: {settings.ENVIRONMENT}'
        )


@pytest.fixture(scope='session', autouse=True)
def setup_test_keys():
    """Set default keys for testing to avoid None values in headers"""
    original_api_key = settings.ADMIN_API_KEY
    original_secret_key = settings.SECRET_KEY

    settings.ADMIN_API_KEY = 'test_admin_api_key'
    settings.SECRET_KEY = 'test_secret_key'

    yield

    settings.ADMIN_API_KEY = original_api_key
    settings.SECRET_KEY = original_secret_key


@pytest.fixture(scope='session')
def test_db_engine():
    engine = create_engine(
        settings.SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope='function')
def db_session(test_db_engine):
    """Create a fresh database session for each test"""
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_db_engine
    )

    # Drop and recreate all tables before each test
    Base.metadata.drop_all(bind=test_db_engine)
    Base.metadata.create_all(bind=test_db_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope='function')
def lifecycle():
    """Lifecycle pinned to a fixed clock, also used by the API"""
    fixed = VisitLifecycle(clock=lambda: NOW)
    app.dependency_overrides[get_lifecycle] = lambda: fixed
    yield fixed
    app.dependency_overrides.pop(get_lifecycle, None)


@pytest.fixture(scope='function')
def client(db_session, lifecycle):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def token_for(user: User) -> TokenData:
    return TokenData(user_id=user.id, email=user.email, role=user.role)


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a staff user"""
    user_data = {'user_id': user.id, 'email': user.email, 'role': user.role}
    access_token = create_access_token(data=user_data)
    return {'Authorization': f'Bearer {access_token}'}


@pytest.fixture(scope='function')
def create_test_user(db_session):
    """Factory fixture to create staff users"""

    def _create_user(email: str, role: UserRole, first_name: str = 'Test'):
        user = User(
            email=email,
            first_name=first_name,
            last_name='User',
            role=role.value,
            department='Operations',
        )
        db_session.add(user)
        db_session.commit()
        return user

    yield _create_user


@pytest.fixture(scope='function')
def test_admin(create_test_user):
    return create_test_user('admin@example.com', UserRole.ADMIN, 'Admin')


@pytest.fixture(scope='function')
def test_host(create_test_user):
    return create_test_user('host@example.com', UserRole.HOST, 'Host')


@pytest.fixture(scope='function')
def test_reception(create_test_user):
    return create_test_user('reception@example.com', UserRole.RECEPTION, 'Reception')


@pytest.fixture(scope='function')
def admin_headers(test_admin):
    return get_auth_headers(test_admin)


@pytest.fixture(scope='function')
def host_headers(test_host):
    return get_auth_headers(test_host)


@pytest.fixture(scope='function')
def reception_headers(test_reception):
    return get_auth_headers(test_reception)


@pytest.fixture(scope='function')
def create_test_visitor(db_session):
    """Factory fixture to create visitors"""

    def _create_visitor(
        phone: str,
        status: VisitorStatus = VisitorStatus.PENDING,
        host_id: int = None,
        first_name: str = 'Jane',
    ):
        visitor = Visitor(
            first_name=first_name,
            last_name='Doe',
            phone=phone,
            email=f'{first_name.lower()}.{phone}@example.com',
            company='Acme',
            purpose='Meeting',
            status=status.value,
            host_id=host_id,
        )
        db_session.add(visitor)
        db_session.commit()
        return visitor

    yield _create_visitor


@pytest.fixture(scope='function')
def test_visitor(create_test_visitor, test_host):
    return create_test_visitor('555-0100', host_id=test_host.id)


@pytest.fixture(scope='function')
def approved_visitor(create_test_visitor, test_host):
    return create_test_visitor(
        '555-0200', VisitorStatus.APPROVED, test_host.id, first_name='John'
    )
